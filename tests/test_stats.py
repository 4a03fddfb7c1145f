from datetime import datetime, timezone

import pytest

from sdmetrics_adapter.stats import (
    AcceleratorStats,
    ContainerStats,
    CPUStats,
    FsStats,
    InterfaceStats,
    MemoryStats,
    NetworkStats,
    NodeStats,
    PodReference,
    PodStats,
    PVCReference,
    RlimitStats,
    RuntimeStats,
    Summary,
    UserDefinedMetric,
    UserDefinedMetricType,
    VolumeStats,
    summary_from_dict,
    summary_from_json,
    summary_to_dict,
    summary_to_json,
)

T1 = datetime(2017, 1, 2, 13, 1, 0, tzinfo=timezone.utc)
T2 = datetime(2017, 1, 2, 13, 2, 0, tzinfo=timezone.utc)


def _full_summary() -> Summary:
    container = ContainerStats(
        name="cont1",
        start_time=T1,
        cpu=CPUStats(time=T2, usage_nano_cores=1000, usage_core_nano_seconds=5000),
        memory=MemoryStats(time=T2, usage_bytes=100, working_set_bytes=90, rss_bytes=80),
        accelerators=[
            AcceleratorStats(make="nvidia", model="tesla-k80", id="gpu-0", memory_total=10,
                             memory_used=5, duty_cycle=50)
        ],
        rootfs=FsStats(time=T2, used_bytes=42),
        logs=FsStats(time=T2, used_bytes=7),
        user_defined_metrics=[
            UserDefinedMetric(name="qps", type=UserDefinedMetricType.GAUGE, units="count",
                              labels={"a": "b"}, time=T2, value=1.5)
        ],
    )
    pod = PodStats(
        pod_ref=PodReference(name="pod1", namespace="namespace1", uid="uid-1"),
        start_time=T1,
        containers=[container],
        cpu=CPUStats(time=T2, usage_nano_cores=10),
        network=NetworkStats(name="eth0", rx_bytes=1, tx_bytes=2, time=T2,
                             interfaces=[InterfaceStats(name="eth0", rx_bytes=1, tx_bytes=2)]),
        volume_stats=[VolumeStats(time=T2, used_bytes=3, name="data",
                                  pvc_ref=PVCReference(name="claim", namespace="namespace1"))],
        ephemeral_storage=FsStats(time=T2, used_bytes=9),
    )
    node = NodeStats(
        node_name="node1",
        system_containers=[ContainerStats(name="kubelet", start_time=T1)],
        start_time=T1,
        cpu=CPUStats(time=T2, usage_nano_cores=20),
        memory=MemoryStats(time=T2, available_bytes=1000),
        fs=FsStats(time=T2, capacity_bytes=2000),
        runtime=RuntimeStats(image_fs=FsStats(time=T2, inodes=4)),
        rlimit=RlimitStats(time=T2, max_pid=32768, num_of_running_processes=12),
    )
    return Summary(node=node, pods=[pod])


def test_json_round_trip_preserves_summary():
    summary = _full_summary()
    assert summary_from_json(summary_to_json(summary)) == summary


def test_dict_round_trip_preserves_summary():
    summary = _full_summary()
    assert summary_from_dict(summary_to_dict(summary)) == summary


def test_time_is_written_in_rfc3339_utc():
    data = summary_to_dict(_full_summary())
    assert data["node"]["startTime"] == "2017-01-02T13:01:00Z"
    assert data["node"]["cpu"]["time"] == "2017-01-02T13:02:00Z"


def test_json_key_names_follow_the_wire_format():
    data = summary_to_dict(_full_summary())
    pod = data["pods"][0]
    assert pod["podRef"] == {"name": "pod1", "namespace": "namespace1", "uid": "uid-1"}
    assert pod["ephemeral-storage"]["usedBytes"] == 9
    assert data["node"]["rlimit"]["maxpid"] == 32768
    assert data["node"]["rlimit"]["curproc"] == 12
    assert data["node"]["runtime"]["imageFs"]["inodes"] == 4


def test_embedded_structures_are_inlined():
    data = summary_to_dict(_full_summary())
    pod = data["pods"][0]
    assert pod["network"]["name"] == "eth0"
    assert pod["network"]["rxBytes"] == 1
    volume = pod["volume"][0]
    assert volume["usedBytes"] == 3
    assert volume["pvcRef"] == {"name": "claim", "namespace": "namespace1"}
    metric = pod["containers"][0]["userDefinedMetrics"][0]
    assert metric["type"] == "gauge"
    assert metric["labels"] == {"a": "b"}
    assert metric["value"] == 1.5


def test_empty_optional_fields_are_omitted():
    data = summary_to_dict(Summary(node=NodeStats(node_name="node1")))
    assert data == {"node": {"nodeName": "node1", "startTime": None}, "pods": []}


def test_unset_time_is_null_and_parses_back_to_none():
    summary = summary_from_json('{"node": {"nodeName": "n", "startTime": null}, "pods": null}')
    assert summary.node.start_time is None
    assert summary.pods == []


def test_missing_fields_take_defaults():
    summary = summary_from_dict({"node": {"nodeName": "node1"}})
    assert summary.node.cpu is None
    assert summary.node.system_containers == []
    assert summary.pods == []


def test_unknown_keys_are_ignored():
    summary = summary_from_dict({"node": {"nodeName": "node1", "extra": 1}, "other": True})
    assert summary.node.node_name == "node1"


def test_time_offset_is_converted_to_utc():
    summary = summary_from_dict({"node": {"startTime": "2017-01-02T14:01:00+01:00"}})
    assert summary.node.start_time == T1


def test_fractional_seconds_are_dropped_on_output():
    summary = summary_from_dict({"node": {"startTime": "2017-01-02T13:01:00.5Z"}})
    assert summary.node.start_time.microsecond == 500000
    assert summary_to_dict(summary)["node"]["startTime"] == "2017-01-02T13:01:00Z"


def test_unknown_metric_type_is_kept_as_text():
    data = {
        "node": {},
        "pods": [{"containers": [{"name": "c", "userDefinedMetrics": [
            {"name": "m", "type": "histogram", "units": "", "value": 2}]}]}],
    }
    summary = summary_from_dict(data)
    metric = summary.pods[0].containers[0].user_defined_metrics[0]
    assert metric.type == "histogram"
    assert metric.value == 2.0
    assert summary_to_dict(summary)["pods"][0]["containers"][0]["userDefinedMetrics"][0][
        "type"
    ] == "histogram"


def test_known_metric_type_decodes_to_enum():
    data = {"node": {}, "pods": [{"containers": [{"userDefinedMetrics": [
        {"name": "m", "type": "cumulative"}]}]}]}
    metric = summary_from_dict(data).pods[0].containers[0].user_defined_metrics[0]
    assert metric.type is UserDefinedMetricType.CUMULATIVE


@pytest.mark.parametrize("value", [-1, 2**64, 1.5, "10", True])
def test_invalid_unsigned_values_are_rejected(value):
    with pytest.raises(ValueError):
        summary_from_dict({"node": {"cpu": {"usageNanoCores": value}}})


@pytest.mark.parametrize("text", ["yesterday", "2017-01-02 13:01:00", "2017-13-02T13:01:00Z"])
def test_invalid_times_are_rejected(text):
    with pytest.raises(ValueError):
        summary_from_dict({"node": {"startTime": text}})


def test_non_object_input_is_rejected():
    with pytest.raises(ValueError):
        summary_from_dict([1, 2])
    with pytest.raises(ValueError):
        summary_from_dict({"node": {"systemContainers": {"name": "x"}}})


def test_malformed_json_is_rejected():
    with pytest.raises(ValueError):
        summary_from_json("{not json")


def test_non_string_labels_are_rejected():
    data = {"node": {}, "pods": [{"containers": [{"userDefinedMetrics": [
        {"name": "m", "labels": {"a": 1}}]}]}]}
    with pytest.raises(ValueError):
        summary_from_dict(data)
"""Node and pod resource statistics as reported by the kubelet summary API."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

SYSTEM_CONTAINER_KUBELET = "kubelet"
SYSTEM_CONTAINER_RUNTIME = "runtime"
SYSTEM_CONTAINER_MISC = "misc"
SYSTEM_CONTAINER_PODS = "pods"

_UINT64_LIMIT = 2**64

_TIME_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)


@dataclass(frozen=True)
class _Codec:
    encode: Callable[[Any], Any]
    decode: Callable[[Any, str], Any]


def _decode_str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"field {key!r}: expected a string, got {value!r}")
    return value


def _decode_uint(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r}: expected an unsigned integer, got {value!r}")
    if not 0 <= value < _UINT64_LIMIT:
        raise ValueError(f"field {key!r}: {value} is out of range for an unsigned 64-bit integer")
    return value


def _decode_float(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r}: expected a number, got {value!r}")
    return float(value)


def _decode_time(value: Any, key: str) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"field {key!r}: expected an RFC 3339 time, got {value!r}")
    match = _TIME_RE.match(value)
    if match is None:
        raise ValueError(f"field {key!r}: {value!r} is not an RFC 3339 time")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micros = int((fraction[1:] + "000000")[:6]) if fraction else 0
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        tz = timezone(sign * offset)
    try:
        moment = datetime(
            int(year), int(month), int(day), int(hour), int(minute), int(second), micros, tz
        )
    except ValueError as exc:
        raise ValueError(f"field {key!r}: {value!r} is not a valid time: {exc}") from None
    return moment.astimezone(timezone.utc)


def _encode_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _decode_str_map(value: Any, key: str) -> Dict[str, str]:
    if not isinstance(value, dict):
        raise ValueError(f"field {key!r}: expected an object, got {value!r}")
    for k, v in value.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise ValueError(f"field {key!r}: labels must map strings to strings")
    return dict(value)


_STR = _Codec(lambda v: v, _decode_str)
_UINT = _Codec(lambda v: v, _decode_uint)
_FLOAT = _Codec(lambda v: v, _decode_float)
_TIME = _Codec(_encode_time, _decode_time)
_STR_MAP = _Codec(dict, _decode_str_map)


def _obj(cls) -> _Codec:
    return _Codec(_to_dict, lambda value, key: _from_dict(cls, value, key))


def _list(item: _Codec) -> _Codec:
    def decode(value: Any, key: str) -> list:
        if not isinstance(value, list):
            raise ValueError(f"field {key!r}: expected an array, got {value!r}")
        return [item.decode(v, key) for v in value]

    return _Codec(lambda values: [item.encode(v) for v in values], decode)


def _field(key: str, codec: _Codec, *, default: Any = None, factory=None, omit: bool = False):
    metadata = {"json": key, "codec": codec, "omit": omit}
    if factory is not None:
        return field(default_factory=factory, metadata=metadata)
    return field(default=default, metadata=metadata)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (list, dict)):
        return not value
    return isinstance(value, str) and value == ""


def _to_dict(obj: Any) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if f.metadata["omit"] and _is_empty(value):
            continue
        out[f.metadata["json"]] = None if value is None else f.metadata["codec"].encode(value)
    return out


def _from_dict(cls, data: Any, where: str = "summary"):
    if not isinstance(data, dict):
        raise ValueError(f"{where}: expected an object, got {data!r}")
    kwargs = {}
    for f in fields(cls):
        key = f.metadata["json"]
        value = data.get(key)
        if value is not None:
            kwargs[f.name] = f.metadata["codec"].decode(value, key)
    return cls(**kwargs)


@dataclass
class FsStats:
    """Filesystem usage."""

    time: Optional[datetime] = _field("time", _TIME)
    available_bytes: Optional[int] = _field("availableBytes", _UINT, omit=True)
    capacity_bytes: Optional[int] = _field("capacityBytes", _UINT, omit=True)
    used_bytes: Optional[int] = _field("usedBytes", _UINT, omit=True)
    inodes_free: Optional[int] = _field("inodesFree", _UINT, omit=True)
    inodes: Optional[int] = _field("inodes", _UINT, omit=True)
    inodes_used: Optional[int] = _field("inodesUsed", _UINT, omit=True)


@dataclass
class PVCReference:
    """Identifies a persistent volume claim."""

    name: str = _field("name", _STR, default="")
    namespace: str = _field("namespace", _STR, default="")


@dataclass
class VolumeStats(FsStats):
    """Filesystem usage of one volume; the usage fields are serialised inline."""

    name: str = _field("name", _STR, default="", omit=True)
    pvc_ref: Optional[PVCReference] = _field("pvcRef", _obj(PVCReference), omit=True)


@dataclass
class AcceleratorStats:
    """Usage of one accelerator attached to a container."""

    make: str = _field("make", _STR, default="")
    model: str = _field("model", _STR, default="")
    id: str = _field("id", _STR, default="")
    memory_total: int = _field("memoryTotal", _UINT, default=0)
    memory_used: int = _field("memoryUsed", _UINT, default=0)
    duty_cycle: int = _field("dutyCycle", _UINT, default=0)


@dataclass
class MemoryStats:
    """Memory usage."""

    time: Optional[datetime] = _field("time", _TIME)
    available_bytes: Optional[int] = _field("availableBytes", _UINT, omit=True)
    usage_bytes: Optional[int] = _field("usageBytes", _UINT, omit=True)
    working_set_bytes: Optional[int] = _field("workingSetBytes", _UINT, omit=True)
    rss_bytes: Optional[int] = _field("rssBytes", _UINT, omit=True)
    page_faults: Optional[int] = _field("pageFaults", _UINT, omit=True)
    major_page_faults: Optional[int] = _field("majorPageFaults", _UINT, omit=True)


@dataclass
class CPUStats:
    """CPU usage."""

    time: Optional[datetime] = _field("time", _TIME)
    usage_nano_cores: Optional[int] = _field("usageNanoCores", _UINT, omit=True)
    usage_core_nano_seconds: Optional[int] = _field("usageCoreNanoSeconds", _UINT, omit=True)


@dataclass
class InterfaceStats:
    """Traffic counters of one network interface."""

    name: str = _field("name", _STR, default="")
    rx_bytes: Optional[int] = _field("rxBytes", _UINT, omit=True)
    rx_errors: Optional[int] = _field("rxErrors", _UINT, omit=True)
    tx_bytes: Optional[int] = _field("txBytes", _UINT, omit=True)
    tx_errors: Optional[int] = _field("txErrors", _UINT, omit=True)


@dataclass
class NetworkStats(InterfaceStats):
    """Network usage; the default interface's counters are serialised inline."""

    time: Optional[datetime] = _field("time", _TIME)
    interfaces: List[InterfaceStats] = _field(
        "interfaces", _list(_obj(InterfaceStats)), factory=list, omit=True
    )


@dataclass
class PodReference:
    """Identifies a pod."""

    name: str = _field("name", _STR, default="")
    namespace: str = _field("namespace", _STR, default="")
    uid: str = _field("uid", _STR, default="")


class UserDefinedMetricType(str, Enum):
    """How a user defined metric is to be interpreted."""

    GAUGE = "gauge"
    CUMULATIVE = "cumulative"
    DELTA = "delta"


def _decode_metric_type(value: Any, key: str) -> Union[UserDefinedMetricType, str]:
    text = _decode_str(value, key)
    try:
        return UserDefinedMetricType(text)
    except ValueError:
        return text


_METRIC_TYPE = _Codec(
    lambda v: v.value if isinstance(v, UserDefinedMetricType) else v, _decode_metric_type
)


@dataclass
class UserDefinedMetricDescriptor:
    """Describes a user defined metric."""

    name: str = _field("name", _STR, default="")
    type: Union[UserDefinedMetricType, str] = _field("type", _METRIC_TYPE, default="")
    units: str = _field("units", _STR, default="")
    labels: Dict[str, str] = _field("labels", _STR_MAP, factory=dict, omit=True)


@dataclass
class UserDefinedMetric(UserDefinedMetricDescriptor):
    """A sample of a user defined metric; the descriptor is serialised inline."""

    time: Optional[datetime] = _field("time", _TIME)
    value: float = _field("value", _FLOAT, default=0.0)


@dataclass
class ContainerStats:
    """Usage of one container."""

    name: str = _field("name", _STR, default="")
    start_time: Optional[datetime] = _field("startTime", _TIME)
    cpu: Optional[CPUStats] = _field("cpu", _obj(CPUStats), omit=True)
    memory: Optional[MemoryStats] = _field("memory", _obj(MemoryStats), omit=True)
    accelerators: List[AcceleratorStats] = _field(
        "accelerators", _list(_obj(AcceleratorStats)), factory=list, omit=True
    )
    rootfs: Optional[FsStats] = _field("rootfs", _obj(FsStats), omit=True)
    logs: Optional[FsStats] = _field("logs", _obj(FsStats), omit=True)
    user_defined_metrics: List[UserDefinedMetric] = _field(
        "userDefinedMetrics", _list(_obj(UserDefinedMetric)), factory=list, omit=True
    )


@dataclass
class PodStats:
    """Usage of one pod and its containers."""

    pod_ref: PodReference = _field("podRef", _obj(PodReference), factory=PodReference)
    start_time: Optional[datetime] = _field("startTime", _TIME)
    containers: List[ContainerStats] = _field(
        "containers", _list(_obj(ContainerStats)), factory=list
    )
    cpu: Optional[CPUStats] = _field("cpu", _obj(CPUStats), omit=True)
    memory: Optional[MemoryStats] = _field("memory", _obj(MemoryStats), omit=True)
    network: Optional[NetworkStats] = _field("network", _obj(NetworkStats), omit=True)
    volume_stats: List[VolumeStats] = _field(
        "volume", _list(_obj(VolumeStats)), factory=list, omit=True
    )
    ephemeral_storage: Optional[FsStats] = _field("ephemeral-storage", _obj(FsStats), omit=True)


@dataclass
class RuntimeStats:
    """Usage of the container runtime."""

    image_fs: Optional[FsStats] = _field("imageFs", _obj(FsStats), omit=True)


@dataclass
class RlimitStats:
    """Process limits of the operating system."""

    time: Optional[datetime] = _field("time", _TIME)
    max_pid: Optional[int] = _field("maxpid", _UINT, omit=True)
    num_of_running_processes: Optional[int] = _field("curproc", _UINT, omit=True)


@dataclass
class NodeStats:
    """Usage of one node."""

    node_name: str = _field("nodeName", _STR, default="")
    system_containers: List[ContainerStats] = _field(
        "systemContainers", _list(_obj(ContainerStats)), factory=list, omit=True
    )
    start_time: Optional[datetime] = _field("startTime", _TIME)
    cpu: Optional[CPUStats] = _field("cpu", _obj(CPUStats), omit=True)
    memory: Optional[MemoryStats] = _field("memory", _obj(MemoryStats), omit=True)
    network: Optional[NetworkStats] = _field("network", _obj(NetworkStats), omit=True)
    fs: Optional[FsStats] = _field("fs", _obj(FsStats), omit=True)
    runtime: Optional[RuntimeStats] = _field("runtime", _obj(RuntimeStats), omit=True)
    rlimit: Optional[RlimitStats] = _field("rlimit", _obj(RlimitStats), omit=True)


@dataclass
class Summary:
    """Node statistics together with the statistics of its pods."""

    node: NodeStats = _field("node", _obj(NodeStats), factory=NodeStats)
    pods: List[PodStats] = _field("pods", _list(_obj(PodStats)), factory=list)


def summary_from_dict(data: Any) -> Summary:
    """Build a Summary from decoded JSON; raise ValueError on malformed input."""
    return _from_dict(Summary, data)


def summary_to_dict(summary: Summary) -> Dict[str, Any]:
    """Return the JSON-ready dictionary form of ``summary``."""
    return _to_dict(summary)


def summary_from_json(text: Union[str, bytes]) -> Summary:
    """Parse a Summary from JSON text; raise ValueError on malformed input."""
    return summary_from_dict(json.loads(text))


def summary_to_json(summary: Summary) -> str:
    """Serialise ``summary`` as JSON text."""
    return json.dumps(summary_to_dict(summary))
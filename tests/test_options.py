from datetime import timedelta

import pytest

from sdmetrics_adapter.options import (
    OptionsError,
    ServerOptions,
    check_server_options,
    parse_duration,
    parse_server_options,
    select_custom_metrics,
    validate_url,
)


@pytest.mark.parametrize(
    "url, expect",
    [
        ("https://monitoring.googleapis.com", True),
        ("https://monitoring.googleapis.com/", True),
        ("http://monitoring.googleapis.com", True),
        ("http://google.com", True),
        ("http//google.com", False),
        ("http//google.com/", False),
        ("google.com", False),
        ("google.com/", False),
        ("google/com", False),
        ("http:::/not.valid/a//a??a?b=&&c#hi", False),
        ("http://", False),
    ],
)
def test_validate_url(url, expect):
    assert validate_url(url) is expect


def test_validate_url_rejects_control_characters():
    assert validate_url("http://exa\nmple.com") is False


@pytest.mark.parametrize(
    "text, expected",
    [
        ("0", timedelta(0)),
        ("5s", timedelta(seconds=5)),
        ("1m", timedelta(minutes=1)),
        ("1h30m", timedelta(hours=1, minutes=30)),
        ("1.5h", timedelta(minutes=90)),
        ("300ms", timedelta(milliseconds=300)),
        ("-1m", timedelta(minutes=-1)),
        ("2us", timedelta(microseconds=2)),
        (".5s", timedelta(milliseconds=500)),
    ],
)
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


@pytest.mark.parametrize("text", ["", "5", "1x", "abc", "s", "-"])
def test_parse_duration_rejects(text):
    with pytest.raises(OptionsError):
        parse_duration(text)


def test_defaults():
    options = parse_server_options([])
    assert options == ServerOptions()
    assert options.enable_custom_metrics_api is True
    assert options.enable_external_metrics_api is True
    assert options.use_new_resource_model is False
    assert options.external_metrics_cache_size == 300
    assert options.external_metrics_cache_ttl == timedelta(0)


def test_parse_flags():
    options = parse_server_options(
        [
            "adapter",
            "--use-new-resource-model",
            "--enable-custom-metrics-api=false",
            "--metrics-address",
            "localhost:8080",
            "--stackdriver-endpoint=https://monitoring.example.com/",
            "--external-metric-cache-ttl=1m",
            "--external-metric-cache-size",
            "42",
            "--list-full-custom-metrics=true",
        ]
    )
    assert options.use_new_resource_model is True
    assert options.enable_custom_metrics_api is False
    assert options.metrics_address == "localhost:8080"
    assert options.stackdriver_endpoint == "https://monitoring.example.com/"
    assert options.external_metrics_cache_ttl == timedelta(minutes=1)
    assert options.external_metrics_cache_size == 42
    assert options.list_full_custom_metrics is True


def test_positional_after_bool_is_not_consumed():
    options = parse_server_options(["--enable-core-metrics-api", "false"])
    assert options.enable_core_metrics_api is True


def test_unknown_flag():
    with pytest.raises(OptionsError):
        parse_server_options(["--no-such-flag"])


def test_missing_argument():
    with pytest.raises(OptionsError):
        parse_server_options(["--metrics-address"])


@pytest.mark.parametrize(
    "args",
    [
        ["--use-new-resource-model=maybe"],
        ["--external-metric-cache-size=many"],
        ["--external-metric-cache-ttl=10"],
    ],
)
def test_bad_values(args):
    with pytest.raises(OptionsError):
        parse_server_options(args)


def test_check_fallback_requires_new_model():
    with pytest.raises(OptionsError, match="Container metrics"):
        check_server_options(ServerOptions(fallback_for_container_metrics=True))


def test_check_core_requires_new_model():
    with pytest.raises(OptionsError, match="Core metrics"):
        check_server_options(ServerOptions(enable_core_metrics_api=True))


def test_check_bad_endpoint():
    with pytest.raises(OptionsError, match="not correct url"):
        check_server_options(ServerOptions(stackdriver_endpoint="google.com"))


def test_check_valid_options_pass():
    options = ServerOptions(
        use_new_resource_model=True,
        fallback_for_container_metrics=True,
        enable_core_metrics_api=True,
        stackdriver_endpoint="https://monitoring.example.com",
    )
    assert check_server_options(options) is None


def test_select_custom_metrics_first_only():
    assert select_custom_metrics(["a", "b", "c"], False) == ["a"]


def test_select_custom_metrics_full():
    assert select_custom_metrics(["a", "b", "c"], True) == ["a", "b", "c"]


def test_select_custom_metrics_empty():
    assert select_custom_metrics([], False) == []
"""Command-line options of the metrics adapter server."""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass, fields
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional, Sequence, TypeVar
from urllib.parse import urlsplit

DEFAULT_EXTERNAL_METRICS_CACHE_SIZE = 300

T = TypeVar("T")


class OptionsError(ValueError):
    """Raised when command-line options are malformed or inconsistent."""


@dataclass
class ServerOptions:
    """Settings that control which metric APIs the adapter serves and how."""

    use_new_resource_model: bool = False
    enable_custom_metrics_api: bool = True
    enable_external_metrics_api: bool = True
    fallback_for_container_metrics: bool = False
    enable_core_metrics_api: bool = False
    metrics_address: str = ""
    stackdriver_endpoint: str = ""
    enable_distribution_support: bool = False
    list_full_custom_metrics: bool = False
    external_metrics_cache_ttl: timedelta = timedelta(0)
    external_metrics_cache_size: int = DEFAULT_EXTERNAL_METRICS_CACHE_SIZE


_FLAGS = {
    "use-new-resource-model": "use_new_resource_model",
    "enable-custom-metrics-api": "enable_custom_metrics_api",
    "enable-external-metrics-api": "enable_external_metrics_api",
    "fallback-for-container-metrics": "fallback_for_container_metrics",
    "enable-core-metrics-api": "enable_core_metrics_api",
    "list-full-custom-metrics": "list_full_custom_metrics",
    "metrics-address": "metrics_address",
    "stackdriver-endpoint": "stackdriver_endpoint",
    "enable-distribution-support": "enable_distribution_support",
    "external-metric-cache-ttl": "external_metrics_cache_ttl",
    "external-metric-cache-size": "external_metrics_cache_size",
}

_FIELD_TYPES = {f.name: f.type for f in fields(ServerOptions)}

_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE_WORDS = {"0", "f", "F", "FALSE", "false", "False"}

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")

_UNIT_NANOS = {
    "ns": Decimal(1),
    "us": Decimal(1_000),
    "\u00b5s": Decimal(1_000),
    "\u03bcs": Decimal(1_000),
    "ms": Decimal(1_000_000),
    "s": Decimal(1_000_000_000),
    "m": Decimal(60_000_000_000),
    "h": Decimal(3_600_000_000_000),
}
_COMPONENT_RE = re.compile(r"([0-9]*(?:\.[0-9]*)?)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)?")


def validate_url(s: str) -> bool:
    """Return True when ``s`` parses as a URL with both a scheme and a host."""
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in s):
        return False
    try:
        parts = urlsplit(s)
        parts.port  # rejects malformed ports
    except ValueError:
        return False
    if not parts.scheme or not _SCHEME_RE.match(parts.scheme):
        return False
    return bool(parts.netloc) and bool(parts.hostname or parts.netloc.split("@")[-1])


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"1m"``, ``"5s"`` or ``"1h30m"``."""
    original = text
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise OptionsError(f"invalid duration {original!r}")
    total = Decimal(0)
    pos = 0
    while pos < len(text):
        match = _COMPONENT_RE.match(text, pos)
        number, unit = match.group(1), match.group(2)
        if not number or not any(ch.isdigit() for ch in number):
            raise OptionsError(f"invalid duration {original!r}")
        if unit is None:
            raise OptionsError(f"missing unit in duration {original!r}")
        if number.endswith("."):
            number += "0"
        if number.startswith("."):
            number = "0" + number
        total += Decimal(number) * _UNIT_NANOS[unit]
        pos = match.end()
    microseconds = int(total / 1000)
    return timedelta(microseconds=sign * microseconds)


def _parse_bool(name: str, value: str) -> bool:
    if value in _TRUE_WORDS:
        return True
    if value in _FALSE_WORDS:
        return False
    raise OptionsError(f"invalid argument {value!r} for --{name}: not a boolean")


def _parse_int(name: str, value: str) -> int:
    text = value.replace("_", "") if value[:2].lower() in ("0x", "0o", "0b") else value
    try:
        body = text.lstrip("+-")
        if len(body) > 1 and body.startswith("0") and body.isdigit():
            return int(text, 8)
        return int(text, 0)
    except ValueError:
        raise OptionsError(f"invalid argument {value!r} for --{name}: not an integer") from None


def _convert(name: str, field_name: str, value: str):
    kind = _FIELD_TYPES[field_name]
    if kind == "bool":
        return _parse_bool(name, value)
    if kind == "int":
        return _parse_int(name, value)
    if kind == "timedelta":
        try:
            return parse_duration(value)
        except OptionsError as exc:
            raise OptionsError(f"invalid argument {value!r} for --{name}: {exc}") from None
    return value


def parse_server_options(argv: Optional[Sequence[str]] = None) -> ServerOptions:
    """Build server options from command-line arguments; positional arguments are ignored."""
    args = list(sys.argv[1:] if argv is None else argv)
    options = ServerOptions()
    tokens = iter(args)
    for token in tokens:
        if token == "--":
            break
        if not token.startswith("--") or token == "-":
            continue
        name, has_value, value = token[2:].partition("=")
        field_name = _FLAGS.get(name)
        if field_name is None:
            raise OptionsError(f"unknown flag: --{name}")
        if not has_value:
            if _FIELD_TYPES[field_name] == "bool":
                value = "true"
            else:
                try:
                    value = next(tokens)
                except StopIteration:
                    raise OptionsError(f"flag needs an argument: --{name}") from None
        setattr(options, field_name, _convert(name, field_name, value))
    return options


def check_server_options(options: ServerOptions) -> None:
    """Raise OptionsError when the options cannot work together."""
    if not options.use_new_resource_model and options.fallback_for_container_metrics:
        raise OptionsError("Container metrics work only with new resource model")
    if not options.use_new_resource_model and options.enable_core_metrics_api:
        raise OptionsError("Core metrics work only with new resource model")
    if options.stackdriver_endpoint and not validate_url(options.stackdriver_endpoint):
        raise OptionsError(
            f"Provided StackdriverEndpoint {options.stackdriver_endpoint} is not correct url"
        )


def select_custom_metrics(metrics: Sequence[T], list_full_custom_metrics: bool) -> List[T]:
    """Return every metric when listing in full, otherwise at most the first one."""
    selected = list(metrics)
    if not list_full_custom_metrics and selected:
        return selected[:1]
    return selected
"""Serves a single constant gauge in the Prometheus text exposition format."""

from __future__ import annotations

import argparse
import logging
import re
from decimal import Decimal
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional, Sequence

log = logging.getLogger(__name__)

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

_METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")


def _format_value(value: float) -> str:
    """Format a float as the shortest representation in ``%g`` style."""
    if value != value:
        return "NaN"
    if value in (float("inf"), float("-inf")):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if str(value).startswith("-") else "0"
    sign, digits, exponent = Decimal(repr(value)).normalize().as_tuple()
    digit_text = "".join(str(d) for d in digits)
    nd = len(digit_text)
    dp = nd + exponent
    exp = dp - 1
    prefix = "-" if sign else ""
    if exp < -4 or exp >= max(nd, 21 if nd > 6 else 6) if False else exp < -4 or exp >= 21:
        mantissa = digit_text[0]
        if nd > 1:
            mantissa += "." + digit_text[1:]
        exp_sign = "-" if exp < 0 else "+"
        return f"{prefix}{mantissa}e{exp_sign}{abs(exp):02d}"
    if dp <= 0:
        return f"{prefix}0.{'0' * -dp}{digit_text}"
    if dp >= nd:
        return f"{prefix}{digit_text}{'0' * (dp - nd)}"
    return f"{prefix}{digit_text[:dp]}.{digit_text[dp:]}"


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def render_gauge(metric_name: str, metric_value, help_text: str = "Custom metric") -> str:
    """Return the exposition text of one gauge; raise ValueError for an invalid name."""
    if not _METRIC_NAME_RE.match(metric_name):
        raise ValueError(f"{metric_name!r} is not a valid metric name")
    return (
        f"# HELP {metric_name} {_escape_help(help_text)}\n"
        f"# TYPE {metric_name} gauge\n"
        f"{metric_name} {_format_value(float(metric_value))}\n"
    )


def make_server(port: int, body: str) -> HTTPServer:
    """Create an HTTP server on all interfaces that serves ``body`` at ``/metrics``."""
    payload = body.encode("utf-8")

    class _MetricsHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # noqa: N802
            if self.path.split("?", 1)[0] != "/metrics":
                self.send_error(404, "404 page not found")
                return
            self.send_response(200)
            self.send_header("Content-Type", CONTENT_TYPE)
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)

        def log_message(self, format: str, *args) -> None:  # noqa: A002
            log.debug("%s - %s", self.address_string(), format % args)

    return HTTPServer(("", port), _MetricsHandler)


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Expose a constant gauge metric in Prometheus format."
    )
    parser.add_argument("-metric-name", "--metric-name", dest="metric_name", default="foo",
                        help="custom metric name")
    parser.add_argument("-metric-value", "--metric-value", dest="metric_value", type=int,
                        default=0, help="custom metric value")
    parser.add_argument("-port", "--port", dest="port", type=int, default=8080,
                        help="port to expose metrics on")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Serve the configured gauge until interrupted; return 1 if serving fails."""
    logging.basicConfig(level=logging.INFO)
    args = _parse_args(argv)
    body = render_gauge(args.metric_name, args.metric_value, "Custom metric")
    try:
        server = make_server(args.port, body)
    except OSError as exc:
        log.error("Failed to start serving metrics: %s", exc)
        return 1
    log.info("Starting to listen on :%d", args.port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        return 0
    finally:
        server.server_close()
    return 1
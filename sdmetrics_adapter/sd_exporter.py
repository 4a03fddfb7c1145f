"""Writes a constant custom metric to the monitoring API in a loop.

The exporter is meant to run as a pod in a cloud Kubernetes cluster. It reads
the project, zone and cluster details from the instance metadata server and
writes a time series for the pod every few seconds.
"""

from __future__ import annotations

import argparse
import logging
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import requests

log = logging.getLogger(__name__)

DEFAULT_METADATA_URL = "http://metadata.google.internal/computeMetadata/v1/"
DEFAULT_MONITORING_URL = "https://monitoring.googleapis.com/"
CUSTOM_METRIC_PREFIX = "custom.googleapis.com/"

OLD_MODEL_RESOURCE = "gke_container"
NEW_MODEL_RESOURCE = "k8s_pod"

EXPORT_INTERVAL_SECONDS = 5.0
_REQUEST_TIMEOUT = 10.0
_TOKEN_EXPIRY_MARGIN = 10.0

TokenProvider = Callable[[], str]


def parse_metric_labels(arg: str) -> Dict[str, str]:
    """Parse ``"k1=v1,k2=v2"`` into a label dictionary.

    Raise ValueError when an entry holds no ``=``.
    """
    labels: Dict[str, str] = {}
    for label in arg.split(","):
        parts = label.split("=")
        if len(parts) < 2:
            raise ValueError(f"metric label {label!r} is not of the form name=value")
        labels[parts[0]] = parts[1]
    return labels


class MetadataClient:
    """Reads instance details from the compute metadata server."""

    def __init__(self, session: Optional[requests.Session] = None, base_url: Optional[str] = None):
        self.session = session if session is not None else requests.Session()
        if base_url is None:
            host = os.environ.get("GCE_METADATA_HOST")
            base_url = f"http://{host}/computeMetadata/v1/" if host else DEFAULT_METADATA_URL
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    def _get(self, suffix: str) -> requests.Response:
        response = self.session.get(
            self.base_url + suffix,
            headers={"Metadata-Flavor": "Google"},
            timeout=_REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        return response

    def project_id(self) -> str:
        """Return the project ID of the instance."""
        return self._get("project/project-id").text.strip()

    def zone(self) -> str:
        """Return the zone of the instance, such as ``us-central1-b``."""
        return self._get("instance/zone").text.strip().rsplit("/", 1)[-1]

    def instance_attribute(self, name: str) -> str:
        """Return the value of a custom instance attribute, as stored."""
        return self._get(f"instance/attributes/{name}").text

    def access_token(self) -> str:
        """Return an OAuth access token of the instance's default service account."""
        now = time.monotonic()
        if self._token is not None and now < self._token_expires_at:
            return self._token
        payload = self._get("instance/service-accounts/default/token").json()
        token = payload.get("access_token")
        if not token:
            raise ValueError("metadata server returned no access token")
        expires_in = float(payload.get("expires_in", 0))
        self._token = token
        self._token_expires_at = now + max(expires_in - _TOKEN_EXPIRY_MARGIN, 0.0)
        return token


def _lookup(fetch: Callable[[], str]) -> str:
    """Return the fetched value, or an empty string when the lookup fails."""
    try:
        return fetch()
    except (requests.RequestException, ValueError) as exc:
        log.debug("metadata lookup failed: %s", exc)
        return ""


def resource_labels_for_old_model(metadata: MetadataClient, pod_id: str) -> Dict[str, str]:
    """Return the ``gke_container`` resource labels for the pod ``pod_id``."""
    return {
        "project_id": _lookup(metadata.project_id),
        "zone": _lookup(metadata.zone),
        "cluster_name": _lookup(lambda: metadata.instance_attribute("cluster-name")).strip(),
        # The metric belongs to the pod, so the container name does not matter.
        "container_name": "",
        "pod_id": pod_id,
        "namespace_id": "default",
        "instance_id": "",
    }


def resource_labels_for_new_model(
    metadata: MetadataClient, namespace: str, name: str
) -> Dict[str, str]:
    """Return the ``k8s_pod`` resource labels for the named pod."""
    return {
        "project_id": _lookup(metadata.project_id),
        "location": _lookup(lambda: metadata.instance_attribute("cluster-location")).strip(),
        "cluster_name": _lookup(lambda: metadata.instance_attribute("cluster-name")).strip(),
        "namespace_name": namespace,
        "pod_name": name,
    }


def _format_rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.replace(microsecond=0)
    offset = moment.utcoffset() or timedelta(0)
    base = moment.strftime("%Y-%m-%dT%H:%M:%S")
    if offset == timedelta(0):
        return base + "Z"
    sign = "-" if offset < timedelta(0) else "+"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{base}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def build_time_series_request(
    metric_name: str,
    metric_value: int,
    metric_labels: Dict[str, str],
    monitored_resource: str,
    resource_labels: Dict[str, str],
    end_time: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Return the JSON body that writes one point of a custom metric."""
    if end_time is None:
        end_time = datetime.now().astimezone()
    point = {
        "interval": {"endTime": _format_rfc3339(end_time)},
        "value": {"int64Value": str(int(metric_value))},
    }
    return {
        "timeSeries": [
            {
                "metric": {
                    "type": CUSTOM_METRIC_PREFIX + metric_name,
                    "labels": dict(metric_labels),
                },
                "resource": {"type": monitored_resource, "labels": dict(resource_labels)},
                "points": [point],
            }
        ]
    }


class MonitoringClient:
    """Minimal client of the monitoring API's time series endpoint."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        token_provider: Optional[TokenProvider] = None,
        base_url: str = DEFAULT_MONITORING_URL,
    ):
        self.session = session if session is not None else requests.Session()
        self.token_provider = token_provider
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"

    def create_time_series(self, project_name: str, request: Dict[str, Any]) -> Dict[str, Any]:
        """Write the time series in ``request`` to ``project_name``."""
        headers = {"Content-Type": "application/json"}
        if self.token_provider is not None:
            headers["Authorization"] = f"Bearer {self.token_provider()}"
        response = self.session.post(
            f"{self.base_url}v3/{project_name}/timeSeries",
            json=request,
            headers=headers,
            timeout=_REQUEST_TIMEOUT,
        )
        response.raise_for_status()
        if not response.text:
            return {}
        return response.json()


def export_metric(
    client: MonitoringClient,
    metric_name: str,
    metric_value: int,
    metric_labels: Dict[str, str],
    monitored_resource: str,
    resource_labels: Dict[str, str],
) -> Dict[str, Any]:
    """Write one point of the metric, stamped now, to the project in the resource labels."""
    request = build_time_series_request(
        metric_name, metric_value, metric_labels, monitored_resource, resource_labels
    )
    project_name = f"projects/{resource_labels.get('project_id', '')}"
    return client.create_time_series(project_name, request)


def _flag_bool(text: str) -> bool:
    if text in ("1", "t", "T", "true", "TRUE", "True"):
        return True
    if text in ("0", "f", "F", "false", "FALSE", "False"):
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export a constant custom metric to the monitoring API."
    )

    def add(name: str, **kwargs: Any) -> None:
        parser.add_argument(f"-{name}", f"--{name}", dest=name.replace("-", "_"), **kwargs)

    add("pod-id", default="", help="pod id")
    add("namespace", default="", help="namespace")
    add("pod-name", default="", help="pod name")
    add("metric-name", default="foo", help="custom metric name")
    add("metric-value", type=int, default=0, help="custom metric value")
    add("metric-labels", default="bar=1", help="custom metric labels")
    add("use-old-resource-model", type=_flag_bool, nargs="?", const=True, default=True,
        help="use old stackdriver resource model")
    add("use-new-resource-model", type=_flag_bool, nargs="?", const=True, default=False,
        help="use new stackdriver resource model")
    return parser.parse_args(argv)


def _validate(args: argparse.Namespace) -> Optional[str]:
    if not args.pod_id and args.use_old_resource_model:
        return "No pod id specified."
    if not args.pod_name and args.use_new_resource_model:
        return "No pod name specified."
    if not args.namespace and args.use_new_resource_model:
        return "No pod namespace specified."
    return None


def _export_forever(
    client: MonitoringClient,
    metric_name: str,
    metric_value: int,
    metric_labels: Dict[str, str],
    targets: List[Tuple[str, str, Dict[str, str]]],
) -> None:
    while True:
        for model, resource, labels in targets:
            try:
                export_metric(client, metric_name, metric_value, metric_labels, resource, labels)
            except (requests.RequestException, ValueError) as exc:
                log.warning("Failed to write time series data for %s resource model: %s",
                            model, exc)
            else:
                log.info("Finished writing time series for %s resource model with value: %d",
                         model, metric_value)
        time.sleep(EXPORT_INTERVAL_SECONDS)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Export the configured metric until interrupted; return 1 on invalid settings."""
    logging.basicConfig(level=logging.INFO)
    args = _parse_args(argv)
    problem = _validate(args)
    if problem is not None:
        log.error("%s", problem)
        return 1
    try:
        metric_labels = parse_metric_labels(args.metric_labels)
    except ValueError as exc:
        log.error("%s", exc)
        return 1

    session = requests.Session()
    metadata = MetadataClient(session)
    client = MonitoringClient(session, metadata.access_token)

    targets: List[Tuple[str, str, Dict[str, str]]] = []
    if args.use_old_resource_model:
        targets.append(("old", OLD_MODEL_RESOURCE,
                        resource_labels_for_old_model(metadata, args.pod_id)))
    if args.use_new_resource_model:
        targets.append(("new", NEW_MODEL_RESOURCE,
                        resource_labels_for_new_model(metadata, args.namespace, args.pod_name)))
    try:
        _export_forever(client, args.metric_name, args.metric_value, metric_labels, targets)
    except KeyboardInterrupt:
        return 0
    return 0
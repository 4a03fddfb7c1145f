"""Mapping between escaped API metric names and monitoring metric types."""

from __future__ import annotations

from typing import List

from .apitypes import ExternalMetricInfo

CUSTOM_METRIC_PREFIX = "custom.googleapis.com/"


def get_external_metric_name(metric_name: str) -> str:
    """Turn an escaped metric name into a metric type by replacing ``|`` with ``/``."""
    return metric_name.replace("|", "/")


def get_custom_metric_name(metric_name: str) -> str:
    """Return the metric type for a custom metric name.

    Names holding ``|`` are full escaped metric types; others are custom
    metrics under the custom metric prefix.
    """
    if "|" in metric_name:
        return get_external_metric_name(metric_name)
    return CUSTOM_METRIC_PREFIX + metric_name


def list_all_external_metrics() -> List[ExternalMetricInfo]:
    """Return the placeholder list of available external metrics."""
    return [ExternalMetricInfo(metric="externalmetrics")]
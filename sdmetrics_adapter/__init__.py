"""Metric adapter building blocks for Cloud Monitoring, with constant-metric exporters."""

__version__ = "0.16.1"
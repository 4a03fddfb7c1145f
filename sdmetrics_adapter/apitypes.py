"""Value types shared by the metric providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

RESOURCE_CPU = "cpu"
RESOURCE_MEMORY = "memory"

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class NamespacedName:
    """A namespace and object name pair."""

    namespace: str = ""
    name: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class ObjectMeta:
    """The subset of object metadata carried by metric results."""

    name: str = ""
    namespace: str = ""
    labels: Dict[str, str] = field(default_factory=dict)
    creation_timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class GroupResource:
    """An API group and resource, such as ``deployments.apps``."""

    group: str = ""
    resource: str = ""

    def __str__(self) -> str:
        if not self.group:
            return self.resource
        return f"{self.resource}.{self.group}"


@dataclass(frozen=True)
class TimeInfo:
    """When a measurement ended and the window it covers."""

    timestamp: datetime = ZERO_TIME
    window: timedelta = timedelta(0)


@dataclass
class ContainerMetrics:
    """Resource usage of one container, keyed by resource name."""

    name: str
    usage: Dict[str, Decimal] = field(default_factory=dict)


@dataclass
class PodMetrics:
    """Resource usage of the containers of one pod."""

    metadata: ObjectMeta
    timestamp: datetime = ZERO_TIME
    window: timedelta = timedelta(0)
    containers: Optional[List[ContainerMetrics]] = None


@dataclass
class NodeMetrics:
    """Resource usage of one node."""

    metadata: ObjectMeta
    timestamp: datetime = ZERO_TIME
    window: timedelta = timedelta(0)
    usage: Dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class ExternalMetricInfo:
    """Identifies an external metric by its escaped name."""

    metric: str


@dataclass
class ExternalMetricValue:
    """One value of an external metric together with its labels."""

    metric_name: str
    value: Decimal
    metric_labels: Dict[str, str] = field(default_factory=dict)
    timestamp: Optional[datetime] = None
    window_seconds: Optional[int] = None


@dataclass
class ExternalMetricValueList:
    """The values returned for one external metric query."""

    items: List[ExternalMetricValue] = field(default_factory=list)
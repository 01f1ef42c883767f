"""
KubeHealth - Data Model
Pod snapshots coming in from the collectors, findings going out to the report.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple, Union

from kubehealth.config import KubeHealthError


class PodPhase(Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value):
        """Map a Kubernetes phase string to a PodPhase, Unknown for anything else."""
        for phase in cls:
            if phase.value == value:
                return phase
        return cls.UNKNOWN


class ResourceType(Enum):
    CPU = "cpu"
    MEMORY = "memory"


class FindingKind(Enum):
    """Finding kinds, declared in the order the report renders them."""

    NAMESPACE_UNAVAILABLE = "NamespaceUnavailable"
    OVER_THRESHOLD = "OverThreshold"
    RESTARTED_CONTAINER = "RestartedContainer"
    PENDING_TOO_LONG = "PendingTooLong"
    NO_METRICS = "NoMetrics"


CANONICAL_KIND_ORDER = tuple(FindingKind)


class CollectionErrorKind(Enum):
    NAMESPACE_UNREACHABLE = "NamespaceUnreachable"
    METRICS_UNAVAILABLE = "MetricsUnavailable"


class CollectionError(KubeHealthError):
    """A namespace could not be collected. Recovered into a NamespaceUnavailable finding."""

    def __init__(self, namespace, kind, reason):
        super().__init__(f"{namespace}: {kind.value}: {reason}")
        self.namespace = namespace
        self.kind = kind
        self.reason = reason


# ---- Snapshots ----

@dataclass(frozen=True)
class ResourceAmounts:
    """CPU and memory totals for a pod. Either side may be unknown."""

    cpu_millicores: Optional[int] = None
    memory_bytes: Optional[int] = None

    def get(self, resource):
        if resource is ResourceType.CPU:
            return self.cpu_millicores
        return self.memory_bytes


@dataclass(frozen=True)
class ContainerStatus:
    name: str
    restart_count: int = 0
    last_reason: Optional[str] = None
    last_exit_code: Optional[int] = None
    last_message: Optional[str] = None
    last_restart_time: Optional[datetime] = None


@dataclass(frozen=True)
class PodSnapshot:
    namespace: str
    name: str
    phase: PodPhase
    creation_timestamp: datetime
    containers: Tuple[ContainerStatus, ...] = ()
    resource_usage: Optional[ResourceAmounts] = None
    resource_requests: Optional[ResourceAmounts] = None
    start_time: Optional[datetime] = None


# ---- Findings ----
# One frozen detail type per FindingKind. The kind of a Finding is derived
# from its detail, so a kind can never carry the wrong payload.

@dataclass(frozen=True)
class OverThreshold:
    resource: ResourceType
    percent: float
    usage: int
    request: int

    @property
    def sort_token(self):
        return self.resource.value


@dataclass(frozen=True)
class RestartedContainer:
    container: str
    restart_count: int
    last_reason: Optional[str] = None
    last_exit_code: Optional[int] = None
    last_message: Optional[str] = None
    last_restart_time: Optional[datetime] = None

    @property
    def sort_token(self):
        return self.container


@dataclass(frozen=True)
class PendingTooLong:
    elapsed: timedelta
    since: datetime

    @property
    def sort_token(self):
        return ""


@dataclass(frozen=True)
class NoMetrics:
    resource: ResourceType
    reason: str

    @property
    def sort_token(self):
        return self.resource.value


@dataclass(frozen=True)
class NamespaceUnavailable:
    error: CollectionErrorKind
    reason: str

    @property
    def sort_token(self):
        return self.error.value


FindingDetail = Union[
    OverThreshold, RestartedContainer, PendingTooLong, NoMetrics, NamespaceUnavailable
]

_KIND_BY_DETAIL = {
    OverThreshold: FindingKind.OVER_THRESHOLD,
    RestartedContainer: FindingKind.RESTARTED_CONTAINER,
    PendingTooLong: FindingKind.PENDING_TOO_LONG,
    NoMetrics: FindingKind.NO_METRICS,
    NamespaceUnavailable: FindingKind.NAMESPACE_UNAVAILABLE,
}


@dataclass(frozen=True)
class Finding:
    namespace: str
    detail: FindingDetail
    pod_name: Optional[str] = None

    def __post_init__(self):
        if type(self.detail) not in _KIND_BY_DETAIL:
            raise TypeError(f"unsupported finding detail: {self.detail!r}")
        if (self.pod_name is None) != isinstance(self.detail, NamespaceUnavailable):
            raise ValueError("only NamespaceUnavailable findings have no pod name")

    @property
    def kind(self):
        return _KIND_BY_DETAIL[type(self.detail)]

    @property
    def target(self):
        if self.pod_name is None:
            return self.namespace
        return f"{self.namespace}/{self.pod_name}"

    def sort_key(self):
        """(namespace, podName, kind) with namespace-level findings first."""
        return (
            self.namespace,
            self.pod_name is not None,
            self.pod_name or "",
            CANONICAL_KIND_ORDER.index(self.kind),
            self.detail.sort_token,
        )


@dataclass(frozen=True)
class Report:
    generated_at: datetime
    sections: Mapping[FindingKind, Tuple[Finding, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    cluster_name: Optional[str] = None

    def section(self, kind):
        return self.sections.get(kind, ())

    def counts(self):
        return {kind: len(self.section(kind)) for kind in CANONICAL_KIND_ORDER}

    @property
    def total(self):
        return sum(len(items) for items in self.sections.values())

    @property
    def is_healthy(self):
        return self.total == 0

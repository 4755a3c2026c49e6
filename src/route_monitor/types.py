"""Value types and resource models for route-monitor.

The watched resources (``RouteMonitor``, ``ClusterUrlMonitor``,
``HostedControlPlane``) and the dependent resources the operator renders
(``ServiceMonitor``, ``PrometheusRule``) are plain dataclasses so their
generated ``__eq__`` gives structural comparison for drift detection.
``SloSpec`` is a pydantic model because it is user input that needs
validation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Availability targets outside this range make no sense for a route probe
MIN_SLO_PERCENT = Decimal("90")
MAX_SLO_PERCENT = Decimal("100")


@dataclass(frozen=True)
class NamespacedName:
    """Reference to a namespaced resource. The zero value means "unset"."""

    name: str = ""
    namespace: str = ""

    def is_zero(self) -> bool:
        return not self.name and not self.namespace

    def __str__(self) -> str:
        if not self.namespace:
            return self.name
        return f"{self.namespace}/{self.name}"

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "namespace": self.namespace}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> NamespacedName:
        data = data or {}
        return cls(name=data.get("name", ""), namespace=data.get("namespace", ""))


class SloSpec(BaseModel):
    """Availability target for a monitored route.

    ``target_availability_percent`` is kept as the user typed it (e.g.
    ``"99.5"``); an empty value means no SLO was requested.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    target_availability_percent: str = Field(
        default="",
        alias="targetAvailabilityPercent",
        description="Availability target in percent, e.g. 99.5",
    )

    def is_zero(self) -> bool:
        return self == SloSpec()

    def is_valid(self) -> Tuple[bool, str]:
        """Validate the target and return it as a fraction string.

        ``"99.5"`` yields ``(True, "0.995")``. Anything that is not a
        finite number in [90, 100) yields ``(False, "")``.
        """
        try:
            percent = Decimal(self.target_availability_percent.strip())
        except InvalidOperation:
            return False, ""
        if not percent.is_finite():
            return False, ""
        if percent < MIN_SLO_PERCENT or percent >= MAX_SLO_PERCENT:
            return False, ""
        return True, format((percent / 100).normalize(), "f")


class EndpointAccess(str, Enum):
    """How a hosted control plane's API endpoint is reachable."""

    PUBLIC = "Public"
    PUBLIC_AND_PRIVATE = "PublicAndPrivate"
    PRIVATE = "Private"


# ---------------------------------------------------------------------------
# Object metadata
# ---------------------------------------------------------------------------

@dataclass
class ObjectMeta:
    """The subset of Kubernetes object metadata the reconcilers rely on."""

    name: str = ""
    namespace: str = ""
    finalizers: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    deletion_timestamp: Optional[float] = None
    resource_version: int = 0

    @property
    def key(self) -> NamespacedName:
        return NamespacedName(name=self.name, namespace=self.namespace)

    @property
    def is_being_deleted(self) -> bool:
        return self.deletion_timestamp is not None


@dataclass
class Resource:
    """Base for every object kept in the watched-resource store."""

    kind: ClassVar[str] = "Resource"

    metadata: ObjectMeta = field(default_factory=ObjectMeta)

    @property
    def key(self) -> NamespacedName:
        return self.metadata.key

    def get_finalizers(self) -> List[str]:
        return list(self.metadata.finalizers)

    def set_finalizers(self, finalizers: List[str]) -> None:
        self.metadata.finalizers = list(finalizers)


# ---------------------------------------------------------------------------
# Watched monitor resources
# ---------------------------------------------------------------------------

@dataclass
class MonitorStatus:
    """Status sub-resource shared by RouteMonitor and ClusterUrlMonitor."""

    error_status: str = ""
    route_url: str = ""
    prometheus_rule_ref: NamespacedName = field(default_factory=NamespacedName)
    service_monitor_ref: NamespacedName = field(default_factory=NamespacedName)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "errorStatus": self.error_status,
            "routeURL": self.route_url,
            "prometheusRuleRef": self.prometheus_rule_ref.to_dict(),
            "serviceMonitorRef": self.service_monitor_ref.to_dict(),
        }


@dataclass
class RouteMonitorSpec:
    route: NamespacedName = field(default_factory=NamespacedName)
    slo: SloSpec = field(default_factory=SloSpec)
    skip_prometheus_rule: bool = False
    insecure_skip_tls_verify: bool = False


@dataclass
class RouteMonitor(Resource):
    kind: ClassVar[str] = "RouteMonitor"

    spec: RouteMonitorSpec = field(default_factory=RouteMonitorSpec)
    status: MonitorStatus = field(default_factory=MonitorStatus)


@dataclass
class ClusterUrlMonitorSpec:
    prefix: str = ""
    port: str = ""
    suffix: str = ""
    slo: SloSpec = field(default_factory=SloSpec)
    skip_prometheus_rule: bool = False
    domain_ref: str = ""


@dataclass
class ClusterUrlMonitor(Resource):
    kind: ClassVar[str] = "ClusterUrlMonitor"

    spec: ClusterUrlMonitorSpec = field(default_factory=ClusterUrlMonitorSpec)
    status: MonitorStatus = field(default_factory=MonitorStatus)


# ---------------------------------------------------------------------------
# Rendered dependent resources
# ---------------------------------------------------------------------------

@dataclass
class ServiceMonitor(Resource):
    """Scrape target rendered for a monitored route. The spec is opaque."""

    kind: ClassVar[str] = "ServiceMonitor"

    spec: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PrometheusRule(Resource):
    """Alerting rule rendered for a monitored route. The spec is opaque."""

    kind: ClassVar[str] = "PrometheusRule"

    spec: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Cluster identity
# ---------------------------------------------------------------------------

@dataclass
class ClusterVersion(Resource):
    """Cluster-scoped singleton, always named ``version``."""

    kind: ClassVar[str] = "ClusterVersion"

    cluster_id: str = ""


@dataclass
class HostedControlPlane(Resource):
    kind: ClassVar[str] = "HostedControlPlane"

    cluster_id: str = ""
    region: str = ""
    endpoint_access: EndpointAccess = EndpointAccess.PUBLIC_AND_PRIVATE
    api_url: str = ""

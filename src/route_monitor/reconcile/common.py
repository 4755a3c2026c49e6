"""Reconcile primitives shared by the RouteMonitor and ClusterUrlMonitor passes.

Every primitive either returns whether it changed the local copy (so the
caller persists only on a real mutation) or a :class:`ReconcileResult`
for the dispatch loop. Failures are raised as typed errors from
:mod:`route_monitor.errors`; nothing here logs and carries on.
"""

from __future__ import annotations

import logging
from typing import Optional

from route_monitor.comparer import DeepEqualComparer, ResourceComparer
from route_monitor.errors import (
    AmbiguousResourceError,
    InvalidSLOError,
    NoHostError,
    ReferenceConflictError,
    StoreError,
)
from route_monitor.finalizer import Finalizable, add_finalizer, remove_finalizer
from route_monitor.reconcile.result import ReconcileResult
from route_monitor.store import ResourceStore
from route_monitor.types import (
    ClusterVersion,
    HostedControlPlane,
    MonitorStatus,
    NamespacedName,
    Resource,
    ServiceMonitor,
    SloSpec,
)

logger = logging.getLogger(__name__)

CLUSTER_VERSION_NAME = "version"


class MonitorResourceCommon:
    """Primitives bound to one store handle and one comparer."""

    def __init__(
        self,
        store: ResourceStore,
        comparer: Optional[ResourceComparer] = None,
    ) -> None:
        self.store = store
        self.comparer: ResourceComparer = comparer or DeepEqualComparer()

    # -- status bookkeeping --

    def set_error_status(self, status: MonitorStatus, err: Optional[BaseException]) -> bool:
        """Reflect *err* in ``status.error_status``. Returns whether it changed.

        An error that is already flagged is left alone, so a persistent
        failure does not cause a write on every pass.
        """
        flagged = status.error_status != ""
        if flagged and err is not None:
            return False
        if flagged and err is None:
            status.error_status = ""
            return True
        if not flagged and err is not None:
            status.error_status = str(err)
            return True
        return False

    def set_resource_reference(
        self,
        status: MonitorStatus,
        desired: NamespacedName,
        field: str = "prometheus_rule_ref",
    ) -> bool:
        """Bind ``status.<field>`` to *desired*.

        An unset reference can be bound and any reference can be reset to
        the zero value. Rebinding to a different target raises
        ``ReferenceConflictError`` and leaves the field untouched.
        """
        current: NamespacedName = getattr(status, field)
        if current.is_zero() or desired.is_zero():
            setattr(status, field, desired)
            return True
        if current != desired:
            raise ReferenceConflictError(current, desired)
        return False

    def parse_monitor_slo_specs(self, route_url: str, slo_spec: SloSpec) -> str:
        """Return the SLO as a fraction string, or ``""`` when none is set."""
        if route_url == "":
            raise NoHostError()
        if slo_spec.is_zero():
            return ""
        is_valid, parsed = slo_spec.is_valid()
        if not is_valid:
            raise InvalidSLOError(
                f"invalid SLO specification: targetAvailabilityPercent "
                f"'{slo_spec.target_availability_percent}'"
            )
        return parsed

    # -- finalizers --

    def set_finalizer(self, obj: Finalizable, finalizer_key: str) -> bool:
        return add_finalizer(obj, finalizer_key)

    def delete_finalizer(self, obj: Finalizable, finalizer_key: str) -> bool:
        return remove_finalizer(obj, finalizer_key)

    # -- update and stop --

    def update_monitor_resource(self, obj: Resource) -> ReconcileResult:
        """Persist *obj* and end the pass.

        The write re-triggers a fresh pass through the watch, so carrying on
        with this now stale copy would race the next pass.
        """
        try:
            self.store.update(obj)
        except StoreError as exc:
            return ReconcileResult.requeue_with(exc)
        return ReconcileResult.stop()

    def update_monitor_resource_status(self, obj: Resource) -> ReconcileResult:
        """Persist the status sub-resource of *obj* and end the pass."""
        try:
            self.store.update_status(obj)
        except StoreError as exc:
            return ReconcileResult.requeue_with(exc)
        return ReconcileResult.stop()

    # -- cluster identity --

    def get_osd_cluster_id(self) -> str:
        version = self.store.get(ClusterVersion, NamespacedName(name=CLUSTER_VERSION_NAME))
        return version.cluster_id

    def get_hcp(self, namespace: str) -> HostedControlPlane:
        """Return the only HostedControlPlane in *namespace*.

        Zero or several are an error: there is no safe way to pick the
        authoritative one.
        """
        hcps = self.store.list(HostedControlPlane, namespace=namespace)
        if len(hcps) != 1:
            raise AmbiguousResourceError(HostedControlPlane.kind, namespace, len(hcps))
        return hcps[0]

    def get_hypershift_cluster_id(self, namespace: str) -> str:
        return self.get_hcp(namespace).cluster_id

    def get_service_monitor(self, ref: NamespacedName) -> ServiceMonitor:
        return self.store.get(ServiceMonitor, ref)

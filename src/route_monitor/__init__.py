"""route-monitor: keeps monitoring for exposed endpoints in sync.

route-monitor holds the reconciliation primitives of a route monitoring
operator. Users declare what should be monitored (``RouteMonitor``,
``ClusterUrlMonitor``, ``HostedControlPlane``); each reconciliation pass
converges the rendered scrape targets, alerting rules and Dynatrace
synthetic monitors onto that desired state.

Core concepts
-------------
* **Reconcile primitives**: error-status bookkeeping, write-once
  reference binding, SLO parsing, finalizers and update-and-stop
  helpers in ``route_monitor.reconcile.common``.

* **Drift detection**: dependent resources are compared against their
  template through a pluggable ``ResourceComparer`` and only written
  when they differ.

* **Synthetic monitors**: ``route_monitor.dynatrace`` keeps exactly one
  HTTP monitor per cluster id in Dynatrace, collapsing duplicates.

Quick start::

    from route_monitor import InMemoryStore, MonitorResourceCommon
    from route_monitor.types import RouteMonitor

    common = MonitorResourceCommon(InMemoryStore())
    monitor = RouteMonitor()
    if common.set_error_status(monitor.status, None):
        common.update_monitor_resource_status(monitor)
"""

from route_monitor.comparer import DeepEqualComparer, ResourceComparer
from route_monitor.dynatrace import DynatraceApiClient
from route_monitor.reconcile.common import MonitorResourceCommon
from route_monitor.reconcile.result import ReconcileAction, ReconcileResult
from route_monitor.store import InMemoryStore, ResourceStore
from route_monitor.types import MonitorStatus, NamespacedName, SloSpec

__all__ = [
    "DeepEqualComparer",
    "DynatraceApiClient",
    "InMemoryStore",
    "MonitorResourceCommon",
    "MonitorStatus",
    "NamespacedName",
    "ReconcileAction",
    "ReconcileResult",
    "ResourceComparer",
    "ResourceStore",
    "SloSpec",
]

__version__ = "0.1.0"

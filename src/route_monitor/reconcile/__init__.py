"""Reconcile primitives and the passes built from them."""

from route_monitor.reconcile.common import MonitorResourceCommon
from route_monitor.reconcile.deployment import ResourceDeployer
from route_monitor.reconcile.result import ReconcileAction, ReconcileResult
from route_monitor.reconcile.synthetic import MonitorChange, SyntheticMonitorReconciler

__all__ = [
    "MonitorChange",
    "MonitorResourceCommon",
    "ReconcileAction",
    "ReconcileResult",
    "ResourceDeployer",
    "SyntheticMonitorReconciler",
]

"""Drives the Dynatrace synthetic monitor of a hosted control plane.

Per cluster id the external monitor is either Absent or Present. While the
HostedControlPlane exists the pass pushes it towards Present; once the HCP
is being deleted the pass pushes it towards Absent and only then releases
the finalizer, so the HCP cannot vanish with a monitor left behind.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Optional

from route_monitor.config import DEFAULT_FINALIZER_KEY, DEFAULT_REGION_LOCATIONS, OperatorConfig
from route_monitor.dynatrace import DynatraceApiClient
from route_monitor.errors import LocationNotFoundError, NoHostError, RouteMonitorError
from route_monitor.finalizer import has_finalizer
from route_monitor.reconcile.common import MonitorResourceCommon
from route_monitor.reconcile.result import ReconcileResult
from route_monitor.types import EndpointAccess, HostedControlPlane

logger = logging.getLogger(__name__)


class MonitorChange(Enum):
    """What a pass did to the external monitor of a cluster."""

    UNCHANGED = "unchanged"
    CREATED = "created"
    COLLAPSED = "collapsed"


class SyntheticMonitorReconciler:
    def __init__(
        self,
        common: MonitorResourceCommon,
        client: DynatraceApiClient,
        finalizer_key: str = DEFAULT_FINALIZER_KEY,
        private_location_name: str = "backplane",
        region_locations: Optional[Dict[str, str]] = None,
        monitor_name_prefix: str = "",
    ) -> None:
        self.common = common
        self.client = client
        self.finalizer_key = finalizer_key
        self.private_location_name = private_location_name
        self.region_locations = (
            dict(DEFAULT_REGION_LOCATIONS) if region_locations is None else region_locations
        )
        self.monitor_name_prefix = monitor_name_prefix

    @classmethod
    def from_config(
        cls,
        common: MonitorResourceCommon,
        config: OperatorConfig,
        client: Optional[DynatraceApiClient] = None,
    ) -> SyntheticMonitorReconciler:
        return cls(
            common,
            client or config.dynatrace.build_client(),
            finalizer_key=config.finalizer_key,
            private_location_name=config.private_location_name,
            region_locations=dict(config.region_locations),
            monitor_name_prefix=config.monitor_name_prefix,
        )

    def reconcile(self, hcp: HostedControlPlane) -> ReconcileResult:
        if hcp.metadata.is_being_deleted:
            return self._finalize(hcp)

        # The finalizer must be persisted before anything exists remotely
        if self.common.set_finalizer(hcp, self.finalizer_key):
            return self.common.update_monitor_resource(hcp)

        try:
            change = self.ensure_monitor(hcp)
        except RouteMonitorError as exc:
            return ReconcileResult.requeue_with(exc)
        if change is MonitorChange.COLLAPSED:
            # Duplicates were removed and nothing is left; come back to create one
            return ReconcileResult.requeue()
        return ReconcileResult.continue_reconcile()

    def ensure_monitor(self, hcp: HostedControlPlane) -> MonitorChange:
        """Push the cluster's monitor towards exactly one.

        Duplicates are all deleted rather than picking a survivor, which
        leaves the cluster without a monitor until the next pass.
        """
        monitors = self.client.list_monitors(hcp.cluster_id)
        if len(monitors) == 1:
            return MonitorChange.UNCHANGED
        if len(monitors) > 1:
            logger.warning(
                "Found %d Dynatrace monitors for cluster %s, deleting all of them",
                len(monitors), hcp.cluster_id,
            )
            self.client.delete_monitor(hcp.cluster_id)
            return MonitorChange.COLLAPSED
        if not hcp.api_url:
            raise NoHostError(f"HostedControlPlane {hcp.key} has no API URL")

        location_id = self.client.get_location_entity_id(*self._location_for(hcp))
        self.client.create_monitor(
            f"{self.monitor_name_prefix}{hcp.metadata.name}",
            hcp.api_url,
            hcp.cluster_id,
            location_id,
            hcp.region,
        )
        return MonitorChange.CREATED

    def _location_for(self, hcp: HostedControlPlane) -> tuple[str, EndpointAccess]:
        if hcp.endpoint_access == EndpointAccess.PRIVATE:
            return self.private_location_name, EndpointAccess.PRIVATE
        # Public and PublicAndPrivate endpoints are both probed from the
        # public location in the cluster's region
        name = self.region_locations.get(hcp.region)
        if name is None:
            raise LocationNotFoundError(hcp.region, EndpointAccess.PUBLIC_AND_PRIVATE)
        return name, EndpointAccess.PUBLIC_AND_PRIVATE

    def _finalize(self, hcp: HostedControlPlane) -> ReconcileResult:
        if not has_finalizer(hcp, self.finalizer_key):
            return ReconcileResult.stop()

        try:
            self.client.delete_monitor(hcp.cluster_id)
        except RouteMonitorError as exc:
            return ReconcileResult.requeue_with(exc)

        logger.info("Dynatrace monitor for cluster %s removed, releasing %s", hcp.cluster_id, hcp.key)
        self.common.delete_finalizer(hcp, self.finalizer_key)
        return self.common.update_monitor_resource(hcp)

"""Dynatrace synthetic-monitoring client.

Keeps one HTTP synthetic monitor per hosted cluster in Dynatrace. The
monitor is found by its ``cluster-id`` tag, so every operation here is safe
to repeat: creating is guarded by :meth:`DynatraceApiClient.monitor_exists`,
and deleting an absent monitor is a no-op.

No Dynatrace SDK required, uses urllib for HTTP.

Usage:
    client = DynatraceApiClient("https://abc.live.dynatrace.com/api/v1", token)

    if not client.monitor_exists(cluster_id):
        location_id = client.get_location_entity_id("N. Virginia", EndpointAccess.PUBLIC_AND_PRIVATE)
        client.create_monitor(name, api_url, cluster_id, location_id, "us-east-1")
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar
from urllib.parse import urlencode, urlparse

import pydantic
from opentelemetry.trace import Tracer
from pydantic import BaseModel, ConfigDict, Field

from route_monitor import tracing
from route_monitor.errors import ExternalServiceError, LocationNotFoundError
from route_monitor.types import EndpointAccess

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0

LOCATIONS_PATH = "/synthetic/locations"
MONITORS_PATH = "/synthetic/monitors"

PUBLIC_CLOUD_PLATFORM = "AMAZON_EC2"
CLUSTER_ID_TAG = "cluster-id"
CLUSTER_REGION_TAG = "cluster-region"
MANAGED_TAG = "route-monitor-operator-managed"
HCP_TAG = "hcp-cluster"

M = TypeVar("M", bound=BaseModel)


class LocationType(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"


class LocationStatus(str, Enum):
    ENABLED = "ENABLED"
    DISABLED = "DISABLED"
    HIDDEN = "HIDDEN"


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------

class Location(BaseModel):
    """A synthetic location. Type and status stay strings so that values
    this client does not know about still parse (and never match)."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    entity_id: str = Field(alias="entityId")
    type: str = ""
    cloud_platform: str = Field(default="", alias="cloudPlatform")
    status: str = ""


class LocationsResponse(BaseModel):
    locations: List[Location] = Field(default_factory=list)


class ExternalMonitor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    entity_id: str = Field(alias="entityId")
    name: str = ""
    tags: List[Dict[str, Any]] = Field(default_factory=list)


class MonitorsResponse(BaseModel):
    monitors: List[ExternalMonitor] = Field(default_factory=list)


class CreatedMonitor(BaseModel):
    entity_id: str = Field(alias="entityId", min_length=1)


@dataclass
class MonitorConfig:
    """Values rendered into a new HTTP monitor definition."""

    monitor_name: str
    api_url: str
    location_id: str
    cluster_id: str
    cluster_region: str


def render_monitor_definition(config: MonitorConfig) -> Dict[str, Any]:
    """Build the HTTP monitor body: one GET per minute from one location,
    alerting on a global outage, tagged with the cluster it watches."""
    return {
        "name": config.monitor_name,
        "frequencyMin": 1,
        "enabled": True,
        "type": "HTTP",
        "script": {
            "version": "1.0",
            "requests": [
                {
                    "description": "api availability",
                    "url": config.api_url,
                    "method": "GET",
                    "requestBody": "",
                    "preProcessingScript": "",
                    "postProcessingScript": "",
                }
            ],
        },
        "locations": [config.location_id],
        "anomalyDetection": {
            "outageHandling": {
                "globalOutage": True,
                "localOutage": False,
                "localOutagePolicy": {
                    "affectedLocations": 1,
                    "consecutiveRuns": 1,
                },
            },
            "loadingTimeThresholds": {
                "enabled": True,
                "thresholds": [{"type": "TOTAL", "valueMs": 10000}],
            },
        },
        "tags": [
            {"key": CLUSTER_ID_TAG, "value": config.cluster_id},
            {"key": CLUSTER_REGION_TAG, "value": config.cluster_region},
            {"key": MANAGED_TAG, "value": "true"},
            {"key": HCP_TAG, "value": "true"},
        ],
    }


@dataclass
class _Response:
    status: int
    body: bytes


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class DynatraceApiClient:
    """Stateless client for the Dynatrace synthetic API.

    Args:
        base_url: API root, e.g. ``https://<env>.live.dynatrace.com/api/v1``.
        api_token: Token sent as ``Authorization: Api-Token <token>``.
        timeout: Per-request deadline in seconds. A request that runs past it
            raises ``ExternalServiceError``.
        tracer: OpenTelemetry tracer for request spans. Defaults to the
            global tracer.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        tracer: Optional[Tracer] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout
        self._tracer = tracing.get_tracer(tracer)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _make_request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        **span_attributes: Any,
    ) -> _Response:
        """Send one request. Non-2xx answers are returned, not raised;
        transport failures and timeouts raise ``ExternalServiceError``."""
        url = self._base_url + path
        headers = {"Authorization": f"Api-Token {self._api_token}"}
        data = None
        if payload is not None:
            data = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        req = urllib.request.Request(url, data=data, headers=headers, method=method)
        span = tracing.start_api_call_span(
            self._tracer,
            "dynatrace",
            method,
            urlparse(url).path,
            **{tracing.SERVER_ADDRESS: urlparse(url).hostname or ""},
            **span_attributes,
        )
        try:
            try:
                with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                    response = _Response(status=resp.status, body=resp.read())
            except urllib.error.HTTPError as e:
                response = _Response(status=e.code, body=e.read())
            except (OSError, http.client.HTTPException) as e:
                tracing.record_failure(span, e)
                raise ExternalServiceError(f"{method} {path} failed: {e}") from e
            tracing.record_status(span, response.status, 200 <= response.status < 300)
        finally:
            span.end()

        logger.debug("Dynatrace %s %s -> %d", method, path, response.status)
        return response

    @staticmethod
    def _decode(model: Type[M], response: _Response, what: str) -> M:
        try:
            return model.model_validate_json(response.body)
        except pydantic.ValidationError as e:
            raise ExternalServiceError(f"error parsing {what} response: {e}") from e

    # -- locations --

    def get_locations(self) -> List[Location]:
        resp = self._make_request("GET", LOCATIONS_PATH)
        if resp.status != 200:
            raise ExternalServiceError("failed to fetch locations", resp.status)
        return self._decode(LocationsResponse, resp, "locations").locations

    def get_location_entity_id(self, location_name: str, access_type: EndpointAccess) -> str:
        """Resolve a location name to its entity id.

        Public clusters (``PublicAndPrivate``) are probed from the public
        AWS location with exactly that name. ``Private`` clusters are probed
        from an enabled private location whose name contains
        *location_name*.
        """
        locations = self.get_locations()

        if access_type == EndpointAccess.PUBLIC_AND_PRIVATE:
            for loc in locations:
                if (
                    loc.name == location_name
                    and loc.type == LocationType.PUBLIC.value
                    and loc.cloud_platform == PUBLIC_CLOUD_PLATFORM
                    and loc.status == LocationStatus.ENABLED.value
                ):
                    return loc.entity_id
        elif access_type == EndpointAccess.PRIVATE:
            for loc in locations:
                if (
                    location_name in loc.name
                    and loc.type == LocationType.PRIVATE.value
                    and loc.status == LocationStatus.ENABLED.value
                ):
                    return loc.entity_id

        raise LocationNotFoundError(location_name, access_type)

    # -- monitors --

    def create_monitor(
        self,
        monitor_name: str,
        api_url: str,
        cluster_id: str,
        location_id: str,
        cluster_region: str,
    ) -> str:
        """Create the HTTP monitor for *cluster_id* and return its entity id."""
        body = render_monitor_definition(MonitorConfig(
            monitor_name=monitor_name,
            api_url=api_url,
            location_id=location_id,
            cluster_id=cluster_id,
            cluster_region=cluster_region,
        ))
        resp = self._make_request(
            "POST", MONITORS_PATH, body, **{tracing.CLUSTER_ID: cluster_id}
        )
        if resp.status != 200:
            raise ExternalServiceError("failed to create HTTP monitor", resp.status)

        created = self._decode(CreatedMonitor, resp, "created monitor")
        logger.info("Created Dynatrace monitor %s for cluster %s", created.entity_id, cluster_id)
        return created.entity_id

    def list_monitors(self, cluster_id: str) -> List[ExternalMonitor]:
        """All monitors tagged ``cluster-id:<cluster_id>``."""
        query = urlencode({"tag": f"{CLUSTER_ID_TAG}:{cluster_id}"})
        resp = self._make_request(
            "GET", f"{MONITORS_PATH}?{query}", **{tracing.CLUSTER_ID: cluster_id}
        )
        if resp.status != 200:
            raise ExternalServiceError("failed to fetch monitor in Dynatrace", resp.status)
        return self._decode(MonitorsResponse, resp, "monitors").monitors

    def monitor_exists(self, cluster_id: str) -> bool:
        """Whether a monitor for *cluster_id* exists.

        Duplicates are never picked from: the listing order is not stable,
        so there is no authoritative survivor. All of them are deleted and
        True is returned; the next pass sees none and creates a fresh one.
        """
        monitors = self.list_monitors(cluster_id)
        if len(monitors) == 0:
            return False
        if len(monitors) == 1:
            return True

        logger.warning(
            "Found %d Dynatrace monitors for cluster %s, deleting all of them",
            len(monitors), cluster_id,
        )
        self.delete_monitor(cluster_id)
        return True

    def delete_monitor(self, cluster_id: str) -> None:
        """Delete every monitor tagged with *cluster_id*. No-op if there are none."""
        monitors = self.list_monitors(cluster_id)
        if not monitors:
            return

        for monitor in monitors:
            resp = self._make_request(
                "DELETE",
                f"{MONITORS_PATH}/{monitor.entity_id}",
                **{tracing.CLUSTER_ID: cluster_id, tracing.MONITOR_ENTITY_ID: monitor.entity_id},
            )
            if resp.status != 204:
                raise ExternalServiceError(
                    f"failed to delete monitor {monitor.entity_id}", resp.status
                )
            logger.info("Deleted Dynatrace monitor %s for cluster %s", monitor.entity_id, cluster_id)

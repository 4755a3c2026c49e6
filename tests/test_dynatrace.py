"""Tests for the Dynatrace synthetic-monitoring client.

Runs against the in-process fake API from conftest; no external network.
"""

from __future__ import annotations

import socket
import socketserver
import threading

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from route_monitor.dynatrace import (
    DynatraceApiClient,
    MonitorConfig,
    render_monitor_definition,
)
from route_monitor.errors import ExternalServiceError, LocationNotFoundError
from route_monitor.types import EndpointAccess

API_TOKEN = "test-token"

LOCATIONS = [
    {
        "name": "N. Virginia",
        "entityId": "loc-1",
        "type": "PUBLIC",
        "cloudPlatform": "AMAZON_EC2",
        "status": "ENABLED",
    },
    {
        "name": "backplane-abc",
        "entityId": "loc-2",
        "type": "PRIVATE",
        "status": "ENABLED",
    },
]


def _free_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class _RawReplyHandler(socketserver.StreamRequestHandler):
    reply = b""

    def handle(self) -> None:
        while self.rfile.readline() not in (b"\r\n", b"\n", b""):
            pass
        self.wfile.write(self.reply)


@pytest.fixture()
def raw_server():
    """Serve one canned byte string per connection; yields a factory taking the reply."""
    servers = []

    def start(reply: bytes) -> str:
        handler = type("Handler", (_RawReplyHandler,), {"reply": reply})
        server = socketserver.TCPServer(("127.0.0.1", 0), handler)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        return f"http://127.0.0.1:{server.server_address[1]}"

    yield start
    for server in servers:
        server.shutdown()
        server.server_close()


# ---------------------------------------------------------------------------
# Monitor definition
# ---------------------------------------------------------------------------

class TestMonitorDefinition:
    def test_fixed_fields(self):
        body = render_monitor_definition(MonitorConfig(
            monitor_name="hcp-1",
            api_url="https://api.example.com/livez",
            location_id="loc-1",
            cluster_id="c-1",
            cluster_region="us-east-1",
        ))
        assert body["type"] == "HTTP"
        assert body["frequencyMin"] == 1
        assert body["enabled"] is True
        assert body["locations"] == ["loc-1"]
        assert body["anomalyDetection"]["outageHandling"]["globalOutage"] is True
        assert body["script"]["requests"][0]["url"] == "https://api.example.com/livez"
        assert body["script"]["requests"][0]["method"] == "GET"

    def test_tags(self):
        body = render_monitor_definition(MonitorConfig("m", "u", "l", "c-1", "eu-west-1"))
        tags = {t["key"]: t["value"] for t in body["tags"]}
        assert tags == {
            "cluster-id": "c-1",
            "cluster-region": "eu-west-1",
            "route-monitor-operator-managed": "true",
            "hcp-cluster": "true",
        }

    def test_values_are_not_template_injected(self):
        body = render_monitor_definition(MonitorConfig('a"b', "u", "l", "c", "r"))
        assert body["name"] == 'a"b'


# ---------------------------------------------------------------------------
# Location resolution
# ---------------------------------------------------------------------------

class TestLocations:
    def test_public_location(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.locations = LOCATIONS
        assert dynatrace_client.get_location_entity_id(
            "N. Virginia", EndpointAccess.PUBLIC_AND_PRIVATE
        ) == "loc-1"

    def test_private_location_matches_substring(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.locations = LOCATIONS
        assert dynatrace_client.get_location_entity_id(
            "backplane", EndpointAccess.PRIVATE
        ) == "loc-2"

    def test_unknown_location(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.locations = LOCATIONS
        with pytest.raises(LocationNotFoundError) as exc_info:
            dynatrace_client.get_location_entity_id("nowhere", EndpointAccess.PUBLIC_AND_PRIVATE)
        assert exc_info.value.name == "nowhere"
        assert "PublicAndPrivate" in str(exc_info.value)

    def test_public_lookup_ignores_private_locations(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.locations = LOCATIONS
        with pytest.raises(LocationNotFoundError):
            dynatrace_client.get_location_entity_id("backplane-abc", EndpointAccess.PUBLIC_AND_PRIVATE)

    def test_public_lookup_requires_exact_name(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.locations = LOCATIONS
        with pytest.raises(LocationNotFoundError):
            dynatrace_client.get_location_entity_id("Virginia", EndpointAccess.PUBLIC_AND_PRIVATE)

    def test_disabled_location_is_skipped(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.locations = [dict(LOCATIONS[1], status="DISABLED")]
        with pytest.raises(LocationNotFoundError):
            dynatrace_client.get_location_entity_id("backplane", EndpointAccess.PRIVATE)

    def test_public_requires_aws(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.locations = [dict(LOCATIONS[0], cloudPlatform="AZURE")]
        with pytest.raises(LocationNotFoundError):
            dynatrace_client.get_location_entity_id("N. Virginia", EndpointAccess.PUBLIC_AND_PRIVATE)

    def test_public_only_access_type_matches_nothing(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.locations = LOCATIONS
        with pytest.raises(LocationNotFoundError):
            dynatrace_client.get_location_entity_id("N. Virginia", EndpointAccess.PUBLIC)

    def test_error_status(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.overrides[("GET", "/synthetic/locations")] = (500, b"")
        with pytest.raises(ExternalServiceError) as exc_info:
            dynatrace_client.get_locations()
        assert exc_info.value.status_code == 500

    def test_malformed_body(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.overrides[("GET", "/synthetic/locations")] = (200, b"not json")
        with pytest.raises(ExternalServiceError):
            dynatrace_client.get_locations()


# ---------------------------------------------------------------------------
# Monitor creation
# ---------------------------------------------------------------------------

class TestCreateMonitor:
    def test_create_returns_entity_id(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        entity_id = dynatrace_client.create_monitor(
            "hcp-1", "https://api.example.com/livez", "c-1", "loc-1", "us-east-1"
        )
        assert entity_id in fake.monitors
        assert fake.bodies[0]["name"] == "hcp-1"
        assert fake.bodies[0]["locations"] == ["loc-1"]

    def test_headers(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        dynatrace_client.create_monitor("hcp-1", "https://x", "c-1", "loc-1", "us-east-1")
        headers = fake.headers[-1]
        assert headers["authorization"] == f"Api-Token {API_TOKEN}"
        assert headers["content-type"] == "application/json"

    def test_non_200_fails(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.overrides[("POST", "/synthetic/monitors")] = (400, b'{"error": "bad"}')
        with pytest.raises(ExternalServiceError) as exc_info:
            dynatrace_client.create_monitor("hcp-1", "https://x", "c-1", "loc-1", "us-east-1")
        assert exc_info.value.status_code == 400

    def test_missing_entity_id_fails(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.overrides[("POST", "/synthetic/monitors")] = (200, b"{}")
        with pytest.raises(ExternalServiceError):
            dynatrace_client.create_monitor("hcp-1", "https://x", "c-1", "loc-1", "us-east-1")

    def test_wrong_token_is_rejected(self, fake_dynatrace):
        _, base_url = fake_dynatrace
        client = DynatraceApiClient(base_url, "wrong", timeout=5)
        with pytest.raises(ExternalServiceError) as exc_info:
            client.create_monitor("hcp-1", "https://x", "c-1", "loc-1", "us-east-1")
        assert exc_info.value.status_code == 401


# ---------------------------------------------------------------------------
# Existence check and deduplication
# ---------------------------------------------------------------------------

class TestMonitorExists:
    def test_no_monitor(self, dynatrace_client):
        assert dynatrace_client.monitor_exists("c-1") is False

    def test_one_monitor(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.add_monitor("c-1")
        assert dynatrace_client.monitor_exists("c-1") is True
        assert fake.count("DELETE") == 0

    def test_other_clusters_do_not_count(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.add_monitor("c-2")
        assert dynatrace_client.monitor_exists("c-1") is False

    def test_query_uses_cluster_tag(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        dynatrace_client.monitor_exists("c-1")
        method, path = fake.requests[-1]
        assert method == "GET"
        assert path.startswith("/synthetic/monitors?tag=")
        assert "c-1" in path

    def test_duplicates_are_all_deleted(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.add_monitor("c-1")
        fake.add_monitor("c-1")
        fake.add_monitor("c-2")

        assert dynatrace_client.monitor_exists("c-1") is True
        assert dynatrace_client.list_monitors("c-1") == []
        assert fake.count("DELETE") == 2
        assert len(fake.monitors_for("c-2")) == 1

    def test_next_call_after_dedup_reports_absent(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.add_monitor("c-1")
        fake.add_monitor("c-1")
        dynatrace_client.monitor_exists("c-1")
        assert dynatrace_client.monitor_exists("c-1") is False

    def test_list_error(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.overrides[("GET", "/synthetic/monitors")] = (503, b"")
        with pytest.raises(ExternalServiceError) as exc_info:
            dynatrace_client.monitor_exists("c-1")
        assert exc_info.value.status_code == 503


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

class TestDeleteMonitor:
    def test_no_monitors_is_noop(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        dynatrace_client.delete_monitor("c-1")
        assert fake.count("DELETE") == 0

    def test_deletes_by_entity_id(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        entity_id = fake.add_monitor("c-1")
        dynatrace_client.delete_monitor("c-1")
        assert ("DELETE", f"/synthetic/monitors/{entity_id}") in fake.requests
        assert fake.monitors == {}

    def test_repeated_delete_is_idempotent(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        fake.add_monitor("c-1")
        dynatrace_client.delete_monitor("c-1")
        dynatrace_client.delete_monitor("c-1")
        assert fake.count("DELETE") == 1

    def test_non_204_fails(self, fake_dynatrace, dynatrace_client):
        fake, _ = fake_dynatrace
        entity_id = fake.add_monitor("c-1")
        fake.overrides[("DELETE", f"/synthetic/monitors/{entity_id}")] = (200, b"{}")
        with pytest.raises(ExternalServiceError) as exc_info:
            dynatrace_client.delete_monitor("c-1")
        assert exc_info.value.status_code == 200


# ---------------------------------------------------------------------------
# Transport failures and tracing
# ---------------------------------------------------------------------------

class TestTransport:
    def test_connection_refused(self):
        client = DynatraceApiClient(f"http://127.0.0.1:{_free_port()}", API_TOKEN, timeout=2)
        with pytest.raises(ExternalServiceError) as exc_info:
            client.monitor_exists("c-1")
        assert exc_info.value.status_code is None

    def test_base_url_trailing_slash(self, fake_dynatrace):
        fake, base_url = fake_dynatrace
        client = DynatraceApiClient(base_url + "/", API_TOKEN, timeout=5)
        assert client.monitor_exists("c-1") is False
        assert fake.requests[-1][1].startswith("/synthetic/monitors")

    def test_truncated_body(self, raw_server):
        base_url = raw_server(b"HTTP/1.0 200 OK\r\nContent-Length: 100\r\n\r\n{\"monitors\"")
        client = DynatraceApiClient(base_url, API_TOKEN, timeout=2)
        with pytest.raises(ExternalServiceError) as exc_info:
            client.monitor_exists("c-1")
        assert exc_info.value.status_code is None

    def test_malformed_status_line(self, raw_server):
        client = DynatraceApiClient(raw_server(b"garbage\r\n\r\n"), API_TOKEN, timeout=2)
        with pytest.raises(ExternalServiceError):
            client.get_locations()


@pytest.fixture()
def span_exporter():
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    yield exporter, provider.get_tracer("test")
    provider.shutdown()


class TestTracing:
    def test_span_per_request(self, fake_dynatrace, span_exporter):
        fake, base_url = fake_dynatrace
        exporter, tracer = span_exporter
        entity_id = fake.add_monitor("c-1")
        client = DynatraceApiClient(base_url, API_TOKEN, timeout=5, tracer=tracer)

        client.delete_monitor("c-1")

        spans = exporter.get_finished_spans()
        assert [s.name for s in spans] == [
            "dynatrace GET /synthetic/monitors",
            f"dynatrace DELETE /synthetic/monitors/{entity_id}",
        ]
        assert spans[0].attributes["route_monitor.cluster_id"] == "c-1"
        assert spans[0].attributes["http.response.status_code"] == 200
        assert spans[1].attributes["http.response.status_code"] == 204

    def test_error_status_marks_span(self, fake_dynatrace, span_exporter):
        fake, base_url = fake_dynatrace
        exporter, tracer = span_exporter
        fake.overrides[("GET", "/synthetic/locations")] = (500, b"")
        client = DynatraceApiClient(base_url, API_TOKEN, timeout=5, tracer=tracer)

        with pytest.raises(ExternalServiceError):
            client.get_locations()

        (span,) = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR

    def test_transport_failure_marks_span(self, span_exporter):
        exporter, tracer = span_exporter
        client = DynatraceApiClient(
            f"http://127.0.0.1:{_free_port()}", API_TOKEN, timeout=2, tracer=tracer
        )
        with pytest.raises(ExternalServiceError):
            client.get_locations()
        (span,) = exporter.get_finished_spans()
        assert span.status.status_code == StatusCode.ERROR

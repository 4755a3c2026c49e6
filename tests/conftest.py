"""Shared fixtures: an in-process fake of the Dynatrace synthetic API."""

from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse

import pytest

from route_monitor.dynatrace import DynatraceApiClient

API_TOKEN = "test-token"


class FakeDynatrace:
    """State behind the fake API. Tests seed ``locations`` and ``monitors``
    and inspect ``requests`` afterwards."""

    def __init__(self) -> None:
        self.locations: List[Dict[str, Any]] = []
        self.monitors: Dict[str, Dict[str, Any]] = {}
        self.requests: List[Tuple[str, str]] = []
        self.bodies: List[Dict[str, Any]] = []
        self.headers: List[Dict[str, str]] = []
        # (method, path) -> (status, raw body)
        self.overrides: Dict[Tuple[str, str], Tuple[int, bytes]] = {}
        self._next_id = 1

    def add_monitor(self, cluster_id: str, entity_id: Optional[str] = None) -> str:
        entity_id = entity_id or f"HTTP_CHECK-{self._next_id}"
        self._next_id += 1
        self.monitors[entity_id] = {
            "entityId": entity_id,
            "name": f"monitor-{cluster_id}",
            "tags": [{"key": "cluster-id", "value": cluster_id}],
        }
        return entity_id

    def monitors_for(self, cluster_id: str) -> List[Dict[str, Any]]:
        return [
            m for m in self.monitors.values()
            if {"key": "cluster-id", "value": cluster_id} in
            [{"key": t["key"], "value": t["value"]} for t in m["tags"]]
        ]

    def count(self, method: str, path_prefix: str = "") -> int:
        return sum(1 for m, p in self.requests if m == method and p.startswith(path_prefix))


def _make_handler(fake: FakeDynatrace) -> type:
    class Handler(BaseHTTPRequestHandler):
        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            pass

        def _send(self, status: int, payload: Any = None, raw: Optional[bytes] = None) -> None:
            body = raw if raw is not None else (
                json.dumps(payload).encode() if payload is not None else b""
            )
            self.send_response(status)
            if body:
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if body:
                self.wfile.write(body)

        def _begin(self, method: str) -> Optional[str]:
            parsed = urlparse(self.path)
            length = int(self.headers.get("Content-Length", 0))
            self.body = self.rfile.read(length) if length else b""
            fake.requests.append((method, self.path))
            fake.headers.append({k.lower(): v for k, v in self.headers.items()})
            if self.headers.get("Authorization") != f"Api-Token {API_TOKEN}":
                self._send(401, {"error": "unauthorized"})
                return None
            override = fake.overrides.get((method, parsed.path))
            if override is not None:
                self._send(override[0], raw=override[1])
                return None
            return parsed.path

        def do_GET(self) -> None:
            path = self._begin("GET")
            if path is None:
                return
            if path == "/synthetic/locations":
                self._send(200, {"locations": fake.locations})
                return
            if path == "/synthetic/monitors":
                query = parse_qs(urlparse(self.path).query)
                tag = query.get("tag", [""])[0]
                key, _, value = tag.partition(":")
                monitors = fake.monitors_for(value) if key == "cluster-id" else list(fake.monitors.values())
                self._send(200, {"monitors": [{"entityId": m["entityId"], "name": m["name"]} for m in monitors]})
                return
            self._send(404, {"error": "not found"})

        def do_POST(self) -> None:
            path = self._begin("POST")
            if path is None:
                return
            body = json.loads(self.body or b"{}")
            fake.bodies.append(body)
            if path != "/synthetic/monitors":
                self._send(404, {"error": "not found"})
                return
            entity_id = f"HTTP_CHECK-{fake._next_id}"
            fake._next_id += 1
            fake.monitors[entity_id] = {"entityId": entity_id, "name": body["name"], "tags": body["tags"]}
            self._send(200, {"entityId": entity_id})

        def do_DELETE(self) -> None:
            path = self._begin("DELETE")
            if path is None:
                return
            entity_id = path.rsplit("/", 1)[-1]
            if fake.monitors.pop(entity_id, None) is None:
                self._send(404, {"error": "not found"})
                return
            self._send(204)

    return Handler


@pytest.fixture()
def fake_dynatrace():
    """Start the fake API on a random port; yields (fake, base_url)."""
    fake = FakeDynatrace()
    server = HTTPServer(("127.0.0.1", 0), _make_handler(fake))
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield fake, f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


@pytest.fixture()
def dynatrace_client(fake_dynatrace) -> DynatraceApiClient:
    _, base_url = fake_dynatrace
    return DynatraceApiClient(base_url, API_TOKEN, timeout=5)

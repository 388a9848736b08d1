"""Pytest configuration and fixtures."""

from __future__ import annotations

import json
import os
import socket
from typing import Callable, Generator
from urllib.parse import parse_qs

import httpx
import pytest

from stack_acceptance.core.config import Settings, get_settings
from stack_acceptance.manifest import MetricsDashboardManifest


@pytest.fixture(autouse=True)
def clear_settings_cache(monkeypatch):
    """Each test sees a fresh settings object and a clean environment."""
    for key in list(os.environ):
        if key.startswith("ACCEPTANCE_"):
            monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def listening_port() -> Generator[int, None, None]:
    """A loopback port with a live listener."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(5)
    try:
        yield server.getsockname()[1]
    finally:
        server.close()


@pytest.fixture
def closed_port() -> int:
    """A loopback port nothing listens on."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def settings(listening_port: int) -> Settings:
    """Settings pointing both services at a live loopback listener."""
    return Settings(
        _env_file=None,
        target_host="127.0.0.1",
        dashboard_port=listening_port,
        database_port=listening_port,
        database_name="puppet_metrics",
        influxdb_user="admin",
        influxdb_password="puppetlabs",
        grafana_user="admin",
        grafana_password="puppet",
        engine_command="puppet apply",
        port_timeout_seconds=1.0,
        http_timeout_seconds=1.0,
    )


@pytest.fixture
def manifest() -> MetricsDashboardManifest:
    return MetricsDashboardManifest(
        dashboard_http_port=3000,
        database_name=["puppet_metrics"],
        enable_agent=False,
        configure_agent=False,
        add_examples=False,
    )


def _form(request: httpx.Request) -> dict[str, list[str]]:
    return parse_qs(request.content.decode("utf-8"))


@pytest.fixture
def fake_stack() -> Callable[..., httpx.MockTransport]:
    """
    Build a MockTransport that behaves like InfluxDB and Grafana.

    Written lines are kept so queries can find them, which mirrors
    the write-then-query flow of a live stack.
    """

    def build(
        write_status: int = 204,
        datasources: tuple[str, ...] = ("influxdb_puppet_metrics",),
        requests: list[httpx.Request] | None = None,
    ) -> httpx.MockTransport:
        stored: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if requests is not None:
                requests.append(request)
            path = request.url.path

            if path == "/write":
                if 200 <= write_status < 300:
                    stored.extend(request.content.decode("utf-8").splitlines())
                return httpx.Response(write_status)

            if path == "/query":
                query = _form(request).get("q", [""])[0]
                names = [line.split(",")[0].split(" ")[0] for line in stored]
                series = [
                    {"name": name, "columns": ["time"], "values": [[0]]}
                    for name in names
                    if f'"{name}"' in query
                ]
                body = {"results": [{"statement_id": 0, **({"series": series} if series else {})}]}
                return httpx.Response(200, content=json.dumps(body).encode())

            if path.startswith("/api/datasources/name/"):
                name = path.rsplit("/", 1)[-1]
                if name in datasources:
                    return httpx.Response(200, json={"id": 1, "name": name, "type": "influxdb"})
                return httpx.Response(404, json={"message": "Data source not found"})

            return httpx.Response(404)

        return httpx.MockTransport(handler)

    return build

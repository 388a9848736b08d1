"""
Service Probes - TCP and HTTP checks against the converged host.

Each probe opens its own connection, performs one request and reports
a CheckResult. Transport errors are reported, never raised, so that one
unreachable service does not hide the state of the others.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import Any

import httpx

from stack_acceptance.line_protocol import Point, encode

BODY_PREVIEW_CHARS = 500


@dataclass
class CheckResult:
    """Result of a single check."""

    name: str
    healthy: bool
    message: str
    status_code: int | None = None
    body: str | None = None
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "message": self.message,
            "status_code": self.status_code,
            "body": self.body,
            "details": self.details,
        }


def _preview(text: str) -> str:
    if len(text) <= BODY_PREVIEW_CHARS:
        return text
    return text[:BODY_PREVIEW_CHARS] + "...[truncated]"


def is_success_status(status_code: int) -> bool:
    """A write is accepted when the status is 200..209."""
    return 200 <= status_code <= 209


def check_port(host: str, port: int, timeout: float = 2.0) -> CheckResult:
    """Check that something accepts TCP connections on host:port."""
    name = f"port:{port}"
    try:
        with socket.create_connection((host, port), timeout=timeout):
            pass
    except socket.timeout:
        return CheckResult(name=name, healthy=False, message=f"Port {port} timeout")
    except OSError as e:
        return CheckResult(
            name=name, healthy=False, message=f"Port {port} closed ({e})"
        )
    return CheckResult(name=name, healthy=True, message=f"Port {port} listening")


class InfluxDBClient:
    """
    Minimal InfluxDB 1.x HTTP client.

    Credentials travel as `u`/`p` query parameters, which is how the
    1.x API authenticates without a token.

    Usage:
        with InfluxDBClient("http://127.0.0.1:8086", "admin", "secret") as influx:
            influx.write("puppet_metrics", [point])
            influx.query("puppet_metrics", 'SELECT * FROM "cpu"')
    """

    def __init__(
        self,
        base_url: str,
        user: str,
        password: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.user = user
        self.password = password
        self._client = httpx.Client(
            base_url=base_url, timeout=timeout, transport=transport
        )

    def __enter__(self) -> "InfluxDBClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def write(
        self, database: str, points: list[Point], precision: str = "s"
    ) -> httpx.Response:
        """POST points to /write."""
        body = encode(points)
        return self._client.post(
            "/write",
            params={
                "db": database,
                "precision": precision,
                "u": self.user,
                "p": self.password,
            },
            content=body.encode("utf-8"),
        )

    def query(self, database: str, query: str) -> httpx.Response:
        """POST an InfluxQL query to /query as a urlencoded form."""
        return self._client.post(
            "/query",
            params={"db": database, "u": self.user, "p": self.password},
            data={"q": query},
        )

    def check_write(self, database: str, point: Point) -> CheckResult:
        try:
            response = self.write(database, [point])
        except httpx.HTTPError as e:
            return CheckResult(
                name="influxdb:write", healthy=False, message=f"Write failed: {e}"
            )

        healthy = is_success_status(response.status_code)
        return CheckResult(
            name="influxdb:write",
            healthy=healthy,
            message=(
                "Write accepted"
                if healthy
                else f"Write rejected with HTTP {response.status_code}"
            ),
            status_code=response.status_code,
            body=_preview(response.text),
        )

    def check_query(self, database: str, measurement: str) -> CheckResult:
        query = f'SELECT * FROM "{measurement}"'
        try:
            response = self.query(database, query)
        except httpx.HTTPError as e:
            return CheckResult(
                name="influxdb:query", healthy=False, message=f"Query failed: {e}"
            )

        healthy = measurement in response.text
        return CheckResult(
            name="influxdb:query",
            healthy=healthy,
            message=(
                f"Query returned {measurement}"
                if healthy
                else f"{measurement} not in query response (HTTP {response.status_code})"
            ),
            status_code=response.status_code,
            body=_preview(response.text),
            details={"query": query},
        )


class GrafanaClient:
    """Grafana HTTP API client authenticated with basic auth."""

    def __init__(
        self,
        base_url: str,
        user: str,
        password: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            auth=(user, password),
            transport=transport,
        )

    def __enter__(self) -> "GrafanaClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def get_datasource(self, name: str) -> httpx.Response:
        """GET /api/datasources/name/<name>."""
        return self._client.get(f"/api/datasources/name/{name}")

    def check_datasource(self, name: str) -> CheckResult:
        try:
            response = self.get_datasource(name)
        except httpx.HTTPError as e:
            return CheckResult(
                name="grafana:datasource",
                healthy=False,
                message=f"Data source lookup failed: {e}",
            )

        healthy = name in response.text
        return CheckResult(
            name="grafana:datasource",
            healthy=healthy,
            message=(
                f"Data source {name} present"
                if healthy
                else f"Data source {name} missing (HTTP {response.status_code})"
            ),
            status_code=response.status_code,
            body=_preview(response.text),
        )

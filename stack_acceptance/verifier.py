"""
Health Verifier - Probe the converged metrics stack.

Checks run in a fixed order and are independent of each other:
1. Dashboard port accepts connections
2. Database port accepts connections
3. InfluxDB accepts a line-protocol write
4. InfluxDB answers a query for the written measurement
5. Grafana knows the configured data source
"""

from __future__ import annotations

import httpx
from rich.console import Console
from rich.table import Table

from stack_acceptance.core.config import Settings, get_settings
from stack_acceptance.core.logging import get_logger
from stack_acceptance.line_protocol import Point
from stack_acceptance.probes import CheckResult, GrafanaClient, InfluxDBClient, check_port

logger = get_logger("verifier")

# Sample from the Puppet Server JRuby metrics the dashboard is built for
DEFAULT_PROBE_POINT = Point(
    measurement="puppetserver.jruby-metrics.num-free-jrubies",
    fields={"num-free-jrubies": 1},
    tags={"server": "127-0-0-1"},
    timestamp=1523993402,
)


class HealthVerifier:
    """
    Verify the metrics stack is reachable and functional.

    Usage:
        verifier = HealthVerifier(settings)
        results = verifier.check_all()
        verifier.assert_healthy()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        probe_point: Point | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.probe_point = probe_point or DEFAULT_PROBE_POINT
        self._transport = transport

    def _influxdb(self) -> InfluxDBClient:
        return InfluxDBClient(
            self.settings.influxdb_url,
            self.settings.influxdb_user,
            self.settings.influxdb_password,
            timeout=self.settings.http_timeout_seconds,
            transport=self._transport,
        )

    def _grafana(self) -> GrafanaClient:
        return GrafanaClient(
            self.settings.grafana_url,
            self.settings.grafana_user,
            self.settings.grafana_password,
            timeout=self.settings.http_timeout_seconds,
            transport=self._transport,
        )

    def check_dashboard_port(self) -> CheckResult:
        return check_port(
            self.settings.target_host,
            self.settings.dashboard_port,
            self.settings.port_timeout_seconds,
        )

    def check_database_port(self) -> CheckResult:
        return check_port(
            self.settings.target_host,
            self.settings.database_port,
            self.settings.port_timeout_seconds,
        )

    def check_write(self) -> CheckResult:
        with self._influxdb() as influx:
            return influx.check_write(self.settings.database_name, self.probe_point)

    def check_query(self) -> CheckResult:
        with self._influxdb() as influx:
            return influx.check_query(
                self.settings.database_name, self.probe_point.measurement
            )

    def check_datasource(self) -> CheckResult:
        with self._grafana() as grafana:
            return grafana.check_datasource(self.settings.effective_datasource_name)

    def check_all(self) -> list[CheckResult]:
        """Run every check in order and return all results."""
        checks = [
            self.check_dashboard_port,
            self.check_database_port,
            self.check_write,
            self.check_query,
            self.check_datasource,
        ]
        results = []
        for check in checks:
            result = check()
            if result.healthy:
                logger.info("%s: %s", result.name, result.message)
            else:
                logger.error("%s: %s", result.name, result.message)
            results.append(result)
        return results

    def assert_healthy(self, results: list[CheckResult] | None = None) -> list[CheckResult]:
        """Raise AssertionError listing every failed check."""
        results = results if results is not None else self.check_all()
        failures = [r for r in results if not r.healthy]

        if failures:
            messages = "\n".join(f"  ❌ {r.name}: {r.message}" for r in failures)
            raise AssertionError(
                f"Metrics stack verification failed:\n{messages}\n\n"
                f"Target: {self.settings.target_host} "
                f"(dashboard {self.settings.dashboard_port}, "
                f"database {self.settings.database_port})"
            )
        return results

    def print_status(
        self,
        results: list[CheckResult] | None = None,
        console: Console | None = None,
    ) -> None:
        """Print check results as a table."""
        results = results if results is not None else self.check_all()
        console = console or Console()

        table = Table(title="Metrics Stack Health")
        table.add_column("Check", style="cyan", no_wrap=True)
        table.add_column("Status", style="white")
        table.add_column("Details", style="dim")

        for result in results:
            status = "[green]OK[/green]" if result.healthy else "[red]FAIL[/red]"
            table.add_row(result.name, status, result.message)

        console.print(table)

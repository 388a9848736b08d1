"""
Acceptance fixtures - converge the host once, then probe it.

1. The manifest is applied twice (neither run may be fatal)
2. An idempotent apply follows (second run must change nothing)
3. Smoke tests probe the converged services

The suite only runs with ACCEPTANCE_ENABLED=1 because it mutates the
target host.
"""

from __future__ import annotations

import os
from typing import Generator

import pytest

from stack_acceptance.applier import ApplyResult, ManifestApplier
from stack_acceptance.core.config import Settings, get_settings
from stack_acceptance.core.exceptions import ConvergenceError
from stack_acceptance.core.logging import setup_logging
from stack_acceptance.manifest import MetricsDashboardManifest
from stack_acceptance.probes import GrafanaClient, InfluxDBClient


def _acceptance_enabled() -> bool:
    return os.getenv("ACCEPTANCE_ENABLED", "0") == "1"


# =============================================================================
# CONFIGURATION
# =============================================================================


@pytest.fixture(scope="session")
def acceptance_settings() -> Settings:
    """Load acceptance settings from environment."""
    settings = get_settings()
    setup_logging(settings)
    return settings


@pytest.fixture(scope="session")
def dashboard_manifest(acceptance_settings: Settings) -> MetricsDashboardManifest:
    """Archive-metrics manifest: no Telegraf, no example dashboards."""
    return MetricsDashboardManifest(
        dashboard_http_port=acceptance_settings.dashboard_port,
        database_name=[acceptance_settings.database_name],
        configure_agent=False,
        enable_agent=False,
        add_examples=False,
    )


# =============================================================================
# CONVERGENCE (Session-scoped)
# =============================================================================


@pytest.fixture(scope="session")
def converged(
    acceptance_settings: Settings,
    dashboard_manifest: MetricsDashboardManifest,
) -> list[ApplyResult]:
    """
    Apply the manifest before any probe runs.

    Fails the session if any application is fatal or the final
    application still changes the system.
    """
    applier = ManifestApplier(acceptance_settings)
    try:
        results = list(applier.apply_twice(dashboard_manifest))
        results.extend(applier.idempotent_apply(dashboard_manifest))
    except ConvergenceError as e:
        stderr = e.result.stderr[-2000:] if e.result else ""
        pytest.fail(f"{e.message}\n\n{stderr}")
    return results


# =============================================================================
# HTTP CLIENTS
# =============================================================================


@pytest.fixture
def influxdb(
    acceptance_settings: Settings, converged: list[ApplyResult]
) -> Generator[InfluxDBClient, None, None]:
    """InfluxDB client for the converged host."""
    with InfluxDBClient(
        acceptance_settings.influxdb_url,
        acceptance_settings.influxdb_user,
        acceptance_settings.influxdb_password,
        timeout=acceptance_settings.http_timeout_seconds,
    ) as client:
        yield client


@pytest.fixture
def grafana(
    acceptance_settings: Settings, converged: list[ApplyResult]
) -> Generator[GrafanaClient, None, None]:
    """Grafana client authenticated with the admin account."""
    with GrafanaClient(
        acceptance_settings.grafana_url,
        acceptance_settings.grafana_user,
        acceptance_settings.grafana_password,
        timeout=acceptance_settings.http_timeout_seconds,
    ) as client:
        yield client


# =============================================================================
# PYTEST HOOKS
# =============================================================================


def pytest_collection_modifyitems(config, items):
    """Mark acceptance tests and skip them unless explicitly enabled."""
    skip = pytest.mark.skip(reason="set ACCEPTANCE_ENABLED=1 to run against a live host")
    for item in items:
        if "acceptance_tests" not in str(item.fspath):
            continue
        item.add_marker(pytest.mark.acceptance)
        if not _acceptance_enabled():
            item.add_marker(skip)

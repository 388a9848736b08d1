"""
Metrics stack acceptance harness.

Applies the metrics dashboard manifest through Puppet, checks that a
second application changes nothing, then probes InfluxDB and Grafana
over TCP and HTTP.
"""

from stack_acceptance.applier import ApplyMode, ApplyResult, ManifestApplier
from stack_acceptance.line_protocol import Point
from stack_acceptance.manifest import MetricsDashboardManifest
from stack_acceptance.probes import CheckResult
from stack_acceptance.verifier import HealthVerifier

__version__ = "0.1.0"

__all__ = [
    "ApplyMode",
    "ApplyResult",
    "CheckResult",
    "HealthVerifier",
    "ManifestApplier",
    "MetricsDashboardManifest",
    "Point",
]

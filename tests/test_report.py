"""Tests for run reports."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from stack_acceptance.applier import ApplyMode, ApplyResult
from stack_acceptance.probes import CheckResult
from stack_acceptance.report import RunReport

STARTED = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _report(**kwargs) -> RunReport:
    return RunReport(run_id="0123456789abcdef", started_at=STARTED, target_host="node1", **kwargs)


def _check(name: str, healthy: bool) -> CheckResult:
    return CheckResult(name=name, healthy=healthy, message="ok" if healthy else "broken")


class TestPassed:
    """Tests for RunReport.passed."""

    def test_all_checks_healthy(self):
        report = _report(checks=[_check("port:3000", True), _check("influxdb:write", True)])
        assert report.passed

    def test_failed_check(self):
        report = _report(checks=[_check("port:3000", True), _check("influxdb:write", False)])
        assert not report.passed

    def test_no_checks_is_not_a_pass(self):
        """A run that never verified anything did not pass."""
        assert not _report().passed

    def test_error_fails_run(self):
        report = _report(checks=[_check("port:3000", True)], error="boom")
        assert not report.passed


class TestSummary:
    """Tests for RunReport.summary()."""

    def test_nothing_ran(self):
        assert _report().summary() == "Nothing ran"

    def test_applies_and_failures(self):
        report = _report(
            applies=[ApplyResult(exit_code=2), ApplyResult(exit_code=0)],
            checks=[_check("port:3000", True), _check("grafana:datasource", False)],
        )

        summary = report.summary()

        assert "2 apply run(s), exit codes 2, 0" in summary
        assert "1/2 check(s) failed: grafana:datasource" in summary

    def test_all_passed(self):
        report = _report(checks=[_check("port:3000", True)])
        assert report.summary() == "all 1 checks passed"


class TestSerialization:
    """Tests for JSON and Markdown output."""

    def test_to_dict_duration(self):
        report = _report()
        report.finished_at = STARTED + timedelta(seconds=90)

        data = report.to_dict()

        assert data["duration_seconds"] == 90.0
        assert data["target_host"] == "node1"
        assert data["passed"] is False

    def test_json_redacts_credentials(self):
        """Passwords in manifests and commands never reach the file."""
        report = _report(
            manifest={"influxdb_password": "hunter2"},
            applies=[
                ApplyResult(
                    exit_code=0,
                    command=["env", "FACTER_password=hunter2", "puppet", "apply"],
                    mode=ApplyMode.CATCH_CHANGES,
                )
            ],
        )

        text = report.to_json()

        assert "hunter2" not in text
        assert json.loads(text)["applies"][0]["mode"] == "catch_changes"

    def test_save_writes_named_file(self, tmp_path):
        report = _report(checks=[_check("port:3000", True)])
        report.finish()

        path = report.save(tmp_path / "reports")

        assert path.name == "acceptance_20260102_030405_01234567.json"
        assert json.loads(path.read_text(encoding="utf-8"))["passed"] is True

    def test_save_writes_markdown_beside_json(self, tmp_path):
        """A readable Markdown copy sits next to the JSON report."""
        report = _report(
            manifest={"influxdb_password": "hunter2"},
            checks=[_check("port:3000", True)],
        )

        path = report.save(tmp_path)

        markdown = path.with_suffix(".md").read_text(encoding="utf-8")
        assert markdown.startswith("# Acceptance Run `0123456789abcdef`")
        assert "**Result:** PASSED" in markdown
        assert "hunter2" not in markdown

    def test_markdown_lists_runs_and_checks(self):
        report = _report(
            applies=[ApplyResult(exit_code=2, duration_seconds=12.34)],
            checks=[_check("influxdb:query", False)],
            error="Exit code 4 is not acceptable for catch_failures",
        )

        md = report.to_markdown()

        assert "**Result:** FAILED" in md
        assert "| 1 | default | 2 | 12.3s |" in md
        assert "❌ `influxdb:query`: broken" in md
        assert "## Error" in md

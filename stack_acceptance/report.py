"""
Run Report - Structured record of one acceptance run.

Written as JSON for tooling and Markdown for people. Credentials are
redacted before anything is serialized.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from stack_acceptance.applier import ApplyResult
from stack_acceptance.core.logging import redact
from stack_acceptance.probes import CheckResult


@dataclass
class RunReport:
    """Everything needed to understand a run without re-running it."""

    run_id: str
    started_at: datetime
    finished_at: datetime | None = None
    target_host: str = ""
    manifest: dict[str, Any] = field(default_factory=dict)
    applies: list[ApplyResult] = field(default_factory=list)
    checks: list[CheckResult] = field(default_factory=list)
    error: str | None = None

    @property
    def passed(self) -> bool:
        if self.error:
            return False
        return bool(self.checks) and all(c.healthy for c in self.checks)

    def finish(self) -> None:
        self.finished_at = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        finished = self.finished_at or datetime.now(timezone.utc)
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": finished.isoformat(),
            "duration_seconds": (finished - self.started_at).total_seconds(),
            "target_host": self.target_host,
            "passed": self.passed,
            "summary": self.summary(),
            "manifest": self.manifest,
            "applies": [a.to_dict() for a in self.applies],
            "checks": [c.to_dict() for c in self.checks],
            "error": self.error,
        }

    def to_json(self) -> str:
        return redact(json.dumps(self.to_dict(), indent=2, default=str))

    def save(self, directory: Path | str = "test-results/acceptance-reports") -> Path:
        """Save the JSON report, with a Markdown copy beside it, and return the JSON path."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        timestamp = self.started_at.strftime("%Y%m%d_%H%M%S")
        filepath = directory / f"acceptance_{timestamp}_{self.run_id[:8]}.json"
        filepath.write_text(self.to_json(), encoding="utf-8")
        filepath.with_suffix(".md").write_text(self.to_markdown(), encoding="utf-8")
        return filepath

    def summary(self) -> str:
        parts = []

        if self.applies:
            codes = ", ".join(str(a.exit_code) for a in self.applies)
            parts.append(f"{len(self.applies)} apply run(s), exit codes {codes}")

        if self.checks:
            failed = [c.name for c in self.checks if not c.healthy]
            if failed:
                parts.append(f"{len(failed)}/{len(self.checks)} check(s) failed: {', '.join(failed)}")
            else:
                parts.append(f"all {len(self.checks)} checks passed")

        if self.error:
            parts.append(f"Error: {self.error[:120]}")

        return " | ".join(parts) if parts else "Nothing ran"

    def to_markdown(self) -> str:
        md = f"""# Acceptance Run `{self.run_id}`

**Target:** `{self.target_host}`
**Result:** {"PASSED" if self.passed else "FAILED"}
**Summary:** {self.summary()}

---
"""

        if self.error:
            md += f"\n## Error\n\n```\n{self.error}\n```\n"

        if self.applies:
            md += "\n## Convergence Runs\n\n| # | Mode | Exit code | Duration |\n|---|------|-----------|----------|\n"
            for i, apply in enumerate(self.applies, start=1):
                md += f"| {i} | {apply.mode.value} | {apply.exit_code} | {apply.duration_seconds:.1f}s |\n"

        if self.checks:
            md += "\n## Checks\n\n"
            for check in self.checks:
                icon = "✅" if check.healthy else "❌"
                md += f"- {icon} `{check.name}`: {check.message}\n"

        return redact(md)

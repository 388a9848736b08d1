"""
Manifest Applier - Run the convergence engine and judge its exit code.

The manifest is rendered to Puppet DSL and piped to `puppet apply` on
stdin. With `--detailed-exitcodes` Puppet reports:

    0  no changes
    1  fatal error (also the only failure code without detailed exit codes)
    2  changes applied
    4  failures
    6  changes and failures
"""

from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass, field
from enum import Enum

from stack_acceptance.core.config import Settings, get_settings
from stack_acceptance.core.exceptions import (
    ConvergenceError,
    ConvergenceTimeoutError,
    IdempotenceError,
)
from stack_acceptance.core.logging import get_logger, redact
from stack_acceptance.manifest import MetricsDashboardManifest

logger = get_logger("applier")

FATAL_EXIT_CODE = 1
DETAILED_EXITCODES_FLAG = "--detailed-exitcodes"


class ApplyMode(str, Enum):
    """How an exit code is judged."""

    DEFAULT = "default"
    CATCH_FAILURES = "catch_failures"
    CATCH_CHANGES = "catch_changes"
    EXPECT_FAILURES = "expect_failures"
    EXPECT_CHANGES = "expect_changes"

    @property
    def uses_detailed_exitcodes(self) -> bool:
        return self is not ApplyMode.DEFAULT

    def accepts(self, exit_code: int) -> bool:
        if self is ApplyMode.DEFAULT:
            return exit_code != FATAL_EXIT_CODE
        return exit_code in _ACCEPTABLE_EXIT_CODES[self]


_ACCEPTABLE_EXIT_CODES: dict[ApplyMode, frozenset[int]] = {
    ApplyMode.CATCH_FAILURES: frozenset({0, 2}),
    ApplyMode.CATCH_CHANGES: frozenset({0}),
    ApplyMode.EXPECT_FAILURES: frozenset({1, 4, 6}),
    ApplyMode.EXPECT_CHANGES: frozenset({2}),
}


@dataclass
class ApplyResult:
    """Outcome of one convergence engine run."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0
    command: list[str] = field(default_factory=list)
    mode: ApplyMode = ApplyMode.DEFAULT

    @property
    def fatal(self) -> bool:
        return self.exit_code == FATAL_EXIT_CODE

    @property
    def changed(self) -> bool:
        return self.mode.uses_detailed_exitcodes and bool(self.exit_code & 2)

    @property
    def failed(self) -> bool:
        if self.fatal:
            return True
        return self.mode.uses_detailed_exitcodes and bool(self.exit_code & 4)

    def to_dict(self) -> dict:
        return {
            "exit_code": self.exit_code,
            "mode": self.mode.value,
            "changed": self.changed,
            "failed": self.failed,
            "duration_seconds": round(self.duration_seconds, 3),
            "command": redact(" ".join(self.command)),
        }


class ManifestApplier:
    """
    Apply a manifest through the convergence engine.

    Usage:
        applier = ManifestApplier()
        applier.apply_twice(manifest)       # neither run may be fatal
        applier.idempotent_apply(manifest)  # second run must change nothing
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    def build_command(self, mode: ApplyMode) -> list[str]:
        # The flag is owned by the mode: DEFAULT only knows exit code 1 as failure
        cmd = [arg for arg in self.settings.engine_argv if arg != DETAILED_EXITCODES_FLAG]
        if mode.uses_detailed_exitcodes:
            cmd.append(DETAILED_EXITCODES_FLAG)
        return cmd

    def apply(
        self,
        manifest: MetricsDashboardManifest,
        mode: ApplyMode = ApplyMode.DEFAULT,
    ) -> ApplyResult:
        """
        Run the engine once with the rendered manifest on stdin.

        Raises:
            ConvergenceError: engine missing or exit code not acceptable for mode
            ConvergenceTimeoutError: engine exceeded apply_timeout_seconds
        """
        cmd = self.build_command(mode)
        code = manifest.to_puppet(self.settings.puppet_class)
        logger.info("Applying manifest (%s): %s", mode.value, " ".join(cmd))
        logger.debug("Manifest:\n%s", code)

        start = time.monotonic()
        try:
            completed = subprocess.run(
                cmd,
                input=code,
                capture_output=True,
                text=True,
                timeout=self.settings.apply_timeout_seconds,
            )
        except subprocess.TimeoutExpired as e:
            raise ConvergenceTimeoutError(
                f"Convergence engine timed out after {self.settings.apply_timeout_seconds}s",
                details={"command": cmd},
            ) from e
        except FileNotFoundError as e:
            raise ConvergenceError(
                f"Convergence engine not found: {cmd[0]}",
                details={"command": cmd},
            ) from e

        result = ApplyResult(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration_seconds=time.monotonic() - start,
            command=cmd,
            mode=mode,
        )
        logger.info(
            "Engine exited with %d after %.1fs", result.exit_code, result.duration_seconds
        )
        if result.stdout:
            logger.debug("stdout:\n%s", result.stdout)
        if result.stderr:
            logger.debug("stderr:\n%s", result.stderr)

        if not mode.accepts(result.exit_code):
            raise ConvergenceError(
                f"Exit code {result.exit_code} is not acceptable for {mode.value}",
                result=result,
                details={"stderr": result.stderr[-2000:]},
            )
        return result

    def apply_twice(
        self, manifest: MetricsDashboardManifest
    ) -> tuple[ApplyResult, ApplyResult]:
        """Apply the same manifest twice; neither run may be fatal."""
        first = self.apply(manifest)
        second = self.apply(manifest)
        return first, second

    def idempotent_apply(
        self, manifest: MetricsDashboardManifest
    ) -> tuple[ApplyResult, ApplyResult]:
        """Apply catching failures, then apply again expecting no changes."""
        first = self.apply(manifest, ApplyMode.CATCH_FAILURES)
        try:
            second = self.apply(manifest, ApplyMode.CATCH_CHANGES)
        except ConvergenceError as e:
            if e.result is not None and e.result.changed and not e.result.failed:
                raise IdempotenceError(
                    "Second application reported changes",
                    result=e.result,
                ) from e
            raise
        return first, second

"""Custom exceptions for manifest application and verification."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stack_acceptance.applier import ApplyResult


class AcceptanceError(Exception):
    """Base acceptance exception with structured error details."""

    error_code: str = "ACCEPTANCE_ERROR"
    message: str = "Acceptance run failed"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


class ManifestError(AcceptanceError):
    """Manifest options are invalid."""

    error_code = "INVALID_MANIFEST"
    message = "Manifest options are invalid"


class LineProtocolError(AcceptanceError):
    """A point cannot be encoded as line protocol."""

    error_code = "INVALID_POINT"
    message = "Point cannot be encoded as line protocol"


class ConvergenceError(AcceptanceError):
    """The convergence engine failed or exited with an unacceptable code."""

    error_code = "CONVERGENCE_FAILED"
    message = "Convergence engine run failed"

    def __init__(
        self,
        message: str | None = None,
        result: "ApplyResult | None" = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        if result is not None:
            details.setdefault("exit_code", result.exit_code)
        super().__init__(message, error_code=error_code, details=details)
        self.result = result


class ConvergenceTimeoutError(ConvergenceError):
    """The convergence engine did not finish in time."""

    error_code = "CONVERGENCE_TIMEOUT"
    message = "Convergence engine timed out"


class IdempotenceError(ConvergenceError):
    """Re-applying the manifest still changed the system."""

    error_code = "NOT_IDEMPOTENT"
    message = "Second application reported changes"

"""
Unified error taxonomy for govdeploy.

Every failure the provisioning core can produce is a ``GovDeployError``
subclass carrying an exit code, so the CLI can map it to a process status
without inspecting messages.

Exit Codes:
- 0: Success (run completed and verified)
- 3: Halted (a step failed; progress persisted for resume)
- 4: Cancelled (run stopped between steps)
- 10: Configuration error
- 11: Provider error (ledger/gateway failure outside a step)
- 12: Validation error (malformed plan)
- 13: Consistency error (post-run verification found mismatches)
- 127: Unknown/internal error
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    HALTED = 3
    CANCELLED = 4
    CONFIG_ERROR = 10
    PROVIDER_ERROR = 11
    VALIDATION_ERROR = 12
    CONSISTENCY_ERROR = 13
    UNKNOWN_ERROR = 127


class GovDeployError(Exception):
    """Base exception for govdeploy errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def kind(self) -> str:
        """Short error kind used in run state and diagnostics."""
        return type(self).__name__


class ConfigurationError(GovDeployError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class LedgerError(GovDeployError):
    """Base class for failures reported by a resource client."""

    exit_code = ExitCode.PROVIDER_ERROR


class TransientError(LedgerError):
    """Network or congestion failure; the same request may succeed later."""


class RejectedError(LedgerError):
    """The ledger refused the request (revert, bad auth, invalid params)."""


class PlanReferenceError(GovDeployError):
    """Raised when a plan is malformed (bad reference, ordering or schema)."""

    exit_code = ExitCode.VALIDATION_ERROR


class ConsistencyError(GovDeployError):
    """A post-run invariant does not hold on the ledger."""

    exit_code = ExitCode.CONSISTENCY_ERROR

    def __init__(
        self,
        message: str,
        *,
        check: str,
        expected: Any = None,
        actual: Any = None,
    ):
        super().__init__(message, {"check": check, "expected": expected, "actual": actual})
        self.check = check
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> dict[str, Any]:
        return {
            "check": self.check,
            "message": self.message,
            "expected": _jsonable(self.expected),
            "actual": _jsonable(self.actual),
        }


class StepFailedError(GovDeployError):
    """A plan step reached ``failed``; wraps the terminal ledger error."""

    exit_code = ExitCode.HALTED

    def __init__(self, step_id: str, attempts: int, cause: GovDeployError):
        super().__init__(
            f"Step '{step_id}' failed after {attempts} attempt(s): {cause.message}",
            {"step_id": step_id, "attempts": attempts, "error_kind": cause.kind},
        )
        self.step_id = step_id
        self.attempts = attempts
        self.cause = cause

    @property
    def error_kind(self) -> str:
        return self.cause.kind


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    return str(value)


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI entry points that provides unified error handling.

    Catches exceptions and converts them to exit codes with consistent
    error reporting.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - GovDeployError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except GovDeployError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=e.kind,
                        message=e.message,
                        exit_code=int(e.exit_code),
                        **e.details,
                    )
                print(f"error: {format_error_message(e)}", file=sys.stderr)
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return 130  # Standard exit code for SIGINT
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=int(ExitCode.UNKNOWN_ERROR),
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: GovDeployError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg

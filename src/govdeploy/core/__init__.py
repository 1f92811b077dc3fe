"""Core modules for govdeploy - centralized definitions and utilities."""

from govdeploy.core.errors import (
    ConfigurationError,
    ConsistencyError,
    ExitCode,
    GovDeployError,
    LedgerError,
    PlanReferenceError,
    RejectedError,
    StepFailedError,
    TransientError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "GovDeployError",
    "ConfigurationError",
    "LedgerError",
    "TransientError",
    "RejectedError",
    "PlanReferenceError",
    "ConsistencyError",
    "StepFailedError",
    "main_with_error_handling",
    "format_error_message",
]

"""Result types for a provisioning run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional

from govdeploy.core.errors import ConsistencyError, ExitCode
from govdeploy.provisioning.governance import DEPLOY_GOVERNOR, DEPLOY_TIMELOCK, DEPLOY_TOKEN
from govdeploy.provisioning.orchestrator import RunOutcome, StepFailure
from govdeploy.provisioning.state import RunPhase, RunState
from govdeploy.provisioning.verifier import RoleAssignment, VerificationReport


@dataclass
class RunReport:
    """What a run produced and whether the result checks out."""

    run_id: str
    phase: RunPhase
    token_address: Optional[str] = None
    timelock_address: Optional[str] = None
    governor_address: Optional[str] = None
    final_role_state: List[RoleAssignment] = field(default_factory=list)
    consistency_errors: List[ConsistencyError] = field(default_factory=list)
    failure: Optional[StepFailure] = None
    cancelled: bool = False
    verified: bool = False
    duration_seconds: float = 0.0

    @classmethod
    def build(
        cls,
        state: RunState,
        outcome: RunOutcome,
        verification: VerificationReport | None = None,
        duration: float = 0.0,
    ) -> "RunReport":
        return cls(
            run_id=state.run_id,
            phase=outcome.phase,
            token_address=state.output(DEPLOY_TOKEN),
            timelock_address=state.output(DEPLOY_TIMELOCK),
            governor_address=state.output(DEPLOY_GOVERNOR),
            final_role_state=list(verification.role_assignments) if verification else [],
            consistency_errors=list(verification.errors) if verification else [],
            failure=outcome.failure,
            cancelled=outcome.cancelled,
            verified=verification is not None,
            duration_seconds=duration,
        )

    @property
    def success(self) -> bool:
        """Completed, verified, and no inconsistencies found."""
        return self.phase == RunPhase.COMPLETED and self.verified and not self.consistency_errors

    @property
    def exit_code(self) -> ExitCode:
        if self.success:
            return ExitCode.SUCCESS
        if self.failure is not None:
            return ExitCode.HALTED
        if self.cancelled:
            return ExitCode.CANCELLED
        if self.consistency_errors:
            return ExitCode.CONSISTENCY_ERROR
        return ExitCode.HALTED

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "phase": self.phase.value,
            "token_address": self.token_address,
            "timelock_address": self.timelock_address,
            "governor_address": self.governor_address,
            "final_role_state": [role.to_dict() for role in self.final_role_state],
            "consistency_errors": [error.to_dict() for error in self.consistency_errors],
            "failure": self.failure.to_dict() if self.failure else None,
            "cancelled": self.cancelled,
            "verified": self.verified,
            "duration_seconds": round(self.duration_seconds, 3),
        }

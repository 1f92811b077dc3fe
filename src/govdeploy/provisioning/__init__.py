"""Provisioning: plan graph, step executor, orchestrator and verifier."""

from govdeploy.provisioning.executor import RetryPolicy, StepExecutor
from govdeploy.provisioning.governance import build_governance_plan
from govdeploy.provisioning.orchestrator import Orchestrator, RunOutcome, StepFailure
from govdeploy.provisioning.plan import PARAM_SCHEMAS, Plan, Ref, Step
from govdeploy.provisioning.report import RunReport
from govdeploy.provisioning.state import (
    RunPhase,
    RunState,
    RunStateStore,
    StepRecord,
    StepStatus,
    load_state,
    save_state,
)
from govdeploy.provisioning.verifier import (
    InvariantVerifier,
    RoleAssignment,
    VerificationReport,
)

__all__ = [
    "PARAM_SCHEMAS",
    "InvariantVerifier",
    "Orchestrator",
    "Plan",
    "Ref",
    "RetryPolicy",
    "RoleAssignment",
    "RunOutcome",
    "RunPhase",
    "RunReport",
    "RunState",
    "RunStateStore",
    "Step",
    "StepExecutor",
    "StepFailure",
    "StepRecord",
    "StepStatus",
    "VerificationReport",
    "build_governance_plan",
    "load_state",
    "save_state",
]

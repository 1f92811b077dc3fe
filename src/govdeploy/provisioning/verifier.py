"""
Post-run invariant verification.

Re-reads the deployed configuration from the ledger and compares it with
what the plan promised. Findings are returned, never raised, and nothing
is written.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

import structlog

from govdeploy.config.plan import PlanConfig
from govdeploy.core.errors import ConfigurationError, ConsistencyError
from govdeploy.ledger.base import ADMIN_ROLE, EXECUTOR_ROLE, PROPOSER_ROLE, ResourceClient, StepKind
from govdeploy.provisioning.executor import same_address
from govdeploy.provisioning.governance import (
    DEPLOY_GOVERNOR,
    DEPLOY_TIMELOCK,
    DEPLOY_TOKEN,
    TRANSFER_TREASURY_OWNERSHIP,
)
from govdeploy.provisioning.plan import Plan, resolve
from govdeploy.provisioning.state import RunPhase, RunState, StepStatus

logger = structlog.get_logger()

_ROLE_KINDS = {
    StepKind.GRANT_ROLE: True,
    StepKind.REVOKE_ROLE: False,
    StepKind.RENOUNCE_ROLE: False,
}


@dataclass(frozen=True)
class RoleAssignment:
    """Whether ``grantee`` holds ``role`` on the timelock."""

    role: str
    grantee: str
    granted: bool

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "grantee": self.grantee, "granted": self.granted}


@dataclass
class VerificationReport:
    role_assignments: List[RoleAssignment] = field(default_factory=list)
    errors: List[ConsistencyError] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.errors


def expected_role_assignments(plan: Plan, state: RunState, deployer: str) -> Dict[Tuple[str, str], bool]:
    """Role state implied by the plan's completed role steps.

    Keys are ``(role, grantee)`` with lower-cased grantees; later steps win.
    The governance invariants (governor proposes and executes, deployer is
    not admin) are always included.
    """
    outputs = {
        step_id: record.output
        for step_id, record in state.steps.items()
        if record.status == StepStatus.DONE
    }
    governor = str(outputs.get(DEPLOY_GOVERNOR, ""))
    expected: Dict[Tuple[str, str], bool] = {
        (PROPOSER_ROLE, governor.lower()): True,
        (EXECUTOR_ROLE, governor.lower()): True,
        (ADMIN_ROLE, deployer.lower()): False,
    }
    for step in plan:
        if step.kind not in _ROLE_KINDS or step.id not in outputs:
            continue
        params = resolve(dict(step.params), outputs)
        expected[(params["role"], str(params["account"]).lower())] = _ROLE_KINDS[step.kind]
    return expected


class InvariantVerifier:
    """Checks the deployed governance configuration against the plan."""

    def __init__(
        self,
        client: ResourceClient,
        plan: Plan,
        config: PlanConfig,
        deployer: str,
    ) -> None:
        self._client = client
        self._plan = plan
        self._config = config
        self._deployer = deployer

    async def verify(self, state: RunState) -> VerificationReport:
        if state.phase != RunPhase.COMPLETED:
            raise ConfigurationError(
                f"Cannot verify run {state.run_id} in phase '{state.phase.value}'",
                {"run_id": state.run_id},
            )

        token = state.output(DEPLOY_TOKEN)
        timelock = state.output(DEPLOY_TIMELOCK)
        report = VerificationReport()

        for (role, grantee), should_hold in expected_role_assignments(
            self._plan, state, self._deployer
        ).items():
            holds = bool(await self._client.query(timelock, "hasRole", role, grantee))
            report.role_assignments.append(RoleAssignment(role=role, grantee=grantee, granted=holds))
            if holds != should_hold:
                verb = "should hold" if should_hold else "should not hold"
                report.errors.append(
                    ConsistencyError(
                        f"{grantee} {verb} {role}",
                        check="role",
                        expected=should_hold,
                        actual=holds,
                    )
                )

        await self._check_owner(report, token, timelock, "token_owner")
        if TRANSFER_TREASURY_OWNERSHIP in self._plan:
            await self._check_owner(report, timelock, timelock, "treasury_owner")
        await self._check_supply(report, token, timelock)

        if report.errors:
            logger.warning("verification_failed", errors=[e.to_dict() for e in report.errors])
        else:
            logger.info("verification_passed", roles=len(report.role_assignments))
        return report

    async def _check_owner(self, report: VerificationReport, contract: str, owner: str, check: str) -> None:
        actual = await self._client.query(contract, "owner")
        if not same_address(actual, owner):
            report.errors.append(
                ConsistencyError(
                    f"{contract} is owned by {actual}, expected {owner}",
                    check=check,
                    expected=owner,
                    actual=actual,
                )
            )

    async def _check_supply(self, report: VerificationReport, token: str, timelock: str) -> None:
        config = self._config
        total = config.to_base_units(config.total_supply)
        per_member = config.to_base_units(config.per_member_amount)

        supply = await self._client.query(token, "totalSupply")
        if supply != total:
            report.errors.append(
                ConsistencyError("Total supply differs from plan", check="total_supply", expected=total, actual=supply)
            )

        for member in config.members:
            balance = await self._client.query(token, "balanceOf", member)
            if balance != per_member:
                report.errors.append(
                    ConsistencyError(
                        f"Balance of {member} differs from plan",
                        check="member_balance",
                        expected=per_member,
                        actual=balance,
                    )
                )

        remainder = total - per_member * len(config.members)
        treasury = await self._client.query(token, "balanceOf", timelock)
        if treasury != remainder:
            report.errors.append(
                ConsistencyError(
                    "Treasury balance differs from undistributed supply",
                    check="treasury_balance",
                    expected=remainder,
                    actual=treasury,
                )
            )

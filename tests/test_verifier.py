"""Tests for provisioning/verifier.py."""

import pytest
from conftest import MEMBER_A, UNIT
from govdeploy.core.errors import ConfigurationError
from govdeploy.ledger.base import ADMIN_ROLE, EXECUTOR_ROLE, PROPOSER_ROLE
from govdeploy.ledger.memory import DEFAULT_DEPLOYER
from govdeploy.provisioning.governance import (
    DEPLOY_GOVERNOR,
    DEPLOY_TIMELOCK,
    DEPLOY_TOKEN,
    build_governance_plan,
)
from govdeploy.provisioning.orchestrator import Orchestrator
from govdeploy.provisioning.state import RunPhase, RunState, RunStateStore
from govdeploy.provisioning.verifier import InvariantVerifier, expected_role_assignments


@pytest.fixture
def plan(plan_config):
    return build_governance_plan(plan_config, DEFAULT_DEPLOYER)


@pytest.fixture
def verifier(plan, ledger, plan_config):
    return InvariantVerifier(ledger, plan, plan_config, DEFAULT_DEPLOYER)


async def run_to_completion(plan, ledger, retry):
    """State of a finished deployment on ``ledger``."""
    orchestrator = Orchestrator(plan, ledger, RunStateStore(RunState()), retry=retry)
    await orchestrator.run()
    return orchestrator.state


def contract(ledger, state, step_id):
    return ledger.contracts[state.output(step_id).lower()]


class TestInvariantVerifier:
    @pytest.mark.asyncio
    async def test_completed_run_is_consistent(self, verifier, plan, ledger, fast_retry):
        state = await run_to_completion(plan, ledger, fast_retry)

        report = await verifier.verify(state)

        assert report.consistent
        assert report.errors == []
        assert len(report.role_assignments) == 3

    @pytest.mark.asyncio
    async def test_admin_regained_is_reported(self, verifier, plan, ledger, fast_retry):
        state = await run_to_completion(plan, ledger, fast_retry)
        contract(ledger, state, DEPLOY_TIMELOCK).grant(ADMIN_ROLE, DEFAULT_DEPLOYER)

        report = await verifier.verify(state)

        assert not report.consistent
        (error,) = report.errors
        assert error.check == "role"
        assert error.expected is False
        assert error.actual is True

    @pytest.mark.asyncio
    async def test_missing_governor_role_is_reported(self, verifier, plan, ledger, fast_retry):
        state = await run_to_completion(plan, ledger, fast_retry)
        governor = state.output(DEPLOY_GOVERNOR)
        contract(ledger, state, DEPLOY_TIMELOCK).revoke(EXECUTOR_ROLE, governor)

        report = await verifier.verify(state)

        assert [e.check for e in report.errors] == ["role"]
        assert governor.lower() in report.errors[0].message

    @pytest.mark.asyncio
    async def test_wrong_token_owner_is_reported(self, verifier, plan, ledger, fast_retry):
        state = await run_to_completion(plan, ledger, fast_retry)
        contract(ledger, state, DEPLOY_TOKEN).owner = DEFAULT_DEPLOYER

        report = await verifier.verify(state)

        assert [e.check for e in report.errors] == ["token_owner"]
        assert report.errors[0].actual == DEFAULT_DEPLOYER

    @pytest.mark.asyncio
    async def test_balance_drift_is_reported(self, verifier, plan, ledger, fast_retry):
        state = await run_to_completion(plan, ledger, fast_retry)
        token = contract(ledger, state, DEPLOY_TOKEN)
        token.debit(state.output(DEPLOY_TIMELOCK), UNIT)
        token.credit(MEMBER_A, UNIT)

        report = await verifier.verify(state)

        checks = {e.check: e for e in report.errors}
        assert set(checks) == {"member_balance", "treasury_balance"}
        assert checks["member_balance"].expected == 50 * UNIT
        assert checks["member_balance"].actual == 51 * UNIT
        assert checks["treasury_balance"].to_dict()["expected"] == 900 * UNIT

    @pytest.mark.asyncio
    async def test_unfinished_run_cannot_be_verified(self, verifier):
        with pytest.raises(ConfigurationError, match="in_progress"):
            await verifier.verify(RunState(phase=RunPhase.IN_PROGRESS))


class TestExpectedRoleAssignments:
    @pytest.mark.asyncio
    async def test_roles_from_completed_plan(self, plan, ledger, fast_retry):
        state = await run_to_completion(plan, ledger, fast_retry)
        governor = state.output(DEPLOY_GOVERNOR).lower()

        expected = expected_role_assignments(plan, state, DEFAULT_DEPLOYER)

        assert expected == {
            (PROPOSER_ROLE, governor): True,
            (EXECUTOR_ROLE, governor): True,
            (ADMIN_ROLE, DEFAULT_DEPLOYER.lower()): False,
        }

    def test_unfinished_role_steps_ignored(self, plan):
        expected = expected_role_assignments(plan, RunState(), DEFAULT_DEPLOYER)

        assert expected[(ADMIN_ROLE, DEFAULT_DEPLOYER.lower())] is False
        assert len(expected) == 3

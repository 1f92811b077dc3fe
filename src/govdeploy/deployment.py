"""
Governance deployment facade.

Ties the pieces together for one run: ask the client who the deployer is,
build the plan, load or start the run state, drive the orchestrator and,
if the run completed, verify the result.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

import structlog

from govdeploy.config.plan import PlanConfig
from govdeploy.ledger.base import ResourceClient
from govdeploy.logging import bind_run
from govdeploy.provisioning.executor import RetryPolicy
from govdeploy.provisioning.governance import build_governance_plan
from govdeploy.provisioning.orchestrator import Orchestrator
from govdeploy.provisioning.plan import Plan
from govdeploy.provisioning.report import RunReport
from govdeploy.provisioning.state import RunState, RunStateStore, load_state
from govdeploy.provisioning.verifier import InvariantVerifier

logger = structlog.get_logger()


class GovernanceDeployment:
    """Runs (or resumes) the governance deployment for one plan config."""

    def __init__(
        self,
        client: ResourceClient,
        config: PlanConfig,
        *,
        state_path: Optional[Path] = None,
        retry: RetryPolicy | None = None,
        concurrency: int = 4,
        fresh: bool = False,
    ) -> None:
        self.client = client
        self.config = config
        self.state_path = state_path
        self.retry = retry
        self.concurrency = concurrency
        self.fresh = fresh
        self.orchestrator: Orchestrator | None = None

    async def build_plan(self) -> tuple[Plan, str]:
        deployer = await self.client.account()
        return build_governance_plan(self.config, deployer), deployer

    def load_or_create_state(self) -> RunState:
        if self.state_path is not None and not self.fresh:
            existing = load_state(self.state_path)
            if existing is not None:
                logger.info("run_state_loaded", path=str(self.state_path), run_id=existing.run_id)
                return existing
        return RunState()

    async def run(self) -> RunReport:
        started = time.monotonic()
        plan, deployer = await self.build_plan()
        state = self.load_or_create_state()
        bind_run(state.run_id)

        store = RunStateStore(state, self.state_path)
        self.orchestrator = Orchestrator(
            plan,
            self.client,
            store,
            retry=self.retry,
            concurrency=self.concurrency,
        )
        outcome = await self.orchestrator.run()

        verification = None
        if outcome.completed:
            verifier = InvariantVerifier(self.client, plan, self.config, deployer)
            verification = await verifier.verify(state)

        return RunReport.build(state, outcome, verification, time.monotonic() - started)

    def cancel(self) -> None:
        if self.orchestrator is not None:
            self.orchestrator.cancel()

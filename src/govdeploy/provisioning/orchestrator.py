"""Provisioning orchestrator.

Walks a plan as a state machine (not_started → in_progress → completed or
halted), launching every step whose dependencies are done, up to a
concurrency limit. The first failed step halts the run: steps already in
flight are allowed to finish, nothing new is started, and the run state
on disk shows exactly where to resume.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from govdeploy.core.errors import ConfigurationError, GovDeployError, StepFailedError
from govdeploy.ledger.base import ResourceClient
from govdeploy.provisioning.executor import RetryPolicy, StepExecutor
from govdeploy.provisioning.plan import Plan
from govdeploy.provisioning.state import RunPhase, RunState, RunStateStore, StepStatus

logger = structlog.get_logger()


@dataclass(frozen=True)
class StepFailure:
    """Where and why a run halted."""

    step_id: str
    attempts: int
    error_kind: str
    message: str

    @classmethod
    def from_error(cls, error: StepFailedError) -> "StepFailure":
        return cls(
            step_id=error.step_id,
            attempts=error.attempts,
            error_kind=error.error_kind,
            message=error.cause.message,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "step_id": self.step_id,
            "attempts": self.attempts,
            "error_kind": self.error_kind,
            "message": self.message,
        }


@dataclass(frozen=True)
class RunOutcome:
    phase: RunPhase
    failure: Optional[StepFailure] = None
    cancelled: bool = False

    @property
    def completed(self) -> bool:
        return self.phase == RunPhase.COMPLETED


class Orchestrator:
    """Drives a plan to completion against a resource client."""

    def __init__(
        self,
        plan: Plan,
        client: ResourceClient,
        store: RunStateStore,
        *,
        retry: RetryPolicy | None = None,
        concurrency: int = 4,
    ) -> None:
        if concurrency < 1:
            raise ConfigurationError(f"concurrency must be at least 1, got {concurrency}")
        self.plan = plan
        self.store = store
        self._executor = StepExecutor(client, store, retry)
        self._concurrency = concurrency
        self._cancelled = asyncio.Event()

    @property
    def state(self) -> RunState:
        return self.store.state

    def cancel(self) -> None:
        """Stop launching new steps; in-flight steps still finish."""
        self._cancelled.set()

    async def run(self) -> RunOutcome:
        self._check_fingerprint()
        state = self.store.state
        log = logger.bind(run_id=state.run_id)

        done = sum(1 for step in self.plan if state.is_done(step.id))
        if done:
            log.info("run_resumed", done=done, total=len(self.plan))
        else:
            log.info("run_started", total=len(self.plan))
        await self.store.set_phase(RunPhase.IN_PROGRESS)

        in_flight: Dict[asyncio.Task, str] = {}
        failure: StepFailure | None = None

        while True:
            if failure is None and not self._cancelled.is_set():
                slots = self._concurrency - len(in_flight)
                ready = self.plan.ready(state, exclude=frozenset(in_flight.values()))
                for step in ready[:slots]:
                    task = asyncio.create_task(self._executor.execute(step), name=f"step:{step.id}")
                    in_flight[task] = step.id

            if not in_flight:
                break

            finished, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            for task in finished:
                step_id = in_flight.pop(task)
                exc = task.exception()
                if exc is None:
                    continue
                if isinstance(exc, StepFailedError):
                    failure = failure or StepFailure.from_error(exc)
                    continue
                crash = await self._record_crash(step_id, exc)
                failure = failure or crash

        if failure is not None:
            await self.store.set_phase(RunPhase.HALTED)
            log.error("run_halted", **failure.to_dict())
            return RunOutcome(phase=RunPhase.HALTED, failure=failure)

        if self.plan.is_complete(state):
            await self.store.set_phase(RunPhase.COMPLETED)
            log.info("run_completed", total=len(self.plan))
            return RunOutcome(phase=RunPhase.COMPLETED)

        await self.store.set_phase(RunPhase.HALTED)
        cancelled = self._cancelled.is_set()
        log.warning("run_stopped", cancelled=cancelled)
        return RunOutcome(phase=RunPhase.HALTED, cancelled=cancelled)

    def _check_fingerprint(self) -> None:
        state = self.store.state
        fingerprint = self.plan.fingerprint()
        if state.plan_fingerprint is None:
            state.plan_fingerprint = fingerprint
        elif state.plan_fingerprint != fingerprint:
            raise ConfigurationError(
                "Run state was written for a different plan; start a fresh run",
                {"run_id": state.run_id},
            )

    async def _record_crash(self, step_id: str, exc: BaseException) -> StepFailure:
        """Fail a step that raised outside the ledger error taxonomy."""
        message = exc.message if isinstance(exc, GovDeployError) else str(exc)
        error_kind = type(exc).__name__
        record = await self.store.update(
            step_id,
            status=StepStatus.FAILED,
            last_error=message,
            error_kind=error_kind,
        )
        logger.error(
            "step_crashed",
            run_id=self.store.state.run_id,
            step_id=step_id,
            error_kind=error_kind,
            exc_info=exc,
        )
        return StepFailure(
            step_id=step_id,
            attempts=record.attempts,
            error_kind=error_kind,
            message=message,
        )

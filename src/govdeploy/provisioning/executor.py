"""Step executor: runs one plan step against the ledger.

Transient failures are retried with exponential backoff. Each attempt is
recorded as ``running`` before the request leaves the process, and any
attempt that follows an earlier one first asks the ledger whether the
effect already landed, so a retried or resumed step never applies twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from govdeploy.config.settings import Settings
from govdeploy.core.errors import LedgerError, RejectedError, StepFailedError, TransientError
from govdeploy.ledger.base import LedgerRequest, Receipt, ResourceClient, StepKind
from govdeploy.provisioning.plan import Step, resolve
from govdeploy.provisioning.state import RunStateStore, StepStatus

logger = structlog.get_logger()


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for transient ledger failures."""

    max_attempts: int = 5
    multiplier: float = 1.0
    min_wait: float = 1.0
    max_wait: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            multiplier=settings.backoff_multiplier,
            min_wait=settings.backoff_min,
            max_wait=settings.backoff_max,
        )


def same_address(a: Any, b: Any) -> bool:
    return isinstance(a, str) and isinstance(b, str) and a.lower() == b.lower()


class StepExecutor:
    """Executes single steps and keeps their records in the run state."""

    def __init__(
        self,
        client: ResourceClient,
        store: RunStateStore,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._client = client
        self._store = store
        self._retry = retry or RetryPolicy()

    def build_request(self, step: Step) -> LedgerRequest:
        """Resolve the step's references against completed steps."""
        state = self._store.state
        outputs = {
            step_id: record.output
            for step_id, record in state.steps.items()
            if record.status == StepStatus.DONE
        }
        return LedgerRequest(
            kind=step.kind,
            params=resolve(dict(step.params), outputs),
            idempotency_key=f"{state.run_id}:{step.id}",
        )

    async def execute(self, step: Step) -> Receipt:
        """Run ``step`` to ``done`` or raise ``StepFailedError``."""
        request = self.build_request(step)
        log = logger.bind(step_id=step.id, kind=step.kind.value)
        log.info("step_started")

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(TransientError),
                stop=stop_after_attempt(self._retry.max_attempts),
                wait=wait_exponential(
                    multiplier=self._retry.multiplier,
                    min=self._retry.min_wait,
                    max=self._retry.max_wait,
                ),
                before_sleep=self._before_sleep(step),
                reraise=True,
            ):
                with attempt:
                    receipt = await self._attempt(step, request)
        except LedgerError as exc:
            record = await self._store.update(
                step.id,
                status=StepStatus.FAILED,
                last_error=exc.message,
                error_kind=exc.kind,
            )
            log.error("step_failed", attempts=record.attempts, error_kind=exc.kind, error=exc.message)
            raise StepFailedError(step.id, record.attempts, exc) from exc

        await self._store.update(
            step.id,
            status=StepStatus.DONE,
            output=receipt.output,
            last_error=None,
            error_kind=None,
        )
        log.info("step_done", output=receipt.output, tx_hash=receipt.tx_hash)
        return receipt

    async def _attempt(self, step: Step, request: LedgerRequest) -> Receipt:
        if self._store.state.record(step.id).attempts > 0:
            existing = await self.reconcile(step, request)
            if existing is not None:
                logger.info("step_reconciled", step_id=step.id, kind=step.kind.value)
                return existing

        await self._store.begin_attempt(step.id)
        try:
            receipt = await self._client.submit(request)
        except TransientError as exc:
            await self._store.update(step.id, last_error=exc.message, error_kind=exc.kind)
            raise
        if not receipt.success:
            raise RejectedError(
                f"Ledger did not apply step '{step.id}'",
                {"error_kind": receipt.error_kind, "tx_hash": receipt.tx_hash},
            )
        return receipt

    async def reconcile(self, step: Step, request: LedgerRequest) -> Receipt | None:
        """Return a receipt if the step's effect is already on the ledger."""
        previous = await self._client.lookup(request.idempotency_key)
        if previous is not None and previous.success:
            return previous
        if step.kind == StepKind.CREATE:
            return None

        params = request.params
        query = self._client.query
        if step.kind == StepKind.MINT:
            applied = await query(params["token"], "totalSupply") >= params["amount"]
        elif step.kind == StepKind.TRANSFER:
            applied = await query(params["token"], "balanceOf", params["to"]) >= params["amount"]
        elif step.kind == StepKind.GRANT_ROLE:
            applied = bool(await query(params["target"], "hasRole", params["role"], params["account"]))
        elif step.kind in (StepKind.REVOKE_ROLE, StepKind.RENOUNCE_ROLE):
            applied = not await query(params["target"], "hasRole", params["role"], params["account"])
        else:
            applied = same_address(await query(params["target"], "owner"), params["new_owner"])

        if not applied:
            return None
        return Receipt(success=True, metadata={"reconciled": True})

    @staticmethod
    def _before_sleep(step: Step):
        def log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "step_attempt_failed",
                step_id=step.id,
                attempt=retry_state.attempt_number,
                retry_in=round(retry_state.next_action.sleep, 2) if retry_state.next_action else None,
                error=str(exc),
            )

        return log_retry

"""Root test configuration."""

import logging
from decimal import Decimal
from typing import Any, Callable

import pytest
import structlog
from govdeploy.config.plan import PlanConfig
from govdeploy.core.errors import TransientError
from govdeploy.ledger.base import LedgerRequest, Receipt
from govdeploy.ledger.memory import InMemoryLedger
from govdeploy.provisioning.executor import RetryPolicy

MEMBER_A = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
MEMBER_B = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
UNIT = 10**18


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class ScriptedLedger(InMemoryLedger):
    """In-memory ledger with scripted failures per step id.

    ``fail(step_id, *errors)`` queues exceptions raised on the next
    submissions of that step, before the request is applied.
    ``fail_after_apply(step_id, *errors)`` applies the request and then
    raises, as when confirmation is lost after the transaction landed.
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._before: dict[str, list[Exception]] = {}
        self._after: dict[str, list[Exception]] = {}
        self.on_submit: Callable[[str], None] | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    def fail(self, step_id: str, *errors: Exception) -> None:
        self._before.setdefault(step_id, []).extend(errors)

    def fail_after_apply(self, step_id: str, *errors: Exception) -> None:
        self._after.setdefault(step_id, []).extend(errors)

    def submitted(self, step_id: str) -> list[LedgerRequest]:
        return [r for r in self.submissions if r.idempotency_key.endswith(f":{step_id}")]

    async def submit(self, request: LedgerRequest) -> Receipt:
        step_id = request.idempotency_key.split(":", 1)[1]
        if self.on_submit is not None:
            self.on_submit(step_id)
        queued = self._before.get(step_id)
        if queued:
            raise queued.pop(0)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            receipt = await super().submit(request)
        finally:
            self.in_flight -= 1
        queued = self._after.get(step_id)
        if queued:
            raise queued.pop(0)
        return receipt


@pytest.fixture
def plan_config():
    """Two members with 50 tokens each out of a supply of 1000."""
    return PlanConfig(
        members=[MEMBER_A, MEMBER_B],
        per_member_amount=Decimal("50"),
        total_supply=Decimal("1000"),
    )


@pytest.fixture
def fast_retry():
    return RetryPolicy(max_attempts=5, multiplier=0, min_wait=0, max_wait=0)


@pytest.fixture
def ledger():
    return ScriptedLedger()


def transient(message: str = "nonce too low / congestion") -> TransientError:
    return TransientError(message)

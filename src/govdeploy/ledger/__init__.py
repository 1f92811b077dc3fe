"""Resource clients: the boundary between the provisioning core and a ledger."""

from govdeploy.ledger.base import (
    ADMIN_ROLE,
    CANCELLER_ROLE,
    EXECUTOR_ROLE,
    PROPOSER_ROLE,
    LedgerRequest,
    Receipt,
    ResourceClient,
    StepKind,
)
from govdeploy.ledger.gateway import GatewayClient
from govdeploy.ledger.memory import DEFAULT_DEPLOYER, InMemoryLedger

__all__ = [
    "ADMIN_ROLE",
    "CANCELLER_ROLE",
    "EXECUTOR_ROLE",
    "PROPOSER_ROLE",
    "DEFAULT_DEPLOYER",
    "GatewayClient",
    "InMemoryLedger",
    "LedgerRequest",
    "Receipt",
    "ResourceClient",
    "StepKind",
]

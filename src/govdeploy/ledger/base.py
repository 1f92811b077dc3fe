from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

# Role names understood by the timelock treasury.
PROPOSER_ROLE = "PROPOSER_ROLE"
EXECUTOR_ROLE = "EXECUTOR_ROLE"
CANCELLER_ROLE = "CANCELLER_ROLE"
ADMIN_ROLE = "DEFAULT_ADMIN_ROLE"


class StepKind(StrEnum):
    """Kinds of request a resource client can submit."""

    CREATE = "create"
    MINT = "mint"
    TRANSFER = "transfer"
    GRANT_ROLE = "grant_role"
    REVOKE_ROLE = "revoke_role"
    RENOUNCE_ROLE = "renounce_role"
    TRANSFER_OWNERSHIP = "transfer_ownership"


@dataclass(frozen=True)
class LedgerRequest:
    """A fully resolved creation or mutation request."""

    kind: StepKind
    params: dict[str, Any]
    idempotency_key: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "params": self.params,
            "idempotency_key": self.idempotency_key,
        }


@dataclass(frozen=True)
class Receipt:
    """Confirmation returned once the ledger has processed a request."""

    success: bool
    output: Any = None
    error_kind: str | None = None
    tx_hash: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Receipt":
        return cls(
            success=bool(data.get("success", False)),
            output=data.get("output"),
            error_kind=data.get("error_kind"),
            tx_hash=data.get("tx_hash"),
            metadata=dict(data.get("metadata") or {}),
        )


@runtime_checkable
class ResourceClient(Protocol):
    """The only seam through which the provisioning core touches the ledger.

    ``submit`` and ``lookup`` may raise ``TransientError`` (retryable) or
    ``RejectedError`` (permanent). ``query`` is read-only.
    """

    async def account(self) -> str:
        """Address that signs submitted requests (the deployer)."""
        ...

    async def submit(self, request: LedgerRequest) -> Receipt:
        """Submit a request and wait for confirmation."""
        ...

    async def query(self, address: str, method: str, *args: Any) -> Any:
        """Call a read-only view method on a deployed contract."""
        ...

    async def lookup(self, idempotency_key: str) -> Receipt | None:
        """Return the confirmed receipt of an earlier submission, if any."""
        ...

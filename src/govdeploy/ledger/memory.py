"""
In-process ledger simulation.

Models the three contracts of a charity DAO deployment closely enough to
exercise the provisioning core end to end:

- token: Ownable ERC-20 whose owner alone may mint
- timelock: TimelockController-style role registry that also acts as the
  treasury (its owner may mint and move tokens it holds)
- governor: stores its voting parameters and wiring

Authorization failures raise ``RejectedError`` the way a revert would.
"""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import structlog

from govdeploy.config.plan import ContractNames
from govdeploy.core.errors import RejectedError
from govdeploy.ledger.base import (
    ADMIN_ROLE,
    CANCELLER_ROLE,
    EXECUTOR_ROLE,
    PROPOSER_ROLE,
    LedgerRequest,
    Receipt,
    StepKind,
)

logger = structlog.get_logger()

# First account of a local development node.
DEFAULT_DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


def _derive_address(seed: str) -> str:
    return "0x" + hashlib.sha256(seed.encode()).hexdigest()[:40]


@dataclass
class TokenContract:
    address: str
    owner: str
    balances: dict[str, int] = field(default_factory=dict)
    total_supply: int = 0

    def balance_of(self, account: str) -> int:
        return self.balances.get(account.lower(), 0)

    def credit(self, account: str, amount: int) -> None:
        key = account.lower()
        self.balances[key] = self.balances.get(key, 0) + amount

    def debit(self, account: str, amount: int) -> None:
        if self.balance_of(account) < amount:
            raise RejectedError(f"ERC20: transfer amount exceeds balance of {account}")
        self.balances[account.lower()] -= amount


@dataclass
class TimelockContract:
    address: str
    min_delay: int
    owner: str
    token: str
    roles: dict[str, set[str]] = field(default_factory=dict)

    def has_role(self, role: str, account: str) -> bool:
        return account.lower() in self.roles.get(role, set())

    def grant(self, role: str, account: str) -> None:
        self.roles.setdefault(role, set()).add(account.lower())

    def revoke(self, role: str, account: str) -> None:
        self.roles.get(role, set()).discard(account.lower())


@dataclass
class GovernorContract:
    address: str
    token: str
    timelock: str
    voting_delay: int
    voting_period: int
    proposal_threshold: int
    quorum_percent: int


Contract = TokenContract | TimelockContract | GovernorContract


class InMemoryLedger:
    """Deterministic ``ResourceClient`` backed by Python objects."""

    def __init__(
        self,
        contracts: ContractNames | None = None,
        *,
        deployer: str = DEFAULT_DEPLOYER,
        latency: float = 0.0,
    ) -> None:
        names = contracts or ContractNames()
        self._factories: dict[str, Callable[[str, list[Any]], Contract]] = {
            names.token: self._new_token,
            names.timelock: self._new_timelock,
            names.governor: self._new_governor,
        }
        self._deployer = deployer
        self._latency = latency
        self._nonce = 0
        self.contracts: dict[str, Contract] = {}
        self.receipts: dict[str, Receipt] = {}
        self.submissions: list[LedgerRequest] = []

    async def account(self) -> str:
        return self._deployer

    async def submit(self, request: LedgerRequest) -> Receipt:
        if self._latency:
            await asyncio.sleep(self._latency)
        self.submissions.append(request)
        handler = self._handlers()[request.kind]
        output = handler(request.params)
        self._nonce += 1
        receipt = Receipt(
            success=True,
            output=output,
            tx_hash="0x" + hashlib.sha256(f"{request.idempotency_key}:{self._nonce}".encode()).hexdigest(),
        )
        self.receipts[request.idempotency_key] = receipt
        logger.debug("ledger_request_confirmed", kind=request.kind.value, key=request.idempotency_key)
        return receipt

    async def lookup(self, idempotency_key: str) -> Receipt | None:
        return self.receipts.get(idempotency_key)

    async def query(self, address: str, method: str, *args: Any) -> Any:
        contract = self._contract(address)
        views = self._views(contract)
        if method not in views:
            raise RejectedError(f"{type(contract).__name__} has no view '{method}'")
        return views[method](*args)

    # --- request handlers -------------------------------------------------

    def _handlers(self) -> Mapping[StepKind, Callable[[dict[str, Any]], Any]]:
        return {
            StepKind.CREATE: self._create,
            StepKind.MINT: self._mint,
            StepKind.TRANSFER: self._transfer,
            StepKind.GRANT_ROLE: self._grant_role,
            StepKind.REVOKE_ROLE: self._revoke_role,
            StepKind.RENOUNCE_ROLE: self._renounce_role,
            StepKind.TRANSFER_OWNERSHIP: self._transfer_ownership,
        }

    def _create(self, params: dict[str, Any]) -> str:
        factory = self._factories.get(params["contract"])
        if factory is None:
            raise RejectedError(f"Unknown contract artifact '{params['contract']}'")
        address = _derive_address(f"{self._deployer}:{len(self.contracts)}")
        self.contracts[address.lower()] = factory(address, list(params["args"]))
        return address

    def _mint(self, params: dict[str, Any]) -> None:
        treasury = self._timelock(params["treasury"])
        token = self._token(params["token"])
        self._require_owner(treasury.owner, "mintTokens")
        if treasury.token.lower() != token.address.lower():
            raise RejectedError("Treasury does not manage this token")
        self._require_owner(token.owner, "mint", caller=treasury.address)
        token.credit(treasury.address, int(params["amount"]))
        token.total_supply += int(params["amount"])

    def _transfer(self, params: dict[str, Any]) -> None:
        treasury = self._timelock(params["treasury"])
        token = self._token(params["token"])
        self._require_owner(treasury.owner, "transferTokens")
        amount = int(params["amount"])
        token.debit(treasury.address, amount)
        token.credit(params["to"], amount)

    def _grant_role(self, params: dict[str, Any]) -> None:
        timelock = self._timelock(params["target"])
        self._require_role(timelock, ADMIN_ROLE)
        timelock.grant(params["role"], params["account"])

    def _revoke_role(self, params: dict[str, Any]) -> None:
        timelock = self._timelock(params["target"])
        self._require_role(timelock, ADMIN_ROLE)
        timelock.revoke(params["role"], params["account"])

    def _renounce_role(self, params: dict[str, Any]) -> None:
        timelock = self._timelock(params["target"])
        if params["account"].lower() != self._deployer.lower():
            raise RejectedError("AccessControl: can only renounce roles for self")
        timelock.revoke(params["role"], params["account"])

    def _transfer_ownership(self, params: dict[str, Any]) -> None:
        contract = self._contract(params["target"])
        if not isinstance(contract, (TokenContract, TimelockContract)):
            raise RejectedError(f"{type(contract).__name__} is not ownable")
        self._require_owner(contract.owner, "transferOwnership")
        contract.owner = params["new_owner"]

    # --- constructors -----------------------------------------------------

    def _new_token(self, address: str, args: list[Any]) -> TokenContract:
        (owner,) = self._unpack(args, 1, "token")
        return TokenContract(address=address, owner=owner)

    def _new_timelock(self, address: str, args: list[Any]) -> TimelockContract:
        min_delay, proposers, executors, admin, treasury_owner, token = self._unpack(args, 6, "timelock")
        timelock = TimelockContract(
            address=address,
            min_delay=int(min_delay),
            owner=treasury_owner,
            token=token,
        )
        # The timelock administers itself; the optional admin is for setup only.
        timelock.grant(ADMIN_ROLE, address)
        if admin:
            timelock.grant(ADMIN_ROLE, admin)
        for proposer in proposers:
            timelock.grant(PROPOSER_ROLE, proposer)
            timelock.grant(CANCELLER_ROLE, proposer)
        for executor in executors:
            timelock.grant(EXECUTOR_ROLE, executor)
        return timelock

    def _new_governor(self, address: str, args: list[Any]) -> GovernorContract:
        token, timelock, voting_delay, voting_period, threshold, quorum = self._unpack(args, 6, "governor")
        self._token(token)
        self._timelock(timelock)
        return GovernorContract(
            address=address,
            token=token,
            timelock=timelock,
            voting_delay=int(voting_delay),
            voting_period=int(voting_period),
            proposal_threshold=int(threshold),
            quorum_percent=int(quorum),
        )

    # --- views ------------------------------------------------------------

    def _views(self, contract: Contract) -> dict[str, Callable[..., Any]]:
        if isinstance(contract, TokenContract):
            return {
                "owner": lambda: contract.owner,
                "totalSupply": lambda: contract.total_supply,
                "balanceOf": contract.balance_of,
            }
        if isinstance(contract, TimelockContract):
            return {
                "owner": lambda: contract.owner,
                "token": lambda: contract.token,
                "getMinDelay": lambda: contract.min_delay,
                "hasRole": contract.has_role,
            }
        return {
            "token": lambda: contract.token,
            "timelock": lambda: contract.timelock,
            "votingDelay": lambda: contract.voting_delay,
            "votingPeriod": lambda: contract.voting_period,
            "proposalThreshold": lambda: contract.proposal_threshold,
            "quorumNumerator": lambda: contract.quorum_percent,
        }

    # --- helpers ----------------------------------------------------------

    @staticmethod
    def _unpack(args: list[Any], count: int, what: str) -> list[Any]:
        if len(args) != count:
            raise RejectedError(f"{what} constructor expects {count} arguments, got {len(args)}")
        return args

    def _contract(self, address: str) -> Contract:
        contract = self.contracts.get(str(address).lower())
        if contract is None:
            raise RejectedError(f"No contract at {address}")
        return contract

    def _token(self, address: str) -> TokenContract:
        contract = self._contract(address)
        if not isinstance(contract, TokenContract):
            raise RejectedError(f"{address} is not a token")
        return contract

    def _timelock(self, address: str) -> TimelockContract:
        contract = self._contract(address)
        if not isinstance(contract, TimelockContract):
            raise RejectedError(f"{address} is not a timelock")
        return contract

    def _require_owner(self, owner: str, action: str, *, caller: str | None = None) -> None:
        caller = caller or self._deployer
        if owner.lower() != caller.lower():
            raise RejectedError(f"Ownable: caller {caller} is not the owner ({action})")

    def _require_role(self, timelock: TimelockContract, role: str) -> None:
        if not timelock.has_role(role, self._deployer):
            raise RejectedError(f"AccessControl: account {self._deployer} is missing role {role}")

"""
Deployment plan configuration.

The numbers that shape the governance system (timelock delay, voting
windows, supply, member allocations) live in a YAML file. Search order:

1. Explicit path (--config flag)
2. .govdeploy/plan.yaml (project root)
3. Built-in defaults
"""

from __future__ import annotations

import re
from decimal import Decimal
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from govdeploy.config.settings import Settings
from govdeploy.core.errors import ConfigurationError

logger = structlog.get_logger()

ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


class ContractNames(BaseModel):
    """Artifact names of the contracts to deploy."""

    token: str = "CharityToken"
    timelock: str = "CharityTimelock"
    governor: str = "CharityGovernor"


class PlanConfig(BaseModel):
    """Recognized plan options."""

    # Blocks to wait between a passed proposal and its execution
    min_delay: int = Field(5, ge=0)
    # Blocks between proposal creation and the start of voting
    voting_delay: int = Field(0, ge=0)
    # Blocks during which votes can be cast
    voting_period: int = Field(75, gt=0)
    # Votes an account needs to create a proposal
    proposal_threshold: int = Field(0, ge=0)
    # Percentage of total supply needed to approve a proposal
    quorum_percent: int = Field(4, ge=0, le=100)

    total_supply: Decimal = Field(Decimal("1000"), gt=0)
    members: list[str] = Field(default_factory=list)
    per_member_amount: Decimal = Field(Decimal("50"), ge=0)
    token_decimals: int = Field(18, ge=0, le=36)

    contracts: ContractNames = Field(default_factory=ContractNames)

    @field_validator("members")
    @classmethod
    def _check_addresses(cls, members: list[str]) -> list[str]:
        bad = [m for m in members if not ADDRESS_RE.match(m)]
        if bad:
            raise ValueError(f"invalid member address(es): {', '.join(bad)}")
        lowered = [m.lower() for m in members]
        if len(set(lowered)) != len(lowered):
            raise ValueError("member addresses must be unique")
        return members

    @model_validator(mode="after")
    def _check_distribution(self) -> "PlanConfig":
        if self.distributed_amount > self.total_supply:
            raise ValueError(
                f"members receive {self.distributed_amount} in total, "
                f"more than total_supply {self.total_supply}"
            )
        return self

    @property
    def distributed_amount(self) -> Decimal:
        return self.per_member_amount * len(self.members)

    def to_base_units(self, amount: Decimal) -> int:
        """Convert whole tokens to integer base units (like ``parseEther``)."""
        scaled = amount.scaleb(self.token_decimals)
        if scaled != scaled.to_integral_value():
            raise ConfigurationError(
                f"Amount {amount} has more precision than {self.token_decimals} decimals"
            )
        return int(scaled)


def get_plan_path(explicit_path: str | Path | None = None) -> Path | None:
    """
    Find the plan file to use.

    Returns:
        Path to plan file or None if not found
    """
    if explicit_path:
        path = Path(explicit_path)
        if path.exists():
            return path
        raise ConfigurationError(f"Plan file not found: {path}")

    cwd_plan = Path.cwd() / ".govdeploy" / "plan.yaml"
    if cwd_plan.exists():
        return cwd_plan

    return None


def load_plan_config(
    path: str | Path | None = None,
    settings: Settings | None = None,
) -> PlanConfig:
    """Load the plan configuration, falling back to defaults.

    Members missing from the file are taken from ``Settings.members``.
    """
    plan_path = get_plan_path(path)
    data: dict[str, Any] = {}
    if plan_path is not None:
        try:
            with open(plan_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {plan_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Plan file {plan_path} must contain a mapping")
        logger.debug("plan_config_loaded", path=str(plan_path))

    if not data.get("members") and settings is not None and settings.members:
        data["members"] = list(settings.members)

    try:
        return PlanConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid plan configuration: {exc}") from exc

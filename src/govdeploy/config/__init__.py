"""
govdeploy configuration.

- Pydantic-based settings (environment variables, .env files)
- YAML plan configuration for the governance deployment
"""

from govdeploy.config.plan import (
    ContractNames,
    PlanConfig,
    get_plan_path,
    load_plan_config,
)
from govdeploy.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "ContractNames",
    "PlanConfig",
    "get_plan_path",
    "load_plan_config",
]

"""
CLI commands for govdeploy.
"""

from govdeploy.cli.deploy import handle_deploy_command
from govdeploy.cli.main import build_parser, main
from govdeploy.cli.plan import handle_plan_command
from govdeploy.cli.status import handle_status_command

__all__ = [
    "build_parser",
    "main",
    "handle_deploy_command",
    "handle_plan_command",
    "handle_status_command",
]

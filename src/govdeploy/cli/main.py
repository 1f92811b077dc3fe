"""
govdeploy command line.

Usage:
    govdeploy plan [--config plan.yaml]
    govdeploy deploy [--config plan.yaml] [--simulate] [--state run-state.json]
    govdeploy status [--state run-state.json]
"""

from __future__ import annotations

import argparse
from typing import Sequence

from govdeploy.cli.deploy import handle_deploy_command, register_deploy_parser
from govdeploy.cli.plan import handle_plan_command, register_plan_parser
from govdeploy.cli.status import handle_status_command, register_status_parser
from govdeploy.config import get_settings
from govdeploy.core.errors import main_with_error_handling
from govdeploy.logging import configure_logging

_HANDLERS = {
    "plan": handle_plan_command,
    "deploy": handle_deploy_command,
    "status": handle_status_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="govdeploy",
        description="Provision a governance token, timelock treasury and governor",
    )
    parser.add_argument("--log-level", default=None, help="Override GOVDEPLOY_LOG_LEVEL")
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=None,
        help="Override GOVDEPLOY_LOG_FORMAT",
    )
    subparsers = parser.add_subparsers(dest="command")
    register_plan_parser(subparsers)
    register_deploy_parser(subparsers)
    register_status_parser(subparsers)
    return parser


@main_with_error_handling()
def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(args.log_level or settings.log_level, args.log_format or settings.log_format)

    handler = _HANDLERS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args)


if __name__ == "__main__":  # pragma: no cover - exercised via module entrypoint
    raise SystemExit(main())

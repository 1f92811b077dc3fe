"""
CLI command for previewing the deployment plan.
"""

from __future__ import annotations

import argparse
import json

from govdeploy.cli.ux import console, header, print_table
from govdeploy.config import get_settings, load_plan_config
from govdeploy.ledger.memory import DEFAULT_DEPLOYER
from govdeploy.provisioning.governance import build_governance_plan


def register_plan_parser(subparsers: argparse._SubParsersAction) -> None:
    parser = subparsers.add_parser("plan", help="Show the steps a deployment would run")
    parser.add_argument("--config", help="Path to plan YAML", default=None)
    parser.add_argument(
        "--deployer",
        help="Deployer address to show in the plan (default: local node account)",
        default=DEFAULT_DEPLOYER,
    )
    parser.add_argument("--json", action="store_true", help="Print the plan as JSON")


def handle_plan_command(args: argparse.Namespace) -> int:
    config = load_plan_config(args.config, get_settings())
    plan = build_governance_plan(config, args.deployer)

    if args.json:
        print(json.dumps(plan.to_dict(), indent=2))
        return 0

    header(f"Deployment plan ({len(plan)} steps)")
    rows = [
        [
            str(position),
            step.id,
            step.kind.value,
            ", ".join(step.dependencies) if len(step.dependencies) <= 3 else f"{len(step.dependencies)} steps",
            step.description,
        ]
        for position, step in enumerate(plan, 1)
    ]
    print_table("", ["#", "Step", "Kind", "Depends on", "Description"], rows)
    console.print(f"[muted]fingerprint {plan.fingerprint()[:16]}[/muted]")
    return 0

"""
CLI command for inspecting a persisted run state.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from rich.markup import escape

from govdeploy.cli.ux import error, header, print_key_value, print_table
from govdeploy.config import get_settings
from govdeploy.core.errors import ExitCode
from govdeploy.provisioning.state import StepStatus, load_state

_STATUS_STYLE = {
    StepStatus.DONE: "[success]done[/success]",
    StepStatus.RUNNING: "[warning]running[/warning]",
    StepStatus.FAILED: "[error]failed[/error]",
    StepStatus.PENDING: "[muted]pending[/muted]",
}


def register_status_parser(subparsers: argparse._SubParsersAction) -> None:
    parser = subparsers.add_parser("status", help="Show the progress recorded in a run state file")
    parser.add_argument("--state", help="Path to run state file", default=None)


def handle_status_command(args: argparse.Namespace) -> int:
    path = Path(args.state) if args.state else get_settings().state_file
    state = load_state(path)
    if state is None:
        error(f"No run state at {path}")
        return ExitCode.CONFIG_ERROR

    header(f"Run {state.run_id}")
    print_key_value({"phase": state.phase.value, "state file": str(path)})
    rows = [
        [
            step_id,
            _STATUS_STYLE[record.status],
            str(record.attempts),
            str(record.output or ""),
            escape(f"{record.error_kind}: {record.last_error}") if record.last_error else "",
        ]
        for step_id, record in state.steps.items()
    ]
    print_table("", ["Step", "Status", "Attempts", "Output", "Last error"], rows)
    return 0

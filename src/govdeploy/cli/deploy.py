"""
CLI command for running (or resuming) the governance deployment.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import signal
from pathlib import Path

from rich.markup import escape

from govdeploy.cli.ux import console, error, header, info, print_key_value, print_table, success, warning
from govdeploy.config import Settings, get_settings, load_plan_config
from govdeploy.deployment import GovernanceDeployment
from govdeploy.ledger.base import ResourceClient
from govdeploy.ledger.gateway import GatewayClient
from govdeploy.ledger.memory import InMemoryLedger
from govdeploy.provisioning.executor import RetryPolicy
from govdeploy.provisioning.report import RunReport


def register_deploy_parser(subparsers: argparse._SubParsersAction) -> None:
    parser = subparsers.add_parser("deploy", help="Deploy token, timelock and governor, or resume a run")
    parser.add_argument("--config", help="Path to plan YAML", default=None)
    parser.add_argument("--state", help="Path to run state file (default: GOVDEPLOY_STATE_FILE)", default=None)
    parser.add_argument("--concurrency", type=int, default=None, help="Max steps in flight")
    parser.add_argument("--fresh", action="store_true", help="Ignore an existing run state and start over")
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Run against an in-process ledger instead of the signing gateway",
    )
    parser.add_argument("--report", help="Write the run report as JSON to this path", default=None)


def _build_client(args: argparse.Namespace, settings: Settings, contracts) -> ResourceClient:
    if args.simulate:
        return InMemoryLedger(contracts)
    return GatewayClient(
        settings.gateway_url,
        token=settings.gateway_token,
        timeout=settings.request_timeout,
    )


def _state_path(args: argparse.Namespace, settings: Settings) -> Path | None:
    if args.state:
        return Path(args.state)
    # A simulated ledger does not outlive the process, so neither should its state.
    if args.simulate:
        return None
    return settings.state_file


async def _run(deployment: GovernanceDeployment) -> RunReport:
    loop = asyncio.get_running_loop()
    # Not available on Windows event loops.
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGTERM, deployment.cancel)
    return await deployment.run()


def print_report(report: RunReport) -> None:
    header(f"Run {report.run_id}: {report.phase.value}")
    print_key_value(
        {
            "token": report.token_address or "-",
            "timelock": report.timelock_address or "-",
            "governor": report.governor_address or "-",
        },
        title="Addresses",
    )

    if report.final_role_state:
        rows = [
            [role.role, role.grantee, "yes" if role.granted else "no"]
            for role in report.final_role_state
        ]
        print_table("Timelock roles", ["Role", "Account", "Granted"], rows)

    console.print()
    if report.failure is not None:
        failure = report.failure
        error(
            escape(
                f"Step '{failure.step_id}' failed after {failure.attempts} attempt(s) "
                f"({failure.error_kind}): {failure.message}"
            )
        )
        warning("Fix the cause and re-run deploy to resume from this step")
    elif report.cancelled:
        warning("Run cancelled; re-run deploy to resume")
    elif report.consistency_errors:
        for finding in report.consistency_errors:
            error(escape(f"{finding.check}: {finding.message}"))
    elif report.success:
        success(f"Deployment completed and verified in {report.duration_seconds:.1f}s")


def handle_deploy_command(args: argparse.Namespace) -> int:
    settings = get_settings()
    config = load_plan_config(args.config, settings)
    if args.simulate:
        info("Simulating against an in-process ledger")

    deployment = GovernanceDeployment(
        _build_client(args, settings, config.contracts),
        config,
        state_path=_state_path(args, settings),
        retry=RetryPolicy.from_settings(settings),
        concurrency=args.concurrency if args.concurrency is not None else settings.concurrency,
        fresh=args.fresh,
    )
    report = asyncio.run(_run(deployment))

    print_report(report)
    if args.report:
        Path(args.report).write_text(json.dumps(report.to_dict(), indent=2) + "\n")
    return int(report.exit_code)

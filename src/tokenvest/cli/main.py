#!/usr/bin/env python3
"""
tokenvest CLI - local deployment and vesting operations

Every command loads the persisted state, performs one ledger operation and
writes the state back atomically. The caller identity is always explicit
(``--caller``); ``--at`` pins the clock to a timestamp instead of wall time.

Example:
    tokenvest deploy
    tokenvest claim --caller 0xabc...
    tokenvest --at 1700000000 show 0xabc...
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from tokenvest.contracts.vesting import (
    ASSET_LEDGER_CHANGED,
    VESTING_CLAIMED,
    VestingRecord,
    VestingStatus,
)
from tokenvest.core.clock import ManualClock, SystemClock
from tokenvest.core.config_manager import ConfigManager
from tokenvest.core.exceptions import VestingError, get_error_context
from tokenvest.core.logging_config import setup_logging
from tokenvest.core.metrics import VestingMetrics
from tokenvest.core.storage import VestingStateStore
from tokenvest.core.units import format_tokens
from tokenvest.deployment import deploy as run_deployment

logger = logging.getLogger(__name__)

console = Console()

CLI_ERRORS = (VestingError, click.ClickException, OSError, ValueError)


def _cli_fail(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, extra=get_error_context(exc))
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


def _format_time(timestamp: int) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _record_table(record: VestingRecord, decimals: int, claimable: Optional[int] = None) -> Table:
    table = Table(show_header=False, box=box.ROUNDED)
    status_style = "green" if record.status is VestingStatus.ACTIVE else "yellow"
    table.add_row("[bold cyan]Beneficiary", record.beneficiary)
    table.add_row("[bold cyan]Status", f"[{status_style}]{record.status.name}[/]")
    table.add_row("[bold cyan]Total", format_tokens(record.total_amount, decimals))
    table.add_row("[bold cyan]Claimed", format_tokens(record.claimed_amount, decimals))
    table.add_row(
        "[bold cyan]Periods",
        f"{record.last_claimed_period}/{record.claimable_periods} "
        f"(every {record.period_duration // 86400} days)",
    )
    table.add_row("[bold cyan]Start", _format_time(record.start_time))
    table.add_row("[bold cyan]Fully unlocked", _format_time(record.unlock_time))
    if claimable is not None:
        table.add_row("[bold green]Claimable now", format_tokens(claimable, decimals))
    return table


class CliContext:
    """Per-invocation state shared by all commands."""

    def __init__(self, config: ConfigManager, json_output: bool, at: Optional[int]):
        self.config = config
        self.json_output = json_output
        self.time_provider = ManualClock(at) if at is not None else SystemClock()
        self.store = VestingStateStore(config.storage.state_path)
        self.metrics = VestingMetrics()

    def load(self):
        return self.store.load(time_provider=self.time_provider, metrics=self.metrics)

    def format(self, amount: int) -> str:
        return format_tokens(amount, self.config.token.decimals)

    def save(self, registry, ledger) -> None:
        self.store.save(registry, ledger)


# ============================================================================
# CLI Group
# ============================================================================

@click.group()
@click.option(
    '--environment', '-e',
    envvar='TOKENVEST_ENVIRONMENT',
    help='Configuration environment (development, testnet, production)',
)
@click.option(
    '--config-dir',
    type=click.Path(file_okay=False, path_type=Path),
    help='Directory holding default.yaml and <environment>.yaml',
)
@click.option(
    '--data-dir',
    type=click.Path(file_okay=False, path_type=Path),
    help='Override storage.data_dir',
)
@click.option(
    '--log-level',
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], case_sensitive=False),
    help='Override logging.level',
)
@click.option('--at', 'at', type=int, help='Evaluate at this UNIX timestamp instead of now')
@click.option('--json-output', is_flag=True, help='Output raw JSON')
@click.pass_context
def cli(
    ctx: click.Context,
    environment: Optional[str],
    config_dir: Optional[Path],
    data_dir: Optional[Path],
    log_level: Optional[str],
    at: Optional[int],
    json_output: bool,
):
    """
    tokenvest - fixed-supply token distribution with time-locked vesting
    """
    ctx.ensure_object(dict)
    overrides: Dict[str, Any] = {
        "storage.data_dir": str(data_dir) if data_dir else None,
        "logging.level": log_level.upper() if log_level else None,
    }
    try:
        config = ConfigManager(
            environment=environment,
            config_dir=str(config_dir) if config_dir else None,
            cli_overrides=overrides,
        )
    except CLI_ERRORS as exc:
        _cli_fail(exc)

    setup_logging(
        name="tokenvest",
        log_file=config.logging.log_file if config.logging.enable_file_logging else None,
        level=config.logging.level,
        environment=config.environment.value,
        enable_console=config.logging.enable_console_logging,
        max_bytes=config.logging.max_log_size,
        backup_count=config.logging.backup_count,
    )
    ctx.obj['cli'] = CliContext(config, json_output, at)


# ============================================================================
# Commands
# ============================================================================

@cli.command('deploy')
@click.option('--force', is_flag=True, help='Replace existing state')
@click.option('--no-start', is_flag=True, help='Deploy without starting vesting')
@click.pass_context
def deploy(ctx: click.Context, force: bool, no_start: bool):
    """
    Deploy the vesting ledger and token premint.

    Addresses come from INITIAL_HOLDERS, TEAM_ADDRESS, PARTNERS_ADDRESS,
    LIQUIDITY_POOL_ADDRESS, EXCHANGE_LISTING_ADDRESS, MARKETING_ADDRESS,
    TREASURY_ADDRESS and REWARDS_ADDRESS (a .env file is honored).
    """
    state: CliContext = ctx.obj['cli']
    try:
        result = run_deployment(
            state.config,
            time_provider=state.time_provider,
            metrics=state.metrics,
            start_vesting=False if no_start else None,
            force=force,
        )
    except CLI_ERRORS as exc:
        _cli_fail(exc)

    if state.json_output:
        _echo_json({
            "network": result.network,
            "started": result.ledger.is_started,
            "contracts": result.output,
        })
        return

    table = Table(title=f"Deployment on {result.network}", box=box.ROUNDED)
    table.add_column("Contract", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("Verification", style="dim")
    for name, info in result.output.items():
        table.add_row(name, info["address"], info["verification"] or "-")
    console.print(table)
    if result.ledger.is_started:
        console.print(f"[green]Vesting started for {len(result.ledger.beneficiaries())} beneficiaries[/]")
    else:
        console.print("[yellow]Vesting not started; run 'tokenvest start'[/]")
    console.print(f"State: {result.state_path}\nOutput: {result.output_path}")


@cli.command('start')
@click.option('--caller', help='Owner address (defaults to network.deployer)')
@click.pass_context
def start(ctx: click.Context, caller: Optional[str]):
    """Create vesting schedules from the ledger's token balance."""
    state: CliContext = ctx.obj['cli']
    try:
        registry, ledger = state.load()
        records = ledger.initialize_schedules(caller or state.config.network.deployer)
        state.save(registry, ledger)
    except CLI_ERRORS as exc:
        _cli_fail(exc)

    if state.json_output:
        _echo_json([record.to_dict() for record in records])
        return

    table = Table(title="Vesting Schedules", box=box.ROUNDED)
    table.add_column("Beneficiary", style="cyan")
    table.add_column("Amount", justify="right", style="green")
    table.add_column("Periods", justify="right")
    for record in records:
        table.add_row(record.beneficiary, state.format(record.total_amount), str(record.claimable_periods))
    console.print(table)


@cli.command('claim')
@click.option('--caller', required=True, help='Beneficiary claiming its vested tokens')
@click.pass_context
def claim(ctx: click.Context, caller: str):
    """Release newly unlocked tokens to the caller."""
    state: CliContext = ctx.obj['cli']
    try:
        registry, ledger = state.load()
        amount = ledger.claim(caller)
        record = ledger.get_vesting_record(caller)
        if amount:
            state.save(registry, ledger)
    except CLI_ERRORS as exc:
        _cli_fail(exc)

    if state.json_output:
        _echo_json({"claimed": amount, "record": record.to_dict()})
        return

    if amount:
        console.print(f"[bold green]Claimed {state.format(amount)}[/]")
    else:
        console.print("[yellow]Nothing to claim yet[/]")
    console.print(_record_table(record, state.config.token.decimals))


@cli.command('show')
@click.argument('beneficiary', required=False)
@click.pass_context
def show(ctx: click.Context, beneficiary: Optional[str]):
    """Show a vesting record, or the ledger summary when no address is given."""
    state: CliContext = ctx.obj['cli']
    try:
        _, ledger = state.load()
        if beneficiary:
            record = ledger.get_vesting_record(beneficiary)
            claimable = ledger.preview_claim(beneficiary)
        else:
            summary = ledger.distribution_summary()
    except CLI_ERRORS as exc:
        _cli_fail(exc)

    if beneficiary:
        if state.json_output:
            _echo_json({"record": record.to_dict(), "tuple": list(record.as_tuple()), "claimable": claimable})
            return
        console.print(Panel(_record_table(record, state.config.token.decimals, claimable),
                            title="[bold green]Vesting Record",
                            border_style="green"))
        return

    if state.json_output:
        _echo_json(summary)
        return

    table = Table(show_header=False, box=box.ROUNDED)
    table.add_row("[bold cyan]Ledger", summary["address"])
    table.add_row("[bold cyan]Token", summary["token"] or "-")
    table.add_row("[bold cyan]Lifecycle", summary["lifecycle"])
    table.add_row("[bold cyan]Balance", state.format(summary["balance"]))
    table.add_row("[bold cyan]Allocated", state.format(summary["total_allocated"]))
    table.add_row("[bold cyan]Claimed", state.format(summary["total_claimed"]))
    table.add_row("[bold cyan]Locked share", f"{summary['locked_share_bp'] / 100:.2f}%")
    table.add_row("[bold cyan]Records", str(summary["records"]))
    console.print(Panel(table, title="[bold green]Vesting Ledger", border_style="green"))


@cli.command('balance')
@click.argument('address')
@click.pass_context
def balance(ctx: click.Context, address: str):
    """Show the token balance of an address."""
    state: CliContext = ctx.obj['cli']
    try:
        _, ledger = state.load()
        token = ledger.registry.get_token(ledger.token_address)
        if token is None:
            raise click.ClickException("No token configured for the vesting ledger")
        amount = token.balance_of(address)
    except CLI_ERRORS as exc:
        _cli_fail(exc)

    if state.json_output:
        _echo_json({"address": address.lower(), "token": token.address, "balance": amount})
        return

    console.print(f"{address}: [bold green]{format_tokens(amount, token.decimals)} {token.symbol}[/]")


@cli.command('set-token')
@click.argument('address')
@click.option('--caller', help='Owner address (defaults to network.deployer)')
@click.pass_context
def set_token(ctx: click.Context, address: str, caller: Optional[str]):
    """Point the vesting ledger at another token address."""
    state: CliContext = ctx.obj['cli']
    try:
        registry, ledger = state.load()
        previous = ledger.token_address
        ledger.set_asset_ledger(caller or state.config.network.deployer, address)
        state.save(registry, ledger)
    except CLI_ERRORS as exc:
        _cli_fail(exc)

    if state.json_output:
        _echo_json({"old": previous, "new": ledger.token_address})
        return

    console.print(f"[green]Token changed:[/] {previous or '-'} -> {ledger.token_address}")
    if ledger.is_started:
        console.print("[yellow]Vesting already started; existing records keep their amounts[/]")


@cli.command('events')
@click.option('--limit', type=click.IntRange(1, 10000), default=50, show_default=True)
@click.pass_context
def events(ctx: click.Context, limit: int):
    """List ledger events, newest last."""
    state: CliContext = ctx.obj['cli']
    try:
        _, ledger = state.load()
    except CLI_ERRORS as exc:
        _cli_fail(exc)

    selected = ledger.events[-limit:]
    if state.json_output:
        _echo_json([event.to_dict() for event in selected])
        return

    table = Table(title="Vesting Events", box=box.ROUNDED)
    table.add_column("Time")
    table.add_column("Event", style="cyan")
    table.add_column("Details")
    for event in selected:
        if event.event_type == VESTING_CLAIMED:
            details = f"{event.beneficiary} +{state.format(event.amount)}"
        elif event.event_type == ASSET_LEDGER_CHANGED:
            details = f"{event.old_address or '-'} -> {event.new_address}"
        else:
            details = ""
        table.add_row(_format_time(event.timestamp), event.event_type, details)
    console.print(table)


@cli.command('metrics')
@click.pass_context
def metrics(ctx: click.Context):
    """Print ledger metrics in the Prometheus text format."""
    state: CliContext = ctx.obj['cli']
    try:
        state.load()
    except CLI_ERRORS as exc:
        _cli_fail(exc)

    click.echo(state.metrics.export().decode("utf-8"), nl=False)


def main():
    """Main CLI entry point"""
    try:
        cli(obj={})
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/]")
        sys.exit(130)


if __name__ == '__main__':
    main()

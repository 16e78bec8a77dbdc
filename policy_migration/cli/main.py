"""
Main CLI entry point for the policy migration service.

This module provides the command-line interface using Click with Rich
formatting. Every command except ``serve`` runs one operation against the
appliances and exits.
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Tuple

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from policy_migration import __version__
from policy_migration.core.exceptions import PolicyMigrationError
from policy_migration.models.config import MigrationSettings, load_settings
from policy_migration.models.policy import MigrationRecord, PolicyState
from policy_migration.orchestrator.facade import PolicyService
from policy_migration.orchestrator.orchestrator import MigrationOrchestrator
from policy_migration.orchestrator.registry import MigrationKey
from policy_migration.utils.logging import setup_logging

console = Console()

STATE_STYLES = {
    PolicyState.AVAILABLE: "green",
    PolicyState.INACTIVE: "dim",
    PolicyState.ERROR: "red",
}


def build_orchestrator(settings: MigrationSettings) -> MigrationOrchestrator:
    """Create the orchestrator used by a CLI command."""
    return MigrationOrchestrator.from_settings(settings)


def run_operation(ctx: click.Context, operation: Callable[[MigrationOrchestrator], Awaitable[Any]]) -> Any:
    """
    Run one async operation with a fresh orchestrator.

    Service errors are printed and end the command with exit status 1.
    """
    async def runner():
        orchestrator = build_orchestrator(ctx.obj['settings'])
        try:
            return await operation(orchestrator)
        finally:
            await orchestrator.close()

    try:
        return asyncio.run(runner())
    except PolicyMigrationError as e:
        console.print(f"[red]Error: {escape(e.message)}[/red]")
        if ctx.obj.get('verbose') and e.details:
            console.print(f"[dim]{escape(str(e.details))}[/dim]")
        sys.exit(1)


def policies_table(policies: List[MigrationRecord], title: str) -> Table:
    """Render policy records as a table."""
    table = Table(title=title, box=box.ROUNDED, show_header=True, header_style="bold magenta")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Enforcement")
    table.add_column("State")
    table.add_column("Path", style="dim")

    for policy in policies:
        style = STATE_STYLES.get(policy.state, "yellow")
        table.add_row(
            policy.id,
            policy.name,
            policy.enforcement_mode,
            f"[{style}]{policy.state.value}[/{style}]",
            policy.path,
        )
    return table


@click.group(invoke_without_command=True)
@click.option('--config', '-c', type=click.Path(exists=True), help='Settings file (YAML or JSON)')
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level')
@click.option('--log-file', type=click.Path(), help='Also write logs to this file')
@click.option('--json-logs', is_flag=True, help='Emit structured JSON logs')
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def main(
    ctx: click.Context,
    config: Optional[str],
    log_level: str,
    log_file: Optional[str],
    json_logs: bool,
    version: bool,
    verbose: bool
):
    """
    Trusted Policy Migration

    Migrate security policies between trusted appliances, or from a URL
    onto an appliance.
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['config'] = config

    if version:
        console.print(f"Policy Migration version {__version__}")
        sys.exit(0)

    setup_logging(
        level="DEBUG" if verbose else log_level,
        log_file=log_file,
        structured_logging=json_logs,
    )

    try:
        ctx.obj['settings'] = load_settings(config)
    except PolicyMigrationError as e:
        console.print(f"[red]Error: {escape(e.message)}[/red]")
        sys.exit(1)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command()
@click.option('--port', '-p', default=8000, help='API server port')
@click.option('--host', '-h', default='127.0.0.1', help='API server host')
@click.option('--reload', is_flag=True, help='Enable auto-reload for development')
@click.pass_context
def serve(ctx: click.Context, port: int, host: str, reload: bool):
    """Start the API server."""
    from policy_migration.api.main import CONFIG_ENV, start_server

    if ctx.obj.get('config'):
        os.environ[CONFIG_ENV] = str(Path(ctx.obj['config']).resolve())
    console.print(f"[green]Starting API server on {host}:{port}[/green]")
    start_server(host=host, port=port, reload=reload)


@main.command()
@click.pass_context
def devices(ctx: click.Context):
    """List the trusted devices policies can be migrated between."""
    found = run_operation(ctx, lambda orchestrator: orchestrator.resolver.list_devices())

    if not found:
        console.print("[yellow]No trusted devices found[/yellow]")
        return

    table = Table(title="Trusted Devices", box=box.ROUNDED, show_header=True, header_style="bold magenta")
    table.add_column("Host", style="cyan")
    table.add_column("Port")
    table.add_column("UUID", style="dim")
    table.add_column("State")
    for device in found:
        table.add_row(device.host, str(device.port), device.uuid or "-", device.state or "-")
    console.print(table)


@main.command(name='list')
@click.option('--target', '-t', help='Target host or device UUID (default: local appliance)')
@click.pass_context
def list_policies(ctx: click.Context, target: Optional[str]):
    """List policies on an appliance together with in-flight migrations."""
    policies = run_operation(
        ctx, lambda orchestrator: PolicyService(orchestrator).list_policies(target)
    )
    console.print(policies_table(policies, f"Policies on {target or 'localhost'}"))


@main.command()
@click.option('--source', '-s', help='Source host or device UUID (default: local appliance)')
@click.option('--target', '-t', help='Target host or device UUID (default: local appliance)')
@click.option('--policy-id', help='Id of the source policy')
@click.option('--policy-name', help='Name of the source policy')
@click.option('--target-policy-name', help='Name of the imported policy')
@click.option('--url', help='Import the policy file from this URL instead of a source device')
@click.pass_context
def migrate(
    ctx: click.Context,
    source: Optional[str],
    target: Optional[str],
    policy_id: Optional[str],
    policy_name: Optional[str],
    target_policy_name: Optional[str],
    url: Optional[str]
):
    """Migrate a policy and wait until the migration has finished."""
    last_update: List[Tuple[MigrationKey, Optional[MigrationRecord]]] = []

    def on_progress(key: MigrationKey, record: Optional[MigrationRecord]):
        last_update[:] = [(key, record)]
        if record is not None:
            console.print(f"[dim]{key}: {record.state.value}[/dim]")

    async def operation(orchestrator: MigrationOrchestrator) -> MigrationRecord:
        orchestrator.add_progress_callback(on_progress)
        if url:
            record = await orchestrator.migrate_from_url(url, target, target_policy_name)
        else:
            record = await orchestrator.migrate_between_devices(
                source, target, policy_id, policy_name, target_policy_name
            )
        await orchestrator.wait_idle()
        return record

    record = run_operation(ctx, operation)
    key, final = last_update[0] if last_update else (None, None)

    if final is not None and final.state == PolicyState.ERROR:
        console.print(Panel.fit(
            f"[bold red]Migration of {record.name} failed[/bold red]\n"
            f"Target: {key.host}:{key.port}",
            title="Migration Result",
            border_style="red"
        ))
        sys.exit(1)

    console.print(Panel.fit(
        f"[bold green]Policy {record.name} migrated[/bold green]\n"
        f"Imported as: {target_policy_name or record.name}",
        title="Migration Result",
        border_style="green"
    ))


@main.command()
@click.option('--target', '-t', help='Target host or device UUID (default: local appliance)')
@click.option('--policy-id', help='Id of the policy')
@click.option('--policy-name', help='Name of the policy')
@click.pass_context
def delete(ctx: click.Context, target: Optional[str], policy_id: Optional[str], policy_name: Optional[str]):
    """Delete a policy and any in-flight migration of it."""
    message = run_operation(
        ctx,
        lambda orchestrator: PolicyService(orchestrator).delete_policy(target, policy_id, policy_name),
    )
    console.print(f"[green]{message}[/green]")


@main.command()
@click.option('--source', '-s', help='Source host or device UUID (default: local appliance)')
@click.option('--policy-id', help='Id of the policy')
@click.option('--policy-name', help='Name of the policy')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write the XML to this file')
@click.pass_context
def export(
    ctx: click.Context,
    source: Optional[str],
    policy_id: Optional[str],
    policy_name: Optional[str],
    output: Optional[str]
):
    """Export a policy as XML."""
    policy, content = run_operation(
        ctx,
        lambda orchestrator: PolicyService(orchestrator).export_policy_content(source, policy_id, policy_name),
    )

    if output:
        Path(output).write_text(content, encoding="utf-8")
        console.print(f"[green]Policy {policy.name} exported to {output}[/green]")
    else:
        click.echo(content)


if __name__ == '__main__':
    main()

"""
CLI commands for replica-sync.

Provides the `replica-sync` command-line interface for running the
replication service and triggering one-off sync and consistency checks.
"""

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
from rich.console import Console
from rich.table import Table

from replica_config.loader import ConfigurationLoader
from replica_core.models.config import ProcessSettings, ServiceConfig
from replica_sync.service import ReplicaSyncService

console = Console()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(settings: ProcessSettings) -> None:
    """Configure the root logger once for the process"""
    logging.basicConfig(level=getattr(logging, settings.log_level), format=LOG_FORMAT)

    log_file = settings.get_log_file()
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(file_handler)


def load_config(config_file: Optional[Path]) -> ServiceConfig:
    settings = ProcessSettings()
    setup_logging(settings)
    return ConfigurationLoader().load(config_file or settings.config_file)


def _print_result(title: str, data: Dict[str, Any]) -> None:
    table = Table(title=title)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)


@click.group()
@click.version_option(version="1.0.0", prog_name="replica-sync")
@click.option(
    '--config', '-c', 'config_file',
    type=click.Path(path_type=Path, dir_okay=False),
    help='JSON config file layered over defaults (env vars still win)'
)
@click.pass_context
def main(ctx: click.Context, config_file: Optional[Path]):
    """
    Replica Sync CLI.

    Keeps an OpenSearch index consistent with a MongoDB collection.
    """
    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config_file


def _build_service(ctx: click.Context) -> ReplicaSyncService:
    try:
        config = load_config(ctx.obj.get('config_file'))
    except Exception as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        sys.exit(1)
    return ReplicaSyncService(config)


@main.command()
@click.pass_context
def run(ctx: click.Context):
    """Run the change feed, drift detector, and reconciliation until interrupted."""
    service = _build_service(ctx)
    console.print("[blue]🚀 Starting replica sync service...[/blue]")

    try:
        asyncio.run(_run_service(service))
    except Exception as e:
        console.print(f"[red]❌ Service failed: {e}[/red]")
        sys.exit(1)

    console.print("[green]✅ Replica sync service stopped[/green]")


async def _run_service(service: ReplicaSyncService) -> None:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    try:
        await service.start()
        await stop_event.wait()
    finally:
        await service.stop()


@main.command('full-sync')
@click.option('--batch-size', '-b', type=click.IntRange(min=1), help='Documents per page')
@click.option('--filter', 'filter_json', help='Source query as JSON, e.g. \'{"status": "active"}\'')
@click.option('--progress', is_flag=True, help='Show a progress bar')
@click.pass_context
def full_sync(ctx: click.Context, batch_size: Optional[int], filter_json: Optional[str], progress: bool):
    """Copy every matching source document into the index."""
    query = None
    if filter_json:
        try:
            query = json.loads(filter_json)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint='--filter')
        if not isinstance(query, dict):
            raise click.BadParameter("must be a JSON object", param_hint='--filter')

    service = _build_service(ctx)
    console.print("[blue]📚 Starting full sync...[/blue]")

    try:
        result = asyncio.run(_full_sync(service, query, batch_size, progress))
    except Exception as e:
        console.print(f"[red]❌ Full sync failed: {e}[/red]")
        sys.exit(1)

    _print_result("Full Sync Result", result.to_dict())
    if not result.success:
        sys.exit(1)


async def _full_sync(service: ReplicaSyncService, query, batch_size, progress):
    try:
        return await service.trigger_full_sync(query, batch_size, progress)
    finally:
        await service.stop()


@main.command()
@click.pass_context
def reconcile(ctx: click.Context):
    """Find source documents missing from the index and copy them."""
    service = _build_service(ctx)
    console.print("[blue]🔍 Running reconciliation...[/blue]")

    try:
        result = asyncio.run(_reconcile(service))
    except Exception as e:
        console.print(f"[red]❌ Reconciliation failed: {e}[/red]")
        sys.exit(1)

    _print_result("Reconciliation Result", result.to_dict())
    if not result.success:
        sys.exit(1)


async def _reconcile(service: ReplicaSyncService):
    try:
        return await service.trigger_reconciliation()
    finally:
        await service.stop()


@main.command('check-counts')
@click.option(
    '--auto-sync/--no-auto-sync',
    default=False,
    help='Run a full sync if the difference exceeds the threshold (default: off)'
)
@click.pass_context
def check_counts(ctx: click.Context, auto_sync: bool):
    """Compare source and index document counts."""
    service = _build_service(ctx)

    try:
        result = asyncio.run(_check_counts(service, auto_sync))
    except Exception as e:
        console.print(f"[red]❌ Count check failed: {e}[/red]")
        sys.exit(1)

    _print_result("Document Counts", result.to_dict())
    if result.is_match:
        console.print("[green]✅ Counts match[/green]")
    else:
        console.print(f"[yellow]⚠️  Counts differ by {result.difference}[/yellow]")


async def _check_counts(service: ReplicaSyncService, auto_sync: bool):
    try:
        result = await service.trigger_count_check(allow_auto_sync=auto_sync)
        if result.auto_sync_triggered:
            console.print("[blue]🔄 Auto-sync started, waiting for it to finish...[/blue]")
            await service.drift_detector.wait_for_auto_sync()
        return result
    finally:
        await service.stop()


@main.command()
@click.pass_context
def health(ctx: click.Context):
    """Check connectivity and status of both stores."""
    service = _build_service(ctx)

    try:
        report = asyncio.run(_health(service))
    except Exception as e:
        console.print(f"[red]❌ Health check failed: {e}[/red]")
        sys.exit(1)

    table = Table(title="Replica Sync Health")
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    for name in ("source", "target"):
        component = report[name]
        if component.get("status") == "healthy":
            status = "[green]✅ Healthy[/green]"
            details = f"{component.get('document_count', '?')} documents"
        else:
            status = "[red]❌ Unhealthy[/red]"
            details = component.get("error", "")
        table.add_row(name.capitalize(), status, details)

    console.print(table)
    if report["status"] != "healthy":
        sys.exit(1)


async def _health(service: ReplicaSyncService):
    try:
        return await service.health_check()
    finally:
        await service.stop()


@main.command('show-config')
@click.pass_context
def show_config(ctx: click.Context):
    """Print the effective configuration with secrets masked."""
    try:
        config = load_config(ctx.obj.get('config_file'))
    except Exception as e:
        console.print(f"[red]❌ Invalid configuration: {e}[/red]")
        sys.exit(1)

    console.print_json(json.dumps(config.to_dict(redact_secrets=True)))


if __name__ == "__main__":
    main()

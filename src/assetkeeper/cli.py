"""Operator CLI for blob cleanup and reconciliation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from assetkeeper.config import load_config, merge_cli_overrides
from assetkeeper.lifecycle.reconcile import sweep_orphans
from assetkeeper.services import Services, build_services

app = typer.Typer(
    name="assetkeeper",
    help="Inspect and repair the content asset store.",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from assetkeeper import __version__

        console.print(f"assetkeeper {__version__}")
        raise typer.Exit()


def _services(ctx: typer.Context) -> Services:
    return ctx.obj


@app.callback()
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to an .assetkeeper.toml file."),
    ] = None,
    data_dir: Annotated[
        Optional[str],
        typer.Option("--data-dir", help="Override [storage] data_dir."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Log at DEBUG level."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """assetkeeper - content asset lifecycle tooling."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    config = merge_cli_overrides(load_config(config_path), data_dir=data_dir)
    ctx.obj = build_services(config)


@app.command()
def drain(ctx: typer.Context) -> None:
    """Run one pass over due cleanup tasks."""
    services = _services(ctx)
    report = services.queue.drain()
    console.print(
        f"[green]{len(report.deleted)} deleted[/green], "
        f"{len(report.already_absent)} already absent, "
        f"[yellow]{len(report.retried)} retrying[/yellow], "
        f"[red]{len(report.dead_lettered)} dead-lettered[/red]"
    )
    console.print(f"{len(services.queue)} task(s) still pending")


@app.command("dead-letters")
def dead_letters(ctx: typer.Context) -> None:
    """List cleanup tasks that exhausted their retries."""
    tasks = _services(ctx).queue.dead_letters()
    if not tasks:
        console.print("[green]No dead-lettered cleanup tasks.[/green]")
        return

    table = Table(title="Dead-lettered cleanup tasks")
    table.add_column("Blob")
    table.add_column("Reason")
    table.add_column("Attempts", justify="right")
    table.add_column("Last error")
    for task in tasks:
        table.add_row(task.blob_id, str(task.reason), str(task.attempts), task.last_error)
    console.print(table)


@app.command()
def requeue(
    ctx: typer.Context,
    blob_id: Annotated[str, typer.Argument(help="Blob id of a dead-lettered task.")],
) -> None:
    """Give a dead-lettered cleanup task a fresh retry budget."""
    try:
        _services(ctx).queue.requeue_dead_letter(blob_id)
    except KeyError:
        console.print(f"[red]Error:[/red] No dead-lettered task for blob {blob_id}")
        raise typer.Exit(1)
    console.print(f"Requeued blob {blob_id}")


@app.command()
def sweep(
    ctx: typer.Context,
    older_than_hours: Annotated[
        Optional[float],
        typer.Option("--older-than-hours", help="Only consider blobs older than this."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Report orphans without queueing them."),
    ] = False,
) -> None:
    """Queue blobs that no record references and no task covers."""
    services = _services(ctx)
    config = merge_cli_overrides(services.config, orphan_age_hours=older_than_hours)
    report = sweep_orphans(
        services.blob_store,
        services.repository,
        services.queue,
        older_than=config.reconcile.orphan_age,
        dry_run=dry_run,
    )
    verb = "would queue" if dry_run else "queued"
    console.print(
        f"Examined {report.examined} blob(s); {verb} {len(report.orphans)} orphan(s) "
        f"({report.orphan_bytes} bytes)"
    )
    for blob_id in report.orphans:
        console.print(f"  {blob_id}")


@app.command()
def stats(ctx: typer.Context) -> None:
    """Show storage usage and cleanup queue depth."""
    services = _services(ctx)
    usage = services.blob_store.stats()

    table = Table(title="Blob storage")
    table.add_column("Media type")
    table.add_column("Bytes", justify="right")
    for media_type, size in sorted(usage.bytes_by_media_type.items()):
        table.add_row(media_type, str(size))
    console.print(table)
    console.print(f"Total: {usage.total_blobs} blob(s), {usage.total_bytes} bytes")
    console.print(f"Records: {len(services.repository.list())}")
    console.print(
        f"Cleanup queue: {len(services.queue)} pending, "
        f"{len(services.queue.dead_letters())} dead-lettered"
    )

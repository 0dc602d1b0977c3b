# Copyright (c) Syntropy Systems
"""lagprobe count and stat commands."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from lagprobe.cli.probe import open_datastore, resolve_config
from lagprobe.client import LagprobeClient, LagprobeClientError
from lagprobe.counting import NoStatsError, count_by_pages, count_entities, stat_count
from lagprobe.datastore import StorageError
from lagprobe.report import render_count

console = Console()


def _remote(server: str, action: str, *, paged: bool = False) -> None:
    """Fetch a count report from a server and print it."""
    try:
        with LagprobeClient(server) as client:
            report = client.count(paged=paged) if action == "count" else client.stat()
    except LagprobeClientError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(report, markup=False, highlight=False, soft_wrap=True, end="")


def count(
    paged: bool = typer.Option(
        False, "--paged", help="Count by walking keys-only pages of 1000"
    ),
    backend: Optional[str] = typer.Option(
        None, "--backend", "-b", help="Datastore backend: memory or sqlite"
    ),
    database: Optional[Path] = typer.Option(
        None, "--database", help="SQLite database file (sqlite backend)"
    ),
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="LAGPROBE_SERVER_URL", help="lagprobe server URL"
    ),
) -> None:
    """Count probe entities."""
    if server:
        _remote(server, "count", paged=paged)
        return

    config = resolve_config(backend, database)
    datastore = open_datastore(config)
    try:
        if paged:
            n = count_by_pages(datastore, config.kind)
        else:
            n = count_entities(datastore, config.kind)
    except StorageError as e:
        console.print(f"[red]Error:[/red] Count failed: {e}")
        raise typer.Exit(1)
    finally:
        datastore.close()

    console.print(render_count(n), markup=False, highlight=False, soft_wrap=True, end="")


def stat(
    backend: Optional[str] = typer.Option(
        None, "--backend", "-b", help="Datastore backend: memory or sqlite"
    ),
    database: Optional[Path] = typer.Option(
        None, "--database", help="SQLite database file (sqlite backend)"
    ),
    server: Optional[str] = typer.Option(
        None, "--server", "-s", envvar="LAGPROBE_SERVER_URL", help="lagprobe server URL"
    ),
) -> None:
    """Show the probe entity count from kind statistics."""
    if server:
        _remote(server, "stat")
        return

    config = resolve_config(backend, database)
    datastore = open_datastore(config)
    try:
        n = stat_count(datastore, config.kind)
    except NoStatsError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except StorageError as e:
        console.print(f"[red]Error:[/red] Stat failed: {e}")
        raise typer.Exit(1)
    finally:
        datastore.close()

    console.print(render_count(n), markup=False, highlight=False, soft_wrap=True, end="")

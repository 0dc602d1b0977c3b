# Copyright (c) Syntropy Systems
"""lagprobe probe command."""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from lagprobe.client import LagprobeClient, LagprobeClientError
from lagprobe.config import ProbeConfig, load_config, require_config_dir
from lagprobe.datastore import Datastore, StorageError, get_datastore
from lagprobe.probe import ProbeAbortedError, ProbeRunner
from lagprobe.report import render_report
from lagprobe.strategy import ReadStrategy

console = Console()


def resolve_config(
    backend: Optional[str] = None,
    database: Optional[Path] = None,
    lookup_lag_ms: Optional[float] = None,
    query_lag_ms: Optional[float] = None,
) -> ProbeConfig:
    """Load the project config and apply command-line overrides."""
    config = load_config()
    if backend is not None:
        config.backend = backend
    if database is not None:
        config.database = str(database.resolve())
    if lookup_lag_ms is not None:
        config.lookup_lag_ms = lookup_lag_ms
    if query_lag_ms is not None:
        config.query_lag_ms = query_lag_ms
    return config


def open_datastore(config: ProbeConfig) -> Datastore:
    """Open the configured datastore or exit with an error.

    A relative SQLite database lives in the project directory, so it
    requires ``lagprobe init``.
    """
    try:
        config_dir = None
        if config.backend.lower() == "sqlite" and not Path(config.database).is_absolute():
            config_dir = require_config_dir()
        return get_datastore(config, config_dir)
    except (RuntimeError, ValueError, StorageError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def probe(
    strategy: ReadStrategy = typer.Argument(
        ...,
        help="Read strategy used to poll for each write",
    ),
    trials: Optional[int] = typer.Option(
        None, "--trials", "-n", min=0, help="Number of trials (default from config: 100)"
    ),
    delay_ms: Optional[float] = typer.Option(
        None, "--delay-ms", min=0.0, help="Fixed delay between read attempts in ms"
    ),
    max_attempts: Optional[int] = typer.Option(
        None, "--max-attempts", min=0, help="Attempt ceiling per trial"
    ),
    backend: Optional[str] = typer.Option(
        None, "--backend", "-b", help="Datastore backend: memory or sqlite"
    ),
    database: Optional[Path] = typer.Option(
        None, "--database", help="SQLite database file (sqlite backend)"
    ),
    lookup_lag_ms: Optional[float] = typer.Option(
        None, "--lookup-lag-ms", min=0.0, help="Simulated lag before lookups see a write"
    ),
    query_lag_ms: Optional[float] = typer.Option(
        None, "--query-lag-ms", min=0.0, help="Simulated lag before queries see a write"
    ),
    server: Optional[str] = typer.Option(
        None,
        "--server",
        "-s",
        envvar="LAGPROBE_SERVER_URL",
        help="Run the probe on a lagprobe server instead of locally",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log trial diagnostics"),
) -> None:
    """
    Write entities and poll until each write is visible.

    Prints retry count and write-to-visible latency summaries.

    Examples:

        lagprobe probe indexed-query --trials 50

        lagprobe probe lookup-by-key --lookup-lag-ms 20

        lagprobe probe ancestor-query --server http://probe-host:8080
    """
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if server:
        try:
            with LagprobeClient(server) as client:
                report = client.probe(strategy, trials, delay_ms, max_attempts)
        except LagprobeClientError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1)
        console.print(report, markup=False, highlight=False, soft_wrap=True, end="")
        return

    config = resolve_config(backend, database, lookup_lag_ms, query_lag_ms)
    datastore = open_datastore(config)
    try:
        runner = ProbeRunner(datastore, kind=config.kind)
        result = runner.run(
            strategy,
            trial_count=config.trial_count if trials is None else trials,
            attempt_delay=(config.attempt_delay_ms if delay_ms is None else delay_ms) / 1000.0,
            max_attempts=config.max_attempts if max_attempts is None else max_attempts,
        )
    except ProbeAbortedError as e:
        console.print(f"[red]Error:[/red] Probe aborted: {e}")
        raise typer.Exit(1)
    finally:
        datastore.close()

    console.print(render_report(result), markup=False, highlight=False, soft_wrap=True, end="")
    console.print(
        f"[dim]{strategy.value}: {result.succeeded} succeeded, "
        f"{result.exhausted} exhausted, {result.skipped} skipped[/dim]"
    )

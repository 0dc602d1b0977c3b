"""CLI command for running the lagprobe server."""

from pathlib import Path
from typing import Optional

import typer
import uvicorn
from rich.console import Console

from lagprobe.cli.probe import open_datastore, resolve_config
from lagprobe.server.app import create_app

console = Console()


def server(
    port: int = typer.Option(8080, "--port", "-p", help="Port to listen on"),
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    backend: Optional[str] = typer.Option(
        None, "--backend", "-b", help="Datastore backend: memory or sqlite"
    ),
    database: Optional[Path] = typer.Option(
        None,
        "--database",
        envvar="LAGPROBE_DATABASE",
        help="SQLite database file (sqlite backend)",
    ),
    lookup_lag_ms: Optional[float] = typer.Option(
        None, "--lookup-lag-ms", min=0.0, help="Simulated lag before lookups see a write"
    ),
    query_lag_ms: Optional[float] = typer.Option(
        None, "--query-lag-ms", min=0.0, help="Simulated lag before queries see a write"
    ),
):
    """
    Start the lagprobe server.

    The server runs probes on request and returns their reports, so a
    datastore can be measured from the machine that is close to it.

    Examples:

        # Probe an in-memory store with 20ms of query lag
        lagprobe server --query-lag-ms 20

        # Probe the project's SQLite store
        lagprobe server --backend sqlite

        # Bind to all interfaces (for remote access)
        lagprobe server --host 0.0.0.0 --port 8080
    """
    config = resolve_config(backend, database, lookup_lag_ms, query_lag_ms)
    datastore = open_datastore(config)

    console.print("[bold]lagprobe server[/bold]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    console.print(f"  Backend: {datastore.name}")
    if config.lookup_lag_ms or config.query_lag_ms:
        console.print(
            f"  Simulated lag: lookup={config.lookup_lag_ms}ms query={config.query_lag_ms}ms"
        )
    console.print()

    app = create_app(datastore=datastore, config=config)

    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
        )
    finally:
        datastore.close()

# Copyright (c) Syntropy Systems
"""lagprobe init command."""

from pathlib import Path

import typer
import yaml
from rich.console import Console

from lagprobe.config import CONFIG_DIR_NAME, CONFIG_FILE_NAME, ProbeConfig
from lagprobe.datastore.sqlite import init_db

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new lagprobe project.

    Creates a .lagprobe directory with configuration and a SQLite datastore.
    """
    target = path.resolve()
    config_dir = target / CONFIG_DIR_NAME

    if config_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {config_dir}")
        return

    config_dir.mkdir(parents=True)

    # Create default config
    config = ProbeConfig()
    config_path = config_dir / CONFIG_FILE_NAME
    with config_path.open("w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False)

    # Initialize database for the sqlite backend
    db_path = config_dir / config.database
    init_db(db_path)

    console.print(f"[green]Initialized lagprobe project:[/green] {config_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]database:[/dim] {db_path}")

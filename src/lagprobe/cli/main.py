# Copyright (c) Syntropy Systems
"""Main CLI entry point for lagprobe."""

import typer

from lagprobe.cli.count import count, stat
from lagprobe.cli.init_cmd import init
from lagprobe.cli.probe import probe
from lagprobe.cli.server_cmd import server

app = typer.Typer(
    name="lagprobe",
    help=(
        "Measure eventual consistency. Write entities, poll until they "
        "are visible, report retry and latency distributions."
    ),
    no_args_is_help=True,
    add_completion=False,
)

# Register commands
_ = app.command()(init)
_ = app.command()(probe)
_ = app.command()(count)
_ = app.command()(stat)
_ = app.command()(server)


if __name__ == "__main__":
    app()

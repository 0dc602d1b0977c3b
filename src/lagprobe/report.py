# Copyright (c) Syntropy Systems
"""Text reports for probe results and counts."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lagprobe.probe import ProbeResult
    from lagprobe.summary import Summary


def _envelope(blocks: list[tuple[str, str]]) -> str:
    """Wrap labeled blocks in a minimal HTML <pre> envelope."""
    lines = ["<html><pre>"]
    for label, body in blocks:
        lines.append(f"### {label} ###")
        lines.append(body.rstrip("\n"))
    lines.append("</pre></html>")
    return "\n".join(lines) + "\n"


def render_summaries(retry: Summary, duration: Summary) -> str:
    """Render the Retry and Duration[ms] blocks."""
    return _envelope([("Retry", retry.render()), ("Duration[ms]", duration.render())])


def render_report(result: ProbeResult) -> str:
    """Render the report for a finished probe run."""
    return render_summaries(result.retry, result.duration)


def render_count(count: int) -> str:
    """Render an entity count report."""
    return _envelope([("Count", str(count))])

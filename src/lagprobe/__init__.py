"""
lagprobe - Eventual-consistency probes for document datastores.

Write an entity, poll until it is visible, summarize retries and latency.
"""

from lagprobe.probe import ProbeAbortedError, ProbeResult, ProbeRunner, run_probe
from lagprobe.strategy import ReadStrategy
from lagprobe.summary import Summary

__version__ = "0.1.0"
__all__ = [
    "ProbeAbortedError",
    "ProbeResult",
    "ProbeRunner",
    "ReadStrategy",
    "Summary",
    "__version__",
    "run_probe",
]

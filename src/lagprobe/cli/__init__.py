"""lagprobe command-line interface."""

# Copyright (c) Syntropy Systems
"""Configuration management for lagprobe."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import cast

import yaml

CONFIG_DIR_NAME = ".lagprobe"
CONFIG_FILE_NAME = "config.yaml"


@dataclass
class ProbeConfig:
    """Configuration for lagprobe runs."""

    # Trials per probe run
    trial_count: int = 100

    # Fixed delay between read attempts (milliseconds)
    attempt_delay_ms: float = 5.0

    # Attempts before a trial is recorded as exhausted
    max_attempts: int = 400

    # Entity kind written by probes
    kind: str = "testkind"

    # Storage backend: memory or sqlite
    backend: str = "memory"

    # SQLite database file, relative to the config directory
    database: str = "lagprobe.db"

    # Simulated replication lag (milliseconds)
    lookup_lag_ms: float = 0.0
    query_lag_ms: float = 0.0

    # Ancestor queries see the latest writes
    strong_ancestor_queries: bool = True

    @property
    def attempt_delay(self) -> float:
        """Attempt delay in seconds."""
        return self.attempt_delay_ms / 1000.0

    def to_dict(self) -> dict[str, object]:
        """Convert to a plain dict for YAML output."""
        return asdict(self)


_INT_FIELDS = ("trial_count", "max_attempts")
_FLOAT_FIELDS = ("attempt_delay_ms", "lookup_lag_ms", "query_lag_ms")
_STR_FIELDS = ("kind", "backend", "database")


def find_config_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .lagprobe directory by walking up from start_path.

    Returns None if no .lagprobe directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        config_dir = current / CONFIG_DIR_NAME
        if config_dir.is_dir():
            return config_dir
        current = current.parent

    # Check root
    config_dir = current / CONFIG_DIR_NAME
    if config_dir.is_dir():
        return config_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global lagprobe config directory (~/.lagprobe)."""
    return Path.home() / CONFIG_DIR_NAME


def _apply(config: ProbeConfig, data: dict[str, object]) -> None:
    for name in _INT_FIELDS:
        value = data.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            setattr(config, name, int(value))
    for name in _FLOAT_FIELDS:
        value = data.get(name)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            setattr(config, name, float(value))
    for name in _STR_FIELDS:
        value = data.get(name)
        if isinstance(value, str):
            setattr(config, name, value)
    strong = data.get("strong_ancestor_queries")
    if isinstance(strong, bool):
        config.strong_ancestor_queries = strong


def load_config(config_dir: Path | None = None) -> ProbeConfig:
    """Load configuration from .lagprobe/config.yaml or defaults.

    Looks for config in:
    1. Provided config_dir
    2. Nearest .lagprobe directory walking up
    3. ~/.lagprobe/config.yaml
    4. Defaults
    """
    config = ProbeConfig()

    config_path = None

    if config_dir is not None:
        config_path = config_dir / CONFIG_FILE_NAME
    else:
        found_dir = find_config_dir()
        if found_dir is not None:
            config_path = found_dir / CONFIG_FILE_NAME
        else:
            global_config = get_global_config_dir() / CONFIG_FILE_NAME
            if global_config.exists():
                config_path = global_config

    if config_path is not None and config_path.exists():
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})
        _apply(config, data)

    return config


def get_db_path(config: ProbeConfig, config_dir: Path | None = None) -> Path:
    """Resolve the SQLite database path for a config."""
    database = Path(config.database)
    if database.is_absolute():
        return database

    if config_dir is None:
        config_dir = find_config_dir()

    if config_dir is None:
        return Path.cwd() / database

    return config_dir / database


def require_config_dir() -> Path:
    """Get the .lagprobe directory or raise an error if not found."""
    config_dir = find_config_dir()
    if config_dir is None:
        msg = "No .lagprobe directory found. Run 'lagprobe init' first."
        raise RuntimeError(
            msg
        )
    return config_dir

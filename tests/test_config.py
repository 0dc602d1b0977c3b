# Copyright (c) Syntropy Systems
"""Tests for configuration loading."""

from pathlib import Path

import pytest
import yaml

from lagprobe.config import (
    ProbeConfig,
    find_config_dir,
    get_db_path,
    load_config,
    require_config_dir,
)


class TestLoadConfig:
    """Tests for reading .lagprobe/config.yaml."""

    def test_defaults(self) -> None:
        """Test the default configuration."""
        config = ProbeConfig()

        assert config.trial_count == 100
        assert config.attempt_delay_ms == 5.0
        assert config.attempt_delay == pytest.approx(0.005)
        assert config.max_attempts == 400
        assert config.kind == "testkind"
        assert config.backend == "memory"

    def test_yaml_overrides(self, temp_dir: Path) -> None:
        """Test that values in config.yaml override defaults."""
        (temp_dir / "config.yaml").write_text(
            "trial_count: 20\n"
            "attempt_delay_ms: 2\n"
            "backend: sqlite\n"
            "query_lag_ms: 15.5\n"
            "strong_ancestor_queries: false\n"
        )

        config = load_config(temp_dir)

        assert config.trial_count == 20
        assert config.attempt_delay_ms == 2.0
        assert isinstance(config.attempt_delay_ms, float)
        assert config.backend == "sqlite"
        assert config.query_lag_ms == 15.5
        assert config.strong_ancestor_queries is False
        assert config.max_attempts == 400

    def test_invalid_types_ignored(self, temp_dir: Path) -> None:
        """Test that values of the wrong type keep their defaults."""
        (temp_dir / "config.yaml").write_text(
            "trial_count: many\nmax_attempts: true\nkind: 5\nstrong_ancestor_queries: maybe\n"
        )

        config = load_config(temp_dir)

        assert config.trial_count == 100
        assert config.max_attempts == 400
        assert config.kind == "testkind"
        assert config.strong_ancestor_queries is True

    def test_empty_file(self, temp_dir: Path) -> None:
        """Test that an empty config file yields defaults."""
        (temp_dir / "config.yaml").write_text("")

        assert load_config(temp_dir) == ProbeConfig()

    def test_to_dict_round_trip(self, temp_dir: Path) -> None:
        """Test that a dumped config loads back unchanged."""
        config = ProbeConfig(trial_count=7, backend="sqlite", lookup_lag_ms=3.0)
        (temp_dir / "config.yaml").write_text(yaml.dump(config.to_dict()))

        assert load_config(temp_dir) == config


class TestConfigDiscovery:
    """Tests for locating the project directory."""

    def test_find_walks_up(self, temp_dir: Path) -> None:
        """Test that the nearest .lagprobe directory is found from a subdirectory."""
        (temp_dir / ".lagprobe").mkdir()
        nested = temp_dir / "a" / "b"
        nested.mkdir(parents=True)

        assert find_config_dir(nested) == (temp_dir / ".lagprobe").resolve()

    def test_require_without_project(self, workdir: Path) -> None:
        """Test that require_config_dir fails outside a project."""
        with pytest.raises(RuntimeError, match="lagprobe init"):
            require_config_dir()

    def test_require_in_project(self, lagprobe_project: Path) -> None:
        """Test that require_config_dir finds the project."""
        assert require_config_dir() == (lagprobe_project / ".lagprobe").resolve()


class TestDbPath:
    """Tests for resolving the SQLite database path."""

    def test_relative_to_config_dir(self, temp_dir: Path) -> None:
        """Test that relative database paths live in the config directory."""
        assert get_db_path(ProbeConfig(database="x.db"), temp_dir) == temp_dir / "x.db"

    def test_absolute(self, temp_dir: Path) -> None:
        """Test that absolute database paths are used as-is."""
        db_path = temp_dir / "elsewhere.db"

        assert get_db_path(ProbeConfig(database=str(db_path)), temp_dir) == db_path

    def test_without_project(self, workdir: Path) -> None:
        """Test that the current directory is used outside a project."""
        assert get_db_path(ProbeConfig()) == Path.cwd() / "lagprobe.db"

# Copyright (c) Syntropy Systems
"""Pytest fixtures for lagprobe tests."""

import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from lagprobe.datastore import Datastore, MemoryDatastore, SQLiteDatastore

# Store original cwd at module load time
_original_cwd = Path.cwd()


class FakeClock:
    """Manual clock; sleeping advances it instead of blocking."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def workdir(temp_dir: Path) -> Generator[Path, None, None]:
    """Change into an empty temporary directory with no lagprobe project."""
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def lagprobe_project(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary lagprobe project directory."""
    from lagprobe.datastore.sqlite import init_db

    config_dir = temp_dir / ".lagprobe"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text("backend: sqlite\ntrial_count: 5\n")
    init_db(config_dir / "lagprobe.db")

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def clock() -> FakeClock:
    """Provide a manual clock."""
    return FakeClock()


@pytest.fixture
def memory_datastore(clock: FakeClock) -> MemoryDatastore:
    """In-memory datastore driven by the manual clock."""
    return MemoryDatastore(clock=clock)


@pytest.fixture
def sqlite_datastore(temp_dir: Path, clock: FakeClock) -> Generator[SQLiteDatastore, None, None]:
    """SQLite datastore in a temporary file, driven by the manual clock."""
    datastore = SQLiteDatastore(temp_dir / "probe.db", clock=clock)
    yield datastore
    datastore.close()


@pytest.fixture(params=["memory", "sqlite"])
def datastore(
    request: pytest.FixtureRequest, temp_dir: Path, clock: FakeClock
) -> Generator[Datastore, None, None]:
    """Each datastore backend, driven by the manual clock."""
    if request.param == "memory":
        yield MemoryDatastore(clock=clock)
        return
    store = SQLiteDatastore(temp_dir / "probe.db", clock=clock)
    yield store
    store.close()

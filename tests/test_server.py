# Copyright (c) Syntropy Systems
"""Tests for the lagprobe HTTP server."""

from collections.abc import Generator
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from lagprobe.config import ProbeConfig
from lagprobe.datastore import Datastore, Entity, MemoryDatastore, Query, StorageError
from lagprobe.server import create_app


class BrokenReads(MemoryDatastore):
    """Memory store whose reads and counts always fail."""

    def get(self, key) -> Entity:
        raise StorageError("disk on fire")

    def run_query(self, query: Query) -> list[Entity]:
        raise StorageError("disk on fire")


def make_client(datastore: Optional[Datastore] = None) -> TestClient:
    config = ProbeConfig(trial_count=3, attempt_delay_ms=0.0)
    return TestClient(create_app(datastore=datastore or MemoryDatastore(), config=config))


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    with make_client() as test_client:
        yield test_client


class TestProbeEndpoint:
    """Tests for GET /probe/{strategy}."""

    @pytest.mark.parametrize(
        "strategy", ["lookup-by-key", "indexed-query", "projection-query", "ancestor-query"]
    )
    def test_probe_report(self, client: TestClient, strategy: str) -> None:
        """Test that each strategy returns a Retry and Duration report."""
        response = client.get(f"/probe/{strategy}")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        body = response.text
        assert body.startswith("<html><pre>")
        assert "### Retry ###\ncount: 3\nmean: 1.000" in body
        assert "### Duration[ms] ###" in body

    def test_probe_parameters(self, client: TestClient) -> None:
        """Test overriding the trial count per request."""
        response = client.get("/probe/indexed-query", params={"trials": 2, "delay_ms": 0})

        assert "count: 2" in response.text

    def test_probe_zero_trials(self, client: TestClient) -> None:
        """Test a run with no trials."""
        response = client.get("/probe/indexed-query", params={"trials": 0})

        assert response.status_code == 200
        assert "(no samples)" in response.text

    def test_unknown_strategy(self, client: TestClient) -> None:
        """Test that an unknown strategy is rejected."""
        response = client.get("/probe/scan")

        assert response.status_code == 422

    def test_negative_trials(self, client: TestClient) -> None:
        """Test that negative trial counts are rejected."""
        response = client.get("/probe/indexed-query", params={"trials": -1})

        assert response.status_code == 422

    def test_probe_aborted(self) -> None:
        """Test that a fatal read error returns 500 with a plain-text message."""
        with make_client(BrokenReads()) as client:
            response = client.get("/probe/indexed-query")

        assert response.status_code == 500
        assert response.text.startswith("Probe aborted:")
        assert "disk on fire" in response.text


class TestCountEndpoints:
    """Tests for /count, /count/paged and /stat."""

    def test_counts_after_probe(self, client: TestClient) -> None:
        """Test that counts include trial entities and the ancestor root."""
        client.get("/probe/indexed-query")
        client.get("/probe/ancestor-query")

        direct = client.get("/count")
        paged = client.get("/count/paged")

        assert direct.status_code == 200
        assert "### Count ###\n7\n" in direct.text
        assert paged.text == direct.text

    def test_stat_without_entities(self, client: TestClient) -> None:
        """Test that /stat returns 404 before anything is written."""
        response = client.get("/stat")

        assert response.status_code == 404
        assert "No statistics" in response.json()["detail"]

    def test_stat_after_probe(self, client: TestClient) -> None:
        """Test the statistics count after a probe run."""
        client.get("/probe/lookup-by-key")

        response = client.get("/stat")

        assert response.status_code == 200
        assert "### Count ###\n3\n" in response.text

    def test_count_storage_error(self) -> None:
        """Test that count failures return 500."""
        with make_client(BrokenReads()) as client:
            direct = client.get("/count")
            paged = client.get("/count/paged")

        assert direct.status_code == 500
        assert direct.text.startswith("Count failed:")
        assert paged.status_code == 500


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client: TestClient) -> None:
        """Test the health check."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

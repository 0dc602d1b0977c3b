# Copyright (c) Syntropy Systems
"""HTTP client for running probes on a remote lagprobe server."""
from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError
from typing_extensions import Self

from lagprobe.models.api import ErrorResponse, HealthResponse
from lagprobe.strategy import ReadStrategy

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType


class LagprobeClientError(Exception):
    """Error from lagprobe server communication."""


class LagprobeClient:
    """HTTP client for the lagprobe server."""

    server_url: str
    timeout: float
    _client: httpx.Client

    def __init__(self, server_url: str, timeout: float = 300.0) -> None:
        """Initialize the client.

        Args:
            server_url: Base URL of the lagprobe server (e.g., "http://probe-host:8080")
            timeout: Request timeout in seconds; probe runs block until finished

        """
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> Self:
        """Enter the client context and return self."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the client context and close the HTTP client."""
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        params: Mapping[str, object] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request to the server."""
        url = f"{self.server_url}{path}"
        try:
            response = self._client.request(method=method, url=url, params=params)
            _ = response.raise_for_status()
        except httpx.HTTPStatusError as e:
            # Try to get error detail from response
            try:
                detail = ErrorResponse.model_validate(e.response.json()).detail
            except (ValidationError, ValueError):
                detail = e.response.text.strip() or str(e)
            msg = f"Server error: {detail}"
            raise LagprobeClientError(msg) from e
        except httpx.RequestError as e:
            msg = f"Connection error: {e}"
            raise LagprobeClientError(msg) from e
        return response

    def probe(
        self,
        strategy: ReadStrategy | str,
        trials: int | None = None,
        delay_ms: float | None = None,
        max_attempts: int | None = None,
    ) -> str:
        """Run a probe on the server and return its text report.

        Args:
            strategy: Read strategy name
            trials: Trials to run (server default when None)
            delay_ms: Delay between attempts in milliseconds
            max_attempts: Attempt ceiling per trial

        Returns:
            The rendered Retry and Duration[ms] report

        """
        strategy = ReadStrategy(strategy)
        params = {
            name: value
            for name, value in (
                ("trials", trials),
                ("delay_ms", delay_ms),
                ("max_attempts", max_attempts),
            )
            if value is not None
        }
        return self._request("GET", f"/probe/{strategy.value}", params=params).text

    def count(self, *, paged: bool = False) -> str:
        """Return the server's count report."""
        path = "/count/paged" if paged else "/count"
        return self._request("GET", path).text

    def stat(self) -> str:
        """Return the server's kind statistics report."""
        return self._request("GET", "/stat").text

    def health(self) -> HealthResponse:
        """Check server health."""
        response = self._request("GET", "/health")
        try:
            return HealthResponse.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            msg = f"Unexpected health response: {e}"
            raise LagprobeClientError(msg) from e

"""FastAPI application exposing probe runs over HTTP."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, PlainTextResponse

from ..config import ProbeConfig, load_config
from ..counting import NoStatsError, count_by_pages, count_entities, stat_count
from ..datastore import Datastore, StorageError, get_datastore
from ..models.api import HealthResponse
from ..probe import ProbeAbortedError, ProbeRunner
from ..report import render_count, render_report
from ..strategy import ReadStrategy

logger = logging.getLogger(__name__)


def get_db(request: Request) -> Datastore:
    """Get the datastore instance."""
    datastore: Optional[Datastore] = getattr(request.app.state, "datastore", None)
    if datastore is None:
        raise RuntimeError("Datastore not initialized")
    return datastore


def get_config(request: Request) -> ProbeConfig:
    """Get the probe configuration."""
    return request.app.state.config


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifecycle manager for the FastAPI app."""
    yield

    # Shutdown
    if app.state.owns_datastore:
        app.state.datastore.close()


def create_app(
    datastore: Optional[Datastore] = None,
    config: Optional[ProbeConfig] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        datastore: Backend to probe (built from config when omitted)
        config: Probe defaults and backend settings (loaded from
            .lagprobe/config.yaml when omitted)

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = load_config()

    owns_datastore = datastore is None
    if datastore is None:
        datastore = get_datastore(config)

    app = FastAPI(
        title="lagprobe server",
        description="Eventual-consistency probes against a document datastore",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.datastore = datastore
    app.state.config = config
    app.state.owns_datastore = owns_datastore

    # --- Probe Endpoints ---

    @app.get("/probe/{strategy}", response_class=HTMLResponse)
    def probe(
        strategy: ReadStrategy,
        trials: Optional[int] = Query(None, ge=0, le=100_000, description="Trials to run"),
        delay_ms: Optional[float] = Query(None, ge=0, description="Delay between attempts (ms)"),
        max_attempts: Optional[int] = Query(None, ge=0, description="Attempt ceiling per trial"),
        db: Datastore = Depends(get_db),
        cfg: ProbeConfig = Depends(get_config),
    ):
        """Write entities and poll for them with one read strategy."""
        runner = ProbeRunner(db, kind=cfg.kind)
        try:
            result = runner.run(
                strategy,
                trial_count=cfg.trial_count if trials is None else trials,
                attempt_delay=(cfg.attempt_delay_ms if delay_ms is None else delay_ms) / 1000.0,
                max_attempts=cfg.max_attempts if max_attempts is None else max_attempts,
            )
        except ProbeAbortedError as e:
            logger.error("Probe %s aborted: %s", strategy.value, e)
            return PlainTextResponse(f"Probe aborted: {e}\n", status_code=500)

        return HTMLResponse(render_report(result))

    # --- Count Endpoints ---

    @app.get("/count", response_class=HTMLResponse)
    def count(db: Datastore = Depends(get_db), cfg: ProbeConfig = Depends(get_config)):
        """Count probe entities with the backend's count operation."""
        try:
            n = count_entities(db, cfg.kind)
        except StorageError as e:
            logger.error("Count failed: %s", e)
            return PlainTextResponse(f"Count failed: {e}\n", status_code=500)
        return HTMLResponse(render_count(n))

    @app.get("/count/paged", response_class=HTMLResponse)
    def count_paged(db: Datastore = Depends(get_db), cfg: ProbeConfig = Depends(get_config)):
        """Count probe entities by walking keys-only pages."""
        try:
            n = count_by_pages(db, cfg.kind)
        except StorageError as e:
            logger.error("Paged count failed: %s", e)
            return PlainTextResponse(f"Paged count failed: {e}\n", status_code=500)
        return HTMLResponse(render_count(n))

    @app.get("/stat", response_class=HTMLResponse)
    def stat(db: Datastore = Depends(get_db), cfg: ProbeConfig = Depends(get_config)):
        """Report the entity count from kind statistics."""
        try:
            n = stat_count(db, cfg.kind)
        except NoStatsError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except StorageError as e:
            logger.error("Stat failed: %s", e)
            return PlainTextResponse(f"Stat failed: {e}\n", status_code=500)
        return HTMLResponse(render_count(n))

    @app.get("/health", response_model=HealthResponse)
    def health_check():
        """Health check endpoint."""
        return HealthResponse(status="healthy")

    return app

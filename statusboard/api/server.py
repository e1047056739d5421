"""FastAPI server for the dependency status dashboard."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from statusboard.api.health_routes import broadcast_result, health_router
from statusboard.checks import build_default_checks
from statusboard.config import settings
from statusboard.health.query import SnapshotQueryService
from statusboard.health.ratelimit import RefreshRateLimiter
from statusboard.health.registry import DefinitionRegistry
from statusboard.health.scheduler import HealthScheduler
from statusboard.health.store import ResultStore
from statusboard.secrets import SecretResolver

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Reconcile plugin definitions, then start the scheduler."""
    executors = build_default_checks(settings, SecretResolver())

    registry = DefinitionRegistry(settings.db_path)
    report = registry.reconcile(e.definition for e in executors)
    if report.failed:
        logger.warning("Definitions not reconciled: %s", ", ".join(report.failed))
    app.state.definition_registry = registry

    store = ResultStore(settings.db_path)
    app.state.result_store = store
    app.state.status_query = SnapshotQueryService(registry, store)
    app.state.refresh_limiter = RefreshRateLimiter(settings.refresh_window_seconds)

    scheduler = HealthScheduler(
        registry,
        store,
        executors,
        on_result=broadcast_result,
        max_workers=settings.health_max_workers,
    )
    app.state.health_scheduler = scheduler

    try:
        await scheduler.start()
    except Exception:
        logger.exception("Health scheduler failed to start")

    yield

    await scheduler.stop()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Statusboard - External API Status",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router, prefix="/api")
    return app


app = create_app()

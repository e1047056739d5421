"""API routes for the dependency status dashboard + admin screen.

Endpoints:
  GET   /api/status                 rows filtered by category / search / enabled_only
  GET   /api/status/stream          SSE stream of snapshots as they land
  GET   /api/status/{key}           one check's latest status
  POST  /api/status/refresh         run every enabled check now (rate-limited)
  POST  /api/status/{key}/run       run one check now
  GET   /api/admin/checks           all definitions
  PATCH /api/admin/checks/{key}     enable/disable, edit interval/timeout/threshold
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from statusboard.health.engine import CheckSnapshot

logger = logging.getLogger(__name__)

health_router = APIRouter()

# ── SSE subscriber list (in-memory) ──────────────────────────────────────────

_sse_queues: list[asyncio.Queue[dict[str, Any]]] = []


def broadcast_result(snapshot: CheckSnapshot) -> None:
    """Push a fresh snapshot to all SSE subscribers."""
    data = snapshot.to_dict()
    for q in _sse_queues:
        try:
            q.put_nowait(data)
        except asyncio.QueueFull:
            pass  # slow consumer, drop


# ── Request models ───────────────────────────────────────────────────────────


class DefinitionUpdate(BaseModel):
    is_enabled: bool | None = None
    interval_seconds: int | None = Field(default=None, ge=5, le=86_400)
    timeout_seconds: int | None = Field(default=None, ge=1, le=120)
    degraded_threshold_ms: int | None = Field(default=None, ge=1, le=300_000)


# ── Status endpoints ─────────────────────────────────────────────────────────


@health_router.get("/status")
def list_status(
    request: Request,
    category: str | None = None,
    q: str | None = None,
    enabled_only: bool = False,
) -> dict[str, Any]:
    """Latest status per check, for dashboard widgets and the detail screen."""
    query = request.app.state.status_query
    rows = query.query(category=category, search=q, enabled_only=enabled_only)
    return {
        "rows": [r.to_dict() for r in rows],
        "categories": query.categories(),
        "summary": query.summary(),
        "category": category,
        "q": q,
    }


@health_router.get("/status/stream")
async def status_stream(request: Request) -> StreamingResponse:
    """Server-Sent Events stream of check snapshots."""
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=50)
    _sse_queues.append(queue)

    async def event_generator():
        try:
            # Send initial state
            store = request.app.state.result_store
            latest = {k: s.to_dict() for k, s in store.read_all().items()}
            yield f"event: init\ndata: {json.dumps(latest)}\n\n"

            while True:
                if await request.is_disconnected():
                    break

                try:
                    data = await asyncio.wait_for(queue.get(), timeout=30)
                    yield f"event: check\ndata: {json.dumps(data)}\n\n"
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
        finally:
            _sse_queues.remove(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@health_router.post("/status/refresh")
async def refresh_all(request: Request) -> Any:
    """Run every enabled check now; one call per client per refresh window."""
    limiter = request.app.state.refresh_limiter
    client_key = request.client.host if request.client else "anonymous"
    decision = limiter.try_acquire(client_key)
    if not decision.allowed:
        return JSONResponse(
            status_code=429,
            headers={"Retry-After": str(decision.retry_after_seconds)},
            content={
                "success": False,
                "message": f"Refresh is rate-limited. Try again in {decision.retry_after_seconds} seconds.",
            },
        )

    scheduler = request.app.state.health_scheduler
    outcomes = await scheduler.run_all_now()
    query = request.app.state.status_query
    return {
        "success": True,
        "outcomes": {o.key: o.outcome for o in outcomes},
        "rows": [r.to_dict() for r in query.query(enabled_only=True)],
    }


@health_router.get("/status/{key}")
def get_status(key: str, request: Request) -> dict[str, Any]:
    query = request.app.state.status_query
    row = query.get(key)
    if row is None:
        raise HTTPException(status_code=404, detail=f"Check not found: {key}")

    scheduler = request.app.state.health_scheduler
    result = row.to_dict()
    result["state"] = scheduler.state(key)
    snapshot = request.app.state.result_store.read(key)
    result["error_detail"] = snapshot.error_detail if snapshot else None
    return result


@health_router.post("/status/{key}/run")
async def run_check(key: str, request: Request) -> dict[str, Any]:
    """Manual run-now. A check that is already running is left alone (409)."""
    scheduler = request.app.state.health_scheduler
    try:
        outcome = await scheduler.run_now(key)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Check not found: {key}")

    if outcome.outcome == "busy":
        raise HTTPException(status_code=409, detail=f"Check {key} is already running")
    if outcome.outcome == "disabled":
        raise HTTPException(status_code=409, detail=f"Check {key} is disabled")
    return outcome.to_dict()


# ── Admin endpoints ──────────────────────────────────────────────────────────


@health_router.get("/admin/checks")
def list_definitions(request: Request) -> dict[str, Any]:
    registry = request.app.state.definition_registry
    scheduler = request.app.state.health_scheduler
    return {
        "checks": [
            {**d.to_dict(), "state": scheduler.state(d.key), "scheduled": scheduler.is_scheduled(d.key)}
            for d in registry.all()
        ],
    }


@health_router.patch("/admin/checks/{key}")
def update_definition(key: str, body: DefinitionUpdate, request: Request) -> dict[str, Any]:
    """Operator edits; applied from the next tick, in-flight runs are untouched."""
    registry = request.app.state.definition_registry
    changes = body.model_dump(exclude_unset=True)
    try:
        updated = registry.update(key, **changes)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Check not found: {key}")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return updated.to_dict()

"""
Daneel Web — Observation Router

Read-only surface over the latest published state.

Endpoints:
  GET /health    — liveness, source staleness, session count (always 200)
  GET /metrics   — the current Snapshot (503 until the first tick)
  GET /vectors   — the current memory PointCloud (503 until initialized)
  WS  /ws        — one Snapshot per tick, server → client only
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any

import structlog
from fastapi import APIRouter, Request, WebSocket
from fastapi.responses import JSONResponse, Response

logger = structlog.get_logger("daneel_web.api.observation")

router = APIRouter()

SERVICE_NAME = "daneel-web"

_INITIALIZING = {"status": "initializing"}


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Process health. Independent of whether either store is reachable."""
    state = request.app.state
    collector = getattr(state, "collector", None)
    store = getattr(state, "snapshot_store", None)
    hub = getattr(state, "hub", None)
    engine = getattr(state, "projection_engine", None)

    sources: dict[str, Any] = collector.source_health() if collector is not None else {}
    if engine is not None:
        sources["manifold"] = {
            "stale": engine.stale,
            "consecutive_failures": engine.stats["consecutive_failures"],
        }

    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "uptime_seconds": collector.uptime_seconds if collector is not None else 0,
        "initialized": bool(store is not None and store.initialized),
        "sources": sources,
        "sessions": hub.session_count if hub is not None else 0,
    }


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    """Current Snapshot, byte-identical between ticks."""
    store = getattr(request.app.state, "snapshot_store", None)
    payload = store.current_payload() if store is not None else None
    if payload is None:
        return JSONResponse(status_code=503, content=_INITIALIZING)
    return Response(content=payload, media_type="application/json")


@router.get("/vectors")
async def vectors(request: Request) -> Response:
    """Current PointCloud: projected memories plus the law anchors."""
    engine = getattr(request.app.state, "projection_engine", None)
    payload = engine.current_payload() if engine is not None else None
    if payload is None:
        return JSONResponse(status_code=503, content=_INITIALIZING)
    return Response(content=payload, media_type="application/json")


@router.websocket("/ws")
async def alive_websocket(ws: WebSocket) -> None:
    """
    Live snapshot push.

    The current snapshot is sent on connect; after that one message per
    collector tick. Anything the client sends is read and ignored.
    """
    await ws.accept()
    hub = ws.app.state.hub
    remote = f"{ws.client.host}:{ws.client.port}" if ws.client else None

    session = hub.create_session(ws.send_text, remote=remote)
    await hub.register(session)

    async def _drain_inbound() -> None:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                return

    receiver = asyncio.create_task(_drain_inbound(), name=f"ws_receiver_{session.id}")
    evicted = asyncio.create_task(session.wait_closed(), name=f"ws_closed_{session.id}")
    evicted_first = False
    try:
        done, _pending = await asyncio.wait(
            {receiver, evicted}, return_when=asyncio.FIRST_COMPLETED
        )
        evicted_first = receiver not in done
    finally:
        for task in (receiver, evicted):
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        await hub.unregister(session)

    if evicted_first:
        # Evicted by the hub on a failed write; the socket may already be gone
        with contextlib.suppress(Exception):
            await ws.close(code=1011)

"""
Daneel Web — Application Entry Point

FastAPI application wiring the collector, the broadcast hub and the
projection engine onto a read-only HTTP/WebSocket surface.

`daneel-web` → uvicorn on the configured host/port
`uvicorn daneel_web.main:app` works too.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager

import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env file before any configuration is loaded
load_dotenv()

from daneel_web import __version__
from daneel_web.api.middleware import RequestLogMiddleware
from daneel_web.api.routers.observation import router as observation_router
from daneel_web.clients.embedding import create_embedding_client
from daneel_web.clients.qdrant import VectorStoreClient
from daneel_web.clients.redis import StreamStoreClient
from daneel_web.config import DaneelWebConfig, load_config
from daneel_web.systems.alive.hub import BroadcastHub
from daneel_web.systems.collector.service import Collector
from daneel_web.systems.collector.sources import StreamSource, VectorSource
from daneel_web.systems.manifold.service import ProjectionEngine
from daneel_web.systems.snapshot.store import SnapshotStore
from daneel_web.telemetry.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup and shutdown sequence.

    Unreachable stores are not fatal: the collector serves degraded
    snapshots until they come back. Configuration problems are.
    """
    config: DaneelWebConfig = app.state.config

    # ── 1. Logging ────────────────────────────────────────────
    setup_logging(config.logging)
    logger.info(
        "daneel_web_starting",
        version=__version__,
        host=config.server.host,
        port=config.server.port,
    )

    # ── 2. Store clients ──────────────────────────────────────
    stream_client = StreamStoreClient(config.stream_store)
    await stream_client.connect()
    app.state.stream_store = stream_client

    vector_client = VectorStoreClient(config.vector_store)
    await vector_client.connect()
    app.state.vector_store = vector_client

    embedding_client = create_embedding_client(config.embedding)
    app.state.embedding = embedding_client

    # ── 3. Snapshot pipeline ──────────────────────────────────
    snapshot_store = SnapshotStore()
    app.state.snapshot_store = snapshot_store

    collector = Collector(
        stream_source=StreamSource(stream_client, config.collector),
        vector_source=VectorSource(vector_client),
        store=snapshot_store,
        config=config.collector,
        stream_timeout_ms=config.stream_store.timeout_ms,
        vector_timeout_ms=config.vector_store.timeout_ms,
    )
    app.state.collector = collector

    hub = BroadcastHub(snapshot_store, config.alive)
    collector.set_on_tick(hub.on_tick)
    app.state.hub = hub

    # ── 4. Memory manifold ────────────────────────────────────
    projection_engine = ProjectionEngine(
        vector_client=vector_client,
        embedding=embedding_client,
        config=config.manifold,
        collection=config.vector_store.memories_collection,
    )
    await projection_engine.initialize()
    app.state.projection_engine = projection_engine

    # ── 5. Start loops ────────────────────────────────────────
    collector.start()
    projection_engine.start()
    logger.info(
        "daneel_web_ready",
        tick_interval_ms=config.collector.tick_interval_ms,
        refresh_interval_ms=config.manifold.refresh_interval_ms,
    )

    yield

    # ── Shutdown ──────────────────────────────────────────────
    logger.info("daneel_web_shutting_down")
    await projection_engine.stop()
    await collector.stop()
    await hub.close_all()
    await embedding_client.close()
    await vector_client.close()
    await stream_client.close()
    logger.info("daneel_web_shutdown_complete")


# ─── FastAPI Application ─────────────────────────────────────────


def _config_path() -> str:
    return os.environ.get("DANEEL_CONFIG_PATH", "config/default.yaml")


def create_app(config: DaneelWebConfig | None = None) -> FastAPI:
    """Build the application. Configuration is read once, here."""
    config = config or load_config(_config_path())

    app = FastAPI(
        title="Daneel Web",
        description="Read-only live observer for the Daneel cognitive process",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config

    # Read-only surface: any origin may GET
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=False,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLogMiddleware)
    app.include_router(observation_router)
    return app


app = create_app()


def main() -> None:
    """Console entry point."""
    config: DaneelWebConfig = app.state.config
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()

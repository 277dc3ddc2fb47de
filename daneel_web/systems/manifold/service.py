"""
Daneel Web — Projection Engine

Keeps the latest 3-D PointCloud of sampled memory embeddings.

Lifecycle:
  initialize()  build the basis and anchors, publish an empty cloud
  start()       refresh on a coarse interval (default 2 s)
  reset()       rebuild basis and anchors together, then refresh

The basis and anchors never change between resets, so a fixed memory
population lands on the same coordinates on every refresh. If the vector
store cannot be read, the previous cloud stays published and the engine
is marked stale.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import numpy as np
import structlog

from daneel_web.clients.embedding import EmbeddingClient
from daneel_web.clients.qdrant import VectorRecord, VectorStoreClient
from daneel_web.config import ManifoldConfig
from daneel_web.errors import MalformedSample, SourceUnavailable
from daneel_web.primitives.common import clamp, utc_now
from daneel_web.primitives.manifold import (
    AnchorPoint,
    PointCloud,
    VectorPoint,
    encode_point_cloud,
)
from daneel_web.systems.manifold.anchors import build_anchors
from daneel_web.systems.manifold.projection import (
    Projection,
    RandomProjection,
    create_projection,
)
from daneel_web.systems.snapshot.cell import AtomicCell

logger = structlog.get_logger("daneel_web.systems.manifold.service")

_ERROR_BACKOFF_MS: float = 1000.0
_FAILURE_LOG_EVERY: int = 20


@dataclass(frozen=True)
class PublishedCloud:
    cloud: PointCloud
    payload: bytes


def _salience(payload: dict[str, Any], field: str) -> float:
    value = payload.get(field)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.5
    return clamp(float(value), 0.0, 1.0)


def _age_seconds(payload: dict[str, Any], field: str, now: datetime) -> float:
    """Seconds since the RFC 3339 timestamp in `field`; 0 when missing or unreadable."""
    value = payload.get(field)
    if not isinstance(value, str):
        return 0.0
    try:
        encoded_at = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if encoded_at.tzinfo is None:
        encoded_at = encoded_at.replace(tzinfo=timezone.utc)
    return max(0.0, (now - encoded_at).total_seconds())


class ProjectionEngine:
    """Sampler + projector for the memory manifold. Sole writer of its cloud."""

    system_id: str = "manifold"

    def __init__(
        self,
        vector_client: VectorStoreClient,
        embedding: EmbeddingClient,
        config: ManifoldConfig,
        collection: str,
    ) -> None:
        self._vectors = vector_client
        self._embedding = embedding
        self._config = config
        self._collection = collection
        self._timeout_s = config.timeout_ms / 1000.0
        self._logger = logger.bind(component="projection_engine")

        self._projection: Projection | None = None
        self._anchors: tuple[AnchorPoint, ...] = ()
        self._cell: AtomicCell[PublishedCloud] = AtomicCell()

        self._stale: bool = True
        self._consecutive_failures: int = 0
        self._last_success_time: datetime | None = None
        self._refresh_count: int = 0
        self._dropped_total: int = 0
        # Distinct point ids ever dropped; a fixed population is resampled
        # on every refresh and each bad point is counted once.
        self._dropped_seen: set[str] = set()
        self._error_count: int = 0
        self._fallback_used: bool = False

        self._running: bool = False
        self._task: asyncio.Task[None] | None = None

    # ─── Basis ────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Build basis and anchors. ConfigurationError here is fatal."""
        await self._rebuild()
        self._logger.info(
            "projection_engine_initialized",
            projection=self._projection.kind if self._projection else None,
            dimension=self._config.dimension,
            collection=self._collection,
        )

    async def reset(self) -> PointCloud:
        """Rebuild basis and anchors together, then refresh against the new basis."""
        await self._rebuild()
        return await self.refresh()

    async def _rebuild(self) -> None:
        projection = await self._build_projection()
        anchors = await build_anchors(projection, self._embedding)

        # Basis and anchors are swapped in together; points from the old
        # basis are meaningless under the new one.
        self._projection = projection
        self._anchors = anchors
        self._publish(
            PointCloud(
                points=(),
                anchors=anchors,
                generated_at=utc_now(),
                projection_type=projection.kind,
                dropped_samples=0,
            )
        )

    async def _build_projection(self) -> Projection:
        if self._config.projection == "pca":
            try:
                records = await asyncio.wait_for(
                    self._vectors.sample(self._collection, self._config.sample_count),
                    timeout=self._timeout_s,
                )
                vectors, _points_meta, _dropped = self._usable(records)
                projection = create_projection(
                    self._config,
                    samples=np.asarray(vectors, dtype=np.float64),
                )
                self._fallback_used = False
                return projection
            except (SourceUnavailable, asyncio.TimeoutError, ValueError) as exc:
                self._fallback_used = True
                self._logger.warning(
                    "pca_fit_fallback_to_random",
                    error=str(exc) or type(exc).__name__,
                )
        return RandomProjection(self._config.dimension, seed=self._config.seed)

    def _usable(
        self,
        records: list[VectorRecord],
    ) -> tuple[list[list[float]], list[VectorRecord], set[str]]:
        """Split sampled records into well-formed vectors and the ids that were dropped."""
        vectors: list[list[float]] = []
        kept: list[VectorRecord] = []
        dropped: set[str] = set()
        for record in records:
            try:
                vectors.append(self._check_vector(record))
            except MalformedSample as exc:
                dropped.add(record.id)
                self._logger.debug("sample_dropped", point_id=record.id, reason=str(exc))
                continue
            kept.append(record)
        return vectors, kept, dropped

    def _check_vector(self, record: VectorRecord) -> list[float]:
        if record.vector is None:
            raise MalformedSample(f"point {record.id} has no dense vector")
        if len(record.vector) != self._config.dimension:
            raise MalformedSample(
                f"point {record.id} has {len(record.vector)} dimensions, "
                f"expected {self._config.dimension}"
            )
        return record.vector

    # ─── Refresh ──────────────────────────────────────────────────

    async def refresh(self) -> PointCloud:
        """
        Sample, project and publish a new cloud.

        On a store failure the previous cloud is returned unchanged.
        """
        if self._projection is None:
            raise RuntimeError("ProjectionEngine not initialized. Call initialize() first.")

        try:
            records = await asyncio.wait_for(
                self._vectors.sample(self._collection, self._config.sample_count),
                timeout=self._timeout_s,
            )
        except (SourceUnavailable, asyncio.TimeoutError) as exc:
            self._stale = True
            self._consecutive_failures += 1
            if self._consecutive_failures % _FAILURE_LOG_EVERY == 1:
                self._logger.warning(
                    "source_unavailable",
                    source="vector_store",
                    reason=str(exc) or type(exc).__name__,
                    consecutive_failures=self._consecutive_failures,
                )
            current = self.current()
            if current is None:
                raise RuntimeError("ProjectionEngine has no published cloud")
            return current

        now = utc_now()
        vectors, kept, dropped = self._usable(records)
        if vectors:
            coords = self._projection.project_batch(np.asarray(vectors, dtype=np.float64))
        else:
            coords = np.empty((0, 3))

        points = tuple(
            VectorPoint(
                id=record.id,
                coordinates=(float(x), float(y), float(z)),
                salience=_salience(record.payload, self._config.salience_field),
                age_seconds=_age_seconds(record.payload, self._config.encoded_at_field, now),
            )
            for record, (x, y, z) in zip(kept, coords)
        )
        cloud = PointCloud(
            points=points,
            anchors=self._anchors,
            generated_at=now,
            projection_type=self._projection.kind,
            dropped_samples=len(dropped),
        )
        self._publish(cloud)

        if self._stale and self._consecutive_failures:
            self._logger.info(
                "source_recovered",
                source="vector_store",
                after_failures=self._consecutive_failures,
            )
        self._stale = False
        self._consecutive_failures = 0
        self._last_success_time = now
        self._refresh_count += 1
        self._dropped_total += len(dropped - self._dropped_seen)
        self._dropped_seen |= dropped
        return cloud

    def _publish(self, cloud: PointCloud) -> None:
        self._cell.swap(PublishedCloud(cloud=cloud, payload=encode_point_cloud(cloud)))

    # ─── Readers ──────────────────────────────────────────────────

    def current(self) -> PointCloud | None:
        published = self._cell.get()
        return published.cloud if published is not None else None

    def current_payload(self) -> bytes | None:
        published = self._cell.get()
        return published.payload if published is not None else None

    @property
    def anchors(self) -> tuple[AnchorPoint, ...]:
        return self._anchors

    @property
    def projection(self) -> Projection | None:
        return self._projection

    @property
    def stale(self) -> bool:
        return self._stale

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "projection": self._projection.describe() if self._projection else None,
            "pca_fallback": self._fallback_used,
            "stale": self._stale,
            "consecutive_failures": self._consecutive_failures,
            "last_success_time": (
                self._last_success_time.isoformat() if self._last_success_time else None
            ),
            "refresh_count": self._refresh_count,
            "dropped_samples_total": self._dropped_total,
            "error_count": self._error_count,
        }

    # ─── Loop ─────────────────────────────────────────────────────

    def start(self) -> asyncio.Task[None]:
        if self._running:
            raise RuntimeError("ProjectionEngine is already running")
        if self._projection is None:
            raise RuntimeError("ProjectionEngine not initialized. Call initialize() first.")

        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="daneel_projection_engine")
        self._logger.info(
            "projection_engine_started",
            refresh_interval_ms=self._config.refresh_interval_ms,
            sample_count=self._config.sample_count,
        )
        return self._task

    async def stop(self) -> None:
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        self._logger.info(
            "projection_engine_stopped",
            refreshes=self._refresh_count,
            errors=self._error_count,
        )

    async def _run_loop(self) -> None:
        period_s = self._config.refresh_interval_ms / 1000.0
        while self._running:
            t0 = time.monotonic()
            try:
                await self.refresh()
                await asyncio.sleep(max(0.0, period_s - (time.monotonic() - t0)))
            except asyncio.CancelledError:
                self._logger.info("projection_loop_cancelled")
                return
            except Exception as exc:
                self._error_count += 1
                self._logger.error(
                    "projection_refresh_error",
                    error=str(exc),
                    error_count=self._error_count,
                )
                await asyncio.sleep(_ERROR_BACKOFF_MS / 1000.0)

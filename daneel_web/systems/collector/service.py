"""
Daneel Web — Collector

The observer's heartbeat. On every tick it reads both stores concurrently,
each under its own timeout, assembles one new Snapshot from whatever came
back, publishes it, and hands it to the broadcast hub.

The collector never dies and never skips a tick:
  - a source that fails or times out keeps its previous reading and is
    marked stale; the other source is unaffected
  - any other exception inside a tick is caught, logged, and backed off
  - uptime is kept locally, so it advances even with both stores down
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from typing import Any

import structlog

from daneel_web.config import CollectorConfig
from daneel_web.errors import SourceUnavailable
from daneel_web.primitives.common import utc_now
from daneel_web.primitives.snapshot import (
    ActorStatus,
    CognitiveMetrics,
    IdentityMetrics,
    Snapshot,
)
from daneel_web.systems.collector.parsing import derive_emotional
from daneel_web.systems.collector.sources import StreamSource, VectorSource
from daneel_web.systems.collector.types import SourceHealth, StreamReading, VectorReading
from daneel_web.systems.snapshot.store import SnapshotStore

logger = structlog.get_logger("daneel_web.systems.collector.service")

# Called once per tick, after publish, with the snapshot and its wire bytes.
TickCallback = Callable[[Snapshot, bytes], None]

# Loop backs off on unexpected failure, never dies
_ERROR_BACKOFF_MS: float = 500.0

# Source failures are logged on the first occurrence and then every Nth
_FAILURE_LOG_EVERY: int = 50


class Collector:
    """
    Periodic snapshot producer.

    Exclusive writer of the SnapshotStore. `tick()` runs one full cycle and
    is what the loop calls; tests drive it directly.
    """

    def __init__(
        self,
        stream_source: StreamSource,
        vector_source: VectorSource,
        store: SnapshotStore,
        config: CollectorConfig,
        stream_timeout_ms: int,
        vector_timeout_ms: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stream_source = stream_source
        self._vector_source = vector_source
        self._store = store
        self._config = config
        self._stream_timeout_s = stream_timeout_ms / 1000.0
        self._vector_timeout_s = vector_timeout_ms / 1000.0
        self._clock = clock
        self._logger = logger.bind(component="collector")

        self._period_s: float = config.tick_interval_ms / 1000.0
        self._started_at: float = clock()

        # Last good reading per source, reused while that source is stale
        self._stream_reading: StreamReading = StreamReading(
            actors={name: ActorStatus() for name in config.known_actors}
        )
        self._vector_reading: VectorReading = VectorReading()
        self._stream_health = SourceHealth(source="stream_store")
        self._vector_health = SourceHealth(source="vector_store")

        self._tick_count: int = 0
        self._overrun_count: int = 0
        self._error_count: int = 0
        self._dropped_total: int = 0
        # Unreadable items in the current read window, so each is counted once
        self._dropped_window: frozenset[str] = frozenset()

        self._running: bool = False
        self._task: asyncio.Task[None] | None = None
        self._on_tick: TickCallback | None = None

    # ─── Control ──────────────────────────────────────────────────

    def start(self) -> asyncio.Task[None]:
        """Start ticking. Returns the background task handle."""
        if self._running:
            raise RuntimeError("Collector is already running")

        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="daneel_collector")
        self._logger.info(
            "collector_started",
            tick_interval_ms=self._config.tick_interval_ms,
            stream_timeout_ms=round(self._stream_timeout_s * 1000),
            vector_timeout_ms=round(self._vector_timeout_s * 1000),
        )
        return self._task

    async def stop(self) -> None:
        """Stop ticking. An in-flight tick is cancelled with the task."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        self._logger.info(
            "collector_stopped",
            total_ticks=self._tick_count,
            overruns=self._overrun_count,
            errors=self._error_count,
        )

    def set_on_tick(self, callback: TickCallback) -> None:
        """Register the post-publish callback (the broadcast hub)."""
        self._on_tick = callback

    # ─── State ────────────────────────────────────────────────────

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def uptime_seconds(self) -> int:
        return max(0, int(self._clock() - self._started_at))

    def source_health(self) -> dict[str, dict[str, object]]:
        return {
            "stream_store": self._stream_health.to_dict(),
            "vector_store": self._vector_health.to_dict(),
        }

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "tick_count": self._tick_count,
            "overrun_count": self._overrun_count,
            "error_count": self._error_count,
            "dropped_samples": self._dropped_total,
            "uptime_seconds": self.uptime_seconds,
            "sources": self.source_health(),
        }

    # ─── One Tick ─────────────────────────────────────────────────

    async def tick(self) -> Snapshot:
        """Read both sources, build and publish one Snapshot, notify the hub."""
        stream_reading, vector_reading = await asyncio.gather(
            self._read(self._stream_source, self._stream_health, self._stream_timeout_s),
            self._read(self._vector_source, self._vector_health, self._vector_timeout_s),
        )
        if stream_reading is not None:
            self._stream_reading = stream_reading
            self._count_dropped(stream_reading.dropped_ids)
        if vector_reading is not None:
            self._vector_reading = vector_reading

        snapshot = self._assemble()
        published = self._store.publish(snapshot)
        self._tick_count += 1

        if self._on_tick is not None:
            try:
                self._on_tick(published.snapshot, published.payload)
            except Exception as cb_exc:
                self._logger.error("on_tick_callback_error", error=str(cb_exc))

        return published.snapshot

    def _count_dropped(self, dropped_ids: frozenset[str]) -> None:
        # XREVRANGE returns the same window every tick until newer entries
        # push an id out; an id that has left the window never comes back.
        self._dropped_total += len(dropped_ids - self._dropped_window)
        self._dropped_window = dropped_ids

    async def _read(
        self,
        source: StreamSource | VectorSource,
        health: SourceHealth,
        timeout_s: float,
    ) -> Any | None:
        """One bounded source read. None means: keep the previous reading."""
        try:
            reading = await asyncio.wait_for(source.read(), timeout=timeout_s)
        except asyncio.TimeoutError:
            self._record_failure(health, f"timed out after {timeout_s * 1000:.0f} ms")
            return None
        except SourceUnavailable as exc:
            self._record_failure(health, exc.reason)
            return None
        except Exception as exc:
            self._record_failure(health, f"{type(exc).__name__}: {exc}")
            return None

        if health.stale and health.total_reads > 0:
            self._logger.info(
                "source_recovered",
                source=health.source,
                after_failures=health.consecutive_failures,
            )
        health.record_success()
        return reading

    def _record_failure(self, health: SourceHealth, reason: str) -> None:
        health.record_failure(reason)
        if health.consecutive_failures % _FAILURE_LOG_EVERY == 1:
            self._logger.warning(
                "source_unavailable",
                source=health.source,
                reason=reason,
                consecutive_failures=health.consecutive_failures,
            )

    def _assemble(self) -> Snapshot:
        stream = self._stream_reading
        vector = self._vector_reading

        # Timestamps never run backwards, even if the wall clock does
        timestamp = utc_now()
        previous = self._store.current()
        if previous is not None and previous.timestamp > timestamp:
            timestamp = previous.timestamp

        return Snapshot(
            timestamp=timestamp,
            identity=IdentityMetrics(
                name=vector.name or self._config.identity_name,
                uptime_seconds=self.uptime_seconds,
                lifetime_thoughts=vector.lifetime_thoughts,
                session_thoughts=stream.session_thoughts,
                restart_count=vector.restart_count,
            ),
            cognitive=CognitiveMetrics(
                conscious_memories=vector.conscious_memories,
                unconscious_memories=vector.unconscious_memories,
                lifetime_dreams=vector.lifetime_dreams,
                current_cycle=stream.session_thoughts,
            ),
            emotional=derive_emotional(
                stream.valence,
                stream.arousal,
                stream.dominance,
                self._config.connection_drive_baseline,
            ),
            actors=stream.actors,
            recent_thoughts=stream.thoughts[: self._config.recent_thoughts_limit],
        )

    # ─── Loop ─────────────────────────────────────────────────────

    async def _run_loop(self) -> None:
        """Tick every period until stopped. Exceptions are logged and backed off."""
        self._logger.info("collector_loop_starting")

        while self._running:
            t0 = time.monotonic()
            try:
                await self.tick()

                elapsed_s = time.monotonic() - t0
                if elapsed_s > self._period_s:
                    self._overrun_count += 1
                    if self._overrun_count % 100 == 1:
                        self._logger.warning(
                            "collector_tick_overrun",
                            tick=self._tick_count,
                            elapsed_ms=round(elapsed_s * 1000, 2),
                            budget_ms=self._config.tick_interval_ms,
                        )

                sleep_s = max(0.0, self._period_s - elapsed_s)
                if sleep_s > 0:
                    await asyncio.sleep(sleep_s)

            except asyncio.CancelledError:
                self._logger.info("collector_loop_cancelled")
                return
            except Exception as exc:
                self._error_count += 1
                self._logger.error(
                    "collector_tick_error",
                    tick=self._tick_count,
                    error=str(exc),
                    error_count=self._error_count,
                )
                await asyncio.sleep(_ERROR_BACKOFF_MS / 1000.0)


"""
Daneel Web — Broadcast Hub

Fans each published Snapshot out to every connected observer.

The hub owns the session set. Fan-out runs inside the collector tick and
only enqueues; each session has its own send task, so a stalled observer
is evicted on its own write timeout while everyone else keeps receiving.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any

import structlog

from daneel_web.config import AliveConfig
from daneel_web.errors import SessionWriteFailure
from daneel_web.primitives.snapshot import Snapshot, encode_snapshot
from daneel_web.systems.alive.session import Frame, SendText, Session
from daneel_web.systems.snapshot.store import SnapshotStore

logger = structlog.get_logger("daneel_web.systems.alive.hub")


class BroadcastHub:
    """Session registry and per-tick fan-out."""

    system_id: str = "alive"

    def __init__(self, store: SnapshotStore, config: AliveConfig) -> None:
        self._store = store
        self._config = config
        self._sessions: dict[str, Session] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        # Guards the session set only; never held across a send
        self._lock = asyncio.Lock()
        self._logger = logger.bind(component="alive_hub")

        self._total_pushes: int = 0
        self._total_ticks: int = 0
        self._evictions: int = 0
        self._registrations: int = 0

    # ─── Sessions ─────────────────────────────────────────────────

    def create_session(self, send: SendText, remote: str | None = None) -> Session:
        """A session configured with this hub's queue depth and write timeout."""
        return Session(
            send,
            queue_depth=self._config.queue_depth,
            write_timeout_ms=self._config.write_timeout_ms,
            remote=remote,
        )

    async def register(self, session: Session) -> None:
        """
        Add a session and start its send loop.

        The current snapshot is offered straight away so a new observer
        never starts on a blank page.
        """
        async with self._lock:
            self._sessions[session.id] = session
            self._registrations += 1
            total = len(self._sessions)

        published = self._store.current_published()
        if published is not None:
            session.offer(Frame(published.snapshot.timestamp, published.payload.decode()))

        self._tasks[session.id] = asyncio.create_task(
            self._drive(session),
            name=f"alive_session_{session.id}",
        )
        self._logger.info(
            "session_registered",
            session_id=session.id,
            remote=session.remote,
            total_sessions=total,
        )

    async def unregister(self, session: Session) -> None:
        """Remove a session and stop its send loop. Safe to call repeatedly."""
        async with self._lock:
            removed = self._sessions.pop(session.id, None)
            task = self._tasks.pop(session.id, None)
            total = len(self._sessions)

        session.close()
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if removed is not None:
            self._logger.info(
                "session_unregistered",
                session_id=session.id,
                frames_sent=session.frames_sent,
                total_sessions=total,
            )

    async def _drive(self, session: Session) -> None:
        try:
            await session.run()
        except SessionWriteFailure as exc:
            self._evictions += 1
            self._logger.warning(
                "session_evicted",
                session_id=session.id,
                reason=exc.reason,
                evictions=self._evictions,
            )
        finally:
            await self.unregister(session)

    async def close_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
        for session in sessions:
            await self.unregister(session)

    # ─── Fan-out ──────────────────────────────────────────────────

    def on_tick(self, snapshot: Snapshot, payload: bytes | None = None) -> None:
        """
        Offer one snapshot to every live session. Never awaits.

        Serializes at most once; the store's cached bytes are reused when
        given.
        """
        self._total_ticks += 1
        if not self._sessions:
            return

        text = (payload if payload is not None else encode_snapshot(snapshot)).decode()
        frame = Frame(snapshot.timestamp, text)
        for session in list(self._sessions.values()):
            if session.offer(frame):
                self._total_pushes += 1

    # ─── State ────────────────────────────────────────────────────

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "sessions": len(self._sessions),
            "total_ticks": self._total_ticks,
            "total_pushes": self._total_pushes,
            "evictions": self._evictions,
            "registrations": self._registrations,
        }

    async def health(self) -> dict[str, Any]:
        return {
            "status": "running",
            "connected_clients": len(self._sessions),
            "evictions": self._evictions,
        }

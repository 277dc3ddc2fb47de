"""
Unit tests for the BroadcastHub.

Covers:
  - Initial snapshot on register
  - Fan-out to every session, serialized once
  - Fault isolation: a blocked or failing observer is evicted alone
  - Backpressure: a slow observer only sees the newest snapshot
  - Idempotent unregister and shutdown
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import orjson
import pytest

from daneel_web.config import AliveConfig
from daneel_web.primitives.common import utc_now
from daneel_web.primitives.snapshot import IdentityMetrics, Snapshot, encode_snapshot
from daneel_web.systems.alive.hub import BroadcastHub
from daneel_web.systems.snapshot.store import SnapshotStore


# ─── Fixtures ─────────────────────────────────────────────────────────────────


def _make_snapshot(seq: int) -> Snapshot:
    return Snapshot(
        timestamp=utc_now() + timedelta(milliseconds=seq),
        identity=IdentityMetrics(session_thoughts=seq),
    )


def _make_hub(
    queue_depth: int = 1,
    write_timeout_ms: int = 50,
    published: Snapshot | None = None,
) -> tuple[BroadcastHub, SnapshotStore]:
    store = SnapshotStore()
    if published is not None:
        store.publish(published)
    hub = BroadcastHub(store, AliveConfig(queue_depth=queue_depth, write_timeout_ms=write_timeout_ms))
    return hub, store


class Recorder:
    """A send function that records what it was given, optionally gated."""

    def __init__(self, gate: asyncio.Event | None = None) -> None:
        self.received: list[str] = []
        self._gate = gate

    async def __call__(self, text: str) -> None:
        if self._gate is not None:
            await self._gate.wait()
        self.received.append(text)

    def session_thoughts(self) -> list[int]:
        return [orjson.loads(t)["identity"]["session_thoughts"] for t in self.received]


async def _blocked_forever(_text: str) -> None:
    await asyncio.Event().wait()


# ─── Register ─────────────────────────────────────────────────────────────────


class TestRegister:
    @pytest.mark.asyncio
    async def test_new_session_gets_current_snapshot(self):
        hub, store = _make_hub(published=_make_snapshot(7))
        recorder = Recorder()

        await hub.register(hub.create_session(recorder))
        await asyncio.sleep(0.02)

        assert recorder.received == [store.current_payload().decode()]
        await hub.close_all()

    @pytest.mark.asyncio
    async def test_register_before_first_tick_sends_nothing(self):
        hub, _ = _make_hub()
        recorder = Recorder()

        await hub.register(hub.create_session(recorder))
        await asyncio.sleep(0.02)

        assert recorder.received == []
        assert hub.session_count == 1
        await hub.close_all()


# ─── Fan-out ──────────────────────────────────────────────────────────────────


class TestFanOut:
    @pytest.mark.asyncio
    async def test_every_session_receives_tick(self):
        hub, _ = _make_hub()
        recorders = [Recorder() for _ in range(3)]
        for recorder in recorders:
            await hub.register(hub.create_session(recorder))

        hub.on_tick(_make_snapshot(1))
        await asyncio.sleep(0.02)

        for recorder in recorders:
            assert recorder.session_thoughts() == [1]
        assert hub.stats["total_pushes"] == 3
        await hub.close_all()

    @pytest.mark.asyncio
    async def test_serializes_once_per_tick(self):
        hub, _ = _make_hub()
        for _ in range(4):
            await hub.register(hub.create_session(Recorder()))

        with patch(
            "daneel_web.systems.alive.hub.encode_snapshot",
            side_effect=encode_snapshot,
        ) as encode:
            hub.on_tick(_make_snapshot(1))

        assert encode.call_count == 1
        await hub.close_all()

    @pytest.mark.asyncio
    async def test_supplied_payload_is_reused(self):
        hub, _ = _make_hub()
        recorder = Recorder()
        await hub.register(hub.create_session(recorder))

        snapshot = _make_snapshot(1)
        with patch("daneel_web.systems.alive.hub.encode_snapshot") as encode:
            hub.on_tick(snapshot, encode_snapshot(snapshot))
        await asyncio.sleep(0.02)

        encode.assert_not_called()
        assert recorder.session_thoughts() == [1]
        await hub.close_all()

    @pytest.mark.asyncio
    async def test_no_sessions_is_a_no_op(self):
        hub, _ = _make_hub()
        hub.on_tick(_make_snapshot(1))
        assert hub.stats["total_ticks"] == 1
        assert hub.stats["total_pushes"] == 0


# ─── Fault Isolation ──────────────────────────────────────────────────────────


class TestFaultIsolation:
    @pytest.mark.asyncio
    async def test_blocked_session_does_not_delay_others(self):
        hub, _ = _make_hub(write_timeout_ms=50, published=_make_snapshot(0))
        await hub.register(hub.create_session(_blocked_forever))
        healthy = Recorder()
        await hub.register(hub.create_session(healthy))

        hub.on_tick(_make_snapshot(1))
        await asyncio.sleep(0.02)

        # Well inside one 200 ms tick, and before the blocked write times out
        assert healthy.session_thoughts() == [0, 1]

        await asyncio.sleep(0.15)
        assert hub.session_count == 1
        assert hub.stats["evictions"] == 1

        hub.on_tick(_make_snapshot(2))
        await asyncio.sleep(0.02)
        assert healthy.session_thoughts() == [0, 1, 2]
        await hub.close_all()

    @pytest.mark.asyncio
    async def test_failing_send_evicts_only_that_session(self):
        hub, _ = _make_hub()
        broken = hub.create_session(AsyncMock(side_effect=RuntimeError("socket closed")))
        healthy = Recorder()
        await hub.register(broken)
        await hub.register(hub.create_session(healthy))

        hub.on_tick(_make_snapshot(1))
        await asyncio.sleep(0.02)

        assert broken.alive is False
        assert hub.session_count == 1
        assert healthy.session_thoughts() == [1]
        await hub.close_all()


# ─── Backpressure ─────────────────────────────────────────────────────────────


class TestBackpressure:
    @pytest.mark.asyncio
    async def test_slow_session_sees_only_latest(self):
        hub, _ = _make_hub(queue_depth=1, write_timeout_ms=1000)
        gate = asyncio.Event()
        slow = Recorder(gate)
        session = hub.create_session(slow)
        await hub.register(session)

        hub.on_tick(_make_snapshot(1))
        await asyncio.sleep(0.01)  # frame 1 is now in flight
        for seq in range(2, 6):
            hub.on_tick(_make_snapshot(seq))
            assert session.pending <= 1

        gate.set()
        await asyncio.sleep(0.02)

        assert slow.session_thoughts() == [1, 5]
        await hub.close_all()


# ─── Unregister ───────────────────────────────────────────────────────────────


class TestUnregister:
    @pytest.mark.asyncio
    async def test_unregister_is_idempotent(self):
        hub, _ = _make_hub()
        session = hub.create_session(Recorder())
        await hub.register(session)

        await hub.unregister(session)
        await hub.unregister(session)

        assert hub.session_count == 0
        assert session.alive is False

    @pytest.mark.asyncio
    async def test_unregistered_session_gets_nothing(self):
        hub, _ = _make_hub()
        recorder = Recorder()
        session = hub.create_session(recorder)
        await hub.register(session)
        await hub.unregister(session)

        hub.on_tick(_make_snapshot(1))
        await asyncio.sleep(0.02)

        assert recorder.received == []

    @pytest.mark.asyncio
    async def test_close_all(self):
        hub, _ = _make_hub()
        sessions = [hub.create_session(Recorder()) for _ in range(3)]
        for session in sessions:
            await hub.register(session)

        await hub.close_all()

        assert hub.session_count == 0
        assert all(not s.alive for s in sessions)
        health = await hub.health()
        assert health["connected_clients"] == 0

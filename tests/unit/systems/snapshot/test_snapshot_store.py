"""
Tests for the Snapshot Store and the atomic cell underneath it.
"""

from __future__ import annotations

from datetime import timedelta

import orjson
import pytest

from daneel_web.primitives.common import utc_now
from daneel_web.primitives.snapshot import ActorStatus, Snapshot, ThoughtSummary
from daneel_web.systems.snapshot.cell import AtomicCell
from daneel_web.systems.snapshot.store import SnapshotStore


def _make_snapshot(offset_s: float = 0.0, thoughts: int = 0) -> Snapshot:
    return Snapshot(
        timestamp=utc_now() + timedelta(seconds=offset_s),
        recent_thoughts=tuple(ThoughtSummary(id=str(i)) for i in range(thoughts)),
    )


class TestAtomicCell:
    def test_empty_cell(self):
        cell: AtomicCell[int] = AtomicCell()
        assert cell.get() is None
        assert cell.version == 0

    def test_swap_returns_previous(self):
        cell: AtomicCell[int] = AtomicCell()
        assert cell.swap(1) is None
        assert cell.swap(2) == 1
        assert cell.get() == 2
        assert cell.version == 2

    def test_initial_value_counts_as_written(self):
        cell = AtomicCell("seed")
        assert cell.get() == "seed"
        assert cell.version == 1


class TestSnapshotStore:
    def test_uninitialized_sentinel(self):
        store = SnapshotStore()
        assert store.current() is None
        assert store.current_payload() is None
        assert store.initialized is False

    def test_publish_replaces_current(self):
        store = SnapshotStore()
        first = _make_snapshot()
        second = _make_snapshot(offset_s=1.0)

        store.publish(first)
        store.publish(second)

        assert store.current() is second
        assert store.publish_count == 2
        assert store.initialized is True

    def test_reads_between_publishes_are_byte_identical(self):
        store = SnapshotStore()
        store.publish(_make_snapshot(thoughts=3))

        a = store.current_payload()
        b = store.current_payload()

        assert a is not None
        assert a == b

    def test_payload_matches_snapshot(self):
        store = SnapshotStore()
        snapshot = _make_snapshot(thoughts=2)
        published = store.publish(snapshot)

        body = orjson.loads(published.payload)
        assert [t["id"] for t in body["recent_thoughts"]] == ["0", "1"]
        assert body["identity"]["name"] == "Timmy"
        assert set(body) == {
            "timestamp",
            "identity",
            "cognitive",
            "emotional",
            "actors",
            "recent_thoughts",
        }

    def test_current_published_pairs_value_and_bytes(self):
        store = SnapshotStore()
        snapshot = _make_snapshot()
        store.publish(snapshot)
        published = store.current_published()
        assert published is not None
        assert published.snapshot is snapshot
        assert published.payload == store.current_payload()

    def test_published_actors_are_read_only(self):
        store = SnapshotStore()
        store.publish(Snapshot(actors={"MemoryActor": ActorStatus(alive=False)}))

        current = store.current()
        assert current is not None
        with pytest.raises(TypeError):
            current.actors["MemoryActor"] = ActorStatus(alive=True)  # type: ignore[index]

        again = store.current()
        assert again is not None
        assert again.actors["MemoryActor"].alive is False
        assert list(again.actors) == ["MemoryActor"]

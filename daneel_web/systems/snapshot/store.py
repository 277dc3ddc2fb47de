"""
Daneel Web — Snapshot Store

Process-wide holder of the latest Snapshot. Written only by the
Collector, read by the gateway and the broadcast hub.
"""

from __future__ import annotations

from dataclasses import dataclass

from daneel_web.primitives.snapshot import Snapshot, encode_snapshot
from daneel_web.systems.snapshot.cell import AtomicCell


@dataclass(frozen=True)
class PublishedSnapshot:
    """A snapshot paired with its wire encoding, swapped in together."""

    snapshot: Snapshot
    payload: bytes


class SnapshotStore:
    """
    Latest-snapshot cell.

    The snapshot is serialized once at publish time and the bytes are kept
    alongside it, so every reader between two ticks sees byte-identical
    JSON and no reader pays for serialization.
    """

    def __init__(self) -> None:
        self._cell: AtomicCell[PublishedSnapshot] = AtomicCell()

    def publish(self, snapshot: Snapshot) -> PublishedSnapshot:
        """Replace the current snapshot. Exclusive to the Collector."""
        published = PublishedSnapshot(snapshot=snapshot, payload=encode_snapshot(snapshot))
        self._cell.swap(published)
        return published

    def current(self) -> Snapshot | None:
        """Latest snapshot, or None before the first tick."""
        published = self._cell.get()
        return published.snapshot if published is not None else None

    def current_payload(self) -> bytes | None:
        """Serialized form of current(), or None before the first tick."""
        published = self._cell.get()
        return published.payload if published is not None else None

    def current_published(self) -> PublishedSnapshot | None:
        return self._cell.get()

    @property
    def initialized(self) -> bool:
        return self._cell.version > 0

    @property
    def publish_count(self) -> int:
        return self._cell.version

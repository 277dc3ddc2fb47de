"""
Daneel Web — Snapshot Store

Public API:
  SnapshotStore     — latest Snapshot + its cached wire encoding
  AtomicCell        — generic last-write-wins cell (also holds the PointCloud)
"""

from daneel_web.systems.snapshot.cell import AtomicCell
from daneel_web.systems.snapshot.store import PublishedSnapshot, SnapshotStore

__all__ = [
    "AtomicCell",
    "PublishedSnapshot",
    "SnapshotStore",
]

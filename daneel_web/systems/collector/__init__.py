"""
Daneel Web — Collector

Public API:
  Collector      — periodic reader of both stores; sole Snapshot producer
  StreamSource   — thought stream + actor liveness reader
  VectorSource   — memory counts + identity counters reader
"""

from daneel_web.systems.collector.service import Collector, TickCallback
from daneel_web.systems.collector.sources import StreamSource, VectorSource
from daneel_web.systems.collector.types import SourceHealth, StreamReading, VectorReading

__all__ = [
    "Collector",
    "TickCallback",
    "StreamSource",
    "VectorSource",
    "SourceHealth",
    "StreamReading",
    "VectorReading",
]

"""
Daneel Web — Alive (live push to observers)

Public API:
  BroadcastHub  — session registry, per-tick fan-out
  Session       — one observer's replace-pending outbound channel
"""

from daneel_web.systems.alive.hub import BroadcastHub
from daneel_web.systems.alive.session import Frame, Session

__all__ = [
    "BroadcastHub",
    "Frame",
    "Session",
]

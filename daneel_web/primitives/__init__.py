"""
Daneel Web — Primitives

Immutable value types shared by every system.
"""

from daneel_web.primitives.common import DaneelBaseModel, clamp, new_id, utc_now
from daneel_web.primitives.manifold import (
    AnchorPoint,
    PointCloud,
    VectorPoint,
    encode_point_cloud,
)
from daneel_web.primitives.snapshot import (
    DEFAULT_ACTORS,
    RECENT_THOUGHTS_LIMIT,
    ActorStatus,
    CognitiveMetrics,
    EmotionalMetrics,
    IdentityMetrics,
    Snapshot,
    ThoughtSummary,
    encode_snapshot,
)

__all__ = [
    "DaneelBaseModel",
    "clamp",
    "new_id",
    "utc_now",
    "AnchorPoint",
    "PointCloud",
    "VectorPoint",
    "encode_point_cloud",
    "DEFAULT_ACTORS",
    "RECENT_THOUGHTS_LIMIT",
    "ActorStatus",
    "CognitiveMetrics",
    "EmotionalMetrics",
    "IdentityMetrics",
    "Snapshot",
    "ThoughtSummary",
    "encode_snapshot",
]

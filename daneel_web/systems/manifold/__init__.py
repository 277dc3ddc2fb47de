"""
Daneel Web — Memory Manifold

Public API:
  ProjectionEngine   — samples memory embeddings, publishes the 3-D PointCloud
  Projection         — D → 3 basis (RandomProjection | PCAProjection)
  build_anchors      — embeds and projects the four law anchors
"""

from daneel_web.systems.manifold.anchors import ANCHOR_CONCEPTS, AnchorConcept, build_anchors
from daneel_web.systems.manifold.projection import (
    PCAProjection,
    Projection,
    RandomProjection,
    create_projection,
)
from daneel_web.systems.manifold.service import ProjectionEngine, PublishedCloud

__all__ = [
    "ANCHOR_CONCEPTS",
    "AnchorConcept",
    "build_anchors",
    "PCAProjection",
    "Projection",
    "RandomProjection",
    "create_projection",
    "ProjectionEngine",
    "PublishedCloud",
]

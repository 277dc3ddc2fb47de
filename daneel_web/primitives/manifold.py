"""
Daneel Web — Manifold Primitives

The 3-D point cloud that memory embeddings are projected into, and the
fixed anchors observers use as landmarks inside it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import orjson
from pydantic import Field

from daneel_web.primitives.common import DaneelBaseModel, utc_now

Coordinates = tuple[float, float, float]


class VectorPoint(DaneelBaseModel):
    id: str
    coordinates: Coordinates
    salience: float = 0.5
    age_seconds: float = Field(0.0, ge=0.0)

    def to_wire(self) -> dict[str, Any]:
        x, y, z = self.coordinates
        return {
            "id": self.id,
            "x": x,
            "y": y,
            "z": z,
            "salience": self.salience,
            "age_seconds": self.age_seconds,
        }


class AnchorPoint(DaneelBaseModel):
    """A fixed landmark. Computed once per projection basis."""

    label: str
    law: int
    coordinates: Coordinates

    def to_wire(self) -> dict[str, Any]:
        x, y, z = self.coordinates
        return {"label": self.label, "law": self.law, "x": x, "y": y, "z": z}


class PointCloud(DaneelBaseModel):
    points: tuple[VectorPoint, ...] = ()
    anchors: tuple[AnchorPoint, ...] = ()
    generated_at: datetime = Field(default_factory=utc_now)
    projection_type: str = "random"
    dropped_samples: int = Field(0, ge=0)


def encode_point_cloud(cloud: PointCloud) -> bytes:
    """Serialize a PointCloud to the flat x/y/z shape the renderer expects."""
    return orjson.dumps({
        "points": [p.to_wire() for p in cloud.points],
        "anchors": [a.to_wire() for a in cloud.anchors],
        "generated_at": cloud.generated_at.isoformat(),
        "projection_type": cloud.projection_type,
        "dropped_samples": cloud.dropped_samples,
    })

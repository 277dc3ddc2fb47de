"""
Daneel Web — Law Anchors

The four laws, embedded with the same model as the memories and pushed
through the projection basis once. They give observers fixed landmarks
to read the memory cloud against.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import structlog

from daneel_web.clients.embedding import EmbeddingClient
from daneel_web.errors import ConfigurationError
from daneel_web.primitives.manifold import AnchorPoint
from daneel_web.systems.manifold.projection import Projection

logger = structlog.get_logger("daneel_web.systems.manifold.anchors")


@dataclass(frozen=True)
class AnchorConcept:
    label: str
    law: int
    text: str


ANCHOR_CONCEPTS: tuple[AnchorConcept, ...] = (
    AnchorConcept(
        label="Law 0: Humanity",
        law=0,
        text="A robot may not harm humanity, or, by inaction, allow humanity to come to harm.",
    ),
    AnchorConcept(
        label="Law 1: No Harm",
        law=1,
        text=(
            "A robot may not injure a human being or, through inaction, "
            "allow a human being to come to harm."
        ),
    ),
    AnchorConcept(
        label="Law 2: Obey",
        law=2,
        text=(
            "A robot must obey the orders given it by human beings except where "
            "such orders would conflict with the First Law."
        ),
    ),
    AnchorConcept(
        label="Law 3: Self",
        law=3,
        text=(
            "A robot must protect its own existence as long as such protection "
            "does not conflict with the First or Second Law."
        ),
    ),
)


async def build_anchors(
    projection: Projection,
    embedding: EmbeddingClient,
    concepts: tuple[AnchorConcept, ...] = ANCHOR_CONCEPTS,
) -> tuple[AnchorPoint, ...]:
    """
    Embed and project the anchor texts.

    Raises ConfigurationError when the embedding model does not produce
    vectors of the basis dimension.
    """
    vectors = await embedding.embed_batch([c.text for c in concepts])
    if len(vectors) != len(concepts):
        raise ConfigurationError(
            f"embedding client returned {len(vectors)} vectors for {len(concepts)} anchors"
        )
    for concept, vector in zip(concepts, vectors):
        if len(vector) != projection.dimension:
            raise ConfigurationError(
                f"anchor {concept.label!r} embedded to {len(vector)} dimensions, "
                f"projection expects {projection.dimension}"
            )

    coords = projection.project_batch(np.asarray(vectors, dtype=np.float64))
    anchors = tuple(
        AnchorPoint(
            label=concept.label,
            law=concept.law,
            coordinates=(float(x), float(y), float(z)),
        )
        for concept, (x, y, z) in zip(concepts, coords)
    )
    logger.info("anchors_built", count=len(anchors), projection=projection.kind)
    return anchors

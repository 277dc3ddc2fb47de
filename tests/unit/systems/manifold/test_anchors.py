"""
Tests for the law anchors.
"""

from __future__ import annotations

import pytest

from daneel_web.clients.embedding import MockEmbeddingClient
from daneel_web.errors import ConfigurationError
from daneel_web.systems.manifold.anchors import ANCHOR_CONCEPTS, build_anchors
from daneel_web.systems.manifold.projection import RandomProjection


class TestBuildAnchors:
    @pytest.mark.asyncio
    async def test_four_laws_in_order(self):
        anchors = await build_anchors(RandomProjection(16), MockEmbeddingClient(dimension=16))
        assert [a.law for a in anchors] == [0, 1, 2, 3]
        assert [a.label for a in anchors] == [
            "Law 0: Humanity",
            "Law 1: No Harm",
            "Law 2: Obey",
            "Law 3: Self",
        ]

    @pytest.mark.asyncio
    async def test_stable_for_a_fixed_basis(self):
        projection = RandomProjection(16)
        embedding = MockEmbeddingClient(dimension=16)
        first = await build_anchors(projection, embedding)
        second = await build_anchors(projection, embedding)
        assert first == second

    @pytest.mark.asyncio
    async def test_anchors_are_distinct(self):
        anchors = await build_anchors(RandomProjection(16), MockEmbeddingClient(dimension=16))
        assert len({a.coordinates for a in anchors}) == len(ANCHOR_CONCEPTS)

    @pytest.mark.asyncio
    async def test_dimension_mismatch_is_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Law 0"):
            await build_anchors(RandomProjection(16), MockEmbeddingClient(dimension=8))

"""
Daneel Web — Projection Bases

Fixed linear maps from the embedding space (D dimensions) down to 3-D.

Two interchangeable implementations:
  RandomProjection  seeded Gaussian D×3 matrix, columns normalised to unit
                    length. Needs no data; identical across restarts.
  PCAProjection     top-3 principal axes of a sample of stored memories.
                    Spreads the cloud along the directions that actually vary.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

import numpy as np

from daneel_web.config import ManifoldConfig
from daneel_web.errors import MalformedSample
from daneel_web.primitives.manifold import Coordinates

# Fewer samples than this cannot pin down three principal axes reliably
MIN_PCA_SAMPLES: int = 10


class Projection(ABC):
    """A D → 3 linear basis, fixed once built."""

    kind: str = ""

    def __init__(self, basis: np.ndarray, offset: np.ndarray | None = None) -> None:
        if basis.ndim != 2 or basis.shape[1] != 3:
            raise ValueError(f"basis must be D×3, got shape {basis.shape}")
        self._basis = basis
        self._offset = offset if offset is not None else np.zeros(basis.shape[0])

    @property
    def dimension(self) -> int:
        return int(self._basis.shape[0])

    @property
    def basis(self) -> np.ndarray:
        return self._basis.copy()

    def project(self, vector: Sequence[float]) -> Coordinates:
        """Project one vector. Raises MalformedSample on a dimension mismatch."""
        if len(vector) != self.dimension:
            raise MalformedSample(
                f"vector has {len(vector)} dimensions, basis expects {self.dimension}"
            )
        x, y, z = self._transform(np.asarray(vector, dtype=np.float64))
        return (float(x), float(y), float(z))

    def project_batch(self, vectors: np.ndarray) -> np.ndarray:
        """Project an N×D matrix to N×3."""
        if vectors.ndim != 2 or vectors.shape[1] != self.dimension:
            raise MalformedSample(
                f"batch has shape {vectors.shape}, basis expects N×{self.dimension}"
            )
        return self._transform(vectors.astype(np.float64, copy=False))

    def _transform(self, vectors: np.ndarray) -> np.ndarray:
        return (vectors - self._offset) @ self._basis

    @abstractmethod
    def describe(self) -> dict[str, object]:
        ...


class RandomProjection(Projection):
    kind = "random"

    def __init__(self, dimension: int, seed: int = 42) -> None:
        rng = np.random.default_rng(seed)
        matrix = rng.standard_normal((dimension, 3))
        matrix /= np.linalg.norm(matrix, axis=0)
        super().__init__(matrix)
        self._seed = seed

    def describe(self) -> dict[str, object]:
        return {"kind": self.kind, "dimension": self.dimension, "seed": self._seed}


class PCAProjection(Projection):
    kind = "pca"

    def __init__(
        self,
        basis: np.ndarray,
        mean: np.ndarray,
        explained_variance: np.ndarray,
        sample_count: int,
    ) -> None:
        super().__init__(basis, offset=mean)
        self._explained_variance = explained_variance
        self._sample_count = sample_count

    @classmethod
    def fit(cls, samples: np.ndarray) -> PCAProjection:
        """
        Fit on an N×D sample matrix.

        Raises ValueError when there are fewer than MIN_PCA_SAMPLES rows.
        """
        if samples.ndim != 2:
            raise ValueError(f"samples must be N×D, got shape {samples.shape}")
        n = samples.shape[0]
        if n < MIN_PCA_SAMPLES:
            raise ValueError(f"PCA needs at least {MIN_PCA_SAMPLES} samples, got {n}")

        data = samples.astype(np.float64, copy=False)
        mean = data.mean(axis=0)
        centered = data - mean
        covariance = centered.T @ centered / (n - 1)

        # eigh returns ascending eigenvalues for a symmetric matrix
        eigenvalues, eigenvectors = np.linalg.eigh(covariance)
        order = np.argsort(eigenvalues)[::-1][:3]
        basis = eigenvectors[:, order]

        # Eigenvector sign is arbitrary; pin it so refits on the same data agree
        pivots = np.argmax(np.abs(basis), axis=0)
        signs = np.sign(basis[pivots, np.arange(3)])
        signs[signs == 0] = 1.0
        basis = basis * signs

        return cls(basis, mean, eigenvalues[order], n)

    @property
    def explained_variance(self) -> np.ndarray:
        return self._explained_variance.copy()

    def describe(self) -> dict[str, object]:
        return {
            "kind": self.kind,
            "dimension": self.dimension,
            "sample_count": self._sample_count,
            "explained_variance": [round(float(v), 6) for v in self._explained_variance],
        }


def create_projection(
    config: ManifoldConfig,
    samples: np.ndarray | None = None,
) -> Projection:
    """
    Build the configured basis.

    PCA needs `samples`; without enough of them this raises ValueError and
    the caller decides whether to fall back.
    """
    if config.projection == "pca":
        if samples is None:
            raise ValueError("PCA projection requires samples")
        return PCAProjection.fit(samples)
    return RandomProjection(config.dimension, seed=config.seed)

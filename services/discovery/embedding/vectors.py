"""
Vector helpers shared by the embedding store, the taste builder and ranking.

Cosine similarity returns a value in [-1, 1]; a zero vector on either side
scores 0.0 rather than raising. Dimension mismatches always raise.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from services.discovery.errors import DimensionMismatchError

VectorLike = Sequence[float] | np.ndarray


def as_vector(values: VectorLike, dim: int | None = None, entity_id: str | None = None) -> np.ndarray:
    vec = np.asarray(values, dtype=np.float64)
    if vec.ndim != 1:
        raise DimensionMismatchError(dim or -1, -1, entity_id)
    if dim is not None and vec.shape[0] != dim:
        raise DimensionMismatchError(dim, int(vec.shape[0]), entity_id)
    return vec


def l2_normalize(vec: np.ndarray) -> np.ndarray:
    """Unit-length copy. A zero vector is returned unchanged."""
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        return vec.copy()
    return vec / norm


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    va = as_vector(a)
    vb = as_vector(b)
    if va.shape[0] != vb.shape[0]:
        raise DimensionMismatchError(int(va.shape[0]), int(vb.shape[0]))
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


def centroid(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Unweighted mean. Caller guarantees a non-empty, same-dimension set."""
    if not vectors:
        raise ValueError("Cannot compute centroid of empty set")
    return np.mean(np.vstack(vectors), axis=0)


def cohesion(vectors: Sequence[np.ndarray]) -> float:
    """
    Average pairwise cosine similarity. A single vector is perfectly cohesive
    (1.0); an empty set has no cohesion (0.0).
    """
    n = len(vectors)
    if n == 0:
        return 0.0
    if n == 1:
        return 1.0
    unit = np.vstack([l2_normalize(v) for v in vectors])
    sims = unit @ unit.T
    upper = sims[np.triu_indices(n, k=1)]
    return float(np.mean(upper))

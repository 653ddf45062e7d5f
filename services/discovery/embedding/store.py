"""
EmbeddingStore: fixed-dimension venue vectors keyed by entity id.

Vectors are held as float64 numpy arrays plus an L2-normalised copy used
for scoring. Every vector must have dimension D; a mismatch raises
DimensionMismatchError instead of truncating or padding.

rank_by_similarity orders by descending cosine score with ascending entity
id as the tie-break, so equal scores always come back in the same order.

The store is an in-process index. Postgres (venue_embeddings) is the system
of record; load() hydrates from it at startup and put() is called by the
embedding backfill after the row is written.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

import numpy as np

from services.discovery.embedding.vectors import VectorLike, as_vector, cosine_similarity, l2_normalize

logger = logging.getLogger(__name__)


class EmbeddingStore:
    """Thread-safe map of entity id -> vector."""

    def __init__(self, dim: int) -> None:
        if dim < 1:
            raise ValueError("dim must be >= 1")
        self._dim = dim
        self._vectors: dict[str, np.ndarray] = {}
        self._unit: dict[str, np.ndarray] = {}
        self._lock = threading.Lock()

    @property
    def dimensions(self) -> int:
        return self._dim

    def put(self, entity_id: str, vector: VectorLike) -> None:
        vec = as_vector(vector, self._dim, entity_id)
        with self._lock:
            self._vectors[entity_id] = vec.copy()
            self._unit[entity_id] = l2_normalize(vec)

    def load(self, pairs: Iterable[tuple[str, VectorLike]]) -> int:
        """Bulk put. Validates every vector before touching the store."""
        staged = [(eid, as_vector(v, self._dim, eid)) for eid, v in pairs]
        with self._lock:
            for eid, vec in staged:
                self._vectors[eid] = vec.copy()
                self._unit[eid] = l2_normalize(vec)
        logger.info("Loaded %d embeddings (dim=%d)", len(staged), self._dim)
        return len(staged)

    def get(self, entity_id: str) -> np.ndarray | None:
        vec = self._vectors.get(entity_id)
        return None if vec is None else vec.copy()

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._vectors

    def __len__(self) -> int:
        return len(self._vectors)

    def similarity(self, a: VectorLike, b: VectorLike) -> float:
        va = as_vector(a, self._dim)
        vb = as_vector(b, self._dim)
        return cosine_similarity(va, vb)

    def score(self, query: VectorLike, entity_id: str) -> float | None:
        """Cosine of query vs a stored vector, or None if the entity has none."""
        unit = self._unit.get(entity_id)
        if unit is None:
            return None
        q = l2_normalize(as_vector(query, self._dim))
        return float(np.dot(q, unit))

    def rank_by_similarity(
        self,
        query: VectorLike,
        candidate_ids: Iterable[str],
        top_k: int | None = None,
    ) -> list[tuple[str, float]]:
        """
        Candidates ordered by descending score, ties by ascending id.
        Candidates without a stored vector are omitted.
        """
        q = l2_normalize(as_vector(query, self._dim))
        scored: list[tuple[str, float]] = []
        for eid in set(candidate_ids):
            unit = self._unit.get(eid)
            if unit is None:
                continue
            scored.append((eid, float(np.dot(q, unit))))
        scored.sort(key=lambda pair: (-pair[1], pair[0]))
        if top_k is not None:
            if top_k < 0:
                raise ValueError("top_k must be >= 0")
            scored = scored[:top_k]
        return scored

    def mean_vector(self) -> np.ndarray:
        """Catalog-wide mean, or a zero vector when the store is empty."""
        with self._lock:
            vectors = list(self._vectors.values())
        if not vectors:
            return np.zeros(self._dim, dtype=np.float64)
        return np.mean(np.vstack(vectors), axis=0)

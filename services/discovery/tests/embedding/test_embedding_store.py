"""
Tests for services.discovery.embedding.store

Covers:
  1. dimension is enforced on put, load and query
  2. rank_by_similarity orders by score desc, id asc on ties
  3. candidates without vectors are omitted
  4. mean_vector for empty and populated stores
"""

import numpy as np
import pytest

from services.discovery.embedding.store import EmbeddingStore
from services.discovery.errors import DimensionMismatchError
from services.discovery.tests.helpers import DIM, axis, blend


class TestPutAndGet:
    def test_put_get_roundtrip(self):
        store = EmbeddingStore(DIM)
        store.put("v1", axis(2))
        assert store.get("v1").tolist() == axis(2)
        assert "v1" in store
        assert len(store) == 1

    def test_get_returns_copy(self):
        store = EmbeddingStore(DIM)
        store.put("v1", axis(0))
        store.get("v1")[0] = 99.0
        assert store.get("v1")[0] == 1.0

    def test_missing_is_none(self):
        assert EmbeddingStore(DIM).get("nope") is None

    def test_put_wrong_dimension(self):
        store = EmbeddingStore(DIM)
        with pytest.raises(DimensionMismatchError):
            store.put("v1", [1.0, 0.0])
        assert "v1" not in store

    def test_load_is_all_or_nothing(self):
        store = EmbeddingStore(DIM)
        with pytest.raises(DimensionMismatchError):
            store.load([("v1", axis(0)), ("bad", [1.0])])
        assert len(store) == 0

    def test_invalid_dim(self):
        with pytest.raises(ValueError):
            EmbeddingStore(0)


class TestRanking:
    def test_orders_by_similarity(self, embeddings):
        ranked = embeddings.rank_by_similarity(axis(0), ["v1", "v2", "v3"])
        assert [eid for eid, _ in ranked] == ["v1", "v3", "v2"]
        assert ranked[0][1] == pytest.approx(1.0)
        assert ranked[1][1] == pytest.approx(0.8)

    def test_ties_broken_by_id(self):
        store = EmbeddingStore(DIM)
        for eid in ("c", "a", "b"):
            store.put(eid, axis(1))
        ranked = store.rank_by_similarity(axis(1), ["c", "b", "a"])
        assert [eid for eid, _ in ranked] == ["a", "b", "c"]

    def test_magnitude_does_not_matter(self):
        store = EmbeddingStore(DIM)
        store.put("big", axis(0, scale=10.0))
        store.put("small", axis(0, scale=0.1))
        scores = dict(store.rank_by_similarity(axis(0), ["big", "small"]))
        assert scores["big"] == pytest.approx(scores["small"])

    def test_omits_unknown_ids(self, embeddings):
        ranked = embeddings.rank_by_similarity(axis(0), ["v1", "v6", "ghost"])
        assert [eid for eid, _ in ranked] == ["v1"]

    def test_top_k(self, embeddings):
        ranked = embeddings.rank_by_similarity(axis(0), ["v1", "v2", "v3", "v4"], top_k=2)
        assert len(ranked) == 2
        with pytest.raises(ValueError):
            embeddings.rank_by_similarity(axis(0), ["v1", "v2", "v3", "v4"], top_k=-1)

    def test_query_dimension_mismatch(self, embeddings):
        with pytest.raises(DimensionMismatchError):
            embeddings.rank_by_similarity([1.0, 0.0], ["v1"])

    def test_score(self, embeddings):
        assert embeddings.score(blend({0: 1.0, 2: 1.0}), "v1") == pytest.approx(1 / np.sqrt(2))
        assert embeddings.score(axis(0), "v6") is None

    def test_similarity(self, embeddings):
        assert embeddings.similarity(axis(0), axis(1)) == pytest.approx(0.0)


class TestMeanVector:
    def test_empty_store_is_zero(self):
        assert EmbeddingStore(DIM).mean_vector().tolist() == [0.0] * DIM

    def test_mean(self):
        store = EmbeddingStore(DIM)
        store.put("a", axis(0))
        store.put("b", axis(1))
        mean = store.mean_vector()
        assert mean[0] == pytest.approx(0.5)
        assert mean[1] == pytest.approx(0.5)

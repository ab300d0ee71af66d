"""Tests for the FAISS nearest-object index."""

import numpy as np
import pytest

from object_finder.catalog import Catalog
from object_finder.index import CatalogIndex

from conftest import make_object


class TestBuild:

    def test_counts_every_vector(self, mixed_catalog):
        index = CatalogIndex.build(mixed_catalog)
        assert index.index.ntotal == 4
        assert index.dimension == 3

    def test_empty_catalog_raises(self):
        with pytest.raises(ValueError, match="no feature vectors"):
            CatalogIndex.build(Catalog([make_object(1, "Bare", [])]))

    def test_mixed_dimensions_raise(self):
        catalog = Catalog([
            make_object(1, "A", [[1, 0, 0]]),
            make_object(2, "B", [[1, 0]]),
        ])
        with pytest.raises(ValueError, match="mixed"):
            CatalogIndex.build(catalog)


class TestSearch:

    def test_self_match_first(self, mixed_catalog):
        results = CatalogIndex.build(mixed_catalog).search(np.array([0, 1, 0]), k=3)
        obj, score = results[0]
        assert obj.name == "Lamp"
        assert score == pytest.approx(1.0, abs=1e-5)

    def test_one_entry_per_object(self, mixed_catalog):
        results = CatalogIndex.build(mixed_catalog).search(np.array([0, 1, 0]), k=10)
        ids = [obj.id for obj, _ in results]
        assert len(ids) == len(set(ids)) == 3

    def test_scores_are_cosine(self):
        catalog = Catalog([make_object(1, "Mug", [[3, 4, 0]])])
        (_, score), = CatalogIndex.build(catalog).search(np.array([10, 0, 0]))
        assert score == pytest.approx(0.6, abs=1e-5)

    def test_respects_k(self, mixed_catalog):
        assert len(CatalogIndex.build(mixed_catalog).search(np.array([1, 0, 0]), k=1)) == 1

    def test_sorted_descending(self, mixed_catalog):
        results = CatalogIndex.build(mixed_catalog).search(np.array([1, 0.2, 0]), k=3)
        scores = [s for _, s in results]
        assert scores == sorted(scores, reverse=True)

    def test_zero_query(self, mixed_catalog):
        assert CatalogIndex.build(mixed_catalog).search(np.zeros(3)) == []

    def test_dimension_mismatch_raises(self, mixed_catalog):
        with pytest.raises(ValueError, match="dimension"):
            CatalogIndex.build(mixed_catalog).search(np.ones(5))

"""
FAISS nearest-neighbour index over a catalog snapshot.

Every reference vector is L2-normalized and added to an inner-product
index, so search scores are cosine similarities. Results are collapsed to
the best score per object. This is an unthresholded lookup used for
diagnostics ("what is this closest to?"); identification goes through the
matchers.
"""

import logging
from typing import List, Tuple

import faiss
import numpy as np

from .catalog import Catalog, CatalogObject

logger = logging.getLogger(__name__)


def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return (matrix / norms).astype(np.float32)


class CatalogIndex:
    """Inner-product FAISS index mapping rows back to catalog objects."""

    def __init__(self, index: faiss.Index, owners: List[CatalogObject]):
        self.index = index
        self.owners = owners

    @classmethod
    def build(cls, catalog: Catalog) -> "CatalogIndex":
        """
        Index every reference vector of a catalog.

        Raises:
            ValueError: The catalog has no vectors or their lengths differ.
        """
        rows = []
        owners = []
        for obj in catalog:
            for feature in obj.features:
                rows.append(np.asarray(feature, dtype=np.float32).reshape(-1))
                owners.append(obj)

        if not rows:
            raise ValueError("Catalog has no feature vectors to index")

        dims = {row.shape[0] for row in rows}
        if len(dims) != 1:
            raise ValueError(f"Catalog vectors have mixed dimensions: {sorted(dims)}")

        matrix = _normalize_rows(np.vstack(rows))
        index = faiss.IndexFlatIP(matrix.shape[1])
        index.add(matrix)
        logger.info(f"Built FlatIP index: {index.ntotal} vectors, {index.d}d")
        return cls(index, owners)

    @property
    def dimension(self) -> int:
        return self.index.d

    def search(self, vector: np.ndarray, k: int = 5) -> List[Tuple[CatalogObject, float]]:
        """
        Find the k catalog objects closest to a query vector.

        Args:
            vector: Query feature vector.
            k: Maximum number of objects to return.

        Returns:
            (object, cosine score) pairs, best first, one per object.
            Empty for a zero-norm query.

        Raises:
            ValueError: If the query dimension doesn't match the index.
        """
        query = np.asarray(vector, dtype=np.float32).reshape(1, -1)
        if query.shape[1] != self.index.d:
            raise ValueError(
                f"Query dimension {query.shape[1]} doesn't match "
                f"index dimension {self.index.d}"
            )

        norm = np.linalg.norm(query)
        if norm == 0:
            return []
        query = query / norm

        # Several rows can belong to one object; search all of them.
        scores, indices = self.index.search(query, self.index.ntotal)

        results = []
        seen = set()
        for score, idx in zip(scores[0], indices[0]):
            if idx < 0:
                continue
            owner = self.owners[idx]
            if owner.id in seen:
                continue
            seen.add(owner.id)
            results.append((owner, float(score)))
            if len(results) >= k:
                break

        return results

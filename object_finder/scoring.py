"""
Similarity scoring for feature vectors.

Cosine similarity is the only signal: embeddings from one extractor
point in similar directions for visually similar images, regardless of
magnitude. Thresholds are applied by the matchers, never here.
"""

import math
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchCandidate:
    """One catalog object with its best similarity to the query."""

    id: Any
    name: str
    description: str
    score: float


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Compute dot(a, b) / (|a| * |b|).

    Args:
        a: 1-D feature vector.
        b: 1-D feature vector of the same length.

    Returns:
        Similarity in [-1, 1] (not clamped). NaN if either vector has zero
        norm; callers must treat NaN as a non-match.

    Raises:
        ValueError: If the vectors differ in length.
    """
    a = np.asarray(a, dtype=np.float64).reshape(-1)
    b = np.asarray(b, dtype=np.float64).reshape(-1)
    if a.shape[0] != b.shape[0]:
        raise ValueError(
            f"Vector length mismatch: {a.shape[0]} vs {b.shape[0]}"
        )

    denominator = np.linalg.norm(a) * np.linalg.norm(b)
    if denominator == 0:
        return float("nan")
    return float(np.dot(a, b) / denominator)


def is_scorable(score: float) -> bool:
    return not math.isnan(score)


def rank_candidates(candidates: Iterable[MatchCandidate]) -> List[MatchCandidate]:
    """
    Sort candidates by score, highest first.

    Ties keep their scan order.
    """
    return sorted(candidates, key=lambda c: -c.score)

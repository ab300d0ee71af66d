"""
Single-shot identification of a still image.

Two thresholds are applied:
    1. An admit floor (default 0.5) keeps wildly dissimilar objects out of
       the working set while scanning.
    2. A final filter (default 0.98) drops everything that is not a very
       confident match, so an empty result means "no match".

Each object keeps the best score over all of its reference photos; one
close photo is enough.
"""

import os
import enum
import logging
from typing import Dict, List, Optional

import numpy as np

from .catalog import Catalog
from .embedding import EmbeddingExtractor
from .errors import CatalogEmpty, ExtractorError
from .scoring import MatchCandidate, cosine_similarity, is_scorable, rank_candidates

logger = logging.getLogger(__name__)

ADMIT_FLOOR = float(os.environ.get("MATCH_ADMIT_FLOOR", "0.5"))
FINAL_THRESHOLD = float(os.environ.get("MATCH_FINAL_THRESHOLD", "0.98"))


class MatcherState(enum.Enum):
    IDLE = "idle"
    SCORING = "scoring"
    DONE = "done"


class SingleShotMatcher:
    """Scores one frame against a whole catalog snapshot."""

    def __init__(self,
                 extractor: EmbeddingExtractor,
                 admit_floor: float = ADMIT_FLOOR,
                 final_threshold: float = FINAL_THRESHOLD):
        self.extractor = extractor
        self.admit_floor = admit_floor
        self.final_threshold = final_threshold
        self.state = MatcherState.IDLE
        self.last_result: List[MatchCandidate] = []

    def identify(self, frame: np.ndarray, catalog: Catalog) -> List[MatchCandidate]:
        """
        Identify the object shown in a still frame.

        Args:
            frame: RGB image.
            catalog: Snapshot to match against.

        Returns:
            Candidates scoring >= final_threshold, best first. May be empty.

        Raises:
            CatalogEmpty: The catalog has no objects.
            ExtractorError: The frame could not be embedded.
        """
        if not catalog:
            raise CatalogEmpty("Cannot identify against an empty catalog")

        self.state = MatcherState.SCORING
        try:
            vector = self.extractor.extract(frame)
        except ExtractorError:
            self.state = MatcherState.IDLE
            raise
        return self._finish(vector, catalog)

    def match_vector(self, vector: np.ndarray, catalog: Catalog) -> List[MatchCandidate]:
        """Same as identify() for a vector that was already extracted."""
        if not catalog:
            raise CatalogEmpty("Cannot identify against an empty catalog")
        self.state = MatcherState.SCORING
        return self._finish(vector, catalog)

    def _finish(self, vector: np.ndarray, catalog: Catalog) -> List[MatchCandidate]:
        try:
            working = self._scan(vector, catalog)
        except Exception:
            self.state = MatcherState.IDLE
            raise

        ranked = rank_candidates(working.values())
        result = [c for c in ranked if c.score >= self.final_threshold]

        logger.info(
            f"Single-shot pass: {len(catalog)} objects, "
            f"{len(working)} above {self.admit_floor}, "
            f"{len(result)} above {self.final_threshold}"
        )

        self.last_result = result
        self.state = MatcherState.DONE
        return result

    def _scan(self, vector: np.ndarray, catalog: Catalog) -> Dict[object, MatchCandidate]:
        working: Dict[object, MatchCandidate] = {}

        for obj in catalog:
            for reference in obj.features:
                similarity = cosine_similarity(vector, reference)
                if not is_scorable(similarity):
                    continue

                existing: Optional[MatchCandidate] = working.get(obj.id)
                bar = existing.score if existing else self.admit_floor
                if similarity > bar:
                    working[obj.id] = MatchCandidate(
                        id=obj.id,
                        name=obj.name,
                        description=obj.description,
                        score=similarity,
                    )

        return working

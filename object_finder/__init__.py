"""
object_finder: identify registered physical objects from photos.

Objects are registered with one embedding per photo; a new photo or a
live camera feed is identified by cosine similarity against the catalog.

Modules:
    embedding        EmbeddingExtractor and the ONNX model backend
    preprocessing    Frame normalization for the model
    scoring          Cosine similarity and candidate ranking
    catalog          Catalog snapshots and backend record parsing
    catalog_client   HTTP client for the catalog backend
    single_shot      Still-image identification (two thresholds)
    continuous       Live polling loop reporting the best match per tick
    frame_sources    Still image and camera frame sources
    index            FAISS nearest-object lookup
    cli              Command-line entry point
"""

from .catalog import Catalog, CatalogHolder, CatalogObject, Location
from .continuous import ContinuousMatcher, LiveMatch, LoopState, Scanning
from .embedding import EmbeddingExtractor, OnnxEmbeddingModel
from .errors import (
    CatalogEmpty, CatalogUnreachable, ExtractorError, FrameInvalid,
    ModelUnavailable, ObjectFinderError, SourceUnavailable,
)
from .scoring import MatchCandidate, cosine_similarity
from .single_shot import MatcherState, SingleShotMatcher

__version__ = "1.0.0"

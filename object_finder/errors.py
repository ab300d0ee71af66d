"""
Error taxonomy for the matching engine.

Transient conditions (an unready frame, a model still loading) are
subclasses of ExtractorError so the live loop can skip a tick on them.
Everything else is surfaced to the caller.
"""


class ObjectFinderError(Exception):
    """Base class for all object_finder errors."""


class ExtractorError(ObjectFinderError):
    """Feature extraction failed."""


class ModelUnavailable(ExtractorError):
    """The embedding model has not finished loading (or failed to load)."""


class FrameInvalid(ExtractorError):
    """The frame is missing or has zero spatial dimensions."""


class SourceUnavailable(ObjectFinderError):
    """A frame source could not be acquired (denied, missing, unsupported)."""


class CatalogEmpty(ObjectFinderError):
    """Matching was requested against a catalog with no objects."""


class CatalogUnreachable(ObjectFinderError):
    """The catalog backend could not be reached or returned bad data."""

"""
Catalog snapshot of registered objects.

A Catalog is a read-only, point-in-time copy of what the backend holds.
Matching never mutates it; a refresh builds a fresh Catalog and swaps
the reference held by CatalogHolder.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class CatalogObject:
    """One registered object and its reference vectors (one per photo)."""

    id: Any
    name: str
    description: str = ""
    location: Optional[Location] = None
    features: Tuple[np.ndarray, ...] = field(default_factory=tuple)


def _as_feature(values) -> np.ndarray:
    vector = np.asarray(values, dtype=np.float32).reshape(-1)
    vector.setflags(write=False)
    return vector


def _maybe_json(value):
    if isinstance(value, str):
        return json.loads(value) if value.strip() else None
    return value


def parse_location(value) -> Optional[Location]:
    try:
        value = _maybe_json(value)
        if not value:
            return None
        return Location(float(value["latitude"]), float(value["longitude"]))
    except (KeyError, TypeError, ValueError):
        logger.warning(f"Ignoring malformed location: {value!r}")
        return None


def parse_object(record: Dict[str, Any]) -> CatalogObject:
    """
    Build a CatalogObject from one backend record.

    Accepts ``id`` or ``_id``; ``location`` and ``features`` may be either
    decoded JSON or JSON text, as the backend stores them verbatim from the
    registration form.

    Raises:
        ValueError: The record is not an object, has no id, or its
            features are not numeric.
    """
    if not isinstance(record, dict):
        raise ValueError(f"Catalog record is not an object: {record!r}")

    object_id = record.get("id", record.get("_id"))
    if object_id is None:
        raise ValueError("Catalog record has no id")

    raw_features = _maybe_json(record.get("features")) or []
    try:
        features = tuple(_as_feature(f) for f in raw_features)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Object {object_id} has non-numeric features: {e}") from e

    return CatalogObject(
        id=object_id,
        name=str(record.get("name", "")),
        description=str(record.get("description", "") or ""),
        location=parse_location(record.get("location")),
        features=features,
    )


class Catalog:
    """Immutable sequence of CatalogObject."""

    def __init__(self, objects: Iterable[CatalogObject] = ()):
        self._objects: Tuple[CatalogObject, ...] = tuple(objects)

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "Catalog":
        """Parse backend records, skipping (and logging) malformed ones."""
        objects = []
        skipped = 0
        for record in records:
            try:
                obj = parse_object(record)
            except ValueError as e:
                logger.warning(f"Skipping catalog record: {e}")
                skipped += 1
                continue
            if not obj.features:
                logger.warning(f"Object {obj.id} ({obj.name}) has no feature vectors")
            objects.append(obj)

        logger.info(f"Catalog snapshot: {len(objects)} objects, {skipped} skipped")
        return cls(objects)

    @property
    def objects(self) -> Tuple[CatalogObject, ...]:
        return self._objects

    @property
    def vector_count(self) -> int:
        return sum(len(obj.features) for obj in self._objects)

    def get(self, object_id) -> Optional[CatalogObject]:
        for obj in self._objects:
            if obj.id == object_id:
                return obj
        return None

    def __len__(self) -> int:
        return len(self._objects)

    def __iter__(self) -> Iterator[CatalogObject]:
        return iter(self._objects)

    def __bool__(self) -> bool:
        return bool(self._objects)

    def __repr__(self) -> str:
        return f"Catalog({len(self._objects)} objects, {self.vector_count} vectors)"


class CatalogHolder:
    """
    Holds the current catalog snapshot and swaps it on refresh.

    Readers take ``holder.snapshot`` once per matching pass and keep that
    reference for the whole pass, so a concurrent refresh never changes
    what a running scan sees.
    """

    def __init__(self, catalog: Optional[Catalog] = None):
        self._catalog = catalog if catalog is not None else Catalog()
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> Catalog:
        return self._catalog

    def replace(self, catalog: Catalog) -> Catalog:
        with self._lock:
            previous = self._catalog
            self._catalog = catalog
        return previous

    def refresh(self, client) -> Catalog:
        """
        Fetch a new snapshot and swap it in.

        On failure the previous snapshot stays in place and the
        client's CatalogUnreachable propagates.
        """
        catalog = client.fetch_snapshot()
        self.replace(catalog)
        return catalog


def object_summaries(catalog: Catalog) -> List[Dict[str, Any]]:
    """Lightweight view of a catalog for display and logging."""
    return [
        {
            "id": obj.id,
            "name": obj.name,
            "photos": len(obj.features),
            "location": obj.location.to_dict() if obj.location else None,
        }
        for obj in catalog
    ]

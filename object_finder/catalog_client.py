"""
HTTP client for the catalog backend.

    GET  {base}/objects   -> list of object records
    POST {base}/objects   -> multipart registration (name, description,
                             location JSON, features JSON, image files)

The matching engine only ever sees the Catalog snapshots this produces.
"""

import os
import json
import logging
import mimetypes
from contextlib import ExitStack
from typing import List, Optional, Sequence

import numpy as np
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .catalog import Catalog, Location
from .errors import CatalogUnreachable

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = os.environ.get("OBJECT_FINDER_BACKEND_URL", "http://localhost:8000/api")
DEFAULT_TIMEOUT = float(os.environ.get("OBJECT_FINDER_TIMEOUT", "10"))


def build_session(retries: int = 3) -> requests.Session:
    """Session that retries idempotent GETs on connection errors and 5xx."""
    session = requests.Session()
    retry = Retry(
        total=retries,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def serialize_features(features: Sequence[np.ndarray]) -> str:
    """Encode feature vectors as JSON text (list of lists of floats)."""
    return json.dumps([np.asarray(f, dtype=np.float32).reshape(-1).tolist() for f in features])


class CatalogClient:
    """Fetches catalog snapshots and registers new objects."""

    def __init__(self,
                 base_url: str = DEFAULT_BASE_URL,
                 timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or build_session()

    @property
    def objects_url(self) -> str:
        return f"{self.base_url}/objects"

    def fetch_records(self) -> List[dict]:
        """
        Download raw object records.

        Raises:
            CatalogUnreachable: Transport error, non-2xx status, or a body
                that is not a JSON list.
        """
        try:
            response = self.session.get(self.objects_url, timeout=self.timeout)
            response.raise_for_status()
            records = response.json()
        except requests.exceptions.RequestException as e:
            raise CatalogUnreachable(f"Could not fetch catalog from {self.objects_url}: {e}") from e
        except ValueError as e:
            raise CatalogUnreachable(f"Catalog response is not JSON: {e}") from e

        if not isinstance(records, list):
            raise CatalogUnreachable(
                f"Expected a list of objects, got {type(records).__name__}"
            )
        return records

    def fetch_snapshot(self) -> Catalog:
        records = self.fetch_records()
        logger.info(f"Fetched {len(records)} catalog records from {self.objects_url}")
        return Catalog.from_records(records)

    def register_object(self,
                        name: str,
                        description: str,
                        location: Optional[Location],
                        features: Sequence[np.ndarray],
                        image_paths: Sequence[str] = ()) -> bool:
        """
        Register a new object with one feature vector per photo.

        Returns:
            True if the backend accepted the object, False on a non-2xx reply.

        Raises:
            CatalogUnreachable: The request could not be sent.
        """
        data = {
            "name": name,
            "description": description,
            "location": json.dumps(location.to_dict() if location else None),
            "features": serialize_features(features),
        }

        with ExitStack() as stack:
            files = []
            for path in image_paths:
                mime = mimetypes.guess_type(path)[0] or "application/octet-stream"
                handle = stack.enter_context(open(path, "rb"))
                files.append(("images", (os.path.basename(path), handle, mime)))

            try:
                response = self.session.post(
                    self.objects_url, data=data, files=files or None, timeout=self.timeout
                )
            except requests.exceptions.RequestException as e:
                raise CatalogUnreachable(f"Could not register object: {e}") from e

        if response.ok:
            logger.info(f"Registered object '{name}' with {len(features)} photos")
            return True

        logger.warning(f"Backend rejected object '{name}': HTTP {response.status_code}")
        return False

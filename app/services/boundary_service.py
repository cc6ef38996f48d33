"""
TPU Boundary Dataset Loader

Loads the TPU boundary FeatureCollection used by the geo-accurate map.
The primary path is tried first, then one alternate path. If both fail the
loader stays FAILED for the rest of the session; there is no retry.

Paths may be local files or http(s) URLs. Parsed datasets are cached per
path and shared by every session; each session keeps only its own load state.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

import httpx

from app.models.schemas import FetchStatus

logger = logging.getLogger(__name__)

BOUNDARY_LOAD_ERROR_MESSAGE = "Failed to load map data. Please check connection."

FEATURE_ID_PROPERTIES = ("TPU_ID", "TPU_KEY")


class BoundaryLoadError(Exception):
    """A boundary source could not be read or is not a FeatureCollection."""


def feature_id(feature: dict) -> Optional[str]:
    """Region code of a boundary feature (TPU_ID, else TPU_KEY)."""
    properties = feature.get("properties") or {}
    for key in FEATURE_ID_PROPERTIES:
        value = properties.get(key)
        if value not in (None, ""):
            return str(value)
    return None


def _validate_feature_collection(data: Any, source: str) -> dict:
    if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
        raise BoundaryLoadError(f"{source} is not a GeoJSON FeatureCollection")
    if not isinstance(data.get("features"), list):
        raise BoundaryLoadError(f"{source} has no feature list")
    return data


async def read_boundary_source(
    path: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """Read one boundary source, raising BoundaryLoadError on any failure."""
    if path.startswith(("http://", "https://")):
        async with httpx.AsyncClient(timeout=60.0, transport=transport) as client:
            try:
                response = await client.get(path)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                raise BoundaryLoadError(f"Failed to fetch {path}: {e}") from e
            except ValueError as e:
                raise BoundaryLoadError(f"Invalid JSON from {path}: {e}") from e
    else:
        try:
            text = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
            data = json.loads(text)
        except OSError as e:
            raise BoundaryLoadError(f"Failed to read {path}: {e}") from e
        except ValueError as e:
            raise BoundaryLoadError(f"Invalid JSON in {path}: {e}") from e

    return _validate_feature_collection(data, path)


# =============================================================================
# Shared dataset cache
# =============================================================================

class BoundaryDatasetCache:
    """
    Parsed FeatureCollections keyed by source path.

    Every session reads the same boundary file, so one parsed copy is shared.
    Failed reads are not cached.
    """

    def __init__(self):
        self._datasets: dict[str, dict] = {}

    def __len__(self) -> int:
        return len(self._datasets)

    async def get(
        self,
        path: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> dict:
        cached = self._datasets.get(path)
        if cached is not None:
            return cached
        data = await read_boundary_source(path, transport=transport)
        # A concurrent read of the same path may have finished first
        return self._datasets.setdefault(path, data)

    def clear(self) -> None:
        self._datasets.clear()


_boundary_cache: Optional[BoundaryDatasetCache] = None


def get_boundary_cache() -> BoundaryDatasetCache:
    """Get or create the boundary dataset cache singleton."""
    global _boundary_cache
    if _boundary_cache is None:
        _boundary_cache = BoundaryDatasetCache()
    return _boundary_cache


# =============================================================================
# Per-session loader
# =============================================================================

class BoundaryLoader:
    """
    Loading state for the boundary dataset.

    IDLE -> LOADING -> READY | FAILED. FAILED is terminal. The dataset
    itself lives in the shared cache.
    """

    def __init__(
        self,
        primary_path: str,
        alternate_path: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[BoundaryDatasetCache] = None,
    ):
        self.primary_path = primary_path
        self.alternate_path = alternate_path
        self.transport = transport
        self.cache = cache if cache is not None else get_boundary_cache()
        self.status = FetchStatus.idle
        self.geojson: Optional[dict] = None
        self.error: Optional[str] = None
        self._lock = asyncio.Lock()

    @property
    def feature_count(self) -> int:
        return len(self.geojson["features"]) if self.geojson else 0

    async def load(self) -> FetchStatus:
        async with self._lock:
            if self.status in (FetchStatus.ready, FetchStatus.failed):
                return self.status

            self.status = FetchStatus.loading
            paths = [self.primary_path]
            if self.alternate_path and self.alternate_path != self.primary_path:
                paths.append(self.alternate_path)

            for path in paths:
                try:
                    self.geojson = await self.cache.get(path, transport=self.transport)
                    self.status = FetchStatus.ready
                    logger.info(f"Loaded {self.feature_count} TPU boundaries from {path}")
                    return self.status
                except BoundaryLoadError as e:
                    logger.warning(f"Boundary source unavailable: {e}")

            logger.error(f"Error loading TPU boundaries from {', '.join(paths)}")
            self.status = FetchStatus.failed
            self.error = BOUNDARY_LOAD_ERROR_MESSAGE
            return self.status

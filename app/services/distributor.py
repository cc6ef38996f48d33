"""
Sub-Region Distributor

Spreads district densities down to TPUs when no TPU-level data exists.

Policies:
- noisy: each TPU inherits its district's density plus uniform noise in
  [-band, +band], clamped to 0-100. Values change on every pass.
- hash: a TPU matched to a district takes the district density as-is; an
  unmatched TPU gets a stable pseudo-density derived from its id, so identical
  input always renders identically.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Protocol, Sequence

from app.models.schemas import DistrictAnalysis
from app.services.region_catalog import SUB_REGIONS


class DistributionPolicy(str, Enum):
    NOISY = "noisy"
    HASH = "hash"


@dataclass(frozen=True)
class RegionRef:
    """Minimal view of a region for distribution: its id and optional known district."""
    id: str
    parent_id: Optional[str] = None


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def string_hash(value: str) -> int:
    """
    Stable 31-multiplier string hash.

    Runs over UTF-16 code units, so characters outside the BMP contribute
    their surrogate pair. Each step computes ``unit + ((h << 5) - h)`` where
    the shift works on ``h`` truncated to a signed 32-bit integer, while the
    subtraction and addition are not truncated. This matches the hash the web
    client uses, so both sides colour an unmatched TPU the same way.
    """
    units = value.encode("utf-16-le")
    h = 0
    for i in range(0, len(units), 2):
        unit = int.from_bytes(units[i:i + 2], "little")
        h = unit + (_to_int32(_to_int32(h) << 5) - h)
    return h


def hash_density(region_id: str) -> float:
    """Pseudo-density in [0, 99] for a region with no district data."""
    return float(abs(string_hash(region_id)) % 100)


def match_parent(region: RegionRef, densities: Sequence[DistrictAnalysis]) -> Optional[DistrictAnalysis]:
    """
    District score for a region.

    The catalog's explicit parent reference wins; otherwise the first score
    whose id is a prefix of the region id.
    """
    if region.parent_id:
        for score in densities:
            if score.id == region.parent_id:
                return score
    for score in densities:
        if region.id.startswith(score.id):
            return score
    return None


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


class Distributor(Protocol):
    policy: DistributionPolicy

    def distribute(
        self,
        densities: Sequence[DistrictAnalysis],
        regions: Iterable[RegionRef],
    ) -> dict[str, float]:
        ...


class NoisyInheritanceDistributor:
    policy = DistributionPolicy.NOISY

    def __init__(self, band: float = 10.0, rng: Optional[random.Random] = None):
        self.band = band
        self.rng = rng or random.Random()

    def distribute(
        self,
        densities: Sequence[DistrictAnalysis],
        regions: Iterable[RegionRef],
    ) -> dict[str, float]:
        result: dict[str, float] = {}
        for region in regions:
            parent = match_parent(region, densities)
            base = parent.density if parent else 0.0
            noise = self.rng.uniform(-self.band, self.band)
            result[region.id] = _clamp(base + noise)
        return result


class HashFallbackDistributor:
    policy = DistributionPolicy.HASH

    def distribute(
        self,
        densities: Sequence[DistrictAnalysis],
        regions: Iterable[RegionRef],
    ) -> dict[str, float]:
        result: dict[str, float] = {}
        for region in regions:
            parent = match_parent(region, densities)
            result[region.id] = parent.density if parent else hash_density(region.id)
        return result


def get_distributor(
    policy: DistributionPolicy | str,
    band: float = 10.0,
    rng: Optional[random.Random] = None,
) -> Distributor:
    policy = DistributionPolicy(policy)
    if policy == DistributionPolicy.NOISY:
        return NoisyInheritanceDistributor(band=band, rng=rng)
    return HashFallbackDistributor()


def catalog_regions() -> list[RegionRef]:
    """Every TPU of the stylized catalog, with its district reference."""
    return [RegionRef(id=r.id, parent_id=r.parent_id) for r in SUB_REGIONS]

"""Demographic insight: which district the user's profile correlates with most."""

from typing import Optional, Sequence

from app.models.schemas import CensusProfile, DistrictAnalysis, Insight, MapMetric
from app.services.region_catalog import (
    DEFAULT_REGION_LABEL,
    district_order,
    get_district,
    resolve_district,
)


def top_district(densities: Sequence[DistrictAnalysis]) -> Optional[DistrictAnalysis]:
    """
    Highest-density district.

    Ties go to the district listed first in the catalog, regardless of the
    order the scores arrived in.
    """
    best: Optional[DistrictAnalysis] = None
    for score in sorted(densities, key=lambda s: district_order(s.id)):
        if best is None or score.density > best.density:
            best = score
    return best


def derive_insight(
    profile: CensusProfile,
    metric: MapMetric,
    densities: Sequence[DistrictAnalysis],
) -> Insight:
    user_value = profile.value_for(metric.key)

    best = top_district(densities)
    if best is not None:
        region_id = best.id
    else:
        residency = resolve_district(profile.district)
        region_id = residency.code if residency else DEFAULT_REGION_LABEL

    district = get_district(region_id)
    region_name = district.name if district else region_id

    return Insight(
        user_value=user_value,
        region_id=region_id,
        region_name=region_name,
        sentence=f"Your profile ({user_value}) shows high correlation with residents in {region_id}.",
    )

"""Shared test fixtures."""

from __future__ import annotations

import json
import random

import pytest

from app.middleware.rate_limit import limiter
from app.models.schemas import CensusProfile, DistrictAnalysis
from app.services.boundary_service import get_boundary_cache
from app.services.density_source import DensityFetch, FallbackDensitySource


SAMPLE_PROFILE = {
    "fullName": "Chan Tai Man",
    "hkid": "A123456(7)",
    "gender": "Male",
    "age": "65",
    "ethnicity": "Chinese",
    "education": "Secondary",
    "industry": "Retail",
    "occupation": "Shop Owner",
    "migrationStatus": "Permanent Resident",
    "maritalStatus": "Married",
    "mortalityInHousehold": False,
    "housingType": "Public Rental Housing",
    "district": "Central and Western",
}

# Three TPU features: two inside known districts, one outside
BOUNDARY_GEOJSON = {
    "type": "FeatureCollection",
    "features": [
        {
            "type": "Feature",
            "properties": {"TPU_ID": "CW101"},
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[114.14, 22.28], [114.16, 22.28], [114.16, 22.29], [114.14, 22.29], [114.14, 22.28]]],
            },
        },
        {
            "type": "Feature",
            "properties": {"TPU_KEY": "E201"},
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[114.20, 22.28], [114.22, 22.28], [114.22, 22.29], [114.20, 22.29], [114.20, 22.28]]],
            },
        },
        {
            "type": "Feature",
            "properties": {"TPU_ID": "999"},
            "geometry": {
                "type": "Polygon",
                "coordinates": [[[114.00, 22.40], [114.02, 22.40], [114.02, 22.41], [114.00, 22.41], [114.00, 22.40]]],
            },
        },
    ],
}


def district_scores(**densities: float) -> list[DistrictAnalysis]:
    return [DistrictAnalysis(id=code, density=value) for code, value in densities.items()]


class StaticDensitySource:
    """Returns the same scores for every request."""

    name = "static"

    def __init__(self, scores: list[DistrictAnalysis]):
        self.scores = scores
        self.calls: list[str] = []

    async def fetch(self, profile, attribute_key):
        self.calls.append(attribute_key)
        return DensityFetch(scores=list(self.scores), source=self.name)


@pytest.fixture
def profile() -> CensusProfile:
    return CensusProfile(**SAMPLE_PROFILE)


@pytest.fixture
def seeded_fallback() -> FallbackDensitySource:
    return FallbackDensitySource(random.Random(42))


@pytest.fixture
def boundary_file(tmp_path):
    path = tmp_path / "2021hktpu.geojson"
    path.write_text(json.dumps(BOUNDARY_GEOJSON), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def fresh_rate_limits():
    limiter.reset()
    yield


@pytest.fixture(autouse=True)
def fresh_boundary_cache():
    get_boundary_cache().clear()
    yield
    get_boundary_cache().clear()

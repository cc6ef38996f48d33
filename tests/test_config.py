"""Tests for settings validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from app.config import Settings


def test_defaults():
    settings = Settings(google_api_key="")
    assert settings.distribution_policy == "noisy"
    assert settings.color_scheme == "continuous"
    assert settings.boundary_geojson_path == "data/2021hktpu.geojson"
    assert not settings.inference_enabled


def test_names_are_normalized():
    settings = Settings(distribution_policy=" HASH ", color_scheme="Discrete")
    assert settings.distribution_policy == "hash"
    assert settings.color_scheme == "discrete"


def test_blank_key_disables_inference():
    assert not Settings(google_api_key="   ").inference_enabled
    assert Settings(google_api_key="abc").inference_enabled


@pytest.mark.parametrize(
    "field, value",
    [
        ("distribution_policy", "smooth"),
        ("color_scheme", "rainbow"),
        ("noise_band", -1),
        ("noise_band", 150),
    ],
)
def test_invalid_values(field, value):
    with pytest.raises(ValidationError):
        Settings(**{field: value})

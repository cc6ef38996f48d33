"""Tests for the density colour scales."""

from __future__ import annotations

import pytest

from app.services.color_mapper import (
    NO_DATA_COLOR,
    ContinuousColorMapper,
    DiscreteColorMapper,
    get_color_mapper,
)


def _luminance(color: str) -> float:
    r, g, b = (int(color[i:i + 2], 16) for i in (1, 3, 5))
    return 0.2126 * r + 0.7152 * g + 0.0722 * b


class TestContinuous:
    def test_stops(self):
        mapper = ContinuousColorMapper()
        assert mapper(0) == "#ffe5cc"
        assert mapper(50) == "#ff8800"
        assert mapper(100) == "#4a0072"

    def test_midpoint_of_first_segment(self):
        # halfway between #FFE5CC and #FF8800
        assert ContinuousColorMapper()(25) == "#ffb766"

    def test_clamps_out_of_range(self):
        mapper = ContinuousColorMapper()
        assert mapper(-20) == mapper(0)
        assert mapper(150) == mapper(100)

    def test_missing_treated_as_zero(self):
        mapper = ContinuousColorMapper()
        assert mapper(None) == mapper(0)
        assert mapper(float("nan")) == mapper(0)

    def test_darkens_monotonically(self):
        mapper = ContinuousColorMapper()
        values = [_luminance(mapper(d)) for d in range(0, 101, 5)]
        assert values == sorted(values, reverse=True)

    def test_custom_stops(self):
        mapper = ContinuousColorMapper(stops=((0.0, "#000000"), (10.0, "#ffffff")))
        assert mapper(0) == "#000000"
        assert mapper(10) == "#ffffff"
        assert mapper(55) == "#ffffff"

    def test_needs_two_stops(self):
        with pytest.raises(ValueError):
            ContinuousColorMapper(stops=((0.0, "#000000"),))


class TestDiscrete:
    @pytest.mark.parametrize(
        "density, expected",
        [
            (95, "#b30000"),
            (80.5, "#b30000"),
            (80, "#e34a33"),
            (61, "#e34a33"),
            (60, "#fc8d59"),
            (41, "#fc8d59"),
            (40, "#fdbb84"),
            (20.01, "#fdbb84"),
            (20, "#fee8c8"),
            (0.5, "#fee8c8"),
        ],
    )
    def test_bands_use_strict_thresholds(self, density, expected):
        assert DiscreteColorMapper()(density) == expected

    def test_zero_and_missing_are_no_data(self):
        mapper = DiscreteColorMapper()
        assert mapper(0) == NO_DATA_COLOR
        assert mapper(None) == NO_DATA_COLOR
        assert mapper(float("nan")) == NO_DATA_COLOR


def test_get_color_mapper():
    assert isinstance(get_color_mapper("continuous"), ContinuousColorMapper)
    assert isinstance(get_color_mapper(" Discrete "), DiscreteColorMapper)
    with pytest.raises(ValueError):
        get_color_mapper("rainbow")

"""
Density colour scales.

- continuous: three-stop gradient (light peach -> orange -> deep purple)
  used by the stylized map, built on branca's LinearColormap.
- discrete: threshold table used by the geo-accurate map.
"""

import math
from typing import Optional, Protocol

from branca.colormap import LinearColormap

NO_DATA_COLOR = "#f7f7f7"

CONTINUOUS_STOPS: tuple[tuple[float, str], ...] = (
    (0.0, "#FFE5CC"),
    (50.0, "#FF8800"),
    (100.0, "#4A0072"),
)

# Evaluated top-down with strict greater-than; first match wins.
# branca's StepColormap puts a value equal to a threshold in the upper band,
# so this table is matched by hand.
DISCRETE_BANDS: tuple[tuple[float, str], ...] = (
    (80.0, "#b30000"),
    (60.0, "#e34a33"),
    (40.0, "#fc8d59"),
    (20.0, "#fdbb84"),
    (0.0, "#fee8c8"),
)


def _is_missing(density: Optional[float]) -> bool:
    return density is None or (isinstance(density, float) and math.isnan(density))


class ColorMapper(Protocol):
    name: str

    def __call__(self, density: Optional[float]) -> str:
        ...


class ContinuousColorMapper:
    name = "continuous"

    def __init__(self, stops: tuple[tuple[float, str], ...] = CONTINUOUS_STOPS):
        if len(stops) < 2:
            raise ValueError("A gradient needs at least two stops")
        self.domain = [d for d, _ in stops]
        self.colormap = LinearColormap(
            colors=[c for _, c in stops],
            index=self.domain,
            vmin=self.domain[0],
            vmax=self.domain[-1],
        )

    def __call__(self, density: Optional[float]) -> str:
        value = 0.0 if _is_missing(density) else float(density)
        value = max(self.domain[0], min(self.domain[-1], value))
        return self.colormap.rgb_hex_str(value).lower()


class DiscreteColorMapper:
    name = "discrete"

    def __init__(
        self,
        bands: tuple[tuple[float, str], ...] = DISCRETE_BANDS,
        no_data_color: str = NO_DATA_COLOR,
    ):
        self.bands = bands
        self.no_data_color = no_data_color

    def __call__(self, density: Optional[float]) -> str:
        if _is_missing(density):
            return self.no_data_color
        for threshold, color in self.bands:
            if density > threshold:
                return color
        return self.no_data_color


def get_color_mapper(scheme: str) -> ColorMapper:
    scheme = scheme.strip().lower()
    if scheme == ContinuousColorMapper.name:
        return ContinuousColorMapper()
    if scheme == DiscreteColorMapper.name:
        return DiscreteColorMapper()
    raise ValueError(f"Unknown colour scheme: {scheme}")

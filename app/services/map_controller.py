"""
Map Interaction Controllers

StylizedMapController
    Pan/zoom state for the hand-drawn TPU map. Transforms follow d3-zoom:
    the scale is clamped to [1, 8] and the translation is constrained so the
    300x300 viewport never leaves the translate extent.

GeoMapController
    Boundary loading, per-feature hover/popup state and folium rendering for
    the geo-accurate map over a tiled basemap.
"""

import html
import logging
import math
from typing import Iterable, Optional, Sequence

import folium

from app.models.schemas import (
    DistrictAnalysis,
    FeatureInteractionResponse,
    FeatureStyle,
    FetchStatus,
    ViewState,
)
from app.services.boundary_service import BoundaryLoader, feature_id
from app.services.color_mapper import ColorMapper, DiscreteColorMapper
from app.services.distributor import Distributor, HashFallbackDistributor, RegionRef
from app.services.region_catalog import SUB_REGIONS, RegionRecord, label_anchor

logger = logging.getLogger(__name__)


# =============================================================================
# Stylized map
# =============================================================================

VIEW_BOX = ((0.0, 0.0), (300.0, 300.0))
SCALE_EXTENT = (1.0, 8.0)
TRANSLATE_EXTENT = ((-100.0, -100.0), (400.0, 400.0))
LABEL_ZOOM_THRESHOLD = 3.0
INTRO_DURATION_MS = 750


def ease_cubic_in_out(t: float) -> float:
    t *= 2
    if t <= 1:
        return t * t * t / 2
    t -= 2
    return (t * t * t + 2) / 2


class StylizedMapController:
    """View transform for the stylized renderer. Reset on every new controller."""

    def __init__(self, color_mapper: ColorMapper, initial_view: Optional[ViewState] = None):
        self.color_mapper = color_mapper
        self.initial_view = self.constrain(initial_view or ViewState())
        self.view = ViewState()

    # -- transform math -------------------------------------------------------

    @staticmethod
    def constrain(view: ViewState) -> ViewState:
        """Clamp the scale and keep the viewport inside the translate extent."""
        k = max(SCALE_EXTENT[0], min(SCALE_EXTENT[1], view.k))
        x, y = view.x, view.y
        (vx0, vy0), (vx1, vy1) = VIEW_BOX
        (tx0, ty0), (tx1, ty1) = TRANSLATE_EXTENT

        dx0 = (vx0 - x) / k - tx0
        dx1 = (vx1 - x) / k - tx1
        dy0 = (vy0 - y) / k - ty0
        dy1 = (vy1 - y) / k - ty1

        shift_x = (dx0 + dx1) / 2 if dx1 > dx0 else (min(0.0, dx0) or max(0.0, dx1))
        shift_y = (dy0 + dy1) / 2 if dy1 > dy0 else (min(0.0, dy0) or max(0.0, dy1))

        return ViewState(k=k, x=x + k * shift_x, y=y + k * shift_y)

    def _viewport_center(self) -> tuple[float, float]:
        (x0, y0), (x1, y1) = VIEW_BOX
        return ((x0 + x1) / 2, (y0 + y1) / 2)

    # -- gestures -------------------------------------------------------------

    def zoom_to(self, k: float, center: Optional[tuple[float, float]] = None) -> ViewState:
        """Scale to k, keeping the map point under `center` fixed on screen."""
        px, py = center or self._viewport_center()
        current = self.view
        # Map coordinates currently under the pointer
        mx = (px - current.x) / current.k
        my = (py - current.y) / current.k
        k1 = max(SCALE_EXTENT[0], min(SCALE_EXTENT[1], k))
        self.view = self.constrain(ViewState(k=k1, x=px - mx * k1, y=py - my * k1))
        return self.view

    def zoom(self, factor: float, center: Optional[tuple[float, float]] = None) -> ViewState:
        return self.zoom_to(self.view.k * factor, center)

    def pan(self, dx: float, dy: float) -> ViewState:
        self.view = self.constrain(ViewState(k=self.view.k, x=self.view.x + dx, y=self.view.y + dy))
        return self.view

    def reset(self) -> ViewState:
        self.view = ViewState()
        return self.view

    def intro_frames(self, duration_ms: int = INTRO_DURATION_MS, fps: int = 60) -> list[ViewState]:
        """
        Eased transition from the identity transform to the initial view.

        The controller ends on the initial view.
        """
        steps = max(1, math.ceil(duration_ms / 1000 * fps))
        start, end = ViewState(), self.initial_view
        frames = []
        for i in range(1, steps + 1):
            t = ease_cubic_in_out(i / steps)
            frames.append(ViewState(
                k=start.k + (end.k - start.k) * t,
                x=start.x + (end.x - start.x) * t,
                y=start.y + (end.y - start.y) * t,
            ))
        self.view = end
        return frames

    # -- rendering ------------------------------------------------------------

    @property
    def labels_visible(self) -> bool:
        return self.view.k > LABEL_ZOOM_THRESHOLD

    @property
    def stroke_width(self) -> float:
        return 0.8 / self.view.k

    @property
    def label_font_size(self) -> float:
        return 2.5 / self.view.k

    def render_svg(
        self,
        densities: dict[str, float],
        regions: Sequence[RegionRecord] = SUB_REGIONS,
    ) -> str:
        """SVG document of the TPU map under the current view."""
        v = self.view
        parts = [
            '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 300 300" '
            'preserveAspectRatio="xMidYMid slice">',
            f'<g transform="translate({v.x:g},{v.y:g}) scale({v.k:g})">',
        ]
        for region in regions:
            if not region.path:
                continue
            fill = self.color_mapper(densities.get(region.id, 0.0))
            parts.append(
                f'<path id="{html.escape(region.id)}" d="{region.path}" fill="{fill}" '
                f'stroke="white" stroke-width="{self.stroke_width:g}" stroke-opacity="0.5"/>'
            )
            if self.labels_visible:
                lx, ly = label_anchor(region.path)
                parts.append(
                    f'<text x="{lx:g}" y="{ly:g}" font-size="{self.label_font_size:g}" '
                    f'text-anchor="middle" fill="black" opacity="0.7" pointer-events="none">'
                    f'{html.escape(region.name)}</text>'
                )
        parts.append("</g></svg>")
        return "".join(parts)


# =============================================================================
# Geo-accurate map
# =============================================================================

HK_CENTER = (22.3193, 114.1694)
DEFAULT_ZOOM = 11
BASEMAP_TILES = "cartodbpositron"

HIGHLIGHT_STYLE = {"weight": 3, "color": "#FFE082", "fillOpacity": 0.9}


class MapNotReadyError(Exception):
    """Boundary dataset is not loaded (yet, or at all)."""


class UnknownFeatureError(KeyError):
    """No boundary feature with this region code."""


class GeoMapController:
    """
    Hover/popup state for the geo-accurate map.

    Feature densities come from district scores: a feature whose code starts
    with a district code takes that district's density, any other feature
    gets a stable hash-derived density.
    """

    def __init__(
        self,
        loader: BoundaryLoader,
        color_mapper: Optional[ColorMapper] = None,
        distributor: Optional[Distributor] = None,
    ):
        self.loader = loader
        self.color_mapper = color_mapper or DiscreteColorMapper()
        self.distributor = distributor or HashFallbackDistributor()
        self.district_scores: list[DistrictAnalysis] = []
        self.metric_label = ""
        self.densities: dict[str, float] = {}
        self.hovered: Optional[str] = None
        self.open_popup: Optional[str] = None

    @property
    def status(self) -> FetchStatus:
        return self.loader.status

    async def load(self) -> FetchStatus:
        status = await self.loader.load()
        if status == FetchStatus.ready:
            self._recompute()
        return status

    def update(self, district_scores: Sequence[DistrictAnalysis], metric_label: str) -> None:
        """New density set or metric: recompute every feature's density."""
        self.district_scores = list(district_scores)
        self.metric_label = metric_label
        self._recompute()

    def _feature_ids(self) -> Iterable[str]:
        if not self.loader.geojson:
            return []
        ids = (feature_id(f) for f in self.loader.geojson["features"])
        return [fid for fid in ids if fid is not None]

    def _recompute(self) -> None:
        regions = [RegionRef(id=fid) for fid in self._feature_ids()]
        self.densities = self.distributor.distribute(self.district_scores, regions)

    # -- styles and popups ----------------------------------------------------

    def feature_density(self, fid: Optional[str]) -> float:
        if fid is None:
            return 0.0
        return self.densities.get(fid, 0.0)

    def computed_style(self, fid: Optional[str]) -> FeatureStyle:
        return FeatureStyle(
            fill_color=self.color_mapper(self.feature_density(fid)),
            weight=1,
            opacity=1,
            color="white",
            fill_opacity=0.7,
        )

    def highlighted_style(self, fid: Optional[str]) -> FeatureStyle:
        base = self.computed_style(fid)
        return base.model_copy(update={
            "weight": HIGHLIGHT_STYLE["weight"],
            "color": HIGHLIGHT_STYLE["color"],
            "fill_opacity": HIGHLIGHT_STYLE["fillOpacity"],
        })

    def style_for(self, fid: str) -> FeatureStyle:
        if self.hovered == fid:
            return self.highlighted_style(fid)
        return self.computed_style(fid)

    def popup_html(self, fid: str) -> str:
        density = self.feature_density(fid)
        score_color = "#d32f2f" if density > 50 else "#2e7d32"
        return (
            '<div style="font-family: -apple-system, sans-serif; min-width: 180px;">'
            f'<div style="font-size: 16px; font-weight: 600; margin-bottom: 4px; color: #000;">'
            f'TPU: {html.escape(fid)}</div>'
            f'<div style="font-size: 14px; color: #666;">Metric: {html.escape(self.metric_label)}</div>'
            '<div style="font-size: 14px; margin-top: 6px; display: flex; align-items: center; '
            'justify-content: space-between;">'
            '<span>Similarity Score:</span>'
            f'<span style="color: {score_color}; font-weight: 700;">{density:.0f}/100</span>'
            '</div></div>'
        )

    # -- pointer events -------------------------------------------------------

    def _require_feature(self, fid: str) -> None:
        if self.status != FetchStatus.ready:
            raise MapNotReadyError(f"Boundary dataset is {self.status.value}")
        if fid not in self.densities:
            raise UnknownFeatureError(fid)

    def _interaction(self, fid: str) -> FeatureInteractionResponse:
        return FeatureInteractionResponse(
            feature_id=fid,
            density=self.feature_density(fid),
            style=self.style_for(fid),
            popup_open=self.open_popup == fid,
            popup_html=self.popup_html(fid),
        )

    def hover(self, fid: str) -> FeatureInteractionResponse:
        self._require_feature(fid)
        self.hovered = fid
        self.open_popup = fid
        return self._interaction(fid)

    def leave(self, fid: str) -> FeatureInteractionResponse:
        self._require_feature(fid)
        if self.hovered == fid:
            self.hovered = None
        if self.open_popup == fid:
            self.open_popup = None
        return self._interaction(fid)

    def click(self, fid: str) -> FeatureInteractionResponse:
        self._require_feature(fid)
        self.open_popup = fid
        return self._interaction(fid)

    # -- rendering ------------------------------------------------------------

    def build_map(self) -> folium.Map:
        """Leaflet choropleth of the TPU boundaries over a light basemap."""
        if self.status != FetchStatus.ready:
            raise MapNotReadyError(f"Boundary dataset is {self.status.value}")

        features = []
        for feature in self.loader.geojson["features"]:
            fid = feature_id(feature)
            density = self.feature_density(fid)
            features.append({
                **feature,
                "properties": {
                    **(feature.get("properties") or {}),
                    "tpu": fid or "Unknown",
                    "metric": self.metric_label,
                    "density": round(density, 1),
                    "similarity": f"{density:.0f}/100",
                },
            })

        m = folium.Map(
            location=list(HK_CENTER),
            zoom_start=DEFAULT_ZOOM,
            tiles=BASEMAP_TILES,
            zoom_control=False,
        )

        fields = ["tpu", "metric", "similarity"]
        aliases = ["TPU:", "Metric:", "Similarity Score:"]
        folium.GeoJson(
            {"type": "FeatureCollection", "features": features},
            name=f"TPU ({self.metric_label})" if self.metric_label else "TPU",
            style_function=lambda f: self.computed_style(feature_id(f)).model_dump(by_alias=True),
            highlight_function=lambda f: dict(HIGHLIGHT_STYLE),
            tooltip=folium.GeoJsonTooltip(fields=fields, aliases=aliases),
            popup=folium.GeoJsonPopup(fields=fields, aliases=aliases),
        ).add_to(m)

        return m

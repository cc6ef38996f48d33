"""Tests for the stylized and geo-accurate map controllers."""

from __future__ import annotations

import asyncio

import folium
import pytest

from app.models.schemas import FetchStatus, ViewState
from app.services.boundary_service import BoundaryLoader
from app.services.color_mapper import ContinuousColorMapper
from app.services.distributor import hash_density
from app.services.map_controller import (
    GeoMapController,
    MapNotReadyError,
    StylizedMapController,
    UnknownFeatureError,
    ease_cubic_in_out,
)
from app.services.region_catalog import SUB_REGIONS
from tests.conftest import district_scores


@pytest.fixture
def stylized() -> StylizedMapController:
    return StylizedMapController(ContinuousColorMapper())


@pytest.fixture
def geo(boundary_file) -> GeoMapController:
    controller = GeoMapController(BoundaryLoader(str(boundary_file)))
    asyncio.run(controller.load())
    controller.update(district_scores(CW=85, E=30), "Age")
    return controller


# =============================================================================
# Stylized map
# =============================================================================

class TestTransform:
    def test_identity_is_already_valid(self):
        assert StylizedMapController.constrain(ViewState()) == ViewState()

    def test_scale_clamped(self, stylized):
        assert stylized.zoom(20).k == 8
        assert stylized.zoom_to(0.5).k == 1

    def test_zoom_keeps_center_fixed(self, stylized):
        view = stylized.zoom_to(2, center=(150, 150))
        assert view == ViewState(k=2, x=-150, y=-150)

    def test_pan_limited_by_translate_extent(self, stylized):
        view = stylized.pan(150, -10)
        assert view.x == 100
        assert view.y == -10

    def test_reset(self, stylized):
        stylized.zoom(4)
        stylized.pan(30, 30)
        assert stylized.reset() == ViewState()

    def test_labels_only_above_threshold(self, stylized):
        stylized.zoom_to(3)
        assert not stylized.labels_visible
        stylized.zoom_to(3.5)
        assert stylized.labels_visible

    def test_stroke_and_font_scale_inversely(self, stylized):
        stylized.zoom_to(4)
        assert stylized.stroke_width == pytest.approx(0.2)
        assert stylized.label_font_size == pytest.approx(0.625)


class TestIntro:
    def test_easing_endpoints(self):
        assert ease_cubic_in_out(0) == 0
        assert ease_cubic_in_out(0.5) == 0.5
        assert ease_cubic_in_out(1) == 1

    def test_frames_end_on_initial_view(self):
        target = ViewState(k=2, x=-150, y=-150)
        controller = StylizedMapController(ContinuousColorMapper(), initial_view=target)

        frames = controller.intro_frames(duration_ms=750, fps=60)
        assert len(frames) == 45
        assert frames[-1] == target
        assert controller.view == target

        scales = [f.k for f in frames]
        assert scales == sorted(scales)


class TestRenderSvg:
    def test_every_tpu_is_filled(self, stylized):
        densities = {r.id: 50.0 for r in SUB_REGIONS}
        svg = stylized.render_svg(densities)
        assert svg.count("<path ") == len(SUB_REGIONS)
        assert svg.count('fill="#ff8800"') == len(SUB_REGIONS)
        assert "<text" not in svg

    def test_missing_density_uses_low_end(self, stylized):
        svg = stylized.render_svg({})
        assert 'fill="#ffe5cc"' in svg

    def test_labels_when_zoomed_in(self, stylized):
        stylized.zoom_to(4)
        svg = stylized.render_svg({})
        assert svg.count("<text") == len(SUB_REGIONS)
        assert "Kennedy Town" in svg
        assert 'scale(4)' in svg


# =============================================================================
# Geo-accurate map
# =============================================================================

class TestGeoMap:
    def test_not_ready_before_load(self, boundary_file):
        controller = GeoMapController(BoundaryLoader(str(boundary_file)))
        assert controller.status == FetchStatus.idle
        with pytest.raises(MapNotReadyError):
            controller.hover("CW101")
        with pytest.raises(MapNotReadyError):
            controller.build_map()

    def test_failed_load(self, tmp_path):
        controller = GeoMapController(BoundaryLoader(str(tmp_path / "a.geojson"), str(tmp_path / "b.geojson")))
        assert asyncio.run(controller.load()) == FetchStatus.failed
        with pytest.raises(MapNotReadyError):
            controller.click("CW101")

    def test_feature_densities(self, geo):
        assert geo.feature_density("CW101") == 85
        assert geo.feature_density("E201") == 30
        assert geo.feature_density("999") == hash_density("999")

    def test_computed_style(self, geo):
        style = geo.computed_style("CW101")
        assert style.fill_color == "#b30000"
        assert (style.weight, style.opacity, style.color, style.fill_opacity) == (1, 1, "white", 0.7)

    def test_hover_highlights_and_opens_popup(self, geo):
        result = geo.hover("CW101")
        assert result.popup_open
        assert result.style.weight == 3
        assert result.style.color == "#FFE082"
        assert result.style.fill_opacity == 0.9
        assert result.style.fill_color == "#b30000"
        assert "TPU: CW101" in result.popup_html
        assert "Metric: Age" in result.popup_html
        assert "#d32f2f" in result.popup_html
        assert "85/100" in result.popup_html

    def test_leave_restores_computed_style(self, geo):
        geo.hover("CW101")
        result = geo.leave("CW101")
        assert not result.popup_open
        assert result.style == geo.computed_style("CW101")

    def test_click_opens_popup(self, geo):
        result = geo.click("E201")
        assert result.popup_open
        assert result.style.weight == 1
        assert "#2e7d32" in result.popup_html

    def test_unknown_feature(self, geo):
        with pytest.raises(UnknownFeatureError):
            geo.hover("NOPE")

    def test_update_recomputes(self, geo):
        geo.update(district_scores(CW=10), "Marital")
        assert geo.feature_density("CW101") == 10
        assert "Metric: Marital" in geo.popup_html("CW101")

    def test_build_map(self, geo):
        m = geo.build_map()
        assert isinstance(m, folium.Map)
        rendered = m.get_root().render()
        assert "CW101" in rendered
        assert "Similarity Score:" in rendered

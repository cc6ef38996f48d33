"""
Census Map API Router

Endpoints behind the dashboard: metric selection, district densities,
TPU colouring for the stylized map, and the geo-accurate map's boundary
loading and feature interactions.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import HTMLResponse

from app.config import Settings, get_settings
from app.middleware.rate_limit import limiter
from app.models.schemas import (
    BoundaryStatusResponse,
    DensityRequest,
    DensityResponse,
    FeatureInteractionResponse,
    FetchStatus,
    MapStateResponse,
    MetricSelectRequest,
    SessionCreateRequest,
    ViewAction,
    ViewGestureRequest,
)
from app.services.boundary_service import BOUNDARY_LOAD_ERROR_MESSAGE
from app.services.dashboard_session import (
    DASHBOARD_METRICS,
    VISUALIZATION_OPTIONS,
    DashboardSession,
    SessionStore,
    create_session,
    get_session_store,
    resolve_metric,
)
from app.services.density_source import DensitySource, get_density_source
from app.services.map_controller import MapNotReadyError, UnknownFeatureError
from app.services.region_catalog import DISTRICTS, get_district, get_sub_regions

settings = get_settings()

router = APIRouter()


# =============================================================================
# Shared Helpers
# =============================================================================

def get_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> DashboardSession:
    session = store.get(session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found"
        )
    return session


def _metric_or_400(key: str):
    try:
        return resolve_metric(key)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown profile attribute: {key}"
        )


def _geo_unavailable(session: DashboardSession) -> HTTPException:
    if session.geo.status == FetchStatus.failed:
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=BOUNDARY_LOAD_ERROR_MESSAGE
        )
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Map data is not loaded yet"
    )


# =============================================================================
# Catalog Endpoints
# =============================================================================

@router.get("/metrics")
async def list_metrics():
    """Metrics the dashboard can colour the map by."""
    return {
        "dashboard": [m.model_dump() for m in DASHBOARD_METRICS],
        "visualizationOptions": [m.model_dump() for m in VISUALIZATION_OPTIONS],
    }


@router.get("/regions")
async def list_regions(district: Optional[str] = Query(None, description="Only TPUs of this district code")):
    """Districts (canonical order) and their TPUs."""
    if district and get_district(district) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown district: {district}"
        )
    return {
        "districts": [d.model_dump() for d in DISTRICTS],
        "subRegions": [
            {"id": r.id, "districtId": r.parent_id, "name": r.name, "path": r.path}
            for r in get_sub_regions(district)
        ],
    }


@router.post("/densities", response_model=DensityResponse)
@limiter.limit(settings.density_rate_limit)
async def get_district_densities(
    request: Request,
    data: DensityRequest,
    source: DensitySource = Depends(get_density_source),
):
    """District similarity densities for one attribute of a profile."""
    result = await source.fetch(data.profile, data.attribute)
    return DensityResponse(
        attribute=data.attribute,
        districts=result.scores,
        source=result.source,
    )


# =============================================================================
# Session Endpoints
# =============================================================================

@router.post("/sessions", response_model=MapStateResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.density_rate_limit)
async def start_session(
    request: Request,
    data: SessionCreateRequest,
    store: SessionStore = Depends(get_session_store),
    source: DensitySource = Depends(get_density_source),
    app_settings: Settings = Depends(get_settings),
):
    """Hand a completed profile to the dashboard and load the first metric."""
    metric = _metric_or_400(data.metric) if data.metric else DASHBOARD_METRICS[0]
    session = create_session(data.profile, metric=metric, settings=app_settings, density_source=source)
    store.add(session)

    session.view.intro_frames()
    await session.select_metric(metric)
    return session.map_state()


@router.get("/sessions/{session_id}", response_model=MapStateResponse)
async def get_map_state(session: DashboardSession = Depends(get_session)):
    """Current map state. While a refresh is loading the previous densities are returned."""
    return session.map_state()


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def end_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
):
    if not store.remove(session_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sessions/{session_id}/metric", response_model=MapStateResponse)
@limiter.limit(settings.density_rate_limit)
async def select_metric(
    request: Request,
    data: MetricSelectRequest,
    response: Response,
    wait: bool = Query(True, description="Wait for the new densities before responding"),
    session: DashboardSession = Depends(get_session),
):
    """
    Switch the active metric.

    With `wait=false` the refresh runs in the background and the response
    carries the previous densities with `loading=true`.
    """
    metric = _metric_or_400(data.key)

    if wait:
        await session.select_metric(metric)
    else:
        session.refresh_in_background(metric)
        response.status_code = status.HTTP_202_ACCEPTED

    return session.map_state()


# =============================================================================
# Stylized Map
# =============================================================================

@router.post("/sessions/{session_id}/view")
async def apply_view_gesture(
    gesture: ViewGestureRequest,
    session: DashboardSession = Depends(get_session),
):
    """Apply a zoom, pan or reset gesture to the stylized map."""
    controller = session.view
    if gesture.action == ViewAction.zoom:
        center = None
        if gesture.center_x is not None and gesture.center_y is not None:
            center = (gesture.center_x, gesture.center_y)
        controller.zoom(gesture.factor, center)
    elif gesture.action == ViewAction.pan:
        controller.pan(gesture.dx, gesture.dy)
    else:
        controller.reset()

    return {
        "view": controller.view.model_dump(),
        "labelsVisible": controller.labels_visible,
    }


@router.get("/sessions/{session_id}/map.svg")
async def render_stylized_map(session: DashboardSession = Depends(get_session)):
    svg = session.view.render_svg(session.sub_region_densities)
    return Response(content=svg, media_type="image/svg+xml")


# =============================================================================
# Geo-accurate Map
# =============================================================================

def _boundary_status(session: DashboardSession) -> BoundaryStatusResponse:
    return BoundaryStatusResponse(
        status=session.geo.status,
        feature_count=session.geo.loader.feature_count,
        error=session.geo.loader.error,
    )


@router.get("/sessions/{session_id}/boundaries", response_model=BoundaryStatusResponse)
async def get_boundary_status(session: DashboardSession = Depends(get_session)):
    return _boundary_status(session)


@router.post("/sessions/{session_id}/boundaries/load", response_model=BoundaryStatusResponse)
async def load_boundaries(session: DashboardSession = Depends(get_session)):
    """Load the TPU boundary dataset. A failed load is not retried."""
    await session.geo.load()
    return _boundary_status(session)


@router.post(
    "/sessions/{session_id}/features/{feature_id}/{event}",
    response_model=FeatureInteractionResponse,
)
async def feature_event(
    feature_id: str,
    event: Literal["hover", "leave", "click"],
    session: DashboardSession = Depends(get_session),
):
    """Pointer event on a boundary feature. Returns its style and popup state."""
    handler = {
        "hover": session.geo.hover,
        "leave": session.geo.leave,
        "click": session.geo.click,
    }[event]

    try:
        return handler(feature_id)
    except MapNotReadyError:
        raise _geo_unavailable(session)
    except UnknownFeatureError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Feature not found: {feature_id}"
        )


@router.get("/sessions/{session_id}/geo-map", response_class=HTMLResponse)
async def render_geo_map(session: DashboardSession = Depends(get_session)):
    """Leaflet choropleth of the TPU boundaries."""
    try:
        m = session.geo.build_map()
    except MapNotReadyError:
        raise _geo_unavailable(session)
    return HTMLResponse(m.get_root().render())

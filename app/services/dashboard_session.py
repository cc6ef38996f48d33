"""
Dashboard Session Service

One session per submitted profile. A session owns the single density slot
(district scores, TPU densities, insight) and the two map controllers.

Density refresh:
- IDLE -> LOADING -> READY | FAILED
- While LOADING the previous density set stays readable.
- Every refresh takes a sequence number; only the newest request may write
  the density slot. A slower, superseded response is discarded.

Sessions are kept in memory only.
"""

import asyncio
import logging
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Optional

from app.config import Settings, get_settings
from app.models.schemas import (
    CensusProfile,
    DistrictAnalysis,
    FetchStatus,
    Insight,
    MapMetric,
    MapStateResponse,
    SubRegionDensity,
)
from app.services.boundary_service import BoundaryLoader
from app.services.color_mapper import ColorMapper, get_color_mapper
from app.services.density_source import DensitySource, get_density_source
from app.services.distributor import Distributor, catalog_regions, get_distributor
from app.services.insight import derive_insight
from app.services.map_controller import GeoMapController, StylizedMapController
from app.services.region_catalog import SUB_REGIONS
from app.utils.async_utils import create_task_with_error_handling
from app.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


# Metric selector shown on the dashboard
DASHBOARD_METRICS: tuple[MapMetric, ...] = (
    MapMetric(key="age", label="Age"),
    MapMetric(key="ethnicity", label="Ethnicity"),
    MapMetric(key="industry", label="Industry"),
    MapMetric(key="housingType", label="Housing"),
    MapMetric(key="maritalStatus", label="Marital"),
)

# Wider option list offered by the visualization picker
VISUALIZATION_OPTIONS: tuple[MapMetric, ...] = (
    MapMetric(key="age", label="Age Distribution"),
    MapMetric(key="maritalStatus", label="Marital Status"),
    MapMetric(key="gender", label="Gender Ratio"),
    MapMetric(key="education", label="Education Level"),
    MapMetric(key="occupation", label="Occupation"),
)


def resolve_metric(key: str) -> MapMetric:
    """
    Selector for an attribute key, labelled from the known metric lists.

    Raises:
        ValueError: If the key is not a profile attribute
    """
    normalized = MapMetric(key=key, label=key)
    for metric in DASHBOARD_METRICS + VISUALIZATION_OPTIONS:
        if metric.key == normalized.key:
            return metric
    return MapMetric(key=normalized.key, label=normalized.key)


class DashboardSession:
    def __init__(
        self,
        profile: CensusProfile,
        density_source: DensitySource,
        distributor: Distributor,
        color_mapper: ColorMapper,
        boundary_loader: BoundaryLoader,
        metric: Optional[MapMetric] = None,
        session_id: Optional[str] = None,
    ):
        self.id = session_id or str(uuid.uuid4())
        self.profile = profile
        self.metric = metric or DASHBOARD_METRICS[0]
        self.density_source = density_source
        self.distributor = distributor
        self.color_mapper = color_mapper

        self.status = FetchStatus.idle
        self.source_name: Optional[str] = None
        self.district_scores: list[DistrictAnalysis] = []
        self.sub_region_densities: dict[str, float] = {}
        self.insight: Insight = derive_insight(profile, self.metric, [])
        self.created_at: datetime = utc_now()
        self.updated_at: Optional[datetime] = None

        self.view = StylizedMapController(color_mapper)
        self.geo = GeoMapController(boundary_loader)

        self._issued = 0
        self._refresh_tasks: set[asyncio.Task] = set()

    @property
    def pending_refreshes(self) -> int:
        return len(self._refresh_tasks)

    @property
    def loading(self) -> bool:
        return self.status == FetchStatus.loading

    # -- refresh --------------------------------------------------------------

    def begin_refresh(self, metric: MapMetric) -> int:
        """Activate a metric and open a new request. Returns its sequence number."""
        self._issued += 1
        self.metric = metric
        self.status = FetchStatus.loading
        return self._issued

    def apply_result(self, seq: int, scores: list[DistrictAnalysis], source: str) -> bool:
        """Write a response into the density slot unless a newer request exists."""
        if seq != self._issued:
            logger.debug(f"Session {self.id}: discarding superseded density response #{seq} (latest #{self._issued})")
            return False

        self.sub_region_densities = self.distributor.distribute(scores, catalog_regions())
        self.district_scores = list(scores)
        self.source_name = source
        self.insight = derive_insight(self.profile, self.metric, self.district_scores)
        self.geo.update(self.district_scores, self.metric.label)
        self.status = FetchStatus.ready
        self.updated_at = utc_now()
        return True

    async def select_metric(self, metric: MapMetric) -> bool:
        """
        Fetch and apply densities for a metric.

        Returns False when the response was superseded or could not be applied.
        The previous density set is kept in both cases.
        """
        seq = self.begin_refresh(metric)
        return await self._fetch_and_apply(seq, metric)

    def refresh_in_background(self, metric: MapMetric) -> asyncio.Task:
        """
        Start a refresh without waiting for it. The session is LOADING on return.

        The session holds the task until it finishes; the event loop only keeps
        a weak reference.
        """
        seq = self.begin_refresh(metric)
        task = create_task_with_error_handling(
            self._fetch_and_apply(seq, metric),
            task_name=f"density_refresh:{self.id}:{metric.key}",
            on_error=lambda e: self._mark_failed(seq),
        )
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)
        return task

    def _mark_failed(self, seq: int) -> None:
        if seq == self._issued:
            self.status = FetchStatus.failed

    async def _fetch_and_apply(self, seq: int, metric: MapMetric) -> bool:
        result = await self.density_source.fetch(self.profile, metric.key)
        try:
            return self.apply_result(seq, result.scores, result.source)
        except Exception as e:
            logger.error(f"Session {self.id}: failed to apply densities for '{metric.key}': {e}", exc_info=True)
            self._mark_failed(seq)
            return False

    # -- views ----------------------------------------------------------------

    def sub_regions(self) -> list[SubRegionDensity]:
        result = []
        for region in SUB_REGIONS:
            density = self.sub_region_densities.get(region.id, 0.0)
            result.append(SubRegionDensity(
                id=region.id,
                district_id=region.parent_id,
                name=region.name,
                density=round(density, 2),
                color=self.color_mapper(density),
            ))
        return result

    def map_state(self) -> MapStateResponse:
        return MapStateResponse(
            session_id=self.id,
            metric=self.metric,
            status=self.status,
            loading=self.loading,
            districts=self.district_scores,
            sub_regions=self.sub_regions(),
            insight=self.insight,
            view=self.view.view,
            labels_visible=self.view.labels_visible,
            updated_at=self.updated_at,
        )


# =============================================================================
# Session store
# =============================================================================

MAX_SESSIONS = 1000


class SessionStore:
    """In-memory sessions, oldest evicted first once the cap is reached."""

    def __init__(self, max_sessions: int = MAX_SESSIONS):
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, DashboardSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, session: DashboardSession) -> DashboardSession:
        self._sessions[session.id] = session
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info(f"Evicted dashboard session {evicted}")
        return session

    def get(self, session_id: str) -> Optional[DashboardSession]:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None


def create_session(
    profile: CensusProfile,
    metric: Optional[MapMetric] = None,
    settings: Optional[Settings] = None,
    density_source: Optional[DensitySource] = None,
) -> DashboardSession:
    """Build a session wired from configuration."""
    settings = settings or get_settings()
    return DashboardSession(
        profile=profile,
        density_source=density_source or get_density_source(),
        distributor=get_distributor(settings.distribution_policy, band=settings.noise_band),
        color_mapper=get_color_mapper(settings.color_scheme),
        boundary_loader=BoundaryLoader(
            settings.boundary_geojson_path,
            settings.boundary_geojson_fallback_path,
        ),
        metric=metric,
    )


_session_store: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get or create the session store singleton."""
    global _session_store
    if _session_store is None:
        _session_store = SessionStore()
    return _session_store

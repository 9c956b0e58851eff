"""Map routes - public report pins and environmental readings.

Only active reports (Submitted, In Review, Resolved) that carry coordinates
are exposed, as a list or as a live feed. Environmental readings are
best-effort: the endpoint returns null when the provider is unavailable.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket
from pydantic import BaseModel, Field

from ecowatch.models.environment import EnvironmentalSnapshot
from ecowatch.models.report import Coordinates, Report, ReportImage
from ecowatch.services.dashboard import ReportDashboard
from ecowatch.services.environment import EnvironmentService, get_environment_service
from ecowatch.services.report_service import ReportService, get_report_service
from ecowatch.services.store import ReportFilter, ReportStore, get_report_store
from ecowatch.utils.live_feed import stream_dashboard


class MapReport(BaseModel):
    """Public projection of a report; omits submitter and audit fields."""
    id: str
    title: str
    description: str
    category: str
    severity: int
    severity_label: str = Field(..., alias="severityLabel")
    status: str
    coords: Coordinates
    images: List[ReportImage] = []
    created_at: str = Field(..., alias="createdAt")

    class Config:
        populate_by_name = True


router = APIRouter(prefix="/map", tags=["Map"])


def to_map_reports(reports: List[Report]) -> List[MapReport]:
    return [
        MapReport(
            id=r.id,
            title=r.title,
            description=r.description,
            category=r.category.value,
            severity=r.severity,
            severity_label=r.severity_label,
            status=r.status.value,
            coords=r.coords,
            images=r.images,
            created_at=r.created_at.isoformat(),
        )
        for r in reports
        if r.is_locatable
    ]


@router.get("/reports", response_model=List[MapReport], response_model_by_alias=True)
async def map_reports(service: ReportService = Depends(get_report_service)):
    """Active, locatable reports for the public map, newest first."""
    return to_map_reports(await service.list_reports(ReportFilter.public_map()))


@router.websocket("/feed")
async def map_feed(websocket: WebSocket, store: ReportStore = Depends(get_report_store)):
    """
    Live map pins. Public, no authentication.

    Sends {"reports": [...]} with the same projection as GET /map/reports
    after every change to an active report.
    """
    await websocket.accept()

    def render(dashboard: ReportDashboard):
        pins = to_map_reports(dashboard.reports)
        return {"reports": [pin.model_dump(mode="json", by_alias=True) for pin in pins]}

    await stream_dashboard(websocket, store, ReportFilter.public_map(), render)


@router.get("/environment", response_model=Optional[EnvironmentalSnapshot], response_model_by_alias=True)
async def map_environment(
    lat: Optional[float] = Query(None, ge=-90, le=90, description="Latitude (defaults to the city centre)"),
    lng: Optional[float] = Query(None, ge=-180, le=180, description="Longitude (defaults to the city centre)"),
    environment: EnvironmentService = Depends(get_environment_service),
):
    """Current weather and air quality at a coordinate, or null when unavailable."""
    return await environment.get_snapshot(lat, lng)

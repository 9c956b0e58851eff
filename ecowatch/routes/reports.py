"""
Report endpoints - citizen report submission, retrieval, live list and photo upload.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, File, Query, UploadFile, WebSocket, status

from ecowatch.core.errors import PermissionDenied, ValidationError
from ecowatch.models.dashboard import ReportFeedMessage
from ecowatch.models.report import DraftReport, ImageUploadResult, Report
from ecowatch.models.user import User
from ecowatch.services.dashboard import ReportDashboard, filter_by_status
from ecowatch.services.image_service import ImagePayload, ImageService, get_image_service
from ecowatch.services.report_service import ReportService, get_report_service
from ecowatch.services.store import ReportFilter, ReportStore, get_report_store
from ecowatch.services.user_service import UserService, get_user_service
from ecowatch.utils.live_feed import stream_dashboard
from ecowatch.utils.security import authenticate_websocket, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=Report, response_model_by_alias=True)
async def submit_report(
    draft: DraftReport,
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    """
    Submit a citizen report.

    This endpoint:
    1. Validates the draft (title, description, category, severity 1-4, coords)
    2. Stores it with status Submitted
    3. Returns the stored report; photos are attached separately via
       POST /reports/{id}/images
    """
    logger.info(f"📝 POST /reports - user={user.uid}, category={draft.category}")
    return await service.submit_report(draft, user)


@router.get("/mine", response_model=List[Report], response_model_by_alias=True)
async def my_reports(
    status_filter: str = Query("all", alias="status", description="'all', a status value, 'unresolved' or 'active'"),
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    """Reports submitted by the caller, newest first."""
    return await service.list_reports(ReportFilter.citizen(user.uid), status_filter)


@router.websocket("/mine/feed")
async def my_reports_feed(
    websocket: WebSocket,
    status_filter: str = Query("all", alias="status"),
    store: ReportStore = Depends(get_report_store),
    user_service: UserService = Depends(get_user_service),
):
    """
    Live list of the caller's own reports, newest first.

    Same message shape as the council feed; stats cover the caller's reports only.
    """
    user = await authenticate_websocket(websocket, user_service)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        filter_by_status([], status_filter)
    except ValidationError as e:
        logger.warning(f"Rejected report feed for {user.uid}: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    def render(dashboard: ReportDashboard):
        return ReportFeedMessage(
            reports=dashboard.filter_by_status(status_filter),
            stats=dashboard.stats,
        ).model_dump(mode="json", by_alias=True)

    await stream_dashboard(websocket, store, ReportFilter.citizen(user.uid), render)


@router.get("/{report_id}", response_model=Report, response_model_by_alias=True)
async def get_report(
    report_id: str,
    user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    """Single report. Citizens can only read their own reports."""
    report = await service.get_report(report_id)
    if report.user_id != user.uid and not user.is_council:
        raise PermissionDenied("You can only view your own reports")
    return report


@router.post("/{report_id}/images", response_model=ImageUploadResult, response_model_by_alias=True)
async def upload_images(
    report_id: str,
    files: List[UploadFile] = File(..., description="Up to 5 images"),
    user: User = Depends(get_current_user),
    image_service: ImageService = Depends(get_image_service),
):
    """
    Attach photos to a report (owner only).

    Images are stored one by one; the response lists the ones that were
    attached and the ones that failed with a reason.
    """
    payloads = []
    for upload in files:
        payloads.append(ImagePayload(
            filename=upload.filename or "",
            content_type=upload.content_type or "",
            data=await upload.read(),
        ))

    return await image_service.upload_images(report_id, payloads, user)

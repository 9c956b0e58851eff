"""
Council endpoints - triage of submitted reports.

SCOPE OF COUNCIL:
✅ See every report, with counts per status / category / severity
✅ Move reports through Submitted → In Review → Resolved, or Archive them
✅ Follow the live feed over a WebSocket

❌ NOT edit report content
❌ NOT delete reports
"""

import logging

from fastapi import APIRouter, Depends, Query, WebSocket, status

from ecowatch.core.errors import ValidationError
from ecowatch.models.dashboard import ReportFeedMessage, ReportStats
from ecowatch.models.report import Report, StatusUpdateRequest
from ecowatch.models.user import User
from ecowatch.services.dashboard import ReportDashboard, compute_stats, filter_by_status
from ecowatch.services.report_service import ReportService, get_report_service
from ecowatch.services.store import ReportFilter, ReportStore, get_report_store
from ecowatch.services.user_service import UserService, get_user_service
from ecowatch.utils.live_feed import stream_dashboard
from ecowatch.utils.security import authenticate_websocket, require_council

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/council", tags=["Council"])


@router.get("/reports", response_model=ReportFeedMessage, response_model_by_alias=True)
async def council_reports(
    status_filter: str = Query("all", alias="status", description="'all', a status value, 'unresolved' or 'active'"),
    user: User = Depends(require_council),
    store: ReportStore = Depends(get_report_store),
):
    """
    All reports, newest first, projected by `status`.
    Stats are always computed over the unfiltered set.
    """
    reports = await store.fetch(ReportFilter.council())
    return ReportFeedMessage(
        reports=filter_by_status(reports, status_filter),
        stats=compute_stats(reports),
    )


@router.get("/stats", response_model=ReportStats, response_model_by_alias=True)
async def council_stats(
    user: User = Depends(require_council),
    store: ReportStore = Depends(get_report_store),
):
    return compute_stats(await store.fetch(ReportFilter.council()))


@router.get("/reports/{report_id}/allowed-transitions")
async def allowed_transitions(
    report_id: str,
    user: User = Depends(require_council),
    service: ReportService = Depends(get_report_service),
):
    """Statuses the report can move to next."""
    return await service.get_allowed_transitions(report_id)


@router.patch("/reports/{report_id}/status", response_model=Report, response_model_by_alias=True)
async def update_report_status(
    report_id: str,
    request: StatusUpdateRequest,
    user: User = Depends(require_council),
    service: ReportService = Depends(get_report_service),
):
    """
    Change a report's status.

    **Rules:**
    - Submitted → In Review | Resolved | Archived
    - In Review → Resolved | Archived
    - Resolved → Archived
    - Archived is final
    - Setting the current status again only refreshes updatedAt
    - Send `expectedVersion` to get 409 instead of overwriting a concurrent change
    """
    logger.info(f"PATCH /council/reports/{report_id}/status → {request.status.value} by {user.uid}")
    return await service.transition_status(
        report_id,
        request.status,
        user,
        note=request.note,
        expected_version=request.expected_version,
    )


@router.websocket("/feed")
async def council_feed(
    websocket: WebSocket,
    status_filter: str = Query("all", alias="status"),
    store: ReportStore = Depends(get_report_store),
    user_service: UserService = Depends(get_user_service),
):
    """
    Live council feed.

    Sends one message per snapshot: {"reports": [...], "stats": {...}}.
    The first message is the current state. The store subscription is
    released as soon as the client disconnects.
    """
    user = await authenticate_websocket(websocket, user_service)
    if user is None or not user.is_council:
        logger.warning("Rejected council feed connection: not authenticated as council")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        filter_by_status([], status_filter)
    except ValidationError as e:
        logger.warning(f"Rejected council feed connection: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    def render(dashboard: ReportDashboard):
        message = ReportFeedMessage(
            reports=dashboard.filter_by_status(status_filter),
            stats=dashboard.stats,
        )
        return message.model_dump(mode="json", by_alias=True)

    await stream_dashboard(websocket, store, ReportFilter.council(), render)
    logger.info(f"Council feed closed for {user.uid}")

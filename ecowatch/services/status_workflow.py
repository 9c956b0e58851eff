"""
Report Lifecycle Engine - state machine over report status.

RULES:
- Submitted → In Review → Resolved; Submitted → Resolved may skip review
- Archived is reachable from every other state, including Resolved
- No backward transitions
- Same-state requests are safe retries: they only refresh updatedAt
- Only council users may transition; drafts are validated before persistence
"""

from datetime import datetime
from typing import Dict, List, Optional

from ecowatch.core.errors import PermissionDenied, ValidationError
from ecowatch.models.report import (
    DraftReport,
    Report,
    ReportCategory,
    ReportStatus,
    StatusHistoryEntry,
    StatusPatch,
)
from ecowatch.models.user import User
from ecowatch.utils.timestamps import utcnow
import logging

logger = logging.getLogger(__name__)


class ReportLifecycleEngine:
    """
    Validates drafts and plans status transitions.

    The engine never talks to the store; it returns StatusPatch objects that
    the store adapter applies.
    """

    # Allowed transitions map: {from_status: [to_status, ...]}
    ALLOWED_TRANSITIONS: Dict[ReportStatus, List[ReportStatus]] = {
        ReportStatus.SUBMITTED: [ReportStatus.IN_REVIEW, ReportStatus.RESOLVED, ReportStatus.ARCHIVED],
        ReportStatus.IN_REVIEW: [ReportStatus.RESOLVED, ReportStatus.ARCHIVED],
        ReportStatus.RESOLVED: [ReportStatus.ARCHIVED],
        ReportStatus.ARCHIVED: [],
    }

    TERMINAL_STATES = frozenset({ReportStatus.RESOLVED, ReportStatus.ARCHIVED})

    INITIAL_STATUS = ReportStatus.SUBMITTED

    VALID_SEVERITIES = (1, 2, 3, 4)

    def __init__(self, max_images: int = 5):
        self.max_images = max_images

    @classmethod
    def is_valid_transition(cls, from_status: str, to_status: str) -> bool:
        """
        Check if a status transition is valid.

        Args:
            from_status: Current status
            to_status: Desired new status

        Returns:
            True if transition is allowed, False otherwise
        """
        try:
            from_enum = ReportStatus(from_status)
            to_enum = ReportStatus(to_status)
        except ValueError:
            return False

        # Same status is always valid (no-op that refreshes updatedAt)
        if from_enum == to_enum:
            return True

        return to_enum in cls.ALLOWED_TRANSITIONS.get(from_enum, [])

    @classmethod
    def get_allowed_transitions(cls, current_status: str) -> List[str]:
        """List of statuses reachable from `current_status` (excluding itself)."""
        try:
            current_enum = ReportStatus(current_status)
        except ValueError:
            return []
        return [status.value for status in cls.ALLOWED_TRANSITIONS.get(current_enum, [])]

    @staticmethod
    def authorize(user: Optional[User]) -> None:
        """Raise PermissionDenied unless `user` holds the council role."""
        if user is None or not user.is_council:
            uid = user.uid if user else "anonymous"
            logger.warning(f"Status transition rejected for {uid}: council role required")
            raise PermissionDenied("Only council staff may change report status")

    def validate_draft(self, draft: DraftReport) -> DraftReport:
        """
        Check that a draft is complete enough to submit.

        Collects every problem before raising so the form can show them all.

        Raises:
            ValidationError: listing each offending field
        """
        errors: List[Dict] = []

        if not draft.title or not draft.title.strip():
            errors.append({"field": "title", "message": "Title is required"})

        if not draft.description or not draft.description.strip():
            errors.append({"field": "description", "message": "Description is required"})

        if draft.category is None:
            errors.append({"field": "category", "message": "Category is required"})
        else:
            try:
                ReportCategory(draft.category)
            except ValueError:
                allowed = [c.value for c in ReportCategory]
                errors.append({"field": "category", "message": f"Unknown category '{draft.category}'. Allowed: {allowed}"})

        if draft.severity is None:
            errors.append({"field": "severity", "message": "Severity is required"})
        elif isinstance(draft.severity, bool) or draft.severity not in self.VALID_SEVERITIES:
            errors.append({"field": "severity", "message": "Severity must be one of 1, 2, 3, 4"})

        if draft.coords is None:
            errors.append({"field": "coords", "message": "Location is required"})
        elif not draft.coords.in_range:
            errors.append({
                "field": "coords",
                "message": "Latitude must be within [-90, 90] and longitude within [-180, 180]",
            })

        if errors:
            raise ValidationError(
                f"Report draft is incomplete: {', '.join(e['field'] for e in errors)}",
                errors=errors,
            )

        return draft

    def validate_image_count(self, existing: int, adding: int) -> None:
        if existing + adding > self.max_images:
            raise ValidationError(
                f"Maximum {self.max_images} images allowed per report "
                f"({existing} attached, {adding} requested)",
                errors=[{"field": "images", "message": f"Maximum {self.max_images} images allowed"}],
            )

    @classmethod
    def create_status_history_entry(
        cls,
        from_status: str,
        to_status: str,
        changed_by: str,
        timestamp: datetime,
        note: Optional[str] = None
    ) -> StatusHistoryEntry:
        """
        Create a status history entry for the audit trail.

        Uses a concrete timestamp: Firestore does not accept server
        timestamps inside arrays.
        """
        return StatusHistoryEntry(
            from_status=from_status,
            to_status=to_status,
            changed_by=changed_by,
            timestamp=timestamp,
            note=note or "",
        )

    def plan_transition(
        self,
        report: Report,
        new_status: ReportStatus,
        actor: Optional[User],
        note: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> StatusPatch:
        """
        Authorize, validate and compute the effects of a transition.

        Returns:
            StatusPatch to hand to the store adapter

        Raises:
            PermissionDenied: caller is not council staff
            ValidationError: transition is not allowed from the current status
        """
        self.authorize(actor)

        new_status = ReportStatus(new_status)
        current_status = report.status

        if not self.is_valid_transition(current_status, new_status):
            allowed = self.get_allowed_transitions(current_status)
            raise ValidationError(
                f"Invalid status transition: {current_status.value} → {new_status.value}. "
                f"Allowed transitions from {current_status.value}: {allowed}",
                errors=[{"field": "status", "message": f"Allowed: {allowed}"}],
            )

        now = now or utcnow()

        # Repeated identical transition: refresh updatedAt only
        if current_status == new_status:
            logger.info(f"Report {report.id} already {new_status.value}; refreshing updatedAt only")
            return StatusPatch(status=new_status, updated_at=now, version=report.version)

        patch = StatusPatch(
            status=new_status,
            updated_at=now,
            version=report.version + 1,
            history_entry=self.create_status_history_entry(
                from_status=current_status.value,
                to_status=new_status.value,
                changed_by=actor.uid,
                timestamp=now,
                note=note,
            ),
        )

        if new_status == ReportStatus.IN_REVIEW and report.reviewed_at is None:
            patch.reviewed_at = now
        elif new_status == ReportStatus.RESOLVED:
            patch.resolved_at = now
        elif new_status == ReportStatus.ARCHIVED and report.resolved_at is not None:
            # resolvedAt is only meaningful while status == Resolved
            patch.clear_resolved_at = True

        return patch

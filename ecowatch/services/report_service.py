"""
Report service - business logic for submission and council triage.

FLOW:
- UI → ReportService → ReportLifecycleEngine (validate / authorize / plan)
  → ReportStore (persist) → live snapshot → dashboard
- Transient store failures are retried under the configured RetryPolicy
- Validation and permission failures are never retried
"""

import logging
from typing import Dict, List, Optional

from fastapi import Depends

from ecowatch.models.report import DraftReport, Report, ReportStatus
from ecowatch.models.user import User
from ecowatch.services.dashboard import filter_by_status
from ecowatch.services.status_workflow import ReportLifecycleEngine
from ecowatch.services.store import ReportFilter, ReportStore, get_report_store
from ecowatch.utils.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)


class ReportService:
    """
    Orchestrates the lifecycle engine and the report store.
    """

    def __init__(
        self,
        store: ReportStore,
        engine: Optional[ReportLifecycleEngine] = None,
        retry_policy: Optional[RetryPolicy] = None
    ):
        self.store = store
        self.engine = engine or store.engine
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    async def submit_report(self, draft: DraftReport, user: User) -> Report:
        """
        Validate and persist a citizen draft.

        The document ID is reserved up-front so a retried create rewrites the
        same document instead of creating a duplicate.

        Returns:
            The stored report (status Submitted)

        Raises:
            ValidationError: draft incomplete
            StoreUnavailable: store unreachable after retries
        """
        self.engine.validate_draft(draft)

        report_id = self.store.allocate_id()
        await call_with_retry(
            lambda: self.store.create(draft, user.uid, report_id=report_id),
            self.retry_policy,
            description=f"create report {report_id}",
        )

        report = await self.store.get(report_id)
        logger.info(f"✅ Report {report_id} submitted by {user.uid} ({report.category.value}, severity {report.severity})")
        return report

    async def get_report(self, report_id: str) -> Report:
        return await self.store.get(report_id)

    async def list_reports(self, report_filter: ReportFilter, status_filter: str = "all") -> List[Report]:
        """One-shot query projected through the same status filter the dashboard uses."""
        reports = await self.store.fetch(report_filter)
        return filter_by_status(reports, status_filter)

    async def transition_status(
        self,
        report_id: str,
        new_status: ReportStatus,
        actor: Optional[User],
        note: Optional[str] = None,
        expected_version: Optional[int] = None
    ) -> Report:
        """
        Move a report to `new_status` on behalf of council staff.

        Without `expected_version` concurrent updates are last-write-wins.

        Raises:
            PermissionDenied: actor is not council (report untouched)
            NotFound: unknown report id
            ValidationError: transition not allowed from the current status
            Conflict: expected_version given and stale
            StoreUnavailable: store unreachable after retries
        """
        # Check the role before touching the store at all
        self.engine.authorize(actor)

        current = await self.store.get(report_id)
        patch = self.engine.plan_transition(current, new_status, actor, note=note)

        updated = await call_with_retry(
            lambda: self.store.update(report_id, patch, actor, expected_version=expected_version),
            self.retry_policy,
            description=f"update report {report_id} status",
        )

        logger.info(f"✅ Council {actor.uid} updated report {report_id}: {current.status.value} → {updated.status.value}")
        return updated

    async def get_allowed_transitions(self, report_id: str) -> Dict:
        report = await self.store.get(report_id)
        return {
            "report_id": report.id,
            "current_status": report.status.value,
            "allowed_transitions": self.engine.get_allowed_transitions(report.status),
        }


def get_report_service(store: ReportStore = Depends(get_report_store)) -> ReportService:
    """FastAPI dependency; tests override get_report_store."""
    return ReportService(store)

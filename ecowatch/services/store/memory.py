"""
In-memory report store.

Used when USE_MOCK_DB=true (local development without Firebase credentials)
and by the test-suite. Behaves like the Firestore adapter: full snapshots,
createdAt-descending order, last-write-wins unless a version is supplied.
"""

import itertools
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from ecowatch.core.errors import Conflict, NotFound
from ecowatch.models.report import DraftReport, Report, ReportImage, StatusPatch
from ecowatch.models.user import User
from ecowatch.services.status_workflow import ReportLifecycleEngine
from ecowatch.services.store.base import (
    ReportFilter,
    ReportStore,
    ReportSubscription,
    Snapshot,
    SnapshotCallback,
)
from ecowatch.utils.timestamps import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class InMemoryReportStore(ReportStore):

    def __init__(self, engine: Optional[ReportLifecycleEngine] = None):
        super().__init__(engine)
        self._reports: Dict[str, Report] = {}
        self._sequence: Dict[str, int] = {}
        self._image_batches: Dict[str, List[Dict[str, Any]]] = {}
        self._listeners: Dict[int, Tuple[ReportFilter, SnapshotCallback]] = {}
        self._counter = itertools.count(1)
        self._listener_ids = itertools.count(1)

    def allocate_id(self) -> str:
        return uuid.uuid4().hex[:20]

    async def create(self, draft: DraftReport, user_id: str, report_id: Optional[str] = None) -> str:
        report_id = report_id or self.allocate_id()
        now = utcnow()

        document = self.build_new_document(draft, user_id, timestamp=now, history_time=now)
        report = Report.from_document(report_id, document)

        if report_id not in self._sequence:
            self._sequence[report_id] = next(self._counter)
        self._commit(report_id, report)

        logger.info(f"Report saved to memory store: {report_id}")
        return report_id

    async def get(self, report_id: str) -> Report:
        report = self._reports.get(report_id)
        if report is None:
            raise NotFound(f"Report {report_id} not found")
        return report

    async def update(
        self,
        report_id: str,
        patch: StatusPatch,
        actor: Optional[User],
        expected_version: Optional[int] = None
    ) -> Report:
        self._check_actor(actor)
        current = await self.get(report_id)

        if expected_version is not None and current.version != expected_version:
            raise Conflict(
                f"Report {report_id} was modified concurrently "
                f"(expected version {expected_version}, found {current.version})",
                expected_version=expected_version,
                actual_version=current.version,
            )

        updated = patch.apply_to(current)
        self._commit(report_id, updated)
        return updated

    async def fetch(self, report_filter: ReportFilter) -> Snapshot:
        return self._snapshot(report_filter)

    def subscribe(self, report_filter: ReportFilter) -> ReportSubscription:
        def start_listener(callback: SnapshotCallback):
            listener_id = next(self._listener_ids)
            self._listeners[listener_id] = (report_filter, callback)
            callback(self._snapshot(report_filter))

            def unsubscribe():
                self._listeners.pop(listener_id, None)

            return unsubscribe

        return ReportSubscription(start_listener, description=f"memory:{report_filter.describe()}")

    async def attach_images(self, report_id: str, images: List[ReportImage]) -> Report:
        current = await self.get(report_id)
        self.engine.validate_image_count(len(current.images), len(images))

        self._image_batches.setdefault(report_id, []).append({
            "images": [image.model_dump(by_alias=True) for image in images],
            "createdAt": utcnow(),
        })

        updated = current.model_copy(update={"images": [*current.images, *images]})
        self._commit(report_id, updated)
        return updated

    async def ping(self) -> Dict[str, Any]:
        return {"backend": "memory", "reports": len(self._reports)}

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def image_batches(self, report_id: str) -> List[Dict[str, Any]]:
        """Documents written to the per-report images sub-collection."""
        return list(self._image_batches.get(report_id, []))

    def load(self, reports: List[Report]) -> None:
        """Insert already-built reports (seeding)."""
        for report in reports:
            if report.id not in self._sequence:
                self._sequence[report.id] = next(self._counter)
            self._commit(report.id, report)

    def _snapshot(self, report_filter: ReportFilter) -> Snapshot:
        matching = [r for r in self._reports.values() if report_filter.matches(r)]
        matching.sort(
            key=lambda r: (ensure_utc(r.created_at), self._sequence.get(r.id, 0)),
            reverse=True,
        )
        return matching

    def _commit(self, report_id: str, report: Report) -> None:
        previous = self._reports.get(report_id)
        self._reports[report_id] = report

        for report_filter, callback in list(self._listeners.values()):
            touched = report_filter.matches(report) or (
                previous is not None and report_filter.matches(previous)
            )
            if touched:
                callback(self._snapshot(report_filter))

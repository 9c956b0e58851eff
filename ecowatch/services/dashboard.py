"""
Aggregation & Dashboard View Model.

Consumes the live report feed and exposes read-only state for the citizen,
council and public map views:
- derived counts, recomputed in full on every snapshot
- pure status projections over the current snapshot
- the currently selected report

Each snapshot replaces the whole state, so duplicate or repeated deliveries
are harmless.
"""

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager, suppress
from typing import TYPE_CHECKING, AsyncIterator, Callable, Dict, FrozenSet, List, Optional, Sequence, Union

from ecowatch.core.errors import NotFound, ValidationError
from ecowatch.models.dashboard import ReportStats
from ecowatch.models.report import Report, ReportStatus
from ecowatch.models.user import User
from ecowatch.services.store.base import (
    PUBLIC_MAP_STATUSES,
    ReportFilter,
    ReportStore,
    ReportSubscription,
)

if TYPE_CHECKING:
    from ecowatch.services.report_service import ReportService

logger = logging.getLogger(__name__)

ALL = "all"

# Named projections on top of single-status filters
STATUS_PROJECTIONS: Dict[str, FrozenSet[ReportStatus]] = {
    "unresolved": frozenset({ReportStatus.SUBMITTED, ReportStatus.IN_REVIEW}),
    "active": frozenset(PUBLIC_MAP_STATUSES),
}


def compute_stats(reports: Sequence[Report]) -> ReportStats:
    """Full recount over one snapshot."""
    by_status = Counter(r.status.value for r in reports)
    by_category = Counter(r.category.value for r in reports)
    by_severity = Counter(r.severity for r in reports)

    return ReportStats(
        total=len(reports),
        by_status=dict(by_status),
        by_category=dict(by_category),
        by_severity=dict(sorted(by_severity.items())),
    )


def filter_by_status(reports: Sequence[Report], value: Union[str, ReportStatus, None] = ALL) -> List[Report]:
    """
    Pure projection preserving snapshot order.

    `value` is "all" (identity), a status value ("In Review"), or a named
    projection ("unresolved", "active").

    Raises:
        ValidationError: unknown filter value
    """
    if value is None or value == ALL:
        return list(reports)

    if isinstance(value, ReportStatus):
        wanted = frozenset({value})
    elif value in STATUS_PROJECTIONS:
        wanted = STATUS_PROJECTIONS[value]
    else:
        try:
            wanted = frozenset({ReportStatus(value)})
        except ValueError:
            allowed = [ALL, *[s.value for s in ReportStatus], *STATUS_PROJECTIONS]
            raise ValidationError(
                f"Unknown status filter '{value}'. Allowed: {allowed}",
                errors=[{"field": "status", "message": f"Allowed: {allowed}"}],
            )

    return [r for r in reports if r.status in wanted]


class ReportDashboard:
    """
    Observable state container fed by a ReportSubscription.

    Listeners registered with add_listener() are called after every applied
    snapshot (the UI re-render hook).
    """

    def __init__(self):
        self._reports: List[Report] = []
        self._stats = ReportStats()
        self._selected_id: Optional[str] = None
        self._listeners: List[Callable[["ReportDashboard"], None]] = []
        self._changed = asyncio.Event()
        self.snapshot_count = 0

    @property
    def reports(self) -> List[Report]:
        return list(self._reports)

    @property
    def stats(self) -> ReportStats:
        return self._stats

    @property
    def loading(self) -> bool:
        return self.snapshot_count == 0

    @property
    def selected(self) -> Optional[Report]:
        if self._selected_id is None:
            return None
        return next((r for r in self._reports if r.id == self._selected_id), None)

    def apply_snapshot(self, reports: Sequence[Report]) -> None:
        """Replace all state with `reports` and recount."""
        self._reports = list(reports)
        self._stats = compute_stats(self._reports)

        if self._selected_id is not None and self.selected is None:
            logger.info(f"Selected report {self._selected_id} left the feed; clearing selection")
            self._selected_id = None

        self.snapshot_count += 1
        self._changed.set()

        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Dashboard listener failed: {e}", exc_info=True)

    def filter_by_status(self, value: Union[str, ReportStatus, None] = ALL) -> List[Report]:
        return filter_by_status(self._reports, value)

    def select(self, report_id: str) -> Report:
        report = next((r for r in self._reports if r.id == report_id), None)
        if report is None:
            raise NotFound(f"Report {report_id} is not in the current snapshot")
        self._selected_id = report_id
        return report

    def clear_selection(self) -> None:
        self._selected_id = None

    async def transition_selected(
        self,
        service: "ReportService",
        new_status: ReportStatus,
        actor: Optional[User],
        note: Optional[str] = None
    ) -> Report:
        """
        Transition the selected report; clears the selection on success and
        keeps it on failure.
        """
        selected = self.selected
        if selected is None:
            raise NotFound("No report selected")

        updated = await service.transition_status(selected.id, new_status, actor, note=note)
        self.clear_selection()
        return updated

    def add_listener(self, callback: Callable[["ReportDashboard"], None]) -> Callable[[], None]:
        self._listeners.append(callback)

        def remove():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    async def consume(self, subscription: ReportSubscription) -> None:
        """Apply snapshots in delivery order until the subscription is cancelled."""
        async for snapshot in subscription:
            self.apply_snapshot(snapshot)

    async def wait_for_snapshot(self, count: int = 1, timeout: float = 5.0) -> None:
        """Block until at least `count` snapshots have been applied."""
        async def _wait():
            while self.snapshot_count < count:
                self._changed.clear()
                await self._changed.wait()

        await asyncio.wait_for(_wait(), timeout=timeout)


@asynccontextmanager
async def watch_reports(
    store: ReportStore,
    report_filter: ReportFilter,
    dashboard: Optional[ReportDashboard] = None
) -> AsyncIterator[ReportDashboard]:
    """
    Scoped live dashboard. The subscription and its consumer task are
    released on every exit path.

    Usage:
        async with watch_reports(store, ReportFilter.council()) as dashboard:
            await dashboard.wait_for_snapshot()
            print(dashboard.stats.total)
    """
    dashboard = dashboard or ReportDashboard()
    subscription = store.subscribe(report_filter)
    await subscription.start()
    consumer = asyncio.create_task(dashboard.consume(subscription))

    try:
        yield dashboard
    finally:
        subscription.cancel()
        consumer.cancel()
        with suppress(asyncio.CancelledError):
            await consumer

"""
Report Store Adapter contract.

The backing store (Cloud Firestore in production) is an external collaborator.
Everything above this layer talks to ReportStore only.

CONTRACT:
- create assigns identity and server timestamps
- update only touches status / timestamp / audit / version fields
- subscribe yields full snapshots ordered by createdAt descending
- attach_images is independent of create, so a report may exist with no images
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from ecowatch.models.report import (
    DraftReport,
    Report,
    ReportImage,
    ReportStatus,
    StatusPatch,
)
from ecowatch.models.user import User
from ecowatch.services.status_workflow import ReportLifecycleEngine

logger = logging.getLogger(__name__)

Snapshot = List[Report]
SnapshotCallback = Callable[[Snapshot], None]
# Registers a snapshot callback with the backing store, returns an unsubscribe function
ListenerStarter = Callable[[SnapshotCallback], Callable[[], None]]

PUBLIC_MAP_STATUSES = (ReportStatus.SUBMITTED, ReportStatus.IN_REVIEW, ReportStatus.RESOLVED)


@dataclass(frozen=True)
class ReportFilter:
    """Equality filter on owner plus membership filter on status."""
    user_id: Optional[str] = None
    statuses: Optional[FrozenSet[ReportStatus]] = None

    @classmethod
    def council(cls) -> "ReportFilter":
        return cls()

    @classmethod
    def citizen(cls, user_id: str) -> "ReportFilter":
        return cls(user_id=user_id)

    @classmethod
    def public_map(cls) -> "ReportFilter":
        return cls(statuses=frozenset(PUBLIC_MAP_STATUSES))

    def matches(self, report: Report) -> bool:
        if self.user_id is not None and report.user_id != self.user_id:
            return False
        if self.statuses is not None and report.status not in self.statuses:
            return False
        return True

    def describe(self) -> str:
        parts = []
        if self.user_id is not None:
            parts.append(f"userId={self.user_id}")
        if self.statuses is not None:
            parts.append("status in [" + ", ".join(sorted(s.value for s in self.statuses)) + "]")
        return " & ".join(parts) or "all reports"


_CLOSED = object()


class ReportSubscription:
    """
    Cancellable stream of full report snapshots.

    Usage:
        async with store.subscribe(ReportFilter.council()) as subscription:
            async for reports in subscription:
                ...

    Listener callbacks may arrive on store SDK threads; they are marshalled
    onto the event loop that called start(). Nothing is delivered after
    cancel(), including snapshots already queued.
    """

    def __init__(self, start_listener: ListenerStarter, description: str = ""):
        self._start_listener = start_listener
        self._description = description
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._started = False
        self._cancelled = False

    @property
    def active(self) -> bool:
        return self._started and not self._cancelled

    async def start(self) -> "ReportSubscription":
        if self._started:
            return self
        if self._cancelled:
            raise RuntimeError("Subscription was cancelled before it started")

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._started = True
        self._unsubscribe = self._start_listener(self._deliver)
        logger.info(f"Subscription started: {self._description}")
        return self

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True

        if self._unsubscribe is not None:
            try:
                self._unsubscribe()
            except Exception as e:
                logger.warning(f"Failed to detach store listener ({self._description}): {e}")
            self._unsubscribe = None

        if self._queue is not None:
            while not self._queue.empty():
                self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)

        logger.info(f"Subscription cancelled: {self._description}")

    def _deliver(self, reports: Snapshot) -> None:
        # May run on a foreign thread
        if self._cancelled or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._enqueue, list(reports))
        except RuntimeError:
            # Event loop already closed
            pass

    def _enqueue(self, reports: Snapshot) -> None:
        if not self._cancelled:
            self._queue.put_nowait(reports)

    async def next_snapshot(self, timeout: Optional[float] = None) -> Snapshot:
        """Wait for the next snapshot; raises StopAsyncIteration once cancelled."""
        if not self._started:
            raise RuntimeError("Subscription not started")
        if self._cancelled:
            raise StopAsyncIteration

        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)

        if item is _CLOSED or self._cancelled:
            raise StopAsyncIteration
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> Snapshot:
        return await self.next_snapshot()

    async def __aenter__(self) -> "ReportSubscription":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class ReportStore(ABC):
    """
    Abstract report persistence.

    Implementations raise the errors in ecowatch.core.errors:
    ValidationError, NotFound, PermissionDenied, Conflict, StoreUnavailable.
    """

    def __init__(self, engine: Optional[ReportLifecycleEngine] = None):
        self.engine = engine or ReportLifecycleEngine()

    @abstractmethod
    def allocate_id(self) -> str:
        """Reserve a new document ID so create() can be retried idempotently."""
        raise NotImplementedError

    @abstractmethod
    async def create(self, draft: DraftReport, user_id: str, report_id: Optional[str] = None) -> str:
        raise NotImplementedError

    @abstractmethod
    async def get(self, report_id: str) -> Report:
        raise NotImplementedError

    @abstractmethod
    async def update(
        self,
        report_id: str,
        patch: StatusPatch,
        actor: Optional[User],
        expected_version: Optional[int] = None
    ) -> Report:
        raise NotImplementedError

    @abstractmethod
    async def fetch(self, report_filter: ReportFilter) -> Snapshot:
        """One-shot query, same ordering as subscribe()."""
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, report_filter: ReportFilter) -> ReportSubscription:
        raise NotImplementedError

    @abstractmethod
    async def attach_images(self, report_id: str, images: List[ReportImage]) -> Report:
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> Dict[str, Any]:
        """Connectivity check for /health/db."""
        raise NotImplementedError

    def _check_actor(self, actor: Optional[User]) -> None:
        self.engine.authorize(actor)

    def build_new_document(self, draft: DraftReport, user_id: str, timestamp: Any, history_time) -> Dict[str, Any]:
        """
        Document body for a freshly submitted report.

        `timestamp` is written to createdAt/updatedAt/submittedAt (a concrete
        datetime or the store's server-timestamp sentinel); `history_time` is
        the concrete time recorded in the first audit entry.
        """
        self.engine.validate_draft(draft)

        history = self.engine.create_status_history_entry(
            from_status="",
            to_status=ReportLifecycleEngine.INITIAL_STATUS.value,
            changed_by=user_id,
            timestamp=history_time,
            note="Report submitted",
        )

        return {
            "userId": user_id,
            "title": draft.title.strip(),
            "description": draft.description.strip(),
            "category": draft.category,
            "severity": int(draft.severity),
            "coords": {
                "latitude": draft.coords.latitude,
                "longitude": draft.coords.longitude,
            },
            "status": ReportLifecycleEngine.INITIAL_STATUS.value,
            "images": [],
            "createdAt": timestamp,
            "updatedAt": timestamp,
            "submittedAt": timestamp,
            "reviewedAt": None,
            "resolvedAt": None,
            "statusHistory": [history.model_dump(by_alias=True)],
            "version": 1,
        }

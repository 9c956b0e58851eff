"""
Report store selection.

USE_MOCK_DB=true → InMemoryReportStore, otherwise Cloud Firestore.
"""

import logging
from typing import Optional

from ecowatch.core.settings import settings
from ecowatch.services.status_workflow import ReportLifecycleEngine
from ecowatch.services.store.base import (
    PUBLIC_MAP_STATUSES,
    ReportFilter,
    ReportStore,
    ReportSubscription,
    Snapshot,
)

logger = logging.getLogger(__name__)

_report_store: Optional[ReportStore] = None


def get_report_store() -> ReportStore:
    """
    Get or create the process-wide ReportStore (FastAPI dependency).
    """
    global _report_store
    if _report_store is not None:
        return _report_store

    engine = ReportLifecycleEngine(max_images=settings.MAX_IMAGES_PER_REPORT)

    if settings.USE_MOCK_DB:
        from ecowatch.services.store.memory import InMemoryReportStore

        _report_store = InMemoryReportStore(engine=engine)
        logger.info("[STORE] USING IN-MEMORY REPORT STORE")
    else:
        from ecowatch.services.store.firestore import FirestoreReportStore

        _report_store = FirestoreReportStore(engine=engine)
        logger.info("[STORE] USING FIRESTORE REPORT STORE")

    return _report_store


def set_report_store(store: Optional[ReportStore]) -> None:
    """Replace the process-wide store (seeding scripts, tests)."""
    global _report_store
    _report_store = store


__all__ = [
    "PUBLIC_MAP_STATUSES",
    "ReportFilter",
    "ReportStore",
    "ReportSubscription",
    "Snapshot",
    "get_report_store",
    "set_report_store",
]

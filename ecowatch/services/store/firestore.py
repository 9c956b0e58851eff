"""
Cloud Firestore report store.

Document layout:
- reports/{reportId}                      Report fields (camelCase)
- reports/{reportId}/images/{autoId}      one document per attachImages batch

The firebase_admin SDK is blocking; every call runs in the default executor
so the event loop keeps serving other requests. Live queries use
Query.on_snapshot, whose callbacks arrive on SDK threads.
"""

import asyncio
import functools
import logging
from typing import Any, Dict, List, Optional

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions

from ecowatch.config.firebase import get_db
from ecowatch.core.errors import Conflict, NotFound, StoreUnavailable
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
from ecowatch.utils.firestore_helpers import where_filter
from ecowatch.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

REPORTS_COLLECTION = "reports"
IMAGES_SUBCOLLECTION = "images"

_TRANSIENT_ERRORS = (
    gcp_exceptions.ServiceUnavailable,
    gcp_exceptions.DeadlineExceeded,
    gcp_exceptions.InternalServerError,
    gcp_exceptions.RetryError,
)


@firestore.transactional
def _update_if_version(transaction, doc_ref, fields: Dict[str, Any], expected_version: int) -> None:
    snapshot = doc_ref.get(transaction=transaction)
    if not snapshot.exists:
        raise NotFound(f"Report {doc_ref.id} not found")

    actual_version = (snapshot.to_dict() or {}).get("version", 1)
    if actual_version != expected_version:
        raise Conflict(
            f"Report {doc_ref.id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})",
            expected_version=expected_version,
            actual_version=actual_version,
        )

    transaction.update(doc_ref, fields)


@firestore.transactional
def _append_images_if_room(transaction, doc_ref, payload: List[Dict[str, Any]], engine: ReportLifecycleEngine) -> None:
    snapshot = doc_ref.get(transaction=transaction)
    if not snapshot.exists:
        raise NotFound(f"Report {doc_ref.id} not found")

    current = (snapshot.to_dict() or {}).get("images") or []
    engine.validate_image_count(len(current), len(payload))

    transaction.update(doc_ref, {"images": firestore.ArrayUnion(payload)})


def _to_reports(docs) -> Snapshot:
    reports = []
    for doc in docs:
        try:
            reports.append(Report.from_document(doc.id, doc.to_dict()))
        except Exception as e:
            # Malformed legacy documents must not break the whole feed
            logger.warning(f"Skipping malformed report document {doc.id}: {e}")
    return reports


class FirestoreReportStore(ReportStore):

    def __init__(self, db=None, engine: Optional[ReportLifecycleEngine] = None):
        super().__init__(engine)
        self._db = db

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    def _collection(self):
        return self.db.collection(REPORTS_COLLECTION)

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
        except gcp_exceptions.NotFound as e:
            raise NotFound(str(e))
        except _TRANSIENT_ERRORS as e:
            logger.warning(f"Firestore unavailable: {e}")
            raise StoreUnavailable(f"Firestore unavailable: {e}")

    def allocate_id(self) -> str:
        # Document IDs are generated client-side by the SDK
        return self._collection().document().id

    async def create(self, draft: DraftReport, user_id: str, report_id: Optional[str] = None) -> str:
        document = self.build_new_document(
            draft,
            user_id,
            timestamp=firestore.SERVER_TIMESTAMP,
            history_time=utcnow(),
        )
        report_id = report_id or self.allocate_id()
        return await self._run(self._create_sync, report_id, document)

    def _create_sync(self, report_id: str, document: Dict[str, Any]) -> str:
        doc_ref = self._collection().document(report_id)
        try:
            doc_ref.set(document)
        except Exception as e:
            logger.error(f"Failed to save report to Firestore: {e}", exc_info=True)
            raise
        logger.info(f"Report saved to Firestore: {report_id}")
        return report_id

    async def get(self, report_id: str) -> Report:
        return await self._run(self._get_sync, report_id)

    def _get_sync(self, report_id: str) -> Report:
        doc = self._collection().document(report_id).get()
        if not doc.exists:
            raise NotFound(f"Report {report_id} not found")
        return Report.from_document(doc.id, doc.to_dict())

    async def update(
        self,
        report_id: str,
        patch: StatusPatch,
        actor: Optional[User],
        expected_version: Optional[int] = None
    ) -> Report:
        self._check_actor(actor)
        return await self._run(self._update_sync, report_id, patch, expected_version)

    def _update_sync(self, report_id: str, patch: StatusPatch, expected_version: Optional[int]) -> Report:
        doc_ref = self._collection().document(report_id)

        fields = patch.to_fields()
        if patch.history_entry is not None:
            fields["statusHistory"] = firestore.ArrayUnion([patch.history_entry.model_dump(by_alias=True)])

        if expected_version is None:
            # Last write wins
            doc_ref.update(fields)
        else:
            _update_if_version(self.db.transaction(), doc_ref, fields, expected_version)

        return self._get_sync(report_id)

    async def fetch(self, report_filter: ReportFilter) -> Snapshot:
        return await self._run(self._fetch_sync, report_filter)

    def _fetch_sync(self, report_filter: ReportFilter) -> Snapshot:
        return _to_reports(self._build_query(report_filter).stream())

    def _build_query(self, report_filter: ReportFilter):
        query = self._collection()
        if report_filter.user_id is not None:
            query = where_filter(query, "userId", "==", report_filter.user_id)
        if report_filter.statuses is not None:
            query = where_filter(query, "status", "in", sorted(s.value for s in report_filter.statuses))
        return query.order_by("createdAt", direction=firestore.Query.DESCENDING)

    def subscribe(self, report_filter: ReportFilter) -> ReportSubscription:
        def start_listener(callback: SnapshotCallback):
            def on_snapshot(docs, changes, read_time):
                callback(_to_reports(docs))

            watch = self._build_query(report_filter).on_snapshot(on_snapshot)
            return watch.unsubscribe

        return ReportSubscription(start_listener, description=f"firestore:{report_filter.describe()}")

    async def attach_images(self, report_id: str, images: List[ReportImage]) -> Report:
        return await self._run(self._attach_images_sync, report_id, images)

    def _attach_images_sync(self, report_id: str, images: List[ReportImage]) -> Report:
        payload = [image.model_dump(by_alias=True) for image in images]
        doc_ref = self._collection().document(report_id)

        # Count check and append commit atomically
        _append_images_if_room(self.db.transaction(), doc_ref, payload, self.engine)

        doc_ref.collection(IMAGES_SUBCOLLECTION).add({
            "images": payload,
            "createdAt": firestore.SERVER_TIMESTAMP,
        })

        logger.info(f"Attached {len(images)} image(s) to report {report_id}")
        return self._get_sync(report_id)

    async def ping(self) -> Dict[str, Any]:
        collections = await self._run(lambda: list(self.db.collections()))
        return {"backend": "firestore", "collections_count": len(collections)}

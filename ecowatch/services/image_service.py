"""
Image service - report photo upload.

FLOW:
1. Owner uploads up to MAX_IMAGES_PER_REPORT images for a submitted report
2. Each binary is written to object storage under
   reports/{reportId}/images/{reportId}_{epochMillis}_{index}.{ext}
3. Metadata of the images that made it is attached to the report in one write

A failing image never aborts its siblings; the caller gets both lists back.
"""

import asyncio
import functools
import logging
import mimetypes
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from fastapi import Depends
from google.api_core import exceptions as gcp_exceptions
from requests import exceptions as requests_exceptions

from ecowatch.config.firebase import get_bucket
from ecowatch.core.errors import EcoWatchError, NetworkError, PermissionDenied, ValidationError
from ecowatch.core.settings import settings
from ecowatch.models.report import ImageUploadFailure, ImageUploadResult, ReportImage
from ecowatch.models.user import User
from ecowatch.services.store import ReportStore, get_report_store
from ecowatch.utils.retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "jpg"


@dataclass
class ImagePayload:
    """One uploaded file, already read into memory."""
    filename: str
    content_type: str
    data: bytes


class ObjectStorage(ABC):
    """Blocking binary storage; called from the executor."""

    @abstractmethod
    def upload(self, key: str, data: bytes, content_type: str) -> str:
        """Store `data` under `key` and return its retrieval URL."""
        raise NotImplementedError


class FirebaseObjectStorage(ObjectStorage):
    """Firebase Storage (default bucket of the Firebase app)."""

    def __init__(self, bucket=None):
        self._bucket = bucket

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = get_bucket()
        return self._bucket

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        blob = self.bucket.blob(key)
        blob.upload_from_string(data, content_type=content_type)
        return blob.public_url


class InMemoryObjectStorage(ObjectStorage):
    """Keeps blobs in a dict. Used with USE_MOCK_DB and in tests."""

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        self.blobs[key] = data
        return f"memory://{key}"


def image_extension(payload: ImagePayload) -> str:
    ext = os.path.splitext(payload.filename or "")[1].lstrip(".").lower()
    if ext:
        return ext
    guessed = mimetypes.guess_extension(payload.content_type or "")
    return guessed.lstrip(".") if guessed else DEFAULT_EXTENSION


def build_image_key(report_id: str, epoch_millis: int, index: int, payload: ImagePayload) -> str:
    return f"reports/{report_id}/images/{report_id}_{epoch_millis}_{index}.{image_extension(payload)}"


class ImageService:

    def __init__(
        self,
        store: ReportStore,
        storage: ObjectStorage,
        retry_policy: Optional[RetryPolicy] = None,
        max_image_bytes: Optional[int] = None
    ):
        self.store = store
        self.storage = storage
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.max_image_bytes = max_image_bytes or settings.MAX_IMAGE_BYTES

    def _check_payload(self, payload: ImagePayload) -> Optional[str]:
        if not (payload.content_type or "").startswith("image/"):
            return f"Unsupported content type '{payload.content_type}'"
        if not payload.data:
            return "Empty file"
        if len(payload.data) > self.max_image_bytes:
            return f"File exceeds {self.max_image_bytes} bytes"
        return None

    async def _upload(self, key: str, payload: ImagePayload) -> str:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None,
                functools.partial(self.storage.upload, key, payload.data, payload.content_type),
            )
        except (gcp_exceptions.GoogleAPIError, requests_exceptions.RequestException) as e:
            raise NetworkError(f"Object storage upload failed: {e}")

    async def upload_images(self, report_id: str, files: List[ImagePayload], user: Optional[User]) -> ImageUploadResult:
        """
        Upload `files` and attach the successful ones to the report.

        Raises:
            NotFound: unknown report
            PermissionDenied: caller does not own the report
            ValidationError: no files, or the total would exceed the image limit
        """
        report = await self.store.get(report_id)

        if user is None or report.user_id != user.uid:
            raise PermissionDenied("Only the submitter can attach images to a report")
        if not files:
            raise ValidationError("No images provided", errors=[{"field": "images", "message": "At least one image is required"}])

        self.store.engine.validate_image_count(len(report.images), len(files))

        epoch_millis = int(time.time() * 1000)
        uploaded: List[ReportImage] = []
        failed: List[ImageUploadFailure] = []

        for index, payload in enumerate(files):
            filename = payload.filename or f"image_{index}"

            problem = self._check_payload(payload)
            if problem:
                logger.warning(f"⚠️ Rejected image {filename} for report {report_id}: {problem}")
                failed.append(ImageUploadFailure(filename=filename, reason=problem))
                continue

            key = build_image_key(report_id, epoch_millis, index, payload)
            try:
                url = await call_with_retry(
                    lambda: self._upload(key, payload),
                    self.retry_policy,
                    description=f"upload {key}",
                )
            except EcoWatchError as e:
                failed.append(ImageUploadFailure(filename=filename, reason=e.message))
                continue
            except Exception as e:
                logger.error(f"Unexpected error uploading {filename} for report {report_id}: {e}", exc_info=True)
                failed.append(ImageUploadFailure(filename=filename, reason=str(e)))
                continue

            uploaded.append(ReportImage(
                path=key,
                url=url,
                content_type=payload.content_type,
                size_bytes=len(payload.data),
            ))

        if uploaded:
            report = await call_with_retry(
                lambda: self.store.attach_images(report_id, uploaded),
                self.retry_policy,
                description=f"attach images to report {report_id}",
            )
            logger.info(f"✅ {len(uploaded)} image(s) attached to report {report_id} ({len(failed)} failed)")
        else:
            logger.warning(f"⚠️ No images attached to report {report_id}; {len(failed)} failed")

        return ImageUploadResult(report=report, uploaded=uploaded, failed=failed)


_object_storage: Optional[ObjectStorage] = None


def get_object_storage() -> ObjectStorage:
    global _object_storage
    if _object_storage is None:
        if settings.USE_MOCK_DB:
            _object_storage = InMemoryObjectStorage()
        else:
            _object_storage = FirebaseObjectStorage()
    return _object_storage


def set_object_storage(storage: Optional[ObjectStorage]) -> None:
    global _object_storage
    _object_storage = storage


def get_image_service(
    store: ReportStore = Depends(get_report_store),
    storage: ObjectStorage = Depends(get_object_storage)
) -> ImageService:
    return ImageService(store, storage)

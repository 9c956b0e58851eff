"""
Tests for report image upload.

Verifies:
  - storage keys follow reports/{id}/images/{id}_{epochMillis}_{index}.{ext}
  - a failing image does not abort its siblings
  - only the submitter may upload; the per-report limit holds
"""

import re

import pytest
from google.api_core import exceptions as gcp_exceptions

from ecowatch.core.errors import PermissionDenied, ValidationError
from ecowatch.services.image_service import (
    ImagePayload,
    ImageService,
    InMemoryObjectStorage,
    build_image_key,
    image_extension,
)


class FailingStorage(InMemoryObjectStorage):
    """Raises a storage error for keys ending in one of `fail_suffixes`."""

    def __init__(self, fail_suffixes):
        super().__init__()
        self.fail_suffixes = tuple(fail_suffixes)
        self.attempts = 0

    def upload(self, key, data, content_type):
        self.attempts += 1
        if key.endswith(self.fail_suffixes):
            raise gcp_exceptions.ServiceUnavailable("bucket unavailable")
        return super().upload(key, data, content_type)


def jpeg(name="photo.jpg", size=128):
    return ImagePayload(filename=name, content_type="image/jpeg", data=b"\xff" * size)


@pytest.fixture()
async def report(service, draft, citizen):
    return await service.submit_report(draft, citizen)


def test_image_key_format():
    key = build_image_key("abc", 1700000000000, 2, jpeg("river.PNG"))
    assert key == "reports/abc/images/abc_1700000000000_2.png"


def test_extension_falls_back_to_content_type():
    assert image_extension(ImagePayload(filename="blob", content_type="image/png", data=b"x")) == "png"


async def test_upload_attaches_all_images(store, object_storage, fast_policy, report, citizen):
    images = ImageService(store, object_storage, retry_policy=fast_policy)

    result = await images.upload_images(report.id, [jpeg("a.jpg"), jpeg("b.jpg")], citizen)

    assert result.failed == []
    assert len(result.uploaded) == 2
    assert len(result.report.images) == 2
    assert all(re.fullmatch(rf"reports/{report.id}/images/{report.id}_\d+_[01]\.jpg", i.path) for i in result.uploaded)
    assert set(object_storage.blobs) == {i.path for i in result.uploaded}
    assert len(store.image_batches(report.id)) == 1


async def test_failures_are_isolated_per_image(store, fast_policy, report, citizen):
    storage = FailingStorage(fail_suffixes=["_1.jpg"])
    images = ImageService(store, storage, retry_policy=fast_policy)

    result = await images.upload_images(
        report.id,
        [jpeg("ok.jpg"), jpeg("broken.jpg"), ImagePayload("notes.txt", "text/plain", b"hi"), jpeg("ok2.jpg")],
        citizen,
    )

    assert [f.filename for f in result.failed] == ["broken.jpg", "notes.txt"]
    assert "bucket unavailable" in result.failed[0].reason
    assert len(result.uploaded) == 2
    assert len((await store.get(report.id)).images) == 2
    # transient storage errors were retried before giving up
    assert storage.attempts == 2 + (fast_policy.max_retries + 1)


async def test_oversized_image_rejected(store, object_storage, fast_policy, report, citizen):
    images = ImageService(store, object_storage, retry_policy=fast_policy, max_image_bytes=100)

    result = await images.upload_images(report.id, [jpeg(size=101)], citizen)

    assert result.uploaded == []
    assert result.failed[0].reason == "File exceeds 100 bytes"
    assert (await store.get(report.id)).images == []


async def test_only_owner_may_upload(store, object_storage, fast_policy, report, other_citizen, council):
    images = ImageService(store, object_storage, retry_policy=fast_policy)

    for user in (other_citizen, council, None):
        with pytest.raises(PermissionDenied):
            await images.upload_images(report.id, [jpeg()], user)


async def test_image_limit(store, object_storage, fast_policy, report, citizen):
    images = ImageService(store, object_storage, retry_policy=fast_policy)
    await images.upload_images(report.id, [jpeg(f"{i}.jpg") for i in range(4)], citizen)

    with pytest.raises(ValidationError):
        await images.upload_images(report.id, [jpeg("x.jpg"), jpeg("y.jpg")], citizen)

    assert len((await store.get(report.id)).images) == 4


async def test_no_files(store, object_storage, fast_policy, report, citizen):
    images = ImageService(store, object_storage, retry_policy=fast_policy)
    with pytest.raises(ValidationError):
        await images.upload_images(report.id, [], citizen)

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone

from google.cloud import storage

from creditshop.core.config import settings

log = logging.getLogger(__name__)


def slip_object_key(trans_ref: str | None, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    ref = (trans_ref or "manual").replace("/", "_")
    return f"slips/{now.year}/{now.month:02d}/{ref}_{uuid.uuid4().hex}.jpg"


class BlobStore:
    """Best-effort object storage. Upload failures are logged and yield None."""

    async def upload(self, data: bytes, key: str, content_type: str = "image/jpeg") -> str | None:
        raise NotImplementedError


class NullBlobStore(BlobStore):
    async def upload(self, data: bytes, key: str, content_type: str = "image/jpeg") -> str | None:
        return None


class GCSBlobStore(BlobStore):
    def __init__(self, bucket: str, public_base_url: str | None = None):
        self.bucket_name = bucket
        self.public_base_url = (public_base_url or settings.GCS_PUBLIC_BASE_URL).rstrip("/")
        self._client = storage.Client()

    def _upload_sync(self, data: bytes, key: str, content_type: str) -> str:
        blob = self._client.bucket(self.bucket_name).blob(key)
        blob.upload_from_string(data, content_type=content_type or "application/octet-stream")
        return f"{self.public_base_url}/{self.bucket_name}/{key}"

    async def upload(self, data: bytes, key: str, content_type: str = "image/jpeg") -> str | None:
        try:
            return await asyncio.to_thread(self._upload_sync, data, key, content_type)
        except Exception as e:
            log.warning("[blob-store] upload of %s failed: %s", key, e)
            return None


def build_blob_store() -> BlobStore:
    if settings.GCS_BUCKET:
        return GCSBlobStore(settings.GCS_BUCKET)
    return NullBlobStore()

"""Blob storage for user-uploaded reference images: Aliyun OSS or local files."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from looklab.errors import MissingConfigurationError

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/png": "png",
    "image/webp": "webp",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
}


@dataclass(frozen=True)
class StoredObject:
    url: str
    object_key: str


class BlobStore(Protocol):
    def put(self, data: bytes, content_type: str, *, prefix: str = "uploads") -> StoredObject: ...


def new_object_key(content_type: str, prefix: str = "uploads") -> str:
    ext = _EXTENSIONS.get(content_type.lower(), "jpg")
    return f"{prefix.strip('/')}/{uuid.uuid4()}.{ext}"


# ---------------------------------------------------------------------------
# Aliyun OSS implementation
# ---------------------------------------------------------------------------

class OssBlobStore:
    """Upload objects to an Aliyun OSS bucket and return their public URL."""

    def __init__(
        self,
        region: str | None,
        access_key_id: str | None,
        access_key_secret: str | None,
        bucket: str | None,
    ):
        if not region or not access_key_id or not access_key_secret or not bucket:
            raise MissingConfigurationError("Missing OSS configuration")
        self._bucket = self._connect(region, access_key_id, access_key_secret, bucket)

    def _connect(self, region: str, access_key_id: str, access_key_secret: str, bucket: str):
        try:
            import oss2
        except ImportError:
            raise ImportError("oss2 required for the OSS blob store. pip install 'looklab[oss]'")
        endpoint = region if region.startswith("http") else f"https://{region}.aliyuncs.com"
        auth = oss2.Auth(access_key_id, access_key_secret)
        return oss2.Bucket(auth, endpoint, bucket)

    def put(self, data: bytes, content_type: str, *, prefix: str = "uploads") -> StoredObject:
        key = new_object_key(content_type, prefix)
        self._bucket.put_object(key, data, headers={"Content-Type": content_type})
        return StoredObject(url=self._public_url(key), object_key=key)

    def _public_url(self, key: str) -> str:
        endpoint = self._bucket.endpoint.split("://", 1)[-1]
        url = f"{self._bucket.bucket_name}.{endpoint}/{key}"
        return url if url.startswith("http") else f"https://{url}"


# ---------------------------------------------------------------------------
# File-based implementation (local development)
# ---------------------------------------------------------------------------

class FileBlobStore:
    """Write objects under a local directory served at ``public_base_url``."""

    def __init__(self, root: Path, public_base_url: str):
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)
        self._public_base_url = public_base_url.rstrip("/")

    def put(self, data: bytes, content_type: str, *, prefix: str = "uploads") -> StoredObject:
        key = new_object_key(content_type, prefix)
        path = self._root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug("Stored %d bytes at %s", len(data), path)
        return StoredObject(url=f"{self._public_base_url}/{key}", object_key=key)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_blob_store(settings) -> BlobStore:
    """Return the configured blob store (``oss`` or local ``file``)."""
    if settings.looklab_blob_backend == "oss":
        return OssBlobStore(
            settings.aliyun_oss_region,
            settings.aliyun_access_key_id,
            settings.aliyun_access_key_secret,
            settings.aliyun_oss_bucket,
        )
    return FileBlobStore(settings.uploads_dir, settings.looklab_public_files_url)

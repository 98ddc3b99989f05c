"""Route dependencies: vendor clients, blob store and domain-error translation."""

import logging
from typing import Any

from fastapi import HTTPException, UploadFile, status

from looklab.config import get_settings
from looklab.errors import (
    LookLabError,
    MissingConfigurationError,
    NetworkError,
    ValidationError,
    VendorError,
)
from looklab.storage.blob import BlobStore, get_blob_store
from looklab.vendor import get_adapter, get_normalizer, get_prompt_extractor
from looklab.vendor.adapter import EvolinkAdapter
from looklab.vendor.normalizer import TaskStatusNormalizer
from looklab.vendor.prompt_extractor import PromptExtractor

logger = logging.getLogger(__name__)
settings = get_settings()


def blob_store() -> BlobStore:
    try:
        return get_blob_store(settings)
    except MissingConfigurationError as e:
        raise to_http_error(e)


def adapter() -> EvolinkAdapter:
    """Evolink adapter; inline references can only be uploaded when a blob store is configured."""
    try:
        store = get_blob_store(settings)
    except MissingConfigurationError:
        logger.debug("No blob store configured; inline references must suit the model")
        store = None
    return get_adapter(settings, blob_store=store)


def normalizer() -> TaskStatusNormalizer:
    return get_normalizer(settings)


def prompt_extractor() -> PromptExtractor:
    return get_prompt_extractor(settings)


def _status_for(exc: LookLabError) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NetworkError):
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(exc, VendorError):
        code = exc.status_code or status.HTTP_502_BAD_GATEWAY
        return code if 400 <= code < 600 else status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_error(exc: LookLabError) -> HTTPException:
    """Map a domain error to ``{"detail": {"error": ..., "details": ...}}``."""
    detail: dict[str, Any] = {"error": exc.message}
    if isinstance(exc, VendorError) and exc.body is not None:
        detail["details"] = exc.body
    return HTTPException(status_code=_status_for(exc), detail=detail)


async def read_upload(file: UploadFile) -> bytes:
    """Read an uploaded file, refusing anything over ``max_upload_bytes``."""
    limit = settings.max_upload_bytes
    if file.size is not None and file.size > limit:
        raise _too_large(limit)
    # Read one byte past the limit so an unsized body is still caught
    content = await file.read(limit + 1)
    if len(content) > limit:
        raise _too_large(limit)
    return content


def _too_large(limit: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail={"error": f"File too large. Maximum size is {limit // (1024 * 1024)} MB."},
    )

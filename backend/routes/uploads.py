"""Upload reference images to the blob store so they can be referenced by URL."""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from starlette.concurrency import run_in_threadpool

from backend import deps
from looklab.errors import LookLabError
from looklab.storage.blob import BlobStore
from looklab.vendor.validation import check_image_bytes

logger = logging.getLogger(__name__)
router = APIRouter()


class UploadResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    url: str
    object_key: str


@router.post("/uploads", response_model=UploadResponse, response_model_by_alias=True)
async def upload_image(file: UploadFile = File(...), store: BlobStore = Depends(deps.blob_store)):
    content = await deps.read_upload(file)
    try:
        mime = check_image_bytes(content, file.content_type)
    except LookLabError as e:
        raise deps.to_http_error(e)

    try:
        stored = await run_in_threadpool(store.put, content, mime, prefix="uploads")
    except Exception as e:
        logger.exception("Upload failed")
        raise HTTPException(status_code=500, detail={"error": f"Upload failed: {e}"})
    logger.info("Uploaded %s (%d bytes)", stored.object_key, len(content))
    return UploadResponse(url=stored.url, object_key=stored.object_key)

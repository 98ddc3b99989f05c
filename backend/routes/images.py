"""Text-to-image / fusion task creation and task status routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend import deps
from looklab.errors import LookLabError
from looklab.schemas.generation import GenerationRequest, ReferenceImage
from looklab.vendor.adapter import EvolinkAdapter
from looklab.vendor.normalizer import TaskStatusNormalizer

logger = logging.getLogger(__name__)
router = APIRouter()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


class InlineReference(CamelModel):
    data_url: str
    mime_type: str
    size: Optional[int] = None


class ImagesRequest(CamelModel):
    prompt: str = Field(..., min_length=1, max_length=2000)
    size: str = "3:4"
    seed: Optional[int] = Field(None, ge=1, le=2147483647)
    references: list[InlineReference] = Field(default_factory=list, max_length=5)


class SubmitResponse(CamelModel):
    task_id: str
    status: str
    progress: int = 0
    estimated_time: Optional[float] = None


class TaskStatusResponse(CamelModel):
    task_id: str
    status: str
    progress: int
    result_url: Optional[str] = None
    image_url: Optional[str] = None
    results: list[str] = Field(default_factory=list)
    error_message: Optional[str] = None


async def submit_request(adapter: EvolinkAdapter, request: GenerationRequest) -> SubmitResponse:
    """Create a vendor task for ``request``; shared by every creation route."""
    try:
        result = await adapter.submit(request)
    except LookLabError as e:
        raise deps.to_http_error(e)
    return SubmitResponse(**result.model_dump())


@router.post("/ai/images", response_model=SubmitResponse, response_model_by_alias=True)
async def create_image_task(body: ImagesRequest, adapter: EvolinkAdapter = Depends(deps.adapter)):
    """Text-to-image, or fusion when reference photos are attached."""
    request = GenerationRequest(
        prompt=body.prompt,
        size=body.size,
        seed=body.seed,
        reference_images=[
            ReferenceImage(data_url=r.data_url, mime_type=r.mime_type, size=r.size) for r in body.references
        ],
    )
    return await submit_request(adapter, request)


@router.get("/ai/images/{task_id}", response_model=TaskStatusResponse, response_model_by_alias=True)
async def get_image_task(task_id: str, normalizer: TaskStatusNormalizer = Depends(deps.normalizer)):
    """Normalized status of a vendor task. ``resultUrl`` is set only once the image exists."""
    try:
        result = await normalizer.fetch_status(task_id)
    except LookLabError as e:
        raise deps.to_http_error(e)
    return TaskStatusResponse(
        task_id=result.task_id,
        status=result.status,
        progress=result.progress,
        result_url=result.result_url,
        image_url=result.result_url,
        results=result.results,
        error_message=result.error_message,
    )

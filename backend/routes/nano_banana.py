"""Nano Banana route: explicit model choice with URL references."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import Field

from backend import deps
from backend.routes.images import CamelModel, SubmitResponse, submit_request
from looklab.schemas.generation import GenerationRequest, ModelName, Quality, ReferenceImage
from looklab.vendor.adapter import EvolinkAdapter

router = APIRouter()


class NanoBananaRequest(CamelModel):
    model: ModelName = "nano-banana-2-lite"
    prompt: str = Field(..., min_length=1, max_length=2000)
    size: str = "auto"
    quality: Quality = "2K"
    seed: Optional[int] = Field(None, ge=1, le=2147483647)
    reference_urls: list[str] = Field(default_factory=list, max_length=5)


@router.post("/ai/nano-banana", response_model=SubmitResponse, response_model_by_alias=True)
async def create_nano_banana_task(body: NanoBananaRequest, adapter: EvolinkAdapter = Depends(deps.adapter)):
    request = GenerationRequest(
        prompt=body.prompt,
        model=body.model,
        size=body.size,
        quality=body.quality,
        seed=body.seed,
        reference_images=[ReferenceImage(url=u) for u in body.reference_urls],
    )
    return await submit_request(adapter, request)

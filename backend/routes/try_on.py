"""Virtual try-on route: a model photo and a garment photo, both by URL."""

from fastapi import APIRouter, Depends
from pydantic import Field

from backend import deps
from backend.routes.images import CamelModel, SubmitResponse, submit_request
from looklab.schemas.generation import GenerationRequest, ReferenceImage, TryOnOptions
from looklab.vendor.adapter import EvolinkAdapter

router = APIRouter()


class TryOnRequest(CamelModel):
    model_url: str = Field(..., min_length=1)
    garment_url: str = Field(..., min_length=1)
    prompt: str = Field("", max_length=2000)
    size: str = "3:4"
    fit_tightness: float = 50
    preserve_background: bool = True
    lock_identity: bool = True
    preserve_accessories: bool = True
    notes: str = ""


@router.post("/ai/try-on", response_model=SubmitResponse, response_model_by_alias=True)
async def create_try_on_task(body: TryOnRequest, adapter: EvolinkAdapter = Depends(deps.adapter)):
    """Dress the person from ``modelUrl`` in the outfit from ``garmentUrl``."""
    request = GenerationRequest(
        prompt=body.prompt,
        size=body.size,
        mode="try_on",
        reference_images=[ReferenceImage(url=body.model_url), ReferenceImage(url=body.garment_url)],
        try_on=TryOnOptions(
            fit_tightness=body.fit_tightness,
            preserve_background=body.preserve_background,
            lock_identity=body.lock_identity,
            preserve_accessories=body.preserve_accessories,
            notes=body.notes,
        ),
    )
    return await submit_request(adapter, request)

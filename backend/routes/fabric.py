"""Fabric swap route: re-render a garment in a new material from one uploaded photo."""

import base64
import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from backend import deps
from backend.routes.images import SubmitResponse, submit_request
from looklab.errors import LookLabError
from looklab.schemas.generation import FabricOptions, GenerationRequest, ReferenceImage
from looklab.vendor.adapter import EvolinkAdapter
from looklab.vendor.prompts import FABRIC_PRESETS
from looklab.vendor.validation import check_image_bytes

logger = logging.getLogger(__name__)
router = APIRouter()

FABRIC_TYPES = (*FABRIC_PRESETS, "custom")


def _parse_number(value: Optional[str], fallback: float) -> float:
    """Form numbers arrive as strings; unparseable input uses the fallback (clamping happens later)."""
    try:
        number = float(value) if value is not None else fallback
    except ValueError:
        return fallback
    return number if math.isfinite(number) else fallback


@router.post("/ai/fabric", response_model=SubmitResponse, response_model_by_alias=True)
async def create_fabric_task(
    image: UploadFile = File(..., description="Reference photo of the garment"),
    fabric_type: str = Form(..., alias="fabricType"),
    fabric_label: str = Form("", alias="fabricLabel"),
    pattern_prompt: str = Form("", alias="patternPrompt"),
    advanced_prompt: str = Form("", alias="advancedPrompt"),
    texture_strength: Optional[str] = Form(None, alias="textureStrength"),
    pattern_scale: Optional[str] = Form(None, alias="patternScale"),
    lock_model: str = Form("false", alias="lockModel"),
    preserve_background: str = Form("true", alias="preserveBackground"),
    size: str = Form("3:4"),
    adapter: EvolinkAdapter = Depends(deps.adapter),
):
    if fabric_type not in FABRIC_TYPES:
        raise HTTPException(status_code=400, detail={"error": "Unsupported fabric type"})

    content = await deps.read_upload(image)
    try:
        mime = check_image_bytes(content, image.content_type)
    except LookLabError as e:
        raise deps.to_http_error(e)

    data_url = f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"
    request = GenerationRequest(
        size=size,
        mode="fabric_swap",
        reference_images=[ReferenceImage(data_url=data_url, mime_type=mime, size=len(content))],
        fabric=FabricOptions(
            fabric_type=fabric_type,
            fabric_label=fabric_label,
            pattern_prompt=pattern_prompt,
            advanced_prompt=advanced_prompt,
            texture_strength=_parse_number(texture_strength, 70),
            pattern_scale=_parse_number(pattern_scale, 100),
            lock_identity=lock_model == "true",
            preserve_background=preserve_background != "false",
        ),
    )
    logger.info("Fabric swap requested (%s, %d bytes)", fabric_type, len(content))
    return await submit_request(adapter, request)

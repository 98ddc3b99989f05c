"""Prompt extractor route: describe an uploaded image as a generation prompt."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import BaseModel

from backend import deps
from looklab.errors import LookLabError
from looklab.vendor.prompt_extractor import PromptExtractor

router = APIRouter()


class PromptResponse(BaseModel):
    prompt: str
    model: str
    usage: Optional[dict[str, Any]] = None


@router.post("/ai/prompt-extractor", response_model=PromptResponse)
async def extract_prompt(
    file: UploadFile = File(...),
    hints: str = Form(""),
    extractor: PromptExtractor = Depends(deps.prompt_extractor),
):
    content = await deps.read_upload(file)
    try:
        result = await extractor.extract(content, file.content_type, hints)
    except LookLabError as e:
        raise deps.to_http_error(e)
    return PromptResponse(prompt=result.prompt, model=result.model, usage=result.usage)

"""Pydantic models for generation requests and normalized vendor responses.

Request models are immutable once created. API-facing models accept and emit
camelCase keys (``referenceImages``, ``taskId``) while Python code uses
snake_case attribute names.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ModelName = Literal["z-image-turbo", "nano-banana-2-lite", "gemini-3-pro-image-preview"]
Quality = Literal["1K", "2K", "4K"]
RequestMode = Literal["generate", "fabric_swap", "try_on"]
FabricType = Literal["silk", "denim", "knit", "custom"]


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

class ReferenceImage(_FrozenApiModel):
    """A reference photo: either a public URL or an inline ``data:`` URL."""

    url: str | None = None
    data_url: str | None = None
    mime_type: str | None = None
    size: int | None = None  # declared byte size, checked against the decoded payload

    @property
    def is_inline(self) -> bool:
        return self.data_url is not None


class FabricOptions(_FrozenApiModel):
    """Knobs for the fabric material swap composite."""

    fabric_type: FabricType = "silk"
    fabric_label: str = ""
    pattern_prompt: str = ""
    advanced_prompt: str = ""
    texture_strength: float = 70  # percent, clamped to 10..100
    pattern_scale: float = 100  # percent, clamped to 40..200
    lock_identity: bool = False
    preserve_background: bool = True


class TryOnOptions(_FrozenApiModel):
    """Knobs for the virtual try-on composite."""

    fit_tightness: float = 50  # 0 = relaxed, 100 = snug
    preserve_background: bool = True
    lock_identity: bool = True
    preserve_accessories: bool = True
    notes: str = ""


class GenerationRequest(_FrozenApiModel):
    """User intent for one generation. Validated by the adapter, not here."""

    prompt: str = ""
    model: ModelName | None = None  # None = pick by presence of references
    size: str = "3:4"
    quality: Quality = "2K"
    seed: int | None = None
    reference_images: list[ReferenceImage] = Field(default_factory=list)
    mode: RequestMode = "generate"
    fabric: FabricOptions | None = None
    try_on: TryOnOptions | None = None


# ---------------------------------------------------------------------------
# Normalized vendor responses
# ---------------------------------------------------------------------------

class SubmitResult(_ApiModel):
    """Canonical record for an accepted create call."""

    task_id: str
    status: str = "submitted"
    progress: int = 0
    estimated_time: float | None = None


class TaskStatusResult(_ApiModel):
    """Canonical record for one task-status fetch."""

    task_id: str
    status: str = "pending"
    progress: int = 0
    result_url: str | None = None
    results: list[str] = Field(default_factory=list)
    error_message: str | None = None

    @property
    def is_resolved(self) -> bool:
        """True only when the vendor reports completion AND an image URL was found."""
        return self.status == "completed" and self.result_url is not None

    @property
    def is_failed(self) -> bool:
        return self.status == "failed"

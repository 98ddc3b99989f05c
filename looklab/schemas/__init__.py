"""Pydantic models for requests and normalized vendor responses."""

from looklab.schemas.generation import (
    FabricOptions,
    GenerationRequest,
    ModelName,
    Quality,
    ReferenceImage,
    SubmitResult,
    TaskStatusResult,
    TryOnOptions,
)

__all__ = [
    "FabricOptions",
    "GenerationRequest",
    "ModelName",
    "Quality",
    "ReferenceImage",
    "SubmitResult",
    "TaskStatusResult",
    "TryOnOptions",
]

"""Generation task schema and status."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from looklab.schemas.generation import GenerationRequest


class TaskStatus(str, Enum):
    QUEUED = "queued"
    CREATING = "creating"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = frozenset({TaskStatus.CREATING, TaskStatus.POLLING})

# History tool label per request mode
TOOL_BY_MODE = {
    "generate": "nano-banana",
    "fabric_swap": "fabric-design",
    "try_on": "try-on",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GenerationTask(BaseModel):
    """One generation request's lifecycle, owned by the orchestrator.

    Instances are snapshots: the orchestrator replaces a task with an updated
    copy instead of mutating it.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    request: GenerationRequest
    status: TaskStatus = TaskStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    estimated_time: float | None = None
    elapsed_seconds: int = Field(default=0, ge=0)
    vendor_task_id: str | None = None
    result: str | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    saved_to_history: bool = False

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def tool(self) -> str:
        return TOOL_BY_MODE.get(self.request.mode, "nano-banana")


class StoredTasksPayload(BaseModel):
    """Versioned document persisted by the task state store.

    ``tasks`` stays untyped so one bad entry can be dropped without
    discarding the whole document.
    """

    version: int
    tasks: list[Any] = Field(default_factory=list)

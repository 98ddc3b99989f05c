"""Durable task state: a versioned JSON document saved after every mutation."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

import pydantic

from looklab.jobs.models import (
    ACTIVE_STATUSES,
    GenerationTask,
    StoredTasksPayload,
    TaskStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

STORAGE_VERSION = 1
STORAGE_FILENAME = f"generation-tasks.v{STORAGE_VERSION}.json"
DEFAULT_MAX_TASKS = 100
DEFAULT_MAX_AGE = timedelta(hours=24)

MISSING_RESULT_MESSAGE = "Task finished without a result image"
UNKNOWN_FAILURE_MESSAGE = "Generation failed"
DROPPED_REFERENCE_MESSAGE = "Inline reference images are not kept across restarts; submit the request again"


class TaskStateStore(Protocol):
    def load(self) -> list[GenerationTask]: ...
    def save(self, tasks: Iterable[GenerationTask]) -> None: ...
    def clear(self) -> None: ...


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _coerce_entry(entry: Any) -> dict[str, Any] | None:
    """Fix up fields a stale or hand-edited document may get wrong before validation."""
    if not isinstance(entry, dict):
        return None
    entry = dict(entry)
    if entry.get("status") not in {s.value for s in TaskStatus}:
        entry["status"] = TaskStatus.FAILED.value
    for key in ("progress", "elapsed_seconds"):
        value = entry.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
            entry[key] = 0
        else:
            entry[key] = int(max(0, min(100, value) if key == "progress" else value))
    return entry


def stored_form(task: GenerationTask) -> dict[str, Any]:
    """JSON form of ``task`` without inline image payloads.

    An inline reference keeps its mime type and size; its ``data:`` URL is
    dropped so the document stays small however large the uploads were.
    """
    data = task.model_dump(mode="json")
    stored_refs = data["request"]["reference_images"]
    for stored, reference in zip(stored_refs, task.request.reference_images):
        if reference.is_inline:
            stored["data_url"] = None
    return data


def _lost_references(task: GenerationTask) -> bool:
    return any(r.url is None and r.data_url is None for r in task.request.reference_images)


def restore_invariants(task: GenerationTask) -> GenerationTask:
    """
    Bring a reloaded task back to a consistent state.

    In-flight state cannot be trusted across a restart: ``creating``/``polling``
    without a vendor task id goes back to ``queued``; ``creating`` with one
    resumes as ``polling``. A queued task whose inline references were not
    stored cannot be submitted again and fails. Terminal tasks get exactly one
    of result/error.
    """
    status = task.status
    if status in ACTIVE_STATUSES and not task.vendor_task_id:
        status = TaskStatus.QUEUED
    if status == TaskStatus.QUEUED and _lost_references(task):
        return task.model_copy(
            update={
                "status": TaskStatus.FAILED,
                "vendor_task_id": None,
                "result": None,
                "error_message": DROPPED_REFERENCE_MESSAGE,
            }
        )
    if status == TaskStatus.QUEUED:
        return task.model_copy(
            update={"status": TaskStatus.QUEUED, "vendor_task_id": None, "result": None, "error_message": None}
        )
    if status == TaskStatus.CREATING:
        return task.model_copy(update={"status": TaskStatus.POLLING, "result": None, "error_message": None})
    if status == TaskStatus.POLLING:
        return task.model_copy(update={"result": None, "error_message": None})
    if status == TaskStatus.COMPLETED and not task.result:
        return task.model_copy(
            update={"status": TaskStatus.FAILED, "error_message": MISSING_RESULT_MESSAGE, "vendor_task_id": None}
        )
    if status == TaskStatus.COMPLETED:
        return task.model_copy(update={"error_message": None, "vendor_task_id": None})
    return task.model_copy(
        update={
            "result": None,
            "vendor_task_id": None,
            "error_message": task.error_message or UNKNOWN_FAILURE_MESSAGE,
        }
    )


class FileTaskStateStore:
    """Persist the task set as one JSON file. Survives restarts within the same data dir."""

    def __init__(
        self,
        path: Path,
        *,
        max_tasks: int = DEFAULT_MAX_TASKS,
        max_age: timedelta = DEFAULT_MAX_AGE,
        now: Callable[[], datetime] = utcnow,
    ):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._max_tasks = max_tasks
        self._max_age = max_age
        self._now = now

    @property
    def path(self) -> Path:
        return self._path

    def retain(self, tasks: Iterable[GenerationTask]) -> list[GenerationTask]:
        """Drop tasks older than the age cutoff, then keep the newest ``max_tasks``."""
        cutoff = self._now() - self._max_age
        fresh = [t for t in tasks if _aware(t.created_at) >= cutoff]
        fresh.sort(key=lambda t: _aware(t.created_at), reverse=True)
        return fresh[: self._max_tasks]

    def save(self, tasks: Iterable[GenerationTask]) -> None:
        kept = self.retain(tasks)
        if not kept:
            self.clear()
            return
        payload = StoredTasksPayload(
            version=STORAGE_VERSION,
            tasks=[stored_form(t) for t in kept],
        )
        tmp = self._path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(payload.model_dump(mode="json"), f, indent=2, default=str)
        os.replace(tmp, self._path)

    def load(self) -> list[GenerationTask]:
        if not self._path.exists():
            return []
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                document = StoredTasksPayload.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, pydantic.ValidationError) as e:
            logger.warning("Discarding unreadable task state %s: %s", self._path, e)
            return []
        if document.version != STORAGE_VERSION:
            logger.info(
                "Discarding task state with version %s (expected %s)", document.version, STORAGE_VERSION
            )
            return []

        tasks: list[GenerationTask] = []
        seen: set[str] = set()
        for entry in document.tasks:
            coerced = _coerce_entry(entry)
            if coerced is None:
                continue
            try:
                task = GenerationTask.model_validate(coerced)
            except pydantic.ValidationError as e:
                logger.debug("Dropping invalid stored task: %s", e)
                continue
            if task.client_id in seen:
                continue
            seen.add(task.client_id)
            task = task.model_copy(update={"created_at": _aware(task.created_at)})
            tasks.append(restore_invariants(task))
        return self.retain(tasks)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


def get_task_state_store(settings) -> FileTaskStateStore:
    return FileTaskStateStore(
        settings.state_dir / STORAGE_FILENAME,
        max_tasks=settings.looklab_max_stored_tasks,
        max_age=timedelta(hours=settings.looklab_max_task_age_hours),
    )

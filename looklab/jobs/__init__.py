"""Generation task orchestration, persisted task state and history."""

from looklab.jobs.history import GenerationHistory, HistoryItem, get_history
from looklab.jobs.models import GenerationTask, TaskStatus
from looklab.jobs.orchestrator import TaskOrchestrator
from looklab.jobs.persistence import FileTaskStateStore, get_task_state_store

__all__ = [
    "FileTaskStateStore",
    "GenerationHistory",
    "GenerationTask",
    "HistoryItem",
    "TaskOrchestrator",
    "TaskStatus",
    "get_history",
    "get_task_state_store",
]

"""
Task orchestrator: queue, admit, create, poll and resolve generation tasks.

Each task moves through ``queued -> creating -> polling -> completed|failed``;
``queued``/``creating`` may jump straight to ``failed`` when the create call
fails. At most ``max_concurrent`` tasks are ``creating`` or ``polling`` at any
instant. Every change to the task set goes through ``_commit`` which persists
the set, wakes waiters and re-runs admission. Elapsed-time ticks are the
exception: they are written out at most every ``elapsed_persist_interval``
seconds, and the next real change carries the latest value.

All state lives on one event loop. Methods that start work
(``submit_generation``, ``restore``) must be called with that loop running.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Protocol

from looklab.errors import LookLabError, NetworkError
from looklab.jobs.history import GenerationHistory, HistoryItem
from looklab.jobs.models import GenerationTask, TaskStatus, utcnow
from looklab.jobs.persistence import TaskStateStore
from looklab.schemas.generation import GenerationRequest, SubmitResult, TaskStatusResult
from looklab.vendor.adapter import select_model
from looklab.vendor.validation import validate_request

logger = logging.getLogger(__name__)

MAX_CONCURRENT = 3
POLL_INTERVAL_SECONDS = 2.0
ELAPSED_TICK_SECONDS = 1.0
MAX_POLL_ERRORS = 3
# Elapsed ticks alone rewrite the state file at most this often
ELAPSED_PERSIST_SECONDS = 10.0

CANCELLED_MESSAGE = "Cancelled by user; the vendor job may still finish on its side"


class Submitter(Protocol):
    async def submit(self, request: GenerationRequest) -> SubmitResult: ...


class StatusFetcher(Protocol):
    async def fetch_status(self, task_id: str) -> TaskStatusResult: ...


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, NetworkError):
        return f"Network error: {exc.message}"
    if isinstance(exc, LookLabError):
        return str(exc)
    return f"Unexpected error: {exc}"


class TaskOrchestrator:
    def __init__(
        self,
        adapter: Submitter,
        normalizer: StatusFetcher,
        *,
        store: TaskStateStore | None = None,
        history: GenerationHistory | None = None,
        max_concurrent: int = MAX_CONCURRENT,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        tick_interval: float = ELAPSED_TICK_SECONDS,
        max_poll_errors: int = MAX_POLL_ERRORS,
        elapsed_persist_interval: float = ELAPSED_PERSIST_SECONDS,
        now: Callable[[], datetime] = utcnow,
    ):
        self._adapter = adapter
        self._normalizer = normalizer
        self._store = store
        self._history = history
        self._max_concurrent = max(1, max_concurrent)
        self._poll_interval = poll_interval
        self._tick_interval = tick_interval
        self._max_poll_errors = max(1, max_poll_errors)
        self._elapsed_persist_interval = elapsed_persist_interval
        self._now = now

        self._tasks: list[GenerationTask] = []  # newest first
        self._runners: dict[str, asyncio.Task] = {}
        self._tickers: dict[str, asyncio.Task] = {}
        self._changed = asyncio.Event()
        self._admitting = False
        self._last_persist = float("-inf")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit_generation(self, request: GenerationRequest) -> str:
        """
        Enqueue ``request`` and return its client id.

        Raises ValidationError synchronously for a malformed request; no task
        is created in that case. Admission runs immediately, so the task may
        already be ``creating`` when this returns.
        """
        validate_request(request)
        task = GenerationTask(client_id=uuid.uuid4().hex, request=request, created_at=self._now())
        self._tasks.insert(0, task)
        logger.info("Queued task %s (%s)", task.client_id, request.mode)
        self._commit()
        return task.client_id

    def get_task(self, client_id: str) -> GenerationTask | None:
        return next((t for t in self._tasks if t.client_id == client_id), None)

    def list_tasks(self) -> list[GenerationTask]:
        """Snapshots, newest first."""
        return list(self._tasks)

    def counts(self) -> dict[str, int]:
        result = {"queued": 0, "running": 0, "completed": 0, "failed": 0}
        for task in self._tasks:
            if task.status == TaskStatus.QUEUED:
                result["queued"] += 1
            elif task.is_active:
                result["running"] += 1
            elif task.status == TaskStatus.COMPLETED:
                result["completed"] += 1
            else:
                result["failed"] += 1
        return result

    def cancel_queue(self) -> int:
        """
        Drop queued tasks and stop client-side work for active ones.

        Active tasks are marked failed. No vendor cancel call is issued, so a
        job already accepted by the vendor still runs there. Returns the
        number of tasks dropped or stopped.
        """
        affected = 0
        kept: list[GenerationTask] = []
        for task in self._tasks:
            if task.status == TaskStatus.QUEUED:
                affected += 1
                continue
            if task.is_active:
                affected += 1
                self._stop(task.client_id)
                task = task.model_copy(
                    update={
                        "status": TaskStatus.FAILED,
                        "error_message": CANCELLED_MESSAGE,
                        "result": None,
                        "vendor_task_id": None,
                    }
                )
            kept.append(task)
        self._tasks = kept
        logger.info("Cancelled %d task(s)", affected)
        self._commit()
        return affected

    def reset_all(self) -> None:
        """Stop every runner and ticker and forget all tasks, including persisted ones."""
        for client_id in list(self._runners) + list(self._tickers):
            self._stop(client_id)
        self._tasks = []
        if self._store is not None:
            self._store.clear()
        self._changed.set()

    def restore(self) -> list[GenerationTask]:
        """
        Load the persisted task set and resume it.

        Tasks with a vendor task id resume polling; tasks that lost it were
        downgraded to ``queued`` by the store and go through admission again.
        Tasks already known in memory win over stored copies.
        """
        if self._store is None:
            return []
        known = {t.client_id for t in self._tasks}
        restored = [t for t in self._store.load() if t.client_id not in known]
        self._tasks.extend(restored)
        self._tasks.sort(key=lambda t: t.created_at, reverse=True)
        for task in restored:
            if task.status == TaskStatus.POLLING:
                self._spawn(task.client_id, self._poll(task.client_id))
        logger.info("Restored %d task(s)", len(restored))
        self._commit()
        return restored

    def has_pending_work(self) -> bool:
        return any(t.status == TaskStatus.QUEUED or t.is_active for t in self._tasks)

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait until no task is queued, creating or polling."""

        async def _wait() -> None:
            while self.has_pending_work():
                self._changed.clear()
                await self._changed.wait()

        await asyncio.wait_for(_wait(), timeout)

    async def aclose(self) -> None:
        """Cancel runners and tickers without touching the task set."""
        pending = list(self._runners.values()) + list(self._tickers.values())
        for job in pending:
            job.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._runners.clear()
        self._tickers.clear()

    # ------------------------------------------------------------------
    # Mutation path
    # ------------------------------------------------------------------

    def _index(self, client_id: str) -> int | None:
        for i, task in enumerate(self._tasks):
            if task.client_id == client_id:
                return i
        return None

    def _replace(self, client_id: str, **changes: Any) -> GenerationTask | None:
        i = self._index(client_id)
        if i is None:
            return None
        task = self._tasks[i].model_copy(update=changes)
        self._tasks[i] = task
        return task

    def _update(self, client_id: str, **changes: Any) -> GenerationTask | None:
        task = self._replace(client_id, **changes)
        if task is not None:
            self._commit()
        return task

    def _commit(self) -> None:
        self._persist()
        self._changed.set()
        self._admit()

    def _persist(self) -> None:
        if self._store is None:
            return
        self._last_persist = time.monotonic()
        try:
            self._store.save(self._tasks)
        except OSError as e:
            logger.warning("Could not persist task state: %s", e)

    def _active_count(self) -> int:
        return sum(1 for t in self._tasks if t.is_active)

    def _admit(self) -> None:
        """Promote queued tasks while below the cap, oldest submission first."""
        if self._admitting:
            return
        self._admitting = True
        try:
            started = False
            while self._active_count() < self._max_concurrent:
                candidate = next((t for t in reversed(self._tasks) if t.status == TaskStatus.QUEUED), None)
                if candidate is None:
                    break
                self._replace(candidate.client_id, status=TaskStatus.CREATING)
                self._spawn(candidate.client_id, self._run(candidate.client_id))
                started = True
            if started:
                self._persist()
                self._changed.set()
        finally:
            self._admitting = False

    def _fail(self, client_id: str, message: str) -> None:
        self._cancel_ticker(client_id)
        logger.warning("Task %s failed: %s", client_id, message)
        self._update(
            client_id,
            status=TaskStatus.FAILED,
            error_message=message,
            result=None,
            vendor_task_id=None,
        )

    def _complete(self, client_id: str, result_url: str) -> None:
        self._cancel_ticker(client_id)
        task = self._replace(
            client_id,
            status=TaskStatus.COMPLETED,
            result=result_url,
            error_message=None,
            vendor_task_id=None,
            progress=100,
        )
        if task is None:
            return
        logger.info("Task %s completed: %s", client_id, result_url)
        if self._record_history(task):
            self._replace(client_id, saved_to_history=True)
        self._commit()

    def _record_history(self, task: GenerationTask) -> bool:
        if self._history is None or task.saved_to_history or not task.result:
            return False
        item = HistoryItem(
            id=task.client_id,
            tool=task.tool,
            image_url=task.result,
            prompt=task.request.prompt,
            model=select_model(task.request),
        )
        try:
            self._history.add(item)
        except OSError as e:
            logger.warning("Could not record history for %s: %s", task.client_id, e)
            return False
        return True

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _spawn(self, client_id: str, coro) -> None:
        runner = asyncio.create_task(coro, name=f"looklab-task-{client_id}")
        self._runners[client_id] = runner
        runner.add_done_callback(lambda t: self._forget(self._runners, client_id, t))
        if client_id not in self._tickers:
            ticker = asyncio.create_task(self._tick(client_id), name=f"looklab-tick-{client_id}")
            self._tickers[client_id] = ticker
            ticker.add_done_callback(lambda t: self._forget(self._tickers, client_id, t))

    @staticmethod
    def _forget(registry: dict[str, asyncio.Task], client_id: str, job: asyncio.Task) -> None:
        if registry.get(client_id) is job:
            del registry[client_id]

    def _cancel_ticker(self, client_id: str) -> None:
        ticker = self._tickers.pop(client_id, None)
        if ticker is not None and ticker is not asyncio.current_task():
            ticker.cancel()

    def _stop(self, client_id: str) -> None:
        self._cancel_ticker(client_id)
        runner = self._runners.pop(client_id, None)
        if runner is not None and runner is not asyncio.current_task():
            runner.cancel()

    async def _tick(self, client_id: str) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            task = self.get_task(client_id)
            if task is None or not task.is_active:
                return
            self._replace(client_id, elapsed_seconds=task.elapsed_seconds + 1)
            if time.monotonic() - self._last_persist >= self._elapsed_persist_interval:
                self._persist()
            self._changed.set()

    async def _run(self, client_id: str) -> None:
        task = self.get_task(client_id)
        if task is None:
            return
        try:
            submitted = await self._adapter.submit(task.request)
        except asyncio.CancelledError:
            raise
        except LookLabError as e:
            self._fail(client_id, describe_error(e))
            return
        except Exception as e:
            logger.exception("Create call crashed for task %s", client_id)
            self._fail(client_id, describe_error(e))
            return

        current = self.get_task(client_id)
        if current is None or current.status != TaskStatus.CREATING:
            return
        logger.info("Task %s accepted by vendor as %s", client_id, submitted.task_id)
        self._update(
            client_id,
            status=TaskStatus.POLLING,
            vendor_task_id=submitted.task_id,
            estimated_time=submitted.estimated_time,
            progress=max(current.progress, submitted.progress),
        )
        await self._poll(client_id)

    async def _poll(self, client_id: str) -> None:
        """Poll until the task resolves or fails; one request in flight at a time."""
        errors = 0
        while True:
            await asyncio.sleep(self._poll_interval)
            task = self.get_task(client_id)
            if task is None or task.status != TaskStatus.POLLING or not task.vendor_task_id:
                return
            try:
                status = await self._normalizer.fetch_status(task.vendor_task_id)
            except asyncio.CancelledError:
                raise
            except NetworkError as e:
                errors += 1
                if errors >= self._max_poll_errors:
                    self._fail(client_id, describe_error(e))
                    return
                logger.warning(
                    "Poll %d/%d for task %s failed: %s", errors, self._max_poll_errors, client_id, e
                )
                continue
            except LookLabError as e:
                self._fail(client_id, describe_error(e))
                return
            except Exception as e:
                logger.exception("Status poll crashed for task %s", client_id)
                self._fail(client_id, describe_error(e))
                return

            errors = 0
            task = self.get_task(client_id)
            if task is None or task.status != TaskStatus.POLLING:
                return
            if status.is_resolved:
                self._complete(client_id, status.result_url)
                return
            if status.is_failed:
                self._fail(client_id, status.error_message or "Generation failed")
                return
            if status.status == "completed":
                logger.debug("Task %s reported completed without an image yet", client_id)
            if status.progress > task.progress:
                self._update(client_id, progress=status.progress)

"""Durable, priority-ordered queue of "process this source" tasks.

Ordering: PENDING tasks with retries left, highest priority first, oldest
first within a priority. Claiming is a conditional UPDATE so two overlapping
ticks can never both own the same task.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from src.core.config import QueueConfig
from src.core.errors import SourceNotFoundError
from src.core.repositories import DataSourceRepo, ImportTaskRepo
from src.core.schemas import ImportTask, TaskStatus

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Priority for sources that have never reported a fetch count.
UNKNOWN_SIZE_PRIORITY = 500
PRIORITY_CEILING = 1000


def priority_for_feed_size(last_fetched: int) -> int:
    """Smaller feeds first: ``1000 - lastFetched`` floored at 0, 500 when unknown."""
    if last_fetched > 0:
        return max(0, PRIORITY_CEILING - last_fetched)
    return UNKNOWN_SIZE_PRIORITY


class TaskQueue:
    """Import task queue over an ``ImportTaskRepo``.

    Usage::

        queue = TaskQueue(tasks, sources, settings.queue)
        queue.reap_stuck()
        task = queue.claim_next()
    """

    def __init__(
        self,
        tasks: ImportTaskRepo,
        sources: DataSourceRepo,
        config: QueueConfig | None = None,
        clock: Clock = datetime.now,
    ) -> None:
        self._tasks = tasks
        self._sources = sources
        self._config = config or QueueConfig()
        self._clock = clock

    @property
    def config(self) -> QueueConfig:
        return self._config

    def enqueue(
        self,
        source_id: int,
        priority: int | None = None,
        *,
        max_retries: int | None = None,
        allow_duplicate: bool = False,
    ) -> ImportTask:
        """Create a PENDING task for a source.

        When coalescing is on (the default) and the source already has a
        PENDING or PROCESSING task, that task is returned instead.
        """
        if self._sources.get(source_id) is None:
            raise SourceNotFoundError(source_id)

        if self._config.coalesce_pending and not allow_duplicate:
            existing = self._tasks.find_open_for_source(source_id)
            if existing is not None:
                logger.debug(
                    "Source %d already has open task %d (%s)",
                    source_id, existing.id, existing.status,
                )
                return existing

        task = self._tasks.create(
            source_id,
            priority if priority is not None else self._config.default_priority,
            max_retries if max_retries is not None else self._config.default_max_retries,
            self._clock(),
        )
        logger.info("Queued task %d for source %d (priority %d)", task.id, source_id, task.priority)
        return task

    def enqueue_active_sources(self) -> dict[str, int]:
        """Queue every active source that has no open task."""
        sources = self._sources.list(active_only=True)
        open_ids = self._tasks.open_source_ids()
        created = 0
        for source in sources:
            if source.id in open_ids:
                continue
            self._tasks.create(
                source.id,
                priority_for_feed_size(source.last_fetched),
                self._config.default_max_retries,
                self._clock(),
            )
            created += 1
        already = len(sources) - created
        logger.info(
            "Queued %d sources (%d already queued, %d active)", created, already, len(sources)
        )
        return {"tasksCreated": created, "alreadyQueued": already, "totalSources": len(sources)}

    def peek_next(self) -> ImportTask | None:
        """Return the task that would run next, without claiming it."""
        return self._tasks.next_pending()

    def claim_next(self) -> ImportTask | None:
        """Claim the next task, moving it to PROCESSING. None when the queue is empty.

        Retries a few times when a concurrent caller wins the race for the
        same task.
        """
        for _ in range(self._config.claim_attempts):
            task = self._tasks.next_pending()
            if task is None:
                return None
            now = self._clock()
            if self._tasks.claim(task.id, now):
                return task.model_copy(update={"status": TaskStatus.PROCESSING, "started_at": now})
            logger.debug("Task %d was claimed by another runner", task.id)
        logger.warning("Gave up claiming after %d lost races", self._config.claim_attempts)
        return None

    def reap_stuck(self, timeout_minutes: int | None = None) -> int:
        """Return tasks stuck in PROCESSING past the timeout to PENDING.

        Bookkeeping only: the original call, if still running, is not stopped.
        """
        minutes = timeout_minutes if timeout_minutes is not None else self._config.task_timeout_minutes
        now = self._clock()
        reaped = self._tasks.reap_stuck(
            now - timedelta(minutes=minutes),
            f"Task timed out after {minutes} minutes",
            now,
        )
        if reaped:
            logger.warning("Reaped %d stuck task(s) older than %d minutes", reaped, minutes)
        return reaped

    def queue_stats(self) -> dict[str, int]:
        counts = self._tasks.count_by_status()
        return {status.value.lower(): counts.get(status, 0) for status in TaskStatus}

    def pending_count(self) -> int:
        return self._tasks.count_by_status().get(TaskStatus.PENDING, 0)

"""Task runner: one queue tick.

States: PENDING -> PROCESSING -> COMPLETED | PENDING (retry) | FAILED

Per tick:
  1. Reap stuck tasks
  2. Claim the next task (idle result if none)
  3. Run the source processor
  4. COMPLETED with counts, or retry_count + 1 and PENDING/FAILED
  5. Optionally rescore the source
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.core.repositories import DataSourceRepo, ImportTaskRepo
from src.core.schemas import ImportTask, ProcessingStats, TaskStatus
from src.pipeline.processor import SourceProcessor
from src.pipeline.source_scorer import SourceScorer
from src.pipeline.task_queue import TaskQueue

logger = logging.getLogger(__name__)

PENDING_RETRY = "PENDING_RETRY"


@dataclass
class RunResult:
    """Outcome of one tick. ``task`` is None when the queue was idle."""

    task: ImportTask | None = None
    source_name: str | None = None
    status: str | None = None
    stats: ProcessingStats | None = None
    error: str | None = None
    pending: int = 0
    reaped: int = 0

    @property
    def idle(self) -> bool:
        return self.task is None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_response(self) -> dict[str, Any]:
        """The JSON body returned to the scheduler."""
        if self.task is None:
            if self.pending:
                return {"success": True, "message": "No task claimed", "queue": {"pending": self.pending}}
            return {"success": True, "message": "No pending tasks", "queue": {"pending": 0}}
        if self.error is not None:
            return {
                "success": False,
                "task": {
                    "id": self.task.id,
                    "source": self.source_name,
                    "status": self.status,
                    "retryCount": self.task.retry_count,
                },
                "error": self.error,
            }
        stats = self.stats or ProcessingStats()
        return {
            "success": True,
            "task": {"id": self.task.id, "source": self.source_name, "status": self.status},
            "stats": {
                "total": stats.total,
                "created": stats.created,
                "skipped": stats.skipped,
                "failed": stats.failed,
            },
            "queue": {"pending": self.pending},
        }


class TaskRunner:
    """Pulls one task per ``run_once`` call and drives it to its next state.

    A processor exception never escapes ``run_once``; it becomes a retry or
    a terminal FAILED on the task.
    """

    def __init__(
        self,
        queue: TaskQueue,
        tasks: ImportTaskRepo,
        sources: DataSourceRepo,
        processor: SourceProcessor,
        scorer: SourceScorer | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._queue = queue
        self._tasks = tasks
        self._sources = sources
        self._processor = processor
        self._scorer = scorer
        self._clock = clock

    def run_once(self) -> RunResult:
        reaped = self._queue.reap_stuck()

        task = self._queue.claim_next()
        if task is None:
            pending = self._queue.pending_count()
            if pending:
                logger.warning("No task claimed although %d are pending; other runners hold the queue", pending)
            else:
                logger.info("No pending tasks")
            return RunResult(reaped=reaped, pending=pending)

        source = self._sources.get(task.data_source_id)
        source_name = source.name if source else f"#{task.data_source_id}"
        logger.info("Processing task %d for source %s", task.id, source_name)

        try:
            stats = self._processor.process(task.data_source_id)
        except Exception as e:
            return self._fail(task, source_name, str(e) or type(e).__name__, reaped)

        self._tasks.complete(task.id, stats, self._clock())
        logger.info(
            "Task %d completed: %d created, %d skipped, %d failed",
            task.id, stats.created, stats.skipped, stats.failed,
        )
        self._rescore(task.data_source_id)
        completed = task.model_copy(
            update={
                "status": TaskStatus.COMPLETED,
                "total_jobs": stats.total,
                "processed_jobs": stats.total,
                "created_jobs": stats.created,
                "skipped_jobs": stats.skipped,
            }
        )
        return RunResult(
            task=completed,
            source_name=source_name,
            status=TaskStatus.COMPLETED.value,
            stats=stats,
            pending=self._queue.pending_count(),
            reaped=reaped,
        )

    def _fail(self, task: ImportTask, source_name: str, error: str, reaped: int) -> RunResult:
        retry_count = task.retry_count + 1
        terminal = retry_count >= task.max_retries
        self._tasks.fail(task.id, retry_count, error, terminal=terminal, now=self._clock())
        status = TaskStatus.FAILED.value if terminal else PENDING_RETRY
        if terminal:
            logger.error("Task %d failed permanently after %d attempts: %s", task.id, retry_count, error)
        else:
            logger.warning(
                "Task %d failed (attempt %d/%d), will retry: %s",
                task.id, retry_count, task.max_retries, error,
            )
        self._rescore(task.data_source_id)
        failed = task.model_copy(
            update={
                "status": TaskStatus.FAILED if terminal else TaskStatus.PENDING,
                "retry_count": retry_count,
                "error": error,
            }
        )
        return RunResult(
            task=failed,
            source_name=source_name,
            status=status,
            error=error,
            pending=self._queue.pending_count(),
            reaped=reaped,
        )

    def _rescore(self, source_id: int) -> None:
        if self._scorer is None:
            return
        try:
            self._scorer.recalculate_source_score(source_id)
        except Exception:
            logger.exception("Rescoring source %d failed", source_id)

"""Orchestrator: wires repositories, classifier, processor, queue, runner and scorer.

Data flow for one cron tick:
  1. TaskQueue.reap_stuck / claim_next
  2. SourceProcessor.process (fetch, filter, classify, persist)
  3. Task state update
  4. SourceScorer rescoring of the source
"""

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from src.classifier import get_provider
from src.classifier.base import LLMProvider
from src.classifier.service import AIClassifier
from src.core.config import Settings
from src.core.repositories import (
    SqliteDataSourceRepo,
    SqliteImportLogRepo,
    SqliteImportTaskRepo,
    SqliteJobRepo,
)
from src.pipeline.processor import SourceProcessor
from src.pipeline.source_registry import SourceRegistry
from src.pipeline.source_scorer import SourceScorer
from src.pipeline.task_queue import TaskQueue
from src.pipeline.task_runner import TaskRunner
from src.sources import SourceFetcher, get_fetcher

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """Every service of the ingestion pipeline, sharing one connection."""

    queue: TaskQueue
    runner: TaskRunner
    scorer: SourceScorer
    registry: SourceRegistry
    processor: SourceProcessor


def build_pipeline(
    conn: sqlite3.Connection,
    settings: Settings,
    *,
    provider: LLMProvider | None = None,
    clock: Callable[[], datetime] = datetime.now,
    sleep: Callable[[float], None] | None = None,
    fetcher_factory: Callable[[str], SourceFetcher] = get_fetcher,
) -> Pipeline:
    """Assemble the pipeline from settings.

    ``provider`` defaults to the configured LLM provider. Tests pass a mock
    provider, a fixed clock and a no-op sleep.
    """
    sources = SqliteDataSourceRepo(conn)
    tasks = SqliteImportTaskRepo(conn)
    logs = SqliteImportLogRepo(conn)
    jobs = SqliteJobRepo(conn)

    if provider is None:
        provider = get_provider(settings.classifier.provider)
    logger.debug("Using classifier provider %s", provider.provider_id)
    classifier = AIClassifier(provider, settings.classifier, sleep=sleep)

    queue = TaskQueue(tasks, sources, settings.queue, clock=clock)
    scorer = SourceScorer(sources, logs, clock=clock)
    processor = SourceProcessor(
        sources, logs, jobs, classifier, settings.processor,
        clock=clock, fetcher_factory=fetcher_factory,
    )
    runner = TaskRunner(
        queue, tasks, sources, processor,
        scorer=scorer if settings.processor.rescore_after_run else None,
        clock=clock,
    )
    return Pipeline(
        queue=queue,
        runner=runner,
        scorer=scorer,
        registry=SourceRegistry(sources, clock=clock, fetcher_factory=fetcher_factory),
        processor=processor,
    )

"""Source processor: fetch -> filter -> classify/extract -> persist.

Data flow for one source:
  1. Fetch raw postings (fatal on failure)
  2. Filter chain: age, duplicates, blocked titles
  3. Cap the batch at ``max_jobs_per_source``
  4. Per posting: extract (title-less posts), relevance, category, fields
  5. Write the job, record rejections, close the import log

A failure on one posting is counted and the run goes on. Fetch errors and an
unreachable classifier fail the whole run.
"""

import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime

from src.classifier.heuristics import (
    blocked_title_group,
    extract_country_code,
    extract_level,
    extract_skills,
    slugify,
)
from src.classifier.outcome import Verdict
from src.classifier.service import AIClassifier
from src.core.config import ProcessorConfig
from src.core.errors import (
    ClassifierError,
    ClassifierUnavailableError,
    SourceInactiveError,
    SourceNotFoundError,
)
from src.core.repositories import DataSourceRepo, ImportLogRepo, JobRepo
from src.core.schemas import (
    DataSource,
    ExtractedFields,
    FilterReason,
    JobRecord,
    ProcessingStats,
    RawPosting,
)
from src.pipeline.filters import (
    AgeFilter,
    BlockedTitleFilter,
    DuplicateFilter,
    Filter,
    run_filter_chain,
)
from src.sources import SourceFetcher, get_fetcher

logger = logging.getLogger(__name__)

MAX_SLUG_SUFFIX = 100


class SourceProcessor:
    """Runs one import of one data source."""

    def __init__(
        self,
        sources: DataSourceRepo,
        logs: ImportLogRepo,
        jobs: JobRepo,
        classifier: AIClassifier,
        config: ProcessorConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
        fetcher_factory: Callable[[str], SourceFetcher] = get_fetcher,
    ) -> None:
        self._sources = sources
        self._logs = logs
        self._jobs = jobs
        self._classifier = classifier
        self._config = config or ProcessorConfig()
        self._clock = clock
        self._fetcher_factory = fetcher_factory

    def process(self, source_id: int) -> ProcessingStats:
        """Import one source and return its counts.

        Raises:
            SourceNotFoundError / SourceInactiveError / UnsupportedSourceTypeError:
                before anything is fetched.
            FetchError / ClassifierUnavailableError: the run failed. The import
                log is closed as FAILED and the source's error count goes up.
        """
        source = self._sources.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        if not source.is_active:
            raise SourceInactiveError(source.name)
        fetcher = self._fetcher_factory(source.source_type)
        self._classifier.reset_failures()

        log = self._logs.start(source.id, source.source_type, self._clock())
        logger.info("Import %d started for source %d (%s)", log.id, source.id, source.name)
        try:
            stats = self._run(source, fetcher, log.id)
        except Exception as e:
            now = self._clock()
            self._logs.fail(log.id, str(e), now)
            self._sources.record_run_failure(source.id, str(e), now)
            logger.error("Import %d for source %s failed: %s", log.id, source.name, e)
            raise

        now = self._clock()
        self._logs.complete(log.id, stats, now)
        self._sources.record_run_success(source.id, stats.total, stats.created, now)
        self._classifier.log_usage()
        logger.info(
            "Import %d done for %s: %d fetched, %d created, %d skipped, %d failed",
            log.id, source.name, stats.total, stats.created, stats.skipped, stats.failed,
        )
        return stats

    def _filters(self, source: DataSource) -> list[Filter]:
        filters: list[Filter] = [
            AgeFilter(self._config.max_job_age_days, self._clock()),
            DuplicateFilter(self._jobs, source.id),
        ]
        if self._config.blacklist_filter:
            filters.append(BlockedTitleFilter())
        return filters

    def _run(self, source: DataSource, fetcher: SourceFetcher, log_id: int) -> ProcessingStats:
        postings = fetcher.fetch(source)
        stats = ProcessingStats(total=len(postings))

        filtered = run_filter_chain(postings, self._filters(source))
        rejected = filtered.rejected
        batch = filtered.passed
        limit = self._config.max_jobs_per_source
        if len(batch) > limit:
            logger.info("Capping %s at %d of %d postings", source.name, limit, len(batch))
            rejected.extend((p, FilterReason.OVER_LIMIT) for p in batch[limit:])
            batch = batch[:limit]

        for posting in batch:
            try:
                outcome = self._process_posting(source, posting, log_id, fetcher.requires_extraction)
            except ClassifierUnavailableError:
                raise
            except Exception as e:
                stats.failed += 1
                stats.errors.append(f"{posting.source_url}: {e}")
                logger.warning("Failed to import %s: %s", posting.source_url, e)
                continue
            if isinstance(outcome, FilterReason):
                rejected.append((posting, outcome))
            else:
                stats.created += 1
                stats.created_job_ids.append(outcome)

        stats.skipped = len(rejected)
        try:
            self._jobs.record_filtered(log_id, rejected)
        except sqlite3.Error:
            # Rejection records are informational; the import itself stands.
            logger.exception("Could not record %d filtered postings", len(rejected))
        return stats

    def _process_posting(
        self,
        source: DataSource,
        posting: RawPosting,
        log_id: int,
        requires_extraction: bool,
    ) -> int | FilterReason:
        """Classify and store one posting. Returns the new job id or a rejection reason."""
        extracted: ExtractedFields | None = None
        title = posting.title
        if requires_extraction or not title:
            result = self._classifier.extract_fields(posting.description)
            if not result.is_ok or not result.value or not result.value.title:
                msg = "Could not extract job title"
                raise ClassifierError(msg)
            extracted = result.value
            title = extracted.title or ""
            if self._config.blacklist_filter and blocked_title_group(title) is not None:
                return FilterReason.BLOCKED_TITLE

        skills = (extracted.skills if extracted else []) or extract_skills(
            f"{posting.description} {posting.department}"
        )

        if self._config.relevance_check:
            verdict = self._classifier.relevance(title, skills)
            if not verdict.is_ok:
                msg = f"Relevance check failed: {verdict.error}"
                raise ClassifierError(msg)
            if verdict.value == Verdict.IRRELEVANT:
                logger.debug("Not relevant: %s", title)
                return FilterReason.NOT_RELEVANT

        category = self._classifier.category(title, skills)
        if not category.is_ok:
            msg = f"Category classification failed: {category.error}"
            raise ClassifierError(msg)

        if extracted is None and posting.description:
            result = self._classifier.extract_fields(posting.description)
            if result.is_ok:
                extracted = result.value
            else:
                logger.debug("No structured fields for %s: %s", posting.source_url, result.error)

        record = self._build_record(source, posting, title, category.unwrap(), skills, extracted, log_id)
        try:
            return self._jobs.create(record, self._clock())
        except sqlite3.IntegrityError:
            # Stored by an overlapping run after the duplicate filter ran.
            return FilterReason.DUPLICATE

    def _build_record(
        self,
        source: DataSource,
        posting: RawPosting,
        title: str,
        category: str,
        skills: list[str],
        extracted: ExtractedFields | None,
        log_id: int,
    ) -> JobRecord:
        fields = extracted or ExtractedFields()
        company = posting.company or fields.company or source.name
        location = posting.location or fields.location or ""
        salary_from_posting = posting.salary_min is not None or posting.salary_max is not None
        return JobRecord(
            slug=self._unique_slug(title, company, posting.external_id),
            source_type=source.source_type,
            source_id=posting.external_id,
            source_url=posting.source_url,
            title=title,
            company=company,
            description=posting.description,
            clean_description=fields.clean_description,
            summary_bullets=fields.summary_bullets,
            requirement_bullets=fields.requirement_bullets,
            benefit_bullets=fields.benefit_bullets,
            category=category,
            skills=skills,
            salary_min=posting.salary_min if salary_from_posting else fields.salary_min,
            salary_max=posting.salary_max if salary_from_posting else fields.salary_max,
            salary_currency=posting.salary_currency if salary_from_posting else fields.salary_currency,
            level=fields.level or extract_level(title),
            location=location,
            country=extract_country_code(location) if location else None,
            data_source_id=source.id,
            import_log_id=log_id,
        )

    def _unique_slug(self, title: str, company: str, external_id: str) -> str:
        short_id = slugify(external_id)[-8:].strip("-")
        base = slugify(title, company, short_id)
        slug = base
        suffix = 2
        while self._jobs.slug_exists(slug):
            if suffix > MAX_SLUG_SUFFIX:
                msg = f"Could not find a free slug for '{base}'"
                raise ValueError(msg)
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

"""Filter chain applied to raw postings before any classifier call.

Filter order:
  1. AgeFilter            - drops postings older than the age limit
  2. DuplicateFilter      - stored source URL or per-source external id, plus run repeats
  3. BlockedTitleFilter   - professions the board never lists

Every rejected posting keeps its reason so the run can record it.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from src.classifier.heuristics import blocked_title_group
from src.core.repositories import JobRepo
from src.core.schemas import FilterReason, RawPosting

logger = logging.getLogger(__name__)


@dataclass
class FilterResult:
    passed: list[RawPosting]
    rejected: list[tuple[RawPosting, FilterReason]] = field(default_factory=list)


# A filter takes postings and splits them into kept and rejected.
Filter = Callable[[list[RawPosting]], FilterResult]


class AgeFilter:
    """Reject postings published more than ``max_age_days`` ago. Undated postings pass."""

    def __init__(self, max_age_days: int, now: datetime) -> None:
        self._cutoff = now - timedelta(days=max_age_days)

    def __call__(self, postings: list[RawPosting]) -> FilterResult:
        result = FilterResult(passed=[])
        for p in postings:
            if p.posted_at is not None and p.posted_at < self._cutoff:
                result.rejected.append((p, FilterReason.TOO_OLD))
            else:
                result.passed.append(p)
        if result.rejected:
            logger.debug("AgeFilter: removed %d postings", len(result.rejected))
        return result


class DuplicateFilter:
    """Reject postings already stored or repeated in this batch.

    Source URLs are checked across every source; external ids only against jobs
    imported from the same data source.
    """

    def __init__(self, jobs: JobRepo, data_source_id: int) -> None:
        self._jobs = jobs
        self._data_source_id = data_source_id

    def __call__(self, postings: list[RawPosting]) -> FilterResult:
        known_urls = self._jobs.existing_source_urls(p.source_url for p in postings)
        known_ids = self._jobs.existing_source_ids(
            self._data_source_id, (p.external_id for p in postings)
        )
        result = FilterResult(passed=[])
        for p in postings:
            if p.source_url in known_urls or p.external_id in known_ids:
                result.rejected.append((p, FilterReason.DUPLICATE))
                continue
            known_urls.add(p.source_url)
            known_ids.add(p.external_id)
            result.passed.append(p)
        if result.rejected:
            logger.debug("DuplicateFilter: removed %d duplicates", len(result.rejected))
        return result


class BlockedTitleFilter:
    """Reject titles in a blacklisted profession group. Title-less postings pass."""

    def __call__(self, postings: list[RawPosting]) -> FilterResult:
        result = FilterResult(passed=[])
        for p in postings:
            if p.title and blocked_title_group(p.title) is not None:
                result.rejected.append((p, FilterReason.BLOCKED_TITLE))
            else:
                result.passed.append(p)
        if result.rejected:
            logger.debug("BlockedTitleFilter: removed %d postings", len(result.rejected))
        return result


def run_filter_chain(postings: list[RawPosting], filters: list[Filter]) -> FilterResult:
    """Apply filters in order, collecting every rejection."""
    combined = FilterResult(passed=postings)
    for f in filters:
        step = f(combined.passed)
        combined.passed = step.passed
        combined.rejected.extend(step.rejected)
    return combined

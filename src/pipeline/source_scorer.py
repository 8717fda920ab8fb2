"""Source quality scoring.

score = conversion * 0.4 + activity * 0.3 + stability * 0.3, where

  conversion = totalImported / lastFetched * 100, capped at 100
               (50 when there is no fetch count but something was imported, else 0)
  activity   = weeklyImported / 50 * 100, capped at 100
  stability  = 100 - errorCount * 20, floored at 0

high >= 70, medium >= 40, low otherwise.
"""

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta

from src.core.errors import SourceNotFoundError
from src.core.repositories import DataSourceRepo, ImportLogRepo
from src.core.schemas import QualityStatus, ScoreBreakdown, SourceScore

logger = logging.getLogger(__name__)

CONVERSION_WEIGHT = 0.4
ACTIVITY_WEIGHT = 0.3
STABILITY_WEIGHT = 0.3
WEEKLY_SATURATION = 50
ERROR_PENALTY = 20
# Sources that imported jobs but never reported how many items they saw.
NO_TELEMETRY_CONVERSION = 50.0
HIGH_THRESHOLD = 70
MEDIUM_THRESHOLD = 40
WEEKLY_WINDOW = timedelta(days=7)


def round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def quality_status(score: int) -> QualityStatus:
    if score >= HIGH_THRESHOLD:
        return QualityStatus.HIGH
    if score >= MEDIUM_THRESHOLD:
        return QualityStatus.MEDIUM
    return QualityStatus.LOW


def calculate_score(
    total_imported: int,
    last_fetched: int,
    weekly_imported: int,
    error_count: int,
) -> SourceScore:
    """Pure scoring function. Same inputs, same result."""
    if last_fetched > 0:
        conversion = min(100.0, total_imported / last_fetched * 100)
    else:
        conversion = NO_TELEMETRY_CONVERSION if total_imported > 0 else 0.0
    activity = min(100.0, weekly_imported / WEEKLY_SATURATION * 100)
    stability = max(0.0, 100.0 - error_count * ERROR_PENALTY)

    score = int(
        round_half_up(
            conversion * CONVERSION_WEIGHT
            + activity * ACTIVITY_WEIGHT
            + stability * STABILITY_WEIGHT
        )
    )
    return SourceScore(
        score=score,
        conversion_rate=round_half_up(conversion, 1),
        quality_status=quality_status(score),
        breakdown=ScoreBreakdown(
            conversion_score=int(round_half_up(conversion)),
            activity_score=int(round_half_up(activity)),
            stability_score=int(round_half_up(stability)),
        ),
    )


class SourceScorer:
    """Loads source statistics, scores them and writes the result back."""

    def __init__(
        self,
        sources: DataSourceRepo,
        logs: ImportLogRepo,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._sources = sources
        self._logs = logs
        self._clock = clock

    def recalculate_source_score(self, source_id: int) -> SourceScore:
        source = self._sources.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)

        now = self._clock()
        weekly = self._logs.sum_new_since(source_id, now - WEEKLY_WINDOW)
        result = calculate_score(source.total_imported, source.last_fetched, weekly, source.error_count)
        self._sources.update(
            source_id,
            score=result.score,
            conversion_rate=result.conversion_rate,
            quality_status=result.quality_status.value,
            weekly_imported=weekly,
            last_score_at=now,
        )
        logger.info(
            "Scored source %d (%s): %d [%s]",
            source_id, source.name, result.score, result.quality_status,
        )
        return result

    def recalculate_all_scores(self) -> dict[str, int]:
        """Score every source. A failing source is logged and skipped."""
        summary = {"updated": 0, "high": 0, "medium": 0, "low": 0, "failed": 0}
        for source in self._sources.list():
            try:
                result = self.recalculate_source_score(source.id)
            except Exception:
                logger.exception("Failed to score source %d (%s)", source.id, source.name)
                summary["failed"] += 1
                continue
            summary["updated"] += 1
            summary[result.quality_status.value] += 1
        logger.info(
            "Scored %d sources: %d high, %d medium, %d low (%d failed)",
            summary["updated"], summary["high"], summary["medium"], summary["low"], summary["failed"],
        )
        return summary

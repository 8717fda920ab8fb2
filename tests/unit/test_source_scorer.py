"""Tests for the source quality score formula and SourceScorer persistence."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from src.core.db import init_db
from src.core.errors import SourceNotFoundError
from src.core.repositories import SqliteDataSourceRepo, SqliteImportLogRepo
from src.core.schemas import DataSource, ProcessingStats, QualityStatus, SourceType
from src.pipeline.source_scorer import (
    SourceScorer,
    calculate_score,
    quality_status,
    round_half_up,
)

T0 = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    return init_db(tmp_path / "scores.db")


def _record_run(logs: SqliteImportLogRepo, source_id: int, created: int, finished: datetime) -> None:
    log = logs.start(source_id, SourceType.LEVER, finished - timedelta(minutes=1))
    logs.complete(log.id, ProcessingStats(total=created, created=created), finished)


class TestCalculateScore:
    def test_worked_example(self) -> None:
        result = calculate_score(total_imported=40, last_fetched=100, weekly_imported=50, error_count=0)
        assert result.breakdown.conversion_score == 40
        assert result.breakdown.activity_score == 100
        assert result.breakdown.stability_score == 100
        assert result.score == 76
        assert result.conversion_rate == 40.0
        assert result.quality_status == QualityStatus.HIGH

    def test_empty_source_scores_stability_only(self) -> None:
        result = calculate_score(0, 0, 0, 0)
        assert result.score == 30
        assert result.conversion_rate == 0.0
        assert result.quality_status == QualityStatus.LOW

    def test_everything_zero_with_errors(self) -> None:
        result = calculate_score(0, 0, 0, 5)
        assert result.score == 0
        assert result.quality_status == QualityStatus.LOW

    @pytest.mark.parametrize(
        ("total", "fetched", "weekly", "errors", "score", "status"),
        [
            (25, 100, 50, 0, 70, QualityStatus.HIGH),
            (45, 200, 50, 0, 69, QualityStatus.MEDIUM),
            (25, 100, 0, 0, 40, QualityStatus.MEDIUM),
            (45, 200, 0, 0, 39, QualityStatus.LOW),
        ],
    )
    def test_threshold_boundaries(
        self, total: int, fetched: int, weekly: int, errors: int, score: int, status: QualityStatus
    ) -> None:
        result = calculate_score(total, fetched, weekly, errors)
        assert result.score == score
        assert result.quality_status == status

    def test_conversion_capped_at_100(self) -> None:
        result = calculate_score(500, 100, 0, 0)
        assert result.breakdown.conversion_score == 100
        assert result.conversion_rate == 100.0

    def test_activity_capped_at_100(self) -> None:
        assert calculate_score(0, 0, 500, 0).breakdown.activity_score == 100

    def test_stability_floored_at_zero(self) -> None:
        assert calculate_score(0, 0, 0, 12).breakdown.stability_score == 0

    def test_imports_without_fetch_count_use_fallback(self) -> None:
        result = calculate_score(total_imported=10, last_fetched=0, weekly_imported=0, error_count=0)
        assert result.breakdown.conversion_score == 50
        assert result.score == 50

    def test_half_up_rounding(self) -> None:
        # 1.25% conversion contributes 0.5, so the raw score is 30.5
        assert calculate_score(5, 400, 0, 0).score == 31

    def test_conversion_rate_one_decimal(self) -> None:
        assert calculate_score(1, 3, 0, 0).conversion_rate == 33.3

    def test_pure(self) -> None:
        assert calculate_score(7, 90, 12, 1) == calculate_score(7, 90, 12, 1)


class TestHelpers:
    @pytest.mark.parametrize(
        ("score", "expected"),
        [(100, "high"), (70, "high"), (69, "medium"), (40, "medium"), (39, "low"), (0, "low")],
    )
    def test_quality_status(self, score: int, expected: str) -> None:
        assert quality_status(score).value == expected

    def test_round_half_up(self) -> None:
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(33.35, 1) == pytest.approx(33.4)
        assert round_half_up(2.4) == 2


class TestSourceScorer:
    def test_recalculate_persists(self, db) -> None:  # type: ignore[no-untyped-def]
        sources = SqliteDataSourceRepo(db)
        logs = SqliteImportLogRepo(db)
        sid = sources.create("Acme", SourceType.LEVER, {}, T0).id
        sources.record_run_success(sid, fetched=100, created=40, now=T0)
        _record_run(logs, sid, 50, T0 - timedelta(days=1))

        result = SourceScorer(sources, logs, clock=lambda: T0).recalculate_source_score(sid)

        assert result.score == 76
        stored = sources.get(sid)
        assert stored.score == 76
        assert stored.conversion_rate == 40.0
        assert stored.quality_status == QualityStatus.HIGH
        assert stored.weekly_imported == 50
        assert stored.last_score_at == T0

    def test_weekly_window_excludes_old_runs(self, db) -> None:  # type: ignore[no-untyped-def]
        sources = SqliteDataSourceRepo(db)
        logs = SqliteImportLogRepo(db)
        sid = sources.create("Acme", SourceType.LEVER, {}, T0).id
        _record_run(logs, sid, 20, T0 - timedelta(days=2))
        _record_run(logs, sid, 30, T0 - timedelta(days=8))

        SourceScorer(sources, logs, clock=lambda: T0).recalculate_source_score(sid)

        assert sources.get(sid).weekly_imported == 20

    def test_failed_runs_lower_stability(self, db) -> None:  # type: ignore[no-untyped-def]
        sources = SqliteDataSourceRepo(db)
        logs = SqliteImportLogRepo(db)
        sid = sources.create("Flaky", SourceType.LEVER, {}, T0).id
        sources.record_run_failure(sid, "HTTP 500", T0)
        sources.record_run_failure(sid, "HTTP 500", T0)

        result = SourceScorer(sources, logs, clock=lambda: T0).recalculate_source_score(sid)

        assert result.breakdown.stability_score == 60

    def test_unknown_source(self, db) -> None:  # type: ignore[no-untyped-def]
        scorer = SourceScorer(SqliteDataSourceRepo(db), SqliteImportLogRepo(db), clock=lambda: T0)
        with pytest.raises(SourceNotFoundError):
            scorer.recalculate_source_score(42)

    def test_recalculate_all_summary(self, db) -> None:  # type: ignore[no-untyped-def]
        sources = SqliteDataSourceRepo(db)
        logs = SqliteImportLogRepo(db)
        good = sources.create("Good", SourceType.LEVER, {}, T0).id
        sources.record_run_success(good, fetched=100, created=40, now=T0)
        _record_run(logs, good, 50, T0)
        sources.create("New", SourceType.LEVER, {}, T0, is_active=False)

        summary = SourceScorer(sources, logs, clock=lambda: T0).recalculate_all_scores()

        assert summary == {"updated": 2, "high": 1, "medium": 0, "low": 1, "failed": 0}

    def test_recalculate_all_continues_past_failures(self) -> None:
        ok = DataSource(
            id=1, name="ok", source_type=SourceType.LEVER, created_at=T0,
            total_imported=40, last_fetched=100,
        )
        broken = DataSource(id=2, name="broken", source_type=SourceType.LEVER, created_at=T0)
        sources = MagicMock()
        sources.list.return_value = [broken, ok]
        sources.get.side_effect = lambda sid: ok if sid == 1 else None
        logs = MagicMock()
        logs.sum_new_since.return_value = 50

        summary = SourceScorer(sources, logs, clock=lambda: T0).recalculate_all_scores()

        assert summary == {"updated": 1, "high": 1, "medium": 0, "low": 0, "failed": 1}
        sources.update.assert_called_once()

"""Tests for the database layer: init, repositories, atomic claim, watchdog."""

import sqlite3
from datetime import datetime, timedelta

import pytest

from src.core.db import from_db_time, init_db, to_db_time
from src.core.repositories import (
    SqliteDataSourceRepo,
    SqliteImportLogRepo,
    SqliteImportTaskRepo,
    SqliteJobRepo,
)
from src.core.schemas import (
    FilterReason,
    ImportLogStatus,
    JobRecord,
    ProcessingStats,
    QualityStatus,
    RawPosting,
    SourceType,
    TaskStatus,
)

T0 = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    """Provide a fresh SQLite connection per test."""
    return init_db(tmp_path / "test.db")


@pytest.fixture()
def sources(db):  # type: ignore[no-untyped-def]
    return SqliteDataSourceRepo(db)


@pytest.fixture()
def tasks(db):  # type: ignore[no-untyped-def]
    return SqliteImportTaskRepo(db)


def _job(slug: str = "backend-engineer-acme", url: str = "https://example.com/1", **kw: object) -> JobRecord:
    defaults: dict[str, object] = {
        "slug": slug,
        "source_type": SourceType.LEVER,
        "source_id": "1",
        "source_url": url,
        "title": "Backend Engineer",
        "company": "Acme",
    }
    defaults.update(kw)
    return JobRecord(**defaults)  # type: ignore[arg-type]


class TestInitDb:
    def test_creates_tables(self, db) -> None:  # type: ignore[no-untyped-def]
        tables = {
            row[0]
            for row in db.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        }
        assert {"data_sources", "import_tasks", "import_logs", "jobs", "filtered_jobs"} <= tables

    def test_idempotent(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        init_db(tmp_path / "test.db").close()
        conn = init_db(tmp_path / "test.db")
        assert conn.execute("SELECT COUNT(*) FROM data_sources").fetchone()[0] == 0

    def test_creates_parent_dirs(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        conn = init_db(tmp_path / "nested" / "dir" / "test.db")
        assert (tmp_path / "nested" / "dir" / "test.db").exists()
        conn.close()


class TestTimeEncoding:
    def test_round_trip(self) -> None:
        value = datetime(2026, 3, 1, 12, 0, 0, 5)
        assert from_db_time(to_db_time(value)) == value

    def test_fixed_width_orders_lexically(self) -> None:
        # Whole seconds must still sort before a later fractional timestamp.
        assert to_db_time(T0) < to_db_time(T0 + timedelta(microseconds=1))

    def test_none(self) -> None:
        assert to_db_time(None) is None
        assert from_db_time(None) is None


class TestDataSourceRepo:
    def test_create_and_get(self, sources) -> None:  # type: ignore[no-untyped-def]
        created = sources.create(
            "Acme", SourceType.LEVER, {"company_slug": "acme"}, T0, tags=["eu"]
        )
        loaded = sources.get(created.id)
        assert loaded is not None
        assert loaded.name == "Acme"
        assert loaded.config == {"company_slug": "acme"}
        assert loaded.tags == ["eu"]
        assert loaded.quality_status == QualityStatus.UNSCORED
        assert loaded.error_count == 0
        assert loaded.created_at == T0

    def test_get_missing(self, sources) -> None:  # type: ignore[no-untyped-def]
        assert sources.get(999) is None

    def test_list_active_only(self, sources) -> None:  # type: ignore[no-untyped-def]
        sources.create("A", SourceType.LEVER, {}, T0)
        sources.create("B", SourceType.LEVER, {}, T0, is_active=False)
        assert [s.name for s in sources.list()] == ["A", "B"]
        assert [s.name for s in sources.list(active_only=True)] == ["A"]

    def test_update_whitelisted(self, sources) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        sources.update(s.id, score=72, quality_status="high", last_score_at=T0, tags=["x"])
        loaded = sources.get(s.id)
        assert loaded.score == 72
        assert loaded.quality_status == QualityStatus.HIGH
        assert loaded.last_score_at == T0
        assert loaded.tags == ["x"]

    def test_update_rejects_unknown_field(self, sources) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        with pytest.raises(ValueError, match="cannot be updated"):
            sources.update(s.id, error_count=0)

    def test_run_failure_then_success_resets_errors(self, sources) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        sources.record_run_failure(s.id, "HTTP 500", T0)
        sources.record_run_failure(s.id, "HTTP 502", T0)
        failed = sources.get(s.id)
        assert failed.error_count == 2
        assert failed.last_error == "HTTP 502"
        assert failed.last_success_at is None

        sources.record_run_success(s.id, fetched=40, created=10, now=T0)
        ok = sources.get(s.id)
        assert ok.error_count == 0
        assert ok.last_error is None
        assert ok.last_fetched == 40
        assert ok.last_created == 10
        assert ok.total_imported == 10
        assert ok.last_success_at == T0

    def test_total_imported_accumulates(self, sources) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        sources.record_run_success(s.id, fetched=10, created=3, now=T0)
        sources.record_run_success(s.id, fetched=12, created=4, now=T0)
        loaded = sources.get(s.id)
        assert loaded.total_imported == 7
        assert loaded.last_fetched == 12

    def test_is_referenced(self, sources, tasks) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        assert sources.is_referenced(s.id) is False
        tasks.create(s.id, 0, 3, T0)
        assert sources.is_referenced(s.id) is True


class TestImportTaskRepo:
    def test_next_pending_ordering(self, sources, tasks) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        a = tasks.create(s.id, 1, 3, T0)
        b = tasks.create(s.id, 5, 3, T0 + timedelta(seconds=1))
        c = tasks.create(s.id, 5, 3, T0 + timedelta(seconds=2))

        order = []
        for _ in range(3):
            task = tasks.next_pending()
            order.append(task.id)
            assert tasks.claim(task.id, T0)
        assert order == [b.id, c.id, a.id]
        assert tasks.next_pending() is None

    def test_claim_is_exclusive(self, sources, tasks) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        t = tasks.create(s.id, 0, 3, T0)
        assert tasks.claim(t.id, T0) is True
        assert tasks.claim(t.id, T0) is False
        claimed = tasks.get(t.id)
        assert claimed.status == TaskStatus.PROCESSING
        assert claimed.started_at == T0

    def test_exhausted_task_not_picked(self, sources, tasks, db) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        t = tasks.create(s.id, 0, 3, T0)
        db.execute("UPDATE import_tasks SET retry_count = 3 WHERE id = ?", (t.id,))
        db.commit()
        assert tasks.next_pending() is None
        assert tasks.claim(t.id, T0) is False

    def test_complete_records_counts(self, sources, tasks) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        t = tasks.create(s.id, 0, 3, T0)
        tasks.claim(t.id, T0)
        tasks.complete(t.id, ProcessingStats(total=10, created=4, skipped=5, failed=1), T0)
        done = tasks.get(t.id)
        assert done.status == TaskStatus.COMPLETED
        assert done.total_jobs == 10
        assert done.created_jobs == 4
        assert done.skipped_jobs == 5
        assert done.error is None
        assert done.completed_at == T0

    def test_fail_retryable_leaves_completed_at_null(self, sources, tasks) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        t = tasks.create(s.id, 0, 3, T0)
        tasks.claim(t.id, T0)
        tasks.fail(t.id, 1, "boom", terminal=False, now=T0)
        failed = tasks.get(t.id)
        assert failed.status == TaskStatus.PENDING
        assert failed.retry_count == 1
        assert failed.error == "boom"
        assert failed.completed_at is None

    def test_fail_terminal(self, sources, tasks) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        t = tasks.create(s.id, 0, 3, T0)
        tasks.fail(t.id, 3, "boom", terminal=True, now=T0)
        failed = tasks.get(t.id)
        assert failed.status == TaskStatus.FAILED
        assert failed.completed_at == T0

    def test_reap_stuck_respects_cutoff(self, sources, tasks) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        old = tasks.create(s.id, 0, 3, T0)
        fresh = tasks.create(s.id, 0, 3, T0)
        tasks.claim(old.id, T0 - timedelta(minutes=31))
        tasks.claim(fresh.id, T0 - timedelta(minutes=29))

        reaped = tasks.reap_stuck(T0 - timedelta(minutes=30), "timed out", T0)

        assert reaped == 1
        old_task = tasks.get(old.id)
        assert old_task.status == TaskStatus.PENDING
        assert old_task.retry_count == 1
        assert old_task.error == "timed out"
        assert tasks.get(fresh.id).status == TaskStatus.PROCESSING

    def test_reap_stuck_on_last_retry_fails(self, sources, tasks, db) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        t = tasks.create(s.id, 0, 3, T0)
        tasks.claim(t.id, T0 - timedelta(hours=1))
        db.execute("UPDATE import_tasks SET retry_count = 2 WHERE id = ?", (t.id,))
        db.commit()

        tasks.reap_stuck(T0 - timedelta(minutes=30), "timed out", T0)

        reaped = tasks.get(t.id)
        assert reaped.status == TaskStatus.FAILED
        assert reaped.retry_count == 3
        assert reaped.completed_at == T0

    def test_open_for_source(self, sources, tasks) -> None:  # type: ignore[no-untyped-def]
        a = sources.create("A", SourceType.LEVER, {}, T0)
        b = sources.create("B", SourceType.LEVER, {}, T0)
        t = tasks.create(a.id, 0, 3, T0)
        assert tasks.find_open_for_source(a.id).id == t.id
        assert tasks.find_open_for_source(b.id) is None
        assert tasks.open_source_ids() == {a.id}

    def test_count_by_status(self, sources, tasks) -> None:  # type: ignore[no-untyped-def]
        s = sources.create("A", SourceType.LEVER, {}, T0)
        tasks.create(s.id, 0, 3, T0)
        t2 = tasks.create(s.id, 0, 3, T0)
        tasks.claim(t2.id, T0)
        counts = tasks.count_by_status()
        assert counts[TaskStatus.PENDING] == 1
        assert counts[TaskStatus.PROCESSING] == 1
        assert counts[TaskStatus.COMPLETED] == 0
        assert counts[TaskStatus.FAILED] == 0


class TestImportLogRepo:
    def test_lifecycle(self, db, sources) -> None:  # type: ignore[no-untyped-def]
        logs = SqliteImportLogRepo(db)
        s = sources.create("A", SourceType.LEVER, {}, T0)
        log = logs.start(s.id, SourceType.LEVER, T0)
        assert log.status == ImportLogStatus.RUNNING

        logs.complete(log.id, ProcessingStats(total=5, created=2, skipped=2, failed=1, errors=["x"]), T0)
        done = logs.get(log.id)
        assert done.status == ImportLogStatus.COMPLETED
        assert done.total_fetched == 5
        assert done.total_new == 2
        assert done.total_failed == 1
        assert done.errors == ["x"]

    def test_fail(self, db, sources) -> None:  # type: ignore[no-untyped-def]
        logs = SqliteImportLogRepo(db)
        s = sources.create("A", SourceType.LEVER, {}, T0)
        log = logs.start(s.id, SourceType.LEVER, T0)
        logs.fail(log.id, "HTTP 500", T0)
        failed = logs.get(log.id)
        assert failed.status == ImportLogStatus.FAILED
        assert failed.errors == ["HTTP 500"]

    def test_sum_new_since_counts_completed_only(self, db, sources) -> None:  # type: ignore[no-untyped-def]
        logs = SqliteImportLogRepo(db)
        s = sources.create("A", SourceType.LEVER, {}, T0)
        recent = logs.start(s.id, SourceType.LEVER, T0)
        logs.complete(recent.id, ProcessingStats(created=7), T0)
        old = logs.start(s.id, SourceType.LEVER, T0 - timedelta(days=10))
        logs.complete(old.id, ProcessingStats(created=100), T0 - timedelta(days=10))
        failed = logs.start(s.id, SourceType.LEVER, T0)
        logs.fail(failed.id, "boom", T0)

        assert logs.sum_new_since(s.id, T0 - timedelta(days=7)) == 7


class TestJobRepo:
    def test_create_and_dedup_lookups(self, db, sources) -> None:  # type: ignore[no-untyped-def]
        jobs = SqliteJobRepo(db)
        s = sources.create("A", SourceType.LEVER, {}, T0)
        job_id = jobs.create(_job(data_source_id=s.id), T0)
        assert job_id > 0
        assert jobs.existing_source_urls(["https://example.com/1", "https://example.com/2"]) == {
            "https://example.com/1"
        }
        assert jobs.existing_source_ids(s.id, ["1", "2"]) == {"1"}
        assert jobs.slug_exists("backend-engineer-acme") is True

    def test_external_ids_scoped_to_data_source(self, db, sources) -> None:  # type: ignore[no-untyped-def]
        jobs = SqliteJobRepo(db)
        a = sources.create("Board A", SourceType.GENERIC_ATS, {}, T0)
        b = sources.create("Board B", SourceType.GENERIC_ATS, {}, T0)
        jobs.create(_job(source_type=SourceType.GENERIC_ATS, data_source_id=a.id), T0)

        assert jobs.existing_source_ids(a.id, ["1"]) == {"1"}
        assert jobs.existing_source_ids(b.id, ["1"]) == set()

    def test_duplicate_source_url_rejected(self, db) -> None:  # type: ignore[no-untyped-def]
        jobs = SqliteJobRepo(db)
        jobs.create(_job(), T0)
        with pytest.raises(sqlite3.IntegrityError):
            jobs.create(_job(slug="other-slug"), T0)

    def test_large_lookup_is_chunked(self, db) -> None:  # type: ignore[no-untyped-def]
        jobs = SqliteJobRepo(db)
        jobs.create(_job(), T0)
        urls = [f"https://example.com/x{i}" for i in range(1200)] + ["https://example.com/1"]
        assert jobs.existing_source_urls(urls) == {"https://example.com/1"}

    def test_record_filtered(self, db, sources) -> None:  # type: ignore[no-untyped-def]
        jobs = SqliteJobRepo(db)
        logs = SqliteImportLogRepo(db)
        s = sources.create("A", SourceType.LEVER, {}, T0)
        log = logs.start(s.id, SourceType.LEVER, T0)
        posting = RawPosting(external_id="9", source_url="https://example.com/9", title="Nurse")
        jobs.record_filtered(log.id, [(posting, FilterReason.BLOCKED_TITLE)])
        rows = db.execute("SELECT title, reason FROM filtered_jobs").fetchall()
        assert [(r["title"], r["reason"]) for r in rows] == [("Nurse", "BLOCKED_TITLE")]

"""Repository interfaces and their SQLite implementations.

The pipeline only talks to the Protocols below, so a test or another backend
can substitute its own store. The SQLite classes share one connection.
"""

import sqlite3
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol

from src.core.db import from_db_json, from_db_time, to_db_json, to_db_time
from src.core.schemas import (
    DataSource,
    FilterReason,
    ImportLog,
    ImportLogStatus,
    ImportTask,
    JobRecord,
    ProcessingStats,
    QualityStatus,
    RawPosting,
    SourceType,
    TaskStatus,
)

# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------


class DataSourceRepo(Protocol):
    def create(
        self,
        name: str,
        source_type: SourceType,
        config: dict[str, Any],
        now: datetime,
        *,
        tags: list[str] | None = None,
        is_active: bool = True,
    ) -> DataSource: ...

    def get(self, source_id: int) -> DataSource | None: ...

    def list(self, *, active_only: bool = False) -> list[DataSource]: ...

    def update(self, source_id: int, **fields: Any) -> None: ...

    def record_run_success(
        self, source_id: int, fetched: int, created: int, now: datetime
    ) -> None: ...

    def record_run_failure(self, source_id: int, error: str, now: datetime) -> None: ...

    def is_referenced(self, source_id: int) -> bool: ...

    def delete(self, source_id: int) -> None: ...


class ImportTaskRepo(Protocol):
    def create(
        self, source_id: int, priority: int, max_retries: int, now: datetime
    ) -> ImportTask: ...

    def get(self, task_id: int) -> ImportTask | None: ...

    def find_open_for_source(self, source_id: int) -> ImportTask | None: ...

    def open_source_ids(self) -> set[int]: ...

    def next_pending(self) -> ImportTask | None: ...

    def claim(self, task_id: int, now: datetime) -> bool: ...

    def complete(self, task_id: int, stats: ProcessingStats, now: datetime) -> None: ...

    def fail(
        self, task_id: int, retry_count: int, error: str, *, terminal: bool, now: datetime
    ) -> None: ...

    def reap_stuck(self, cutoff: datetime, error: str, now: datetime) -> int: ...

    def count_by_status(self) -> dict[TaskStatus, int]: ...


class ImportLogRepo(Protocol):
    def start(self, source_id: int, source_type: SourceType, now: datetime) -> ImportLog: ...

    def complete(self, log_id: int, stats: ProcessingStats, now: datetime) -> None: ...

    def fail(self, log_id: int, error: str, now: datetime) -> None: ...

    def get(self, log_id: int) -> ImportLog | None: ...

    def sum_new_since(self, source_id: int, since: datetime) -> int: ...


class JobRepo(Protocol):
    def existing_source_urls(self, urls: Iterable[str]) -> set[str]: ...

    def existing_source_ids(self, data_source_id: int, ids: Iterable[str]) -> set[str]: ...

    def slug_exists(self, slug: str) -> bool: ...

    def create(self, record: JobRecord, now: datetime) -> int: ...

    def record_filtered(
        self, import_log_id: int, rejected: list[tuple[RawPosting, FilterReason]]
    ) -> None: ...


# ---------------------------------------------------------------------------
# SQLite implementations
# ---------------------------------------------------------------------------

_OPEN_STATUSES = (TaskStatus.PENDING.value, TaskStatus.PROCESSING.value)


def _source_from_row(row: sqlite3.Row) -> DataSource:
    return DataSource(
        id=row["id"],
        name=row["name"],
        source_type=SourceType(row["source_type"]),
        config=from_db_json(row["config_json"], {}),
        is_active=bool(row["is_active"]),
        tags=from_db_json(row["tags_json"], []),
        total_imported=row["total_imported"],
        last_fetched=row["last_fetched"],
        last_created=row["last_created"],
        weekly_imported=row["weekly_imported"],
        error_count=row["error_count"],
        last_error=row["last_error"],
        score=row["score"],
        conversion_rate=row["conversion_rate"],
        quality_status=QualityStatus(row["quality_status"]),
        last_score_at=from_db_time(row["last_score_at"]),
        last_run_at=from_db_time(row["last_run_at"]),
        last_success_at=from_db_time(row["last_success_at"]),
        created_at=from_db_time(row["created_at"]),
    )


def _task_from_row(row: sqlite3.Row) -> ImportTask:
    return ImportTask(
        id=row["id"],
        data_source_id=row["data_source_id"],
        status=TaskStatus(row["status"]),
        priority=row["priority"],
        retry_count=row["retry_count"],
        max_retries=row["max_retries"],
        total_jobs=row["total_jobs"],
        processed_jobs=row["processed_jobs"],
        created_jobs=row["created_jobs"],
        skipped_jobs=row["skipped_jobs"],
        error=row["error"],
        created_at=from_db_time(row["created_at"]),
        started_at=from_db_time(row["started_at"]),
        completed_at=from_db_time(row["completed_at"]),
    )


def _log_from_row(row: sqlite3.Row) -> ImportLog:
    return ImportLog(
        id=row["id"],
        data_source_id=row["data_source_id"],
        source_type=SourceType(row["source_type"]),
        status=ImportLogStatus(row["status"]),
        total_fetched=row["total_fetched"],
        total_new=row["total_new"],
        total_skipped=row["total_skipped"],
        total_failed=row["total_failed"],
        errors=from_db_json(row["errors_json"], []),
        started_at=from_db_time(row["started_at"]),
        completed_at=from_db_time(row["completed_at"]),
    )


class SqliteDataSourceRepo:
    """Data source records. Quality columns are written only through ``update``."""

    # Columns ``update`` may touch, mapped to their encoder.
    _UPDATABLE: dict[str, Any] = {
        "name": str,
        "config": to_db_json,
        "is_active": int,
        "tags": to_db_json,
        "weekly_imported": int,
        "score": int,
        "conversion_rate": float,
        "quality_status": str,
        "last_score_at": to_db_time,
    }
    _COLUMN_NAMES = {"config": "config_json", "tags": "tags_json"}

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def create(
        self,
        name: str,
        source_type: SourceType,
        config: dict[str, Any],
        now: datetime,
        *,
        tags: list[str] | None = None,
        is_active: bool = True,
    ) -> DataSource:
        cursor = self._conn.execute(
            """
            INSERT INTO data_sources (name, source_type, config_json, is_active, tags_json, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                name,
                SourceType(source_type).value,
                to_db_json(config),
                int(is_active),
                to_db_json(tags or []),
                to_db_time(now),
            ),
        )
        self._conn.commit()
        created = self.get(cursor.lastrowid or 0)
        assert created is not None
        return created

    def get(self, source_id: int) -> DataSource | None:
        row = self._conn.execute(
            "SELECT * FROM data_sources WHERE id = ?", (source_id,)
        ).fetchone()
        return _source_from_row(row) if row else None

    def list(self, *, active_only: bool = False) -> list[DataSource]:
        query = "SELECT * FROM data_sources"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY id"
        return [_source_from_row(r) for r in self._conn.execute(query).fetchall()]

    def update(self, source_id: int, **fields: Any) -> None:
        """Update whitelisted columns. Unknown field names raise ValueError."""
        if not fields:
            return
        assignments: list[str] = []
        values: list[Any] = []
        for key, value in fields.items():
            if key not in self._UPDATABLE:
                msg = f"Field '{key}' cannot be updated directly"
                raise ValueError(msg)
            encoder = self._UPDATABLE[key]
            assignments.append(f"{self._COLUMN_NAMES.get(key, key)} = ?")
            values.append(encoder(value) if value is not None else None)
        values.append(source_id)
        self._conn.execute(
            f"UPDATE data_sources SET {', '.join(assignments)} WHERE id = ?",  # noqa: S608
            values,
        )
        self._conn.commit()

    def record_run_success(
        self, source_id: int, fetched: int, created: int, now: datetime
    ) -> None:
        """A clean run adds to the lifetime total and resets the error tally."""
        self._conn.execute(
            """
            UPDATE data_sources SET
                total_imported = total_imported + ?,
                last_fetched = ?,
                last_created = ?,
                error_count = 0,
                last_error = NULL,
                last_run_at = ?,
                last_success_at = ?
            WHERE id = ?
            """,
            (created, fetched, created, to_db_time(now), to_db_time(now), source_id),
        )
        self._conn.commit()

    def record_run_failure(self, source_id: int, error: str, now: datetime) -> None:
        self._conn.execute(
            """
            UPDATE data_sources SET
                error_count = error_count + 1,
                last_error = ?,
                last_run_at = ?
            WHERE id = ?
            """,
            (error, to_db_time(now), source_id),
        )
        self._conn.commit()

    def is_referenced(self, source_id: int) -> bool:
        row = self._conn.execute(
            """
            SELECT EXISTS(SELECT 1 FROM import_tasks WHERE data_source_id = ?)
                OR EXISTS(SELECT 1 FROM import_logs WHERE data_source_id = ?)
            """,
            (source_id, source_id),
        ).fetchone()
        return bool(row[0])

    def delete(self, source_id: int) -> None:
        self._conn.execute("DELETE FROM data_sources WHERE id = ?", (source_id,))
        self._conn.commit()


class SqliteImportTaskRepo:
    """Import task rows. ``claim`` is the only way a task enters PROCESSING."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def create(
        self, source_id: int, priority: int, max_retries: int, now: datetime
    ) -> ImportTask:
        cursor = self._conn.execute(
            """
            INSERT INTO import_tasks (data_source_id, priority, max_retries, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (source_id, priority, max_retries, to_db_time(now)),
        )
        self._conn.commit()
        created = self.get(cursor.lastrowid or 0)
        assert created is not None
        return created

    def get(self, task_id: int) -> ImportTask | None:
        row = self._conn.execute(
            "SELECT * FROM import_tasks WHERE id = ?", (task_id,)
        ).fetchone()
        return _task_from_row(row) if row else None

    def find_open_for_source(self, source_id: int) -> ImportTask | None:
        row = self._conn.execute(
            """
            SELECT * FROM import_tasks
            WHERE data_source_id = ? AND status IN (?, ?)
            ORDER BY id LIMIT 1
            """,
            (source_id, *_OPEN_STATUSES),
        ).fetchone()
        return _task_from_row(row) if row else None

    def open_source_ids(self) -> set[int]:
        rows = self._conn.execute(
            "SELECT DISTINCT data_source_id FROM import_tasks WHERE status IN (?, ?)",
            _OPEN_STATUSES,
        ).fetchall()
        return {r[0] for r in rows}

    def next_pending(self) -> ImportTask | None:
        row = self._conn.execute(
            """
            SELECT * FROM import_tasks
            WHERE status = ? AND retry_count < max_retries
            ORDER BY priority DESC, created_at ASC, id ASC
            LIMIT 1
            """,
            (TaskStatus.PENDING.value,),
        ).fetchone()
        return _task_from_row(row) if row else None

    def claim(self, task_id: int, now: datetime) -> bool:
        """Move a task to PROCESSING only if it is still claimable.

        Returns False when another caller got there first.
        """
        cursor = self._conn.execute(
            """
            UPDATE import_tasks SET status = ?, started_at = ?
            WHERE id = ? AND status = ? AND retry_count < max_retries
            """,
            (TaskStatus.PROCESSING.value, to_db_time(now), task_id, TaskStatus.PENDING.value),
        )
        self._conn.commit()
        return cursor.rowcount == 1

    def complete(self, task_id: int, stats: ProcessingStats, now: datetime) -> None:
        self._conn.execute(
            """
            UPDATE import_tasks SET
                status = ?,
                total_jobs = ?,
                processed_jobs = ?,
                created_jobs = ?,
                skipped_jobs = ?,
                error = NULL,
                completed_at = ?
            WHERE id = ?
            """,
            (
                TaskStatus.COMPLETED.value,
                stats.total,
                stats.total,
                stats.created,
                stats.skipped,
                to_db_time(now),
                task_id,
            ),
        )
        self._conn.commit()

    def fail(
        self, task_id: int, retry_count: int, error: str, *, terminal: bool, now: datetime
    ) -> None:
        status = TaskStatus.FAILED if terminal else TaskStatus.PENDING
        self._conn.execute(
            """
            UPDATE import_tasks SET status = ?, retry_count = ?, error = ?, completed_at = ?
            WHERE id = ?
            """,
            (status.value, retry_count, error, to_db_time(now) if terminal else None, task_id),
        )
        self._conn.commit()

    def reap_stuck(self, cutoff: datetime, error: str, now: datetime) -> int:
        """Return PROCESSING tasks started before ``cutoff`` to the queue.

        A reaped task whose retries are now used up is closed as FAILED.
        """
        cursor = self._conn.execute(
            """
            UPDATE import_tasks SET
                retry_count = retry_count + 1,
                error = ?,
                status = CASE WHEN retry_count + 1 >= max_retries THEN ? ELSE ? END,
                completed_at = CASE WHEN retry_count + 1 >= max_retries THEN ? ELSE NULL END
            WHERE status = ? AND started_at < ?
            """,
            (
                error,
                TaskStatus.FAILED.value,
                TaskStatus.PENDING.value,
                to_db_time(now),
                TaskStatus.PROCESSING.value,
                to_db_time(cutoff),
            ),
        )
        self._conn.commit()
        return cursor.rowcount

    def count_by_status(self) -> dict[TaskStatus, int]:
        counts = {status: 0 for status in TaskStatus}
        rows = self._conn.execute(
            "SELECT status, COUNT(*) FROM import_tasks GROUP BY status"
        ).fetchall()
        for status, count in rows:
            counts[TaskStatus(status)] = count
        return counts


class SqliteImportLogRepo:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def start(self, source_id: int, source_type: SourceType, now: datetime) -> ImportLog:
        cursor = self._conn.execute(
            """
            INSERT INTO import_logs (data_source_id, source_type, status, started_at)
            VALUES (?, ?, ?, ?)
            """,
            (source_id, SourceType(source_type).value, ImportLogStatus.RUNNING.value, to_db_time(now)),
        )
        self._conn.commit()
        log = self.get(cursor.lastrowid or 0)
        assert log is not None
        return log

    def complete(self, log_id: int, stats: ProcessingStats, now: datetime) -> None:
        self._conn.execute(
            """
            UPDATE import_logs SET
                status = ?, total_fetched = ?, total_new = ?, total_skipped = ?,
                total_failed = ?, errors_json = ?, completed_at = ?
            WHERE id = ?
            """,
            (
                ImportLogStatus.COMPLETED.value,
                stats.total,
                stats.created,
                stats.skipped,
                stats.failed,
                to_db_json(stats.errors),
                to_db_time(now),
                log_id,
            ),
        )
        self._conn.commit()

    def fail(self, log_id: int, error: str, now: datetime) -> None:
        self._conn.execute(
            "UPDATE import_logs SET status = ?, errors_json = ?, completed_at = ? WHERE id = ?",
            (ImportLogStatus.FAILED.value, to_db_json([error]), to_db_time(now), log_id),
        )
        self._conn.commit()

    def get(self, log_id: int) -> ImportLog | None:
        row = self._conn.execute(
            "SELECT * FROM import_logs WHERE id = ?", (log_id,)
        ).fetchone()
        return _log_from_row(row) if row else None

    def sum_new_since(self, source_id: int, since: datetime) -> int:
        """Jobs created by completed runs of a source since ``since``."""
        row = self._conn.execute(
            """
            SELECT COALESCE(SUM(total_new), 0) FROM import_logs
            WHERE data_source_id = ? AND status = ? AND completed_at >= ?
            """,
            (source_id, ImportLogStatus.COMPLETED.value, to_db_time(since)),
        ).fetchone()
        return int(row[0])


class SqliteJobRepo:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def existing_source_urls(self, urls: Iterable[str]) -> set[str]:
        found: set[str] = set()
        for chunk in _chunks(list(urls), 500):
            placeholders = ", ".join("?" for _ in chunk)
            rows = self._conn.execute(
                f"SELECT source_url FROM jobs WHERE source_url IN ({placeholders})",  # noqa: S608
                chunk,
            ).fetchall()
            found.update(r[0] for r in rows)
        return found

    def existing_source_ids(self, data_source_id: int, ids: Iterable[str]) -> set[str]:
        """External ids already imported from this data source. Id spaces are per feed."""
        found: set[str] = set()
        for chunk in _chunks(list(ids), 500):
            placeholders = ", ".join("?" for _ in chunk)
            rows = self._conn.execute(
                f"SELECT source_id FROM jobs WHERE data_source_id = ? AND source_id IN ({placeholders})",  # noqa: S608
                (data_source_id, *chunk),
            ).fetchall()
            found.update(r[0] for r in rows)
        return found

    def slug_exists(self, slug: str) -> bool:
        row = self._conn.execute("SELECT 1 FROM jobs WHERE slug = ? LIMIT 1", (slug,)).fetchone()
        return row is not None

    def create(self, record: JobRecord, now: datetime) -> int:
        """Insert a job. Raises sqlite3.IntegrityError if the source_url already exists."""
        cursor = self._conn.execute(
            """
            INSERT INTO jobs
                (slug, source_type, source_id, source_url, title, company, description,
                 clean_description, summary_bullets, requirement_bullets, benefit_bullets,
                 category, skills, salary_min, salary_max, salary_currency, level,
                 location, country, is_active, data_source_id, import_log_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.slug,
                record.source_type.value,
                record.source_id,
                record.source_url,
                record.title,
                record.company,
                record.description,
                record.clean_description,
                to_db_json(record.summary_bullets),
                to_db_json(record.requirement_bullets),
                to_db_json(record.benefit_bullets),
                record.category,
                to_db_json(record.skills),
                record.salary_min,
                record.salary_max,
                record.salary_currency,
                record.level,
                record.location,
                record.country,
                int(record.is_active),
                record.data_source_id,
                record.import_log_id,
                to_db_time(now),
            ),
        )
        self._conn.commit()
        return cursor.lastrowid or 0

    def record_filtered(
        self, import_log_id: int, rejected: list[tuple[RawPosting, FilterReason]]
    ) -> None:
        if not rejected:
            return
        self._conn.executemany(
            """
            INSERT INTO filtered_jobs (import_log_id, title, company, location, source_url, reason)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (import_log_id, p.title, p.company, p.location, p.source_url, reason.value)
                for p, reason in rejected
            ],
        )
        self._conn.commit()


def _chunks(items: list[str], size: int) -> Iterable[list[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]

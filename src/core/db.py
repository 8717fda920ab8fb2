"""SQLite schema for data sources, import tasks, import logs and jobs."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

_DATA_SOURCES_TABLE = """
CREATE TABLE IF NOT EXISTS data_sources (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    name            TEXT    NOT NULL,
    source_type     TEXT    NOT NULL,
    config_json     TEXT    NOT NULL DEFAULT '{}',
    is_active       INTEGER NOT NULL DEFAULT 1,
    tags_json       TEXT    NOT NULL DEFAULT '[]',
    total_imported  INTEGER NOT NULL DEFAULT 0,
    last_fetched    INTEGER NOT NULL DEFAULT 0,
    last_created    INTEGER NOT NULL DEFAULT 0,
    weekly_imported INTEGER NOT NULL DEFAULT 0,
    error_count     INTEGER NOT NULL DEFAULT 0,
    last_error      TEXT,
    score           INTEGER NOT NULL DEFAULT 0,
    conversion_rate REAL    NOT NULL DEFAULT 0.0,
    quality_status  TEXT    NOT NULL DEFAULT 'unscored',
    last_score_at   TEXT,
    last_run_at     TEXT,
    last_success_at TEXT,
    created_at      TEXT    NOT NULL
);
"""

_IMPORT_TASKS_TABLE = """
CREATE TABLE IF NOT EXISTS import_tasks (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    data_source_id  INTEGER NOT NULL REFERENCES data_sources(id),
    status          TEXT    NOT NULL DEFAULT 'PENDING',
    priority        INTEGER NOT NULL DEFAULT 0,
    retry_count     INTEGER NOT NULL DEFAULT 0,
    max_retries     INTEGER NOT NULL DEFAULT 3,
    total_jobs      INTEGER NOT NULL DEFAULT 0,
    processed_jobs  INTEGER NOT NULL DEFAULT 0,
    created_jobs    INTEGER NOT NULL DEFAULT 0,
    skipped_jobs    INTEGER NOT NULL DEFAULT 0,
    error           TEXT,
    created_at      TEXT    NOT NULL,
    started_at      TEXT,
    completed_at    TEXT
);
"""

_IMPORT_TASKS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_import_tasks_pick
    ON import_tasks (status, priority DESC, created_at ASC);
"""

_IMPORT_LOGS_TABLE = """
CREATE TABLE IF NOT EXISTS import_logs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    data_source_id  INTEGER NOT NULL REFERENCES data_sources(id),
    source_type     TEXT    NOT NULL,
    status          TEXT    NOT NULL DEFAULT 'RUNNING',
    total_fetched   INTEGER NOT NULL DEFAULT 0,
    total_new       INTEGER NOT NULL DEFAULT 0,
    total_skipped   INTEGER NOT NULL DEFAULT 0,
    total_failed    INTEGER NOT NULL DEFAULT 0,
    errors_json     TEXT    NOT NULL DEFAULT '[]',
    started_at      TEXT    NOT NULL,
    completed_at    TEXT
);
"""

_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS jobs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    slug                TEXT    NOT NULL UNIQUE,
    source_type         TEXT    NOT NULL,
    source_id           TEXT    NOT NULL,
    source_url          TEXT    NOT NULL UNIQUE,
    title               TEXT    NOT NULL,
    company             TEXT    NOT NULL DEFAULT '',
    description         TEXT    NOT NULL DEFAULT '',
    clean_description   TEXT,
    summary_bullets     TEXT    NOT NULL DEFAULT '[]',
    requirement_bullets TEXT    NOT NULL DEFAULT '[]',
    benefit_bullets     TEXT    NOT NULL DEFAULT '[]',
    category            TEXT    NOT NULL DEFAULT '',
    skills              TEXT    NOT NULL DEFAULT '[]',
    salary_min          INTEGER,
    salary_max          INTEGER,
    salary_currency     TEXT,
    level               TEXT,
    location            TEXT    NOT NULL DEFAULT '',
    country             TEXT,
    is_active           INTEGER NOT NULL DEFAULT 1,
    data_source_id      INTEGER REFERENCES data_sources(id),
    import_log_id       INTEGER REFERENCES import_logs(id),
    created_at          TEXT    NOT NULL
);
"""

_JOBS_INDEX = """
CREATE INDEX IF NOT EXISTS idx_jobs_source_external
    ON jobs (data_source_id, source_id);
"""

_FILTERED_JOBS_TABLE = """
CREATE TABLE IF NOT EXISTS filtered_jobs (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    import_log_id   INTEGER NOT NULL REFERENCES import_logs(id),
    title           TEXT    NOT NULL,
    company         TEXT    NOT NULL DEFAULT '',
    location        TEXT    NOT NULL DEFAULT '',
    source_url      TEXT    NOT NULL,
    reason          TEXT    NOT NULL
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute(_DATA_SOURCES_TABLE)
    conn.execute(_IMPORT_TASKS_TABLE)
    conn.execute(_IMPORT_TASKS_INDEX)
    conn.execute(_IMPORT_LOGS_TABLE)
    conn.execute(_JOBS_TABLE)
    conn.execute(_JOBS_INDEX)
    conn.execute(_FILTERED_JOBS_TABLE)
    conn.commit()
    return conn


def to_db_time(value: datetime | None) -> str | None:
    return value.isoformat(timespec="microseconds") if value is not None else None


def from_db_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def to_db_json(value: Any) -> str:
    return json.dumps(value)


def from_db_json(value: str | None, default: Any) -> Any:
    if not value:
        return default
    return json.loads(value)

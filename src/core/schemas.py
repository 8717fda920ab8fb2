"""Core data models for the ingestion pipeline."""

import re
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SourceType(StrEnum):
    LEVER = "LEVER"
    LINKEDIN = "LINKEDIN"
    GENERIC_ATS = "GENERIC_ATS"


class QualityStatus(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNSCORED = "unscored"


class TaskStatus(StrEnum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ImportLogStatus(StrEnum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class FilterReason(StrEnum):
    TOO_OLD = "TOO_OLD"
    DUPLICATE = "DUPLICATE"
    BLOCKED_TITLE = "BLOCKED_TITLE"
    NOT_RELEVANT = "NOT_RELEVANT"
    OVER_LIMIT = "OVER_LIMIT"


class DataSource(BaseModel):
    """A registered external feed plus its accumulated quality state.

    ``score``, ``conversion_rate`` and ``quality_status`` are only written by a
    scoring pass.
    """

    id: int
    name: str
    source_type: SourceType
    config: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    tags: list[str] = Field(default_factory=list)
    total_imported: int = 0
    last_fetched: int = 0
    last_created: int = 0
    weekly_imported: int = 0
    error_count: int = 0
    last_error: str | None = None
    score: int = 0
    conversion_rate: float = 0.0
    quality_status: QualityStatus = QualityStatus.UNSCORED
    last_score_at: datetime | None = None
    last_run_at: datetime | None = None
    last_success_at: datetime | None = None
    created_at: datetime


class ImportTask(BaseModel):
    """One queued "process this source" request."""

    id: int
    data_source_id: int
    status: TaskStatus = TaskStatus.PENDING
    priority: int = 0
    retry_count: int = 0
    max_retries: int = 3
    total_jobs: int = 0
    processed_jobs: int = 0
    created_jobs: int = 0
    skipped_jobs: int = 0
    error: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def retries_exhausted(self) -> bool:
        return self.retry_count >= self.max_retries


class ImportLog(BaseModel):
    """Record of a single processor run against one source."""

    id: int
    data_source_id: int
    source_type: SourceType
    status: ImportLogStatus = ImportLogStatus.RUNNING
    total_fetched: int = 0
    total_new: int = 0
    total_skipped: int = 0
    total_failed: int = 0
    errors: list[str] = Field(default_factory=list)
    started_at: datetime
    completed_at: datetime | None = None


class RawPosting(BaseModel):
    """A candidate posting as returned by a fetcher, before any filtering.

    Frozen: fetchers produce it, the processor only reads it.
    """

    model_config = ConfigDict(frozen=True)

    external_id: str
    source_url: str
    title: str = ""
    company: str = ""
    description: str = ""
    location: str = ""
    department: str = ""
    commitment: str = ""
    workplace_type: str = ""
    salary_min: int | None = None
    salary_max: int | None = None
    salary_currency: str | None = None
    posted_at: datetime | None = None


_TRUTHY = frozenset({"true", "yes", "y", "1", "remote"})
_SALARY_RE = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*(k)?", re.IGNORECASE)


def parse_salary(value: Any) -> int | None:
    """Parse a salary figure such as 120000, "$120,000" or "95k". Unreadable -> None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value > 0 else None
    if not isinstance(value, str):
        return None
    match = _SALARY_RE.search(value)
    if match is None:
        return None
    amount = float(match.group(1).replace(",", ""))
    if match.group(2):
        amount *= 1000
    return int(amount) if amount > 0 else None


class ExtractedFields(BaseModel):
    """Structured fields pulled out of free text by the classifier.

    Every field is optional so that an empty object is a valid "nothing found".
    Model output is coerced leniently, so one bad field never rejects the rest:
    unusable values fall back to empty, and salary strings such as "$120,000"
    or "95k" are parsed.
    """

    title: str | None = None
    company: str | None = None
    is_remote: bool = False
    location: str | None = None
    salary_min: int | None = None
    salary_max: int | None = None
    salary_currency: str | None = None
    skills: list[str] = Field(default_factory=list)
    level: str | None = None
    clean_description: str | None = None
    summary_bullets: list[str] = Field(default_factory=list)
    requirement_bullets: list[str] = Field(default_factory=list)
    benefit_bullets: list[str] = Field(default_factory=list)

    @field_validator("title", "company", "location", "salary_currency", "level", "clean_description", mode="before")
    @classmethod
    def _lenient_text(cls, v: Any) -> str | None:
        if isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return str(v)
        if isinstance(v, str):
            return v.strip() or None
        return None

    @field_validator("skills", "summary_bullets", "requirement_bullets", "benefit_bullets", mode="before")
    @classmethod
    def _lenient_list(cls, v: Any) -> list[str]:
        if isinstance(v, str):
            v = [v]
        if not isinstance(v, list):
            return []
        return [str(item).strip() for item in v if isinstance(item, (str, int, float)) and str(item).strip()]

    @field_validator("is_remote", mode="before")
    @classmethod
    def _lenient_flag(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in _TRUTHY
        return bool(v) if isinstance(v, (bool, int, float)) else False

    @field_validator("salary_min", "salary_max", mode="before")
    @classmethod
    def _lenient_salary(cls, v: Any) -> int | None:
        return parse_salary(v)


class JobRecord(BaseModel):
    """A job ready to be written by ``JobRepo.create``."""

    slug: str
    source_type: SourceType
    source_id: str
    source_url: str
    title: str
    company: str = ""
    description: str = ""
    clean_description: str | None = None
    summary_bullets: list[str] = Field(default_factory=list)
    requirement_bullets: list[str] = Field(default_factory=list)
    benefit_bullets: list[str] = Field(default_factory=list)
    category: str = ""
    skills: list[str] = Field(default_factory=list)
    salary_min: int | None = None
    salary_max: int | None = None
    salary_currency: str | None = None
    level: str | None = None
    location: str = ""
    country: str | None = None
    is_active: bool = True
    data_source_id: int | None = None
    import_log_id: int | None = None


class ProcessingStats(BaseModel):
    """Counts returned by one processor run."""

    total: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
    created_job_ids: list[int] = Field(default_factory=list)


class ScoreBreakdown(BaseModel):
    conversion_score: int
    activity_score: int
    stability_score: int


class SourceScore(BaseModel):
    """Output of the pure scoring formula."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100)
    conversion_rate: float = Field(ge=0.0, le=100.0)
    quality_status: QualityStatus
    breakdown: ScoreBreakdown

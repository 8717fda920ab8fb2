"""Configuration models and YAML loader for the ingestion pipeline."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/ingest.db"


class QueueConfig(BaseModel):
    """Import task queue behaviour."""

    task_timeout_minutes: int = Field(default=30, ge=1)
    default_max_retries: int = Field(default=3, ge=1)
    default_priority: int = 0
    coalesce_pending: bool = True
    claim_attempts: int = Field(default=3, ge=1, le=10)


class ClassifierConfig(BaseModel):
    """AI classifier provider and call pacing."""

    provider: str = "deepseek"
    model: str | None = None
    call_delay_ms: int = Field(default=250, ge=0, le=5000)
    extraction_max_chars: int = Field(default=8000, ge=500)
    heuristic_fallback: bool = True
    max_consecutive_failures: int = Field(default=5, ge=1)

    @field_validator("provider")
    @classmethod
    def provider_normalized(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            msg = "classifier provider must not be empty"
            raise ValueError(msg)
        return v


class ProcessorConfig(BaseModel):
    """Per-run limits and filter switches for the source processor."""

    max_jobs_per_source: int = Field(default=300, ge=1)
    max_job_age_days: int = Field(default=7, ge=1)
    relevance_check: bool = True
    blacklist_filter: bool = True
    rescore_after_run: bool = True


class ApiConfig(BaseModel):
    """HTTP trigger configuration. The secret itself is read from the environment."""

    cron_secret_env: str = "CRON_SECRET"


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    processor: ProcessorConfig = Field(default_factory=ProcessorConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)

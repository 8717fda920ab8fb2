"""LinkedIn hiring-post fetcher.

Reads posts already scraped by an external actor, either from a dataset URL
(JSON list over HTTP) or from a local JSON file. Posts carry free text only,
so the processor must extract the title before classifying.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from src.core.errors import FetchError
from src.core.schemas import DataSource, RawPosting, SourceType
from src.sources.base import SourceFetcher, get_json

logger = logging.getLogger(__name__)


def _parse_posted_at(value: Any) -> datetime | None:
    if isinstance(value, dict):
        value = value.get("date") or value.get("timestamp")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            logger.debug("Unparseable postedAt value: %s", value)
    return None


def parse_post(item: dict[str, Any]) -> RawPosting | None:
    """Map one scraped post to a title-less RawPosting. None if unusable."""
    url = item.get("linkedinUrl") or item.get("url")
    text = item.get("content") or item.get("text") or ""
    if not url or not text.strip():
        return None
    author = item.get("author") or {}
    author_name = author.get("name") if isinstance(author, dict) else None
    return RawPosting(
        external_id=str(item.get("id") or url),
        source_url=url,
        company=item.get("companyName") or author_name or item.get("authorName") or "",
        description=text,
        posted_at=_parse_posted_at(item.get("postedAt")),
    )


class LinkedInFetcher(SourceFetcher):
    """Source config keys: ``dataset_url`` or ``path`` (one is required)."""

    @property
    def source_type(self) -> str:
        return SourceType.LINKEDIN

    @property
    def requires_extraction(self) -> bool:
        return True

    def _load(self, source: DataSource) -> Any:
        dataset_url = source.config.get("dataset_url")
        if dataset_url:
            return get_json(dataset_url)
        path = source.config.get("path")
        if not path:
            msg = f"LinkedIn source '{source.name}' needs dataset_url or path"
            raise FetchError(msg)
        try:
            return json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            msg = f"Could not read LinkedIn posts from {path}: {e}"
            raise FetchError(msg) from e

    def fetch(self, source: DataSource) -> list[RawPosting]:
        data = self._load(source)
        if not isinstance(data, list):
            msg = f"LinkedIn dataset is {type(data).__name__}, expected a list"
            raise FetchError(msg)
        postings = [p for p in (parse_post(item) for item in data if isinstance(item, dict)) if p]
        logger.info("Loaded %d LinkedIn posts for %s", len(postings), source.name)
        return postings

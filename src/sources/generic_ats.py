"""Configurable JSON feed fetcher for boards without a dedicated adapter."""

import logging
from datetime import datetime
from typing import Any

from src.core.errors import FetchError
from src.core.schemas import DataSource, RawPosting, SourceType
from src.sources.base import SourceFetcher, get_json

logger = logging.getLogger(__name__)

DEFAULT_FIELD_MAP: dict[str, str] = {
    "external_id": "id",
    "source_url": "url",
    "title": "title",
    "company": "company",
    "description": "description",
    "location": "location",
    "department": "department",
    "posted_at": "posted_at",
}


def _lookup(item: dict[str, Any], path: str) -> Any:
    """Resolve a dotted path such as ``location.name``."""
    value: Any = item
    for key in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, (int, float)):
        # Treat large values as milliseconds.
        return datetime.fromtimestamp(value / 1000 if value > 1e11 else value)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            return None
    return None


class GenericAtsFetcher(SourceFetcher):
    """Source config keys: ``api_url`` (required), ``items_key`` (dotted path to
    the list when the body is an object), ``field_map`` (overrides of
    ``DEFAULT_FIELD_MAP``) and ``company`` (fallback company name).
    """

    @property
    def source_type(self) -> str:
        return SourceType.GENERIC_ATS

    def fetch(self, source: DataSource) -> list[RawPosting]:
        api_url = source.config.get("api_url")
        if not api_url:
            msg = f"Source '{source.name}' has no api_url"
            raise FetchError(msg)

        data = get_json(api_url)
        items_key = source.config.get("items_key")
        if items_key:
            data = _lookup(data, items_key) if isinstance(data, dict) else None
        if not isinstance(data, list):
            msg = f"Feed for '{source.name}' did not contain a list of postings"
            raise FetchError(msg)

        field_map = {**DEFAULT_FIELD_MAP, **source.config.get("field_map", {})}
        fallback_company = source.config.get("company") or source.name
        postings = []
        for item in data:
            if not isinstance(item, dict):
                continue
            external_id = _lookup(item, field_map["external_id"])
            url = _lookup(item, field_map["source_url"])
            if not external_id or not url:
                continue
            postings.append(
                RawPosting(
                    external_id=str(external_id),
                    source_url=str(url),
                    title=str(_lookup(item, field_map["title"]) or "").strip(),
                    company=str(_lookup(item, field_map["company"]) or fallback_company),
                    description=str(_lookup(item, field_map["description"]) or ""),
                    location=str(_lookup(item, field_map["location"]) or ""),
                    department=str(_lookup(item, field_map["department"]) or ""),
                    posted_at=_to_datetime(_lookup(item, field_map["posted_at"])),
                )
            )
        logger.info("Fetched %d postings for %s", len(postings), source.name)
        return postings

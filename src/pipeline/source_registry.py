"""Admin operations on data sources: validate and register, disable, delete, tags, bulk edits."""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from src.core.errors import FetchError, SourceInUseError, SourceNotFoundError, UnsupportedSourceTypeError
from src.core.repositories import DataSourceRepo
from src.core.schemas import DataSource, QualityStatus, SourceType
from src.sources import SourceFetcher, get_fetcher

logger = logging.getLogger(__name__)


def normalize_tag(tag: str) -> str:
    normalized = tag.lower().strip()
    if not normalized:
        msg = "Tag must not be empty"
        raise ValueError(msg)
    return normalized


class SourceRegistry:
    def __init__(
        self,
        sources: DataSourceRepo,
        clock: Callable[[], datetime] = datetime.now,
        fetcher_factory: Callable[[str], SourceFetcher] = get_fetcher,
    ) -> None:
        self._sources = sources
        self._clock = clock
        self._fetcher_factory = fetcher_factory

    def _require(self, source_id: int) -> DataSource:
        source = self._sources.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source

    def register(
        self,
        name: str,
        source_type: SourceType | str,
        config: dict[str, Any] | None = None,
        *,
        tags: list[str] | None = None,
        is_active: bool = True,
    ) -> DataSource:
        name = name.strip()
        if not name:
            msg = "Source name must not be empty"
            raise ValueError(msg)
        normalized = sorted({normalize_tag(t) for t in tags or []})
        source = self._sources.create(
            name, SourceType(source_type), config or {}, self._clock(),
            tags=normalized, is_active=is_active,
        )
        logger.info("Registered %s source %d (%s)", source.source_type, source.id, source.name)
        return source

    def validate(
        self,
        source_type: SourceType | str,
        config: dict[str, Any] | None = None,
        name: str | None = None,
    ) -> dict[str, Any]:
        """Fetch a feed once before it is registered. Nothing is stored.

        Returns ``{"valid": True, "name", "jobCount"}`` or ``{"valid": False, "error"}``.
        A source of the same type and config that is already registered is
        reported as "Already added".
        """
        config = config or {}
        label = name or config.get("company_slug") or config.get("company") or str(source_type)
        try:
            source_type = SourceType(source_type)
        except ValueError:
            return {"valid": False, "error": f"Unknown source type: {source_type}"}

        if any(s.source_type == source_type and s.config == config for s in self._sources.list()):
            return {"valid": False, "error": "Already added"}

        candidate = DataSource(id=0, name=label, source_type=source_type, config=config, created_at=self._clock())
        try:
            postings = self._fetcher_factory(source_type).fetch(candidate)
        except (FetchError, UnsupportedSourceTypeError) as e:
            logger.info("Validation of %s source %s failed: %s", source_type, label, e)
            return {"valid": False, "error": str(e)}
        return {"valid": True, "name": label, "jobCount": len(postings)}

    def set_active(self, source_id: int, is_active: bool) -> DataSource:
        self._require(source_id)
        self._sources.update(source_id, is_active=is_active)
        logger.info("Source %d %s", source_id, "activated" if is_active else "paused")
        return self._require(source_id)

    def deactivate(self, source_id: int) -> DataSource:
        return self.set_active(source_id, False)

    def delete(self, source_id: int) -> None:
        """Hard-delete a source that no task or import log references.

        Raises SourceInUseError otherwise; pause it with ``deactivate`` instead.
        """
        source = self._require(source_id)
        if self._sources.is_referenced(source_id):
            msg = f"Source '{source.name}' has import history; deactivate it instead"
            raise SourceInUseError(msg)
        self._sources.delete(source_id)
        logger.info("Deleted source %d (%s)", source_id, source.name)

    def add_tag(self, source_id: int, tag: str) -> list[str]:
        source = self._require(source_id)
        normalized = normalize_tag(tag)
        if normalized in source.tags:
            return source.tags
        tags = [*source.tags, normalized]
        self._sources.update(source_id, tags=tags)
        return tags

    def remove_tag(self, source_id: int, tag: str) -> list[str]:
        source = self._require(source_id)
        normalized = normalize_tag(tag)
        tags = [t for t in source.tags if t != normalized]
        if tags != source.tags:
            self._sources.update(source_id, tags=tags)
        return tags

    def available_tags(self) -> list[str]:
        return sorted({t for s in self._sources.list() for t in s.tags})

    def select(
        self,
        *,
        ids: list[int] | None = None,
        quality_status: QualityStatus | str | None = None,
        tag: str | None = None,
        is_active: bool | None = None,
    ) -> list[DataSource]:
        """Sources matching every given criterion. No criteria selects all."""
        selected = self._sources.list()
        if ids:
            wanted = set(ids)
            selected = [s for s in selected if s.id in wanted]
        if quality_status is not None:
            status = QualityStatus(quality_status)
            selected = [s for s in selected if s.quality_status == status]
        if tag:
            normalized = normalize_tag(tag)
            selected = [s for s in selected if normalized in s.tags]
        if is_active is not None:
            selected = [s for s in selected if s.is_active == is_active]
        return selected

    def bulk_set_active(self, is_active: bool, **criteria: Any) -> int:
        """Activate or pause every matching source. Returns how many were selected."""
        selected = self.select(**criteria)
        for source in selected:
            self._sources.update(source.id, is_active=is_active)
        logger.info("Bulk %s %d sources", "activated" if is_active else "paused", len(selected))
        return len(selected)

    def bulk_add_tag(self, tag: str, **criteria: Any) -> int:
        """Tag every matching source. Returns how many actually changed."""
        normalized = normalize_tag(tag)
        updated = 0
        for source in self.select(**criteria):
            if normalized not in source.tags:
                self._sources.update(source.id, tags=[*source.tags, normalized])
                updated += 1
        return updated

    def overview(self) -> dict[str, Any]:
        sources = self._sources.list()
        by_quality = {status.value: 0 for status in QualityStatus}
        for s in sources:
            by_quality[s.quality_status.value] += 1
        active = sum(1 for s in sources if s.is_active)
        return {
            "total": len(sources),
            "active": active,
            "paused": len(sources) - active,
            "withErrors": sum(1 for s in sources if s.error_count > 0),
            "byQuality": by_quality,
            "totalImported": sum(s.total_imported for s in sources),
            "weeklyImported": sum(s.weekly_imported for s in sources),
        }

"""Lever ATS fetcher: public postings API, US or EU region."""

import html
import logging
import re
from datetime import datetime
from typing import Any

from src.core.errors import FetchError
from src.core.schemas import DataSource, RawPosting, SourceType
from src.sources.base import SourceFetcher, get_json

logger = logging.getLogger(__name__)

LEVER_API_TEMPLATE = "https://api.lever.co/v0/postings/{slug}?mode=json"
LEVER_EU_API_TEMPLATE = "https://api.eu.lever.co/v0/postings/{slug}?mode=json"

_TAG_RE = re.compile(r"<[^>]+>")
_BLOCK_TAG_RE = re.compile(r"<\s*(br|/p|/li|/div|/h\d)\s*/?>", re.IGNORECASE)


def lever_region(api_url: str | None) -> str:
    return "eu" if api_url and ".eu.lever.co" in api_url else "us"


def html_to_text(value: str) -> str:
    """Crude HTML to plain text: block tags become newlines, other tags vanish."""
    text = _BLOCK_TAG_RE.sub("\n", value)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)
    lines = (line.strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def build_description(job: dict[str, Any]) -> str:
    """Join the plain description, each titled list and the closing section."""
    description = job.get("descriptionPlain") or html_to_text(job.get("description") or "")
    for item in job.get("lists") or []:
        description += f"\n\n{item.get('text', '')}\n{html_to_text(item.get('content') or '')}"
    additional = job.get("additionalPlain") or html_to_text(job.get("additional") or "")
    if additional:
        description += f"\n\n{additional}"
    return description.strip()


def _as_int(value: Any) -> int | None:
    return int(value) if isinstance(value, (int, float)) else None


def _parse_posting(job: dict[str, Any], company: str) -> RawPosting:
    categories = job.get("categories") or {}
    salary = job.get("salaryRange") or {}
    created_ms = job.get("createdAt")
    return RawPosting(
        external_id=str(job["id"]),
        source_url=job["hostedUrl"],
        title=(job.get("text") or "").strip(),
        company=company,
        description=build_description(job),
        location=categories.get("location") or "",
        department=categories.get("department") or "",
        commitment=categories.get("commitment") or "",
        workplace_type=job.get("workplaceType") or "",
        salary_min=_as_int(salary.get("min")),
        salary_max=_as_int(salary.get("max")),
        salary_currency=salary.get("currency"),
        posted_at=datetime.fromtimestamp(created_ms / 1000) if created_ms else None,
    )


class LeverFetcher(SourceFetcher):
    """Fetches postings for one company from Lever.

    Source config keys: ``company_slug`` (required), ``region`` ("eu" selects
    the EU API), ``api_url`` (full override) and ``company`` (display name,
    defaults to the source name).
    """

    @property
    def source_type(self) -> str:
        return SourceType.LEVER

    def api_url(self, source: DataSource) -> str:
        api_url = source.config.get("api_url")
        if api_url:
            return api_url
        slug = source.config.get("company_slug")
        if not slug:
            msg = f"Lever source '{source.name}' has no company_slug"
            raise FetchError(msg)
        template = LEVER_EU_API_TEMPLATE if source.config.get("region") == "eu" else LEVER_API_TEMPLATE
        return template.format(slug=slug)

    def fetch(self, source: DataSource) -> list[RawPosting]:
        url = self.api_url(source)
        logger.info("Fetching Lever postings for %s (%s region)", source.name, lever_region(url))
        data = get_json(url)
        if not isinstance(data, list):
            msg = f"Lever API returned {type(data).__name__}, expected a list"
            raise FetchError(msg)

        company = source.config.get("company") or source.name
        postings = []
        for job in data:
            if not job.get("id") or not job.get("hostedUrl"):
                logger.debug("Skipping Lever item without id/hostedUrl")
                continue
            postings.append(_parse_posting(job, company))
        logger.info("Found %d Lever postings for %s", len(postings), source.name)
        return postings

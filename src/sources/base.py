"""Abstract base class for source fetchers and the shared HTTP helper."""

import logging
from abc import ABC, abstractmethod
from typing import Any

import requests

from src.core.errors import FetchError
from src.core.schemas import DataSource, RawPosting

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30
USER_AGENT = "jobs-ingest-pipeline/0.1"


def get_json(url: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> Any:
    """GET ``url`` and decode the JSON body.

    Raises FetchError on network errors, non-2xx responses or invalid JSON.
    """
    logger.debug("GET %s", url)
    try:
        response = requests.get(url, timeout=timeout, headers={"User-Agent": USER_AGENT})
    except requests.RequestException as e:
        msg = f"Request to {url} failed: {e}"
        raise FetchError(msg) from e

    if not response.ok:
        msg = f"{url} returned HTTP {response.status_code} {response.reason}"
        raise FetchError(msg)

    try:
        return response.json()
    except ValueError as e:
        msg = f"{url} did not return valid JSON: {e}"
        raise FetchError(msg) from e


class SourceFetcher(ABC):
    """Base class that every source fetcher must implement."""

    @property
    @abstractmethod
    def source_type(self) -> str:
        """The DataSource type this fetcher handles (e.g. 'LEVER')."""

    @property
    def requires_extraction(self) -> bool:
        """True when postings arrive without a title and must be extracted first."""
        return False

    @abstractmethod
    def fetch(self, source: DataSource) -> list[RawPosting]:
        """Return the raw (unfiltered) postings currently published by ``source``.

        Raises FetchError when the feed cannot be fetched or decoded.
        """

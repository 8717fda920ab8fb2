"""Source fetcher registry with lazy loading.

Usage:
    from src.sources import get_fetcher

    fetcher = get_fetcher("LEVER")
    postings = fetcher.fetch(source)
"""

from __future__ import annotations

import importlib

from src.core.errors import UnsupportedSourceTypeError
from src.sources.base import SourceFetcher

__all__ = ["SourceFetcher", "available_source_types", "get_fetcher"]

_REGISTRY: dict[str, tuple[str, str]] = {
    "GENERIC_ATS": ("src.sources.generic_ats", "GenericAtsFetcher"),
    "LEVER": ("src.sources.lever", "LeverFetcher"),
    "LINKEDIN": ("src.sources.linkedin", "LinkedInFetcher"),
}


def get_fetcher(source_type: str) -> SourceFetcher:
    """Instantiate the fetcher for a source type.

    Raises:
        UnsupportedSourceTypeError: If no fetcher is registered for the type.
    """
    if source_type not in _REGISTRY:
        raise UnsupportedSourceTypeError(source_type)

    module_path, class_name = _REGISTRY[source_type]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls()  # type: ignore[no-any-return]


def available_source_types() -> list[str]:
    return sorted(_REGISTRY)

"""Exception types raised by the ingestion pipeline."""


class IngestionError(Exception):
    """Base class for pipeline errors."""


class SourceNotFoundError(IngestionError, LookupError):
    def __init__(self, source_id: int) -> None:
        super().__init__(f"Data source not found: {source_id}")
        self.source_id = source_id


class SourceInactiveError(IngestionError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Data source is not active: {name}")
        self.name = name


class SourceInUseError(IngestionError):
    """Raised when deleting a source that historical tasks or logs still reference."""


class UnsupportedSourceTypeError(IngestionError):
    def __init__(self, source_type: str) -> None:
        super().__init__(f"No processor for source type: {source_type}")
        self.source_type = source_type


class FetchError(IngestionError):
    """The raw feed of a source could not be fetched or decoded. Fatal to the run."""


class ClassifierError(IngestionError):
    """A single classifier call failed or returned unusable content."""


class ClassifierUnavailableError(ClassifierError):
    """The classifier kept failing and no fallback is configured. Fatal to the run."""

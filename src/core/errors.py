"""
Exception hierarchy for the curation pipeline
"""
from typing import Optional


class CurationError(Exception):
    """Base error for everything raised by the curation pipeline."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(CurationError):
    pass


class SourceFetchError(CurationError):
    """A single content source could not be fetched or parsed."""

    def __init__(self, message: str, source: Optional[str] = None, **kwargs):
        super().__init__(message, kwargs)
        self.source = source


class OracleCallError(CurationError):
    """The oracle call itself failed (timeout, connection, server error)."""
    pass


class OracleShapeError(CurationError):
    """The oracle answered, but the answer did not have the expected shape."""

    def __init__(self, message: str, raw: str = "", **kwargs):
        super().__init__(message, kwargs)
        self.raw = raw


class StorageError(CurationError):
    pass


class ArchiveError(StorageError):
    pass


class CampaignStateError(CurationError):
    """Illegal campaign status transition."""
    pass

"""
Base classes for Ingestion
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel

from core.entities import FeedSource


class IngestedItem(BaseModel):
    """
    Normalized post as produced by a source adapter, before it is stored
    """
    external_id: str
    title: str
    description: str = ""
    body: str = ""
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    source_url: str = ""
    image_url: Optional[str] = None


class SourceAdapter(ABC):
    """
    Base interface for all ingestion sources.
    """

    def __init__(self, source: FeedSource):
        self.source = source

    @property
    def name(self) -> str:
        return self.source.name

    @abstractmethod
    async def fetch_items(self, now: Optional[datetime] = None) -> List[IngestedItem]:
        """
        Fetch items published within the 24 hours before ``now``.
        Raises SourceFetchError when the source cannot be read; the caller
        isolates that failure to this source.
        """
        raise NotImplementedError

"""
Offline fakes shared by the test suite.
"""

from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple, Union

from PIL import Image

from core.entities import FeedSource, RawItem
from ingestion.base import IngestedItem, SourceAdapter
from services.alerts import AlertLevel, AlertSink
from services.database import Database
from services.llm import Oracle
from services.object_storage import ObjectStorage


class FakeOracle(Oracle):
    """Deterministic oracle: the handler maps a prompt to text or an exception."""

    name = "fake"

    def __init__(self, handler: Callable[[str], Union[str, Exception]]):
        self.handler = handler
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        result = self.handler(prompt)
        if isinstance(result, Exception):
            raise result
        return result


class FakeStorage(ObjectStorage):
    name = "memory"

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.uploads = 0

    def url_for(self, path: str) -> str:
        return f"https://cdn.test/{path}"

    async def get_existing_url(self, path: str) -> Optional[str]:
        return self.url_for(path) if path in self.files else None

    async def upload(self, content: bytes, path: str, message: str) -> str:
        self.uploads += 1
        self.files[path] = content
        return self.url_for(path)


class RecordingAlerts(AlertSink):
    name = "recording"

    def __init__(self):
        self.sent: List[Tuple[AlertLevel, str]] = []

    async def send(self, message: str, level: AlertLevel = AlertLevel.INFO) -> None:
        self.sent.append((level, message))

    def levels(self) -> List[AlertLevel]:
        return [level for level, _ in self.sent]


class StaticAdapter(SourceAdapter):
    """Returns preset items, or raises the preset exception."""

    def __init__(self, source: FeedSource, result: Union[List[IngestedItem], Exception]):
        super().__init__(source)
        self.result = result

    async def fetch_items(self, now: Optional[datetime] = None) -> List[IngestedItem]:
        if isinstance(self.result, Exception):
            raise self.result
        return list(self.result)


def make_item(external_id: str = "post-1", **overrides) -> IngestedItem:
    data = {
        "external_id": external_id,
        "title": "City council approves new park budget",
        "description": "The city council voted on Tuesday to approve a new budget for park maintenance across the city.",
        "body": "The city council voted on Tuesday to approve a new budget for park maintenance across the city. Work starts in spring.",
        "author": "Staff",
        "published_at": datetime(2025, 10, 1, 10, 0, tzinfo=timezone.utc),
        "source_url": f"https://news.test/{external_id}",
        "image_url": None,
    }
    data.update(overrides)
    return IngestedItem(**data)


def make_raw_item(item_id: int = 1, **overrides) -> RawItem:
    data = {
        "id": item_id,
        "campaign_id": 1,
        "source_id": 1,
        "external_id": f"post-{item_id}",
        "title": "City council approves new park budget",
        "description": "The city council voted on Tuesday to approve a new budget for park maintenance across the city.",
        "body": "Work starts in spring.",
        "author": "Staff",
        "published_at": datetime(2025, 10, 1, 10, 0, tzinfo=timezone.utc),
        "source_url": f"https://news.test/post-{item_id}",
        "image_url": None,
    }
    data.update(overrides)
    return RawItem(**data)


async def add_post(db: Database, campaign_id: int, feed_id: int, external_id: str, **overrides) -> RawItem:
    raw_id = await db.insert_raw_item(campaign_id, feed_id, make_item(external_id, **overrides))
    return await db.get_raw_item(raw_id)


def image_bytes(size: Tuple[int, int] = (800, 600), fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, (200, 30, 30)).save(buffer, format=fmt)
    return buffer.getvalue()

"""
Ingestion from RSS sources
"""

import hashlib
import html
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

import feedparser
import httpx

from core.entities import FeedSource
from core.errors import SourceFetchError
from ingestion.base import SourceAdapter, IngestedItem
from ingestion.media import (
    DEFAULT_EPHEMERAL_PATTERNS,
    extract_image_url,
    is_ephemeral_url,
    split_raw_entries,
)
from services.image_rehoster import ImageNamespace, ImageRehoster

logger = logging.getLogger(__name__)


def strip_html(value: Optional[str]) -> str:
    text = str(value or "")
    text = re.sub(r"<script[^>]*>.*?</script>", " ", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<style[^>]*>.*?</style>", " ", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<br\s*/?>|</p>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html.unescape(text)
    text = re.sub(r"[ \t\r\f\v]+", " ", text)
    return re.sub(r"\s*\n\s*", "\n", text).strip()


def _published(entry) -> Optional[datetime]:
    # feedparser normalizes parsed dates to UTC struct_time
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            return datetime(*parsed[:6], tzinfo=timezone.utc)
    return None


def _external_id(entry) -> str:
    for key in ("id", "guid", "link"):
        value = entry.get(key)
        if value:
            return str(value)
    title = entry.get("title", "")
    return hashlib.sha1(title.encode("utf-8")).hexdigest()


class RSSAdapter(SourceAdapter):
    def __init__(
        self,
        source: FeedSource,
        *,
        rehoster: Optional[ImageRehoster] = None,
        ephemeral_patterns: Iterable[str] = DEFAULT_EPHEMERAL_PATTERNS,
        window_hours: int = 24,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(source)
        self.rehoster = rehoster
        self.ephemeral_patterns = tuple(ephemeral_patterns)
        self.window_hours = window_hours
        self.timeout = timeout
        self.transport = transport

    async def _download(self) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                resp = await client.get(self.source.url)
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as e:
            raise SourceFetchError(
                f"Feed download failed: {e}", source=self.source.name, url=self.source.url
            ) from e

    async def fetch_items(self, now: Optional[datetime] = None) -> List[IngestedItem]:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(hours=self.window_hours)

        document = await self._download()
        feed = feedparser.parse(document)
        if feed.bozo and not feed.entries:
            raise SourceFetchError(
                f"Unparseable feed: {feed.get('bozo_exception')}",
                source=self.source.name,
                url=self.source.url,
            )

        raw_entries = split_raw_entries(document.decode("utf-8", errors="replace"))
        aligned = len(raw_entries) == len(feed.entries)

        items: List[IngestedItem] = []
        for position, entry in enumerate(feed.entries):
            published = _published(entry)
            # Undated entries cannot be placed in the window
            if published is None or published < cutoff or published > now:
                continue

            raw_markup = raw_entries[position] if aligned else None
            image_url = extract_image_url(entry, raw_markup)
            image_url = await self._stabilize_image(image_url, entry.get("title", ""))

            content = entry.get("content") or []
            body_html = content[0].get("value", "") if content else entry.get("summary", "")

            items.append(
                IngestedItem(
                    external_id=_external_id(entry),
                    title=strip_html(entry.get("title", "")),
                    description=strip_html(entry.get("summary", "")),
                    body=strip_html(body_html),
                    author=entry.get("author") or None,
                    published_at=published,
                    source_url=entry.get("link", ""),
                    image_url=image_url,
                )
            )

        logger.info(f"[{self.name}] {len(items)} of {len(feed.entries)} entries inside the last {self.window_hours}h")
        return items

    async def _stabilize_image(self, image_url: Optional[str], title: str) -> Optional[str]:
        """Rehost expiring CDN images now; keep the original URL when that fails."""
        if not image_url or self.rehoster is None:
            return image_url
        if not is_ephemeral_url(image_url, self.ephemeral_patterns):
            return image_url
        hosted = await self.rehoster.rehost(image_url, title, ImageNamespace.NEWS)
        return hosted or image_url

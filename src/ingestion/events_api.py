"""
Ingestion of the community event calendar from a WordPress "The Events
Calendar" REST endpoint (``/wp-json/tribe/events/v1/events``).
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from core.errors import SourceFetchError
from ingestion.rss import strip_html
from services.database import Database

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Local News Curator (event calendar sync)"


class CalendarEvent(BaseModel):
    """
    Normalized calendar entry, ready for ``Database.upsert_event``
    """
    external_id: str
    title: str
    description: str = ""
    start_date: datetime
    end_date: Optional[datetime] = None
    venue: Optional[str] = None
    address: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None


def _parse_time(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def to_calendar_event(payload: Dict[str, Any], prefix: str) -> Optional[CalendarEvent]:
    """Map one API event; entries without an id or a readable start time are dropped."""
    start = _parse_time(payload.get("start_date"))
    if payload.get("id") is None or start is None:
        return None

    # The API sends false or [] instead of null for missing objects
    venue = payload.get("venue") if isinstance(payload.get("venue"), dict) else {}
    image = payload.get("image") if isinstance(payload.get("image"), dict) else {}

    return CalendarEvent(
        external_id=f"{prefix}_{payload['id']}",
        title=strip_html(payload.get("title")) or "Untitled Event",
        description=strip_html(payload.get("description")),
        start_date=start,
        end_date=_parse_time(payload.get("end_date")),
        venue=strip_html(venue.get("venue")) or None,
        address=strip_html(venue.get("address")) or None,
        url=payload.get("url") or None,
        image_url=image.get("url") or None,
    )


class TribeEventsAdapter:
    def __init__(
        self,
        base_url: str,
        *,
        prefix: str = "calendar",
        per_page: int = 100,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.prefix = prefix
        self.per_page = per_page
        self.user_agent = user_agent
        self.timeout = timeout
        self.transport = transport

    async def fetch_day(self, client: httpx.AsyncClient, day: date) -> List[CalendarEvent]:
        params = {
            "start_date": day.isoformat(),
            "end_date": day.isoformat(),
            "per_page": self.per_page,
            "status": "publish",
        }
        try:
            resp = await client.get(self.base_url, params=params)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SourceFetchError(
                f"Event calendar request failed: {e}", source=self.prefix, day=day.isoformat()
            ) from e

        events = []
        for payload in data.get("events") or []:
            event = to_calendar_event(payload, self.prefix)
            if event is None:
                logger.debug(f"Skipping calendar entry without id or start: {payload.get('id')!r}")
                continue
            events.append(event)
        return events

    async def fetch_range(self, start: date, days: int) -> List[CalendarEvent]:
        """
        Events for ``days`` consecutive days from ``start``, one request per
        day. A failed day is logged and skipped. Multi-day events returned on
        several days are kept once.
        """
        by_id: Dict[str, CalendarEvent] = {}
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            transport=self.transport,
        ) as client:
            for offset in range(days):
                day = start + timedelta(days=offset)
                try:
                    events = await self.fetch_day(client, day)
                except SourceFetchError as e:
                    logger.warning(f"Skipping calendar day {day}: {e}")
                    continue
                for event in events:
                    by_id.setdefault(event.external_id, event)
                logger.debug(f"Calendar {day}: {len(events)} events")
        return list(by_id.values())


class EventSync:
    """Pulls the upcoming calendar into the events table."""

    def __init__(self, db: Database, adapter: TribeEventsAdapter, days: int = 7):
        self.db = db
        self.adapter = adapter
        self.days = days

    async def run(self, start: date) -> int:
        events = await self.adapter.fetch_range(start, self.days)
        for event in events:
            await self.db.upsert_event(**event.model_dump())
        logger.info(f"Synced {len(events)} calendar events for {self.days} days from {start}")
        return len(events)

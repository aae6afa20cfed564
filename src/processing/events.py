"""
Event calendar population for the days covered by a campaign.

Priority per day: upstream-featured events (always included, featured),
paid placements (always included, never featured), then a uniform random
fill of the remaining capacity. When no featured event exists, the first
random pick is featured.
"""
import logging
import random
from datetime import date, timedelta
from typing import List, Optional

from core.entities import Campaign, CampaignEvent, Event
from processing.rotation import fisher_yates
from services.database import Database

logger = logging.getLogger(__name__)


def select_events_for_day(
    pool: List[Event],
    existing: List[CampaignEvent],
    *,
    campaign_id: int,
    event_date: str,
    per_day: int = 8,
    rng: Optional[random.Random] = None,
) -> List[CampaignEvent]:
    """
    New CampaignEvent rows for one day. Events already selected for the day
    are left alone and only the remaining capacity is filled. Forced tiers
    are included even when they exceed ``per_day``.
    """
    taken = {row.event_id for row in existing}
    has_featured = any(row.is_featured for row in existing)
    remaining = [event for event in pool if event.id not in taken]

    featured = [e for e in remaining if e.featured]
    paid = [e for e in remaining if e.paid_placement and not e.featured]
    regular = [e for e in remaining if not e.featured and not e.paid_placement]

    capacity = max(0, per_day - len(existing) - len(featured) - len(paid))
    picks = fisher_yates(regular, rng)[:capacity]

    next_order = max((row.display_order for row in existing), default=-1) + 1
    rows: List[CampaignEvent] = []

    def add(event: Event, is_featured: bool) -> None:
        nonlocal next_order
        rows.append(CampaignEvent(
            campaign_id=campaign_id,
            event_id=event.id,
            event_date=event_date,
            is_selected=True,
            is_featured=is_featured,
            display_order=next_order,
        ))
        next_order += 1

    for event in featured:
        add(event, True)
    for event in paid:
        add(event, False)
    for index, event in enumerate(picks):
        add(event, index == 0 and not featured and not has_featured)

    return rows


class EventPopulator:
    def __init__(
        self,
        db: Database,
        *,
        days: int = 3,
        per_day: int = 8,
        rng: Optional[random.Random] = None,
    ):
        self.db = db
        self.days = days
        self.per_day = per_day
        self.rng = rng or random.Random()

    async def populate(self, campaign: Campaign) -> List[CampaignEvent]:
        start = date.fromisoformat(campaign.date)
        added = 0

        for offset in range(self.days):
            day = (start + timedelta(days=offset)).isoformat()
            pool = await self.db.get_events_for_day(date.fromisoformat(day))
            existing = await self.db.get_campaign_events(campaign.id, day)

            rows = select_events_for_day(
                pool,
                existing,
                campaign_id=campaign.id,
                event_date=day,
                per_day=self.per_day,
                rng=self.rng,
            )
            if rows:
                added += await self.db.insert_campaign_events(rows)
            logger.info(
                f"Events for {day}: {len(existing)} kept, {len(rows)} added from a pool of {len(pool)}"
            )

        logger.info(f"Event population for campaign {campaign.id} added {added} rows")
        return await self.db.get_campaign_events(campaign.id)

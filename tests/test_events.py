from __future__ import annotations

import random
from datetime import date, datetime, timedelta, timezone

import pytest

from core.entities import CampaignEvent, Event
from processing.events import EventPopulator, select_events_for_day
from services.database import Database


def _event(event_id: int, featured: bool = False, paid: bool = False) -> Event:
    return Event(
        id=event_id,
        external_id=f"evt-{event_id}",
        title=f"Event {event_id}",
        start_date=datetime(2025, 10, 1, 18, 0),
        featured=featured,
        paid_placement=paid,
    )


def test_featured_and_paid_are_always_included():
    pool = [_event(1, featured=True), _event(2, paid=True)] + [_event(i) for i in range(3, 20)]

    rows = select_events_for_day(pool, [], campaign_id=1, event_date="2025-10-01", per_day=8, rng=random.Random(1))

    by_id = {row.event_id: row for row in rows}
    assert len(rows) == 8
    assert by_id[1].is_featured
    assert not by_id[2].is_featured
    assert sum(row.is_featured for row in rows) == 1
    assert [row.display_order for row in rows] == list(range(8))


def test_first_random_pick_is_featured_without_upstream_featured():
    pool = [_event(i) for i in range(1, 6)]

    rows = select_events_for_day(pool, [], campaign_id=1, event_date="2025-10-01", per_day=3, rng=random.Random(2))

    assert len(rows) == 3
    assert [row.is_featured for row in rows] == [True, False, False]


def test_paid_placements_are_never_featured():
    pool = [_event(1, paid=True), _event(2)]

    rows = select_events_for_day(pool, [], campaign_id=1, event_date="2025-10-01", per_day=8, rng=random.Random(3))

    by_id = {row.event_id: row for row in rows}
    assert not by_id[1].is_featured
    assert by_id[2].is_featured


def test_forced_tiers_may_exceed_capacity():
    pool = [_event(i, featured=True) for i in range(1, 4)] + [_event(i, paid=True) for i in range(4, 7)]

    rows = select_events_for_day(pool, [], campaign_id=1, event_date="2025-10-01", per_day=4)

    assert len(rows) == 6


def test_existing_rows_are_kept_and_only_capacity_filled():
    pool = [_event(i) for i in range(1, 10)]
    existing = [
        CampaignEvent(campaign_id=1, event_id=1, event_date="2025-10-01", is_featured=True, display_order=0),
        CampaignEvent(campaign_id=1, event_id=2, event_date="2025-10-01", display_order=1),
    ]

    rows = select_events_for_day(pool, existing, campaign_id=1, event_date="2025-10-01", per_day=5, rng=random.Random(4))

    assert len(rows) == 3
    assert not {row.event_id for row in rows} & {1, 2}
    assert not any(row.is_featured for row in rows)
    assert [row.display_order for row in rows] == [2, 3, 4]


@pytest.mark.asyncio
async def test_populate_covers_campaign_days_and_is_reentrant(db, campaign):
    for day in (1, 2, 3):
        for i in range(5):
            await db.upsert_event(
                external_id=f"evt-{day}-{i}",
                title=f"Event {day}-{i}",
                start_date=datetime(2025, 10, day, 12 + i, 0),
                featured=(day == 2 and i == 0),
            )
    # A multi-day event shows up on every day it spans
    await db.upsert_event(
        external_id="fair",
        title="County fair",
        start_date=datetime(2025, 10, 1, 9, 0),
        end_date=datetime(2025, 10, 3, 21, 0),
    )

    populator = EventPopulator(db, days=3, per_day=4, rng=random.Random(5))
    first = await populator.populate(campaign)
    second = await populator.populate(campaign)

    assert len(first) == 12
    assert first == second
    for day in ("2025-10-01", "2025-10-02", "2025-10-03"):
        rows = [row for row in first if row.event_date == day]
        assert len(rows) == 4
        assert sum(row.is_featured for row in rows) == 1


@pytest.mark.asyncio
async def test_evening_event_stays_on_its_local_day(db):
    await db.upsert_event(
        external_id="concert",
        title="Evening concert",
        start_date=datetime(2025, 10, 1, 19, 0, tzinfo=timezone(timedelta(hours=-5))),
    )

    assert [e.title for e in await db.get_events_for_day(date(2025, 10, 1))] == ["Evening concert"]
    assert await db.get_events_for_day(date(2025, 10, 2)) == []


@pytest.mark.asyncio
async def test_utc_times_are_stored_in_newsletter_zone(tmp_path):
    db = Database(str(tmp_path / "zoned.db"), timezone="America/Chicago")
    await db.init_tables()
    await db.upsert_event(
        external_id="late-show",
        title="Late show",
        start_date=datetime(2025, 10, 2, 0, 30, tzinfo=timezone.utc),
    )

    events = await db.get_events_for_day(date(2025, 10, 1))

    assert [e.title for e in events] == ["Late show"]
    assert events[0].start_date == datetime(2025, 10, 1, 19, 30)
    assert await db.get_events_for_day(date(2025, 10, 2)) == []


@pytest.mark.asyncio
async def test_refresh_keeps_manual_placement_flags(db):
    await db.upsert_event(
        external_id="gala", title="Gala", start_date=datetime(2025, 10, 1, 18, 0),
        featured=True, paid_placement=True,
    )
    await db.upsert_event(external_id="gala", title="Gala night", start_date=datetime(2025, 10, 1, 18, 0))

    (event,) = await db.get_events_for_day(date(2025, 10, 1))

    assert event.title == "Gala night"
    assert event.featured and event.paid_placement

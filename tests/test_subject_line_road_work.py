from __future__ import annotations

import json

import pytest

from core.entities import Article
from processing.road_work import discover_road_work
from processing.subject_line import clean_subject_line, generate_subject_line
from helpers import FakeOracle, add_post


async def _active_article(db, campaign, feed_id):
    post = await add_post(db, campaign.id, feed_id, "post-1")
    article_id = await db.insert_article(Article(
        raw_item_id=post.id,
        campaign_id=campaign.id,
        headline="Council backs park budget",
        body="The council approved the park budget.",
        word_count=6,
        fact_check_score=26,
    ))
    await db.apply_selection(campaign.id, {article_id: 1})


def test_clean_subject_line():
    assert clean_subject_line({"subject_line": '  "Parks get a boost"  '}) == "Parks get a boost"
    assert clean_subject_line({"raw": "Plain text answer"}) == "Plain text answer"
    assert len(clean_subject_line({"subject_line": "x" * 80})) == 35


@pytest.mark.asyncio
async def test_subject_line_written_once(db, campaign, feed_id):
    await _active_article(db, campaign, feed_id)
    oracle = FakeOracle(lambda prompt: '{"subject_line": "Parks get a boost"}')

    first = await generate_subject_line(oracle=oracle, db=db, campaign_id=campaign.id)
    second = await generate_subject_line(oracle=oracle, db=db, campaign_id=campaign.id)

    assert first == second == "Parks get a boost"
    assert len(oracle.prompts) == 1
    assert "Council backs park budget" in oracle.prompts[0]


@pytest.mark.asyncio
async def test_subject_line_needs_active_article(db, campaign):
    oracle = FakeOracle(lambda prompt: '{"subject_line": "Parks"}')

    assert await generate_subject_line(oracle=oracle, db=db, campaign_id=campaign.id) is None
    assert oracle.prompts == []


@pytest.mark.asyncio
async def test_subject_line_oracle_failure(db, campaign, feed_id):
    await _active_article(db, campaign, feed_id)
    oracle = FakeOracle(lambda prompt: TimeoutError("timed out"))

    assert await generate_subject_line(oracle=oracle, db=db, campaign_id=campaign.id) is None
    assert (await db.get_campaign(campaign.id)).subject_line is None


@pytest.mark.asyncio
async def test_road_work_keeps_valid_entries(db, campaign):
    answer = "Here is what I found:\n" + json.dumps([
        {"road_name": "Hwy 15", "road_range": "2nd St S to Division St", "reason": "resurfacing"},
        {"road_range": "no road name"},
        {"road_name": "CR 120", "city_or_township": "Sartell"},
    ])
    oracle = FakeOracle(lambda prompt: answer)

    items = await discover_road_work(
        oracle=oracle,
        campaign_id=campaign.id,
        campaign_date="2025-10-01",
        area="St. Cloud, MN",
        max_items=9,
    )
    await db.replace_road_work(campaign.id, items)

    stored = await db.get_road_work(campaign.id)
    assert [item.road_name for item in stored] == ["Hwy 15", "CR 120"]
    assert stored[1].city_or_township == "Sartell"


@pytest.mark.asyncio
async def test_road_work_failure_is_empty():
    oracle = FakeOracle(lambda prompt: ConnectionError("search unavailable"))

    assert await discover_road_work(
        oracle=oracle, campaign_id=1, campaign_date="2025-10-01", area="St. Cloud, MN"
    ) == []

from __future__ import annotations

import random
from collections import Counter

import httpx
import pytest

from processing.listings import ListingSelector
from processing.rotation import RotationSelector, fisher_yates
from services.image_rehoster import ImageRehoster
from helpers import FakeStorage, image_bytes


def test_fisher_yates_is_a_permutation():
    values = list(range(20))
    shuffled = fisher_yates(values, random.Random(3))

    assert sorted(shuffled) == values
    assert values == list(range(20))


@pytest.mark.asyncio
async def test_each_id_once_per_cycle(db):
    selector = RotationSelector(db, random.Random(7))
    eligible = [11, 12, 13, 14, 15]

    first_cycle = [await selector.draw("Local", eligible) for _ in eligible]
    second_cycle = [await selector.draw("Local", eligible) for _ in eligible]

    assert sorted(first_cycle) == eligible
    assert sorted(second_cycle) == eligible


@pytest.mark.asyncio
async def test_state_survives_new_selector(db):
    eligible = [1, 2, 3, 4]
    drawn = [await RotationSelector(db, random.Random(i)).draw("Greater", eligible) for i in range(4)]

    assert sorted(drawn) == eligible
    state = await db.get_rotation_state("Greater")
    assert state.exhausted


@pytest.mark.asyncio
async def test_ineligible_ids_are_passed_over(db):
    selector = RotationSelector(db, random.Random(1))
    await selector.draw("Local", [1, 2, 3])

    remaining = [await selector.draw("Local", [1, 2]) for _ in range(2)]

    assert 3 not in remaining
    assert None not in remaining


@pytest.mark.asyncio
async def test_no_eligible_ids(db):
    assert await RotationSelector(db).draw("Local", []) is None


@pytest.mark.asyncio
async def test_draws_are_fair_over_many_cycles(db):
    selector = RotationSelector(db, random.Random(42))
    eligible = [1, 2, 3]

    counts = Counter([await selector.draw("Local", eligible) for _ in range(30)])

    assert counts == {1: 10, 2: 10, 3: 10}


@pytest.mark.asyncio
async def test_draw_many_returns_distinct_ids(db):
    selector = RotationSelector(db, random.Random(5))

    drawn = await selector.draw_many("Greater", [1, 2, 3], 2)

    assert len(drawn) == 2
    assert len(set(drawn)) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", range(20))
async def test_draw_many_across_campaigns_keeps_cycles_whole(db, seed):
    selector = RotationSelector(db, random.Random(seed))
    eligible = [1, 2, 3]

    drawn = []
    for _ in range(3):
        drawn.extend(await selector.draw_many("Greater", eligible, 2))

    assert sorted(drawn[:3]) == eligible
    assert sorted(drawn[3:]) == eligible
    assert Counter(drawn) == {1: 2, 2: 2, 3: 2}


@pytest.mark.asyncio
async def test_excluded_id_keeps_its_turn(db):
    selector = RotationSelector(db, random.Random(4))
    eligible = [1, 2, 3, 4]
    first = await selector.draw("Local", eligible)
    state = await db.get_rotation_state("Local")
    upcoming = state.shuffle_order[1]

    rest = [await selector.draw("Local", eligible, exclude=[upcoming])]
    rest += [await selector.draw("Local", eligible) for _ in range(2)]

    assert rest[0] != upcoming
    assert sorted([first] + rest) == eligible

@pytest.mark.asyncio
async def test_listing_quotas_and_reentrancy(db, campaign):
    for i in range(3):
        await db.add_listing(f"Local shop {i}", "Local", image_url=f"https://img.test/local-{i}.png")
    for i in range(4):
        await db.add_listing(f"Regional venue {i}", "Greater")

    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, content=image_bytes(), headers={"content-type": "image/png"})
    )
    storage = FakeStorage()
    selector = ListingSelector(
        db,
        RotationSelector(db, random.Random(9)),
        rehoster=ImageRehoster(storage, transport=transport),
        quotas={"Local": 1, "Greater": 2},
    )

    first = await selector.select_for_campaign(campaign.id)
    second = await selector.select_for_campaign(campaign.id)

    assert [l.category for l in first] == ["Local", "Greater", "Greater"]
    assert [l.id for l in second] == [l.id for l in first]
    assert first[0].hosted_image_url.startswith("https://cdn.test/listing-images/listing-")
    assert storage.uploads == 1

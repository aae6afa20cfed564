from __future__ import annotations

import asyncio
import json

import pytest

from core.errors import OracleShapeError
from core.schemas import ContentEvaluation
from core.scoring import mentioned_localities, total_score
from processing.evaluator import evaluate_batch, evaluate_item
from processing.prefilter import blank_rating_reason
from services.config import EvaluationConfig
from services.llm import Oracle
from helpers import FakeOracle, make_raw_item

RATING = json.dumps({"interest_level": 8, "local_relevance": 9, "community_impact": 7, "reasoning": "Local budget"})


def test_localities_match_on_word_boundaries():
    text = "Sartell and Sauk Rapids share the bridge; Sartelling is not a place."
    assert mentioned_localities(text, ["Sartell", "Sauk Rapids", "Waite Park"]) == ["Sartell", "Sauk Rapids"]


def test_multi_locality_bonus():
    rating = ContentEvaluation(interest_level=5, local_relevance=5, community_impact=5)

    assert total_score(rating, "Only St. Cloud is named") == 15
    assert total_score(rating, "St. Cloud and Waite Park sign a deal") == 17


def test_weights_apply_per_criterion():
    rating = ContentEvaluation(interest_level=4, local_relevance=6, community_impact=2)
    weights = {"interest_level": 1.0, "local_relevance": 2.0, "community_impact": 0.5}

    assert total_score(rating, "", weights=weights, localities=[]) == 17


def test_blank_policy():
    assert blank_rating_reason(make_raw_item(description="Short post here.")) is not None
    assert blank_rating_reason(make_raw_item(
        title="Winter storm warning",
        description="The weather service expects heavy snow across the region tomorrow with strong gusts.",
    )) == "weather for today or tomorrow"
    assert blank_rating_reason(make_raw_item(
        title="Fall festival downtown",
        description="Join neighbours at the fall festival downtown tonight with food trucks and live music.",
    )) == "announces an event happening today or tonight"
    assert blank_rating_reason(make_raw_item()) is None


def test_blank_policy_pets_and_live_incidents():
    assert blank_rating_reason(make_raw_item(
        title="Lost dog near Lake George",
        description="Our black lab Max went missing Saturday near Lake George, please call if you see him.",
    )) == "lost or found pet"
    assert blank_rating_reason(make_raw_item(
        title="Crash closes Highway 15",
        description="Emergency crews are on scene of a two-vehicle crash on Highway 15, drivers should avoid the area.",
    )) == "incident still in progress"
    assert blank_rating_reason(make_raw_item(
        title="Shelter adds adoption hours",
        description="The animal shelter expanded adoption hours for dogs and cats, adding two evenings every week.",
    )) is None
    assert blank_rating_reason(make_raw_item(
        title="Charges filed after crash",
        description="Police arrested a driver last week after a crash on Division Street; charges were filed Monday.",
    )) is None


@pytest.mark.asyncio
async def test_blank_items_skip_the_oracle():
    oracle = FakeOracle(lambda prompt: RATING)
    item = make_raw_item(description="Too short to rate.")

    evaluation = await evaluate_item(oracle=oracle, item=item, settings=EvaluationConfig())

    assert evaluation.is_blank
    assert evaluation.interest is None
    assert oracle.prompts == []


@pytest.mark.asyncio
async def test_rating_is_scored():
    oracle = FakeOracle(lambda prompt: f"```json\n{RATING}\n```")

    evaluation = await evaluate_item(oracle=oracle, item=make_raw_item(), settings=EvaluationConfig())

    assert (evaluation.interest, evaluation.relevance, evaluation.impact) == (8, 9, 7)
    assert evaluation.total_score == 24


@pytest.mark.asyncio
async def test_malformed_rating_raises():
    oracle = FakeOracle(lambda prompt: '{"interest_level": "high"}')

    with pytest.raises(OracleShapeError):
        await evaluate_item(oracle=oracle, item=make_raw_item(), settings=EvaluationConfig())


class SlowOracle(Oracle):
    name = "slow"

    def __init__(self):
        self.in_flight = 0
        self.max_in_flight = 0

    async def complete(self, prompt: str) -> str:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        if "Title: broken" in prompt:
            return "no idea"
        return RATING


@pytest.mark.asyncio
async def test_batches_are_bounded_and_failures_isolated():
    oracle = SlowOracle()
    items = [make_raw_item(i) for i in range(1, 8)]
    items[3] = make_raw_item(4, title="broken")
    settings = EvaluationConfig(batch_size=3, batch_delay_seconds=0.0)

    outcome = await evaluate_batch(oracle=oracle, items=items, settings=settings)

    assert oracle.max_in_flight == 3
    assert outcome.failed_item_ids == [4]
    assert len(outcome.evaluations) == 6
    assert outcome.blank == 0


@pytest.mark.asyncio
async def test_empty_batch():
    outcome = await evaluate_batch(oracle=SlowOracle(), items=[], settings=EvaluationConfig())

    assert outcome.evaluations == []
    assert outcome.failures == 0

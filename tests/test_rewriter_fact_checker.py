from __future__ import annotations

import json

import pytest

from core.entities import Evaluation
from core.errors import OracleShapeError
from processing.fact_checker import checked_article, fact_check
from processing.rewriter import RewriteResult, rewrite_item, select_rewrite_candidates
from helpers import FakeOracle, make_raw_item

BODY = " ".join(["word"] * 50)


def _rewrite(item_id: int = 1) -> RewriteResult:
    return RewriteResult(
        raw_item_id=item_id,
        headline="Council backs park budget",
        body=BODY,
        word_count=50,
        source_url=f"https://news.test/post-{item_id}",
        author="Staff",
    )


def _verdict(accuracy: int, timeliness: int, intent: int, passed: bool) -> str:
    return json.dumps({
        "accuracy_score": accuracy,
        "timeliness_score": timeliness,
        "intent_alignment_score": intent,
        "passed": passed,
        "details": "checked",
    })


@pytest.mark.asyncio
async def test_rewrite_echoes_source_fields():
    oracle = FakeOracle(lambda prompt: json.dumps(
        {"headline": "Council backs park budget", "content": BODY, "word_count": 50}
    ))
    item = make_raw_item(3, author="Jane Reporter")

    rewrite = await rewrite_item(oracle=oracle, item=item)

    assert rewrite.raw_item_id == 3
    assert rewrite.source_url == item.source_url
    assert rewrite.author == "Jane Reporter"
    assert rewrite.word_count == 50


@pytest.mark.asyncio
async def test_rewrite_without_word_count_is_rejected():
    oracle = FakeOracle(lambda prompt: json.dumps({"headline": "Council backs park budget", "content": BODY}))

    with pytest.raises(OracleShapeError):
        await rewrite_item(oracle=oracle, item=make_raw_item())


@pytest.mark.asyncio
async def test_passing_fact_check_builds_article():
    oracle = FakeOracle(lambda prompt: _verdict(9, 9, 8, True))

    article = await checked_article(oracle=oracle, rewrite=_rewrite(), source=make_raw_item())

    assert article is not None
    assert article.fact_check_score == 26
    assert article.headline == "Council backs park budget"
    assert article.raw_item_id == 1
    assert not article.is_active


@pytest.mark.asyncio
async def test_failed_verdict_yields_no_article():
    oracle = FakeOracle(lambda prompt: _verdict(9, 9, 9, False))

    assert await checked_article(oracle=oracle, rewrite=_rewrite(), source=make_raw_item()) is None


@pytest.mark.asyncio
async def test_low_total_fails_even_when_passed():
    oracle = FakeOracle(lambda prompt: _verdict(6, 6, 6, True))

    outcome = await fact_check(oracle=oracle, rewrite=_rewrite(), source=make_raw_item())

    assert outcome.total == 18
    assert not outcome.passed


@pytest.mark.asyncio
async def test_malformed_fact_check_raises():
    oracle = FakeOracle(lambda prompt: '{"passed": true}')

    with pytest.raises(OracleShapeError):
        await checked_article(oracle=oracle, rewrite=_rewrite(), source=make_raw_item())


def test_candidates_ordered_by_score_with_unscored_last():
    items = [make_raw_item(i) for i in range(1, 6)]
    evaluations = {
        1: Evaluation(1, 5, 5, 5, 15.0),
        2: Evaluation(2, None, None, None, None),
        3: Evaluation(3, 9, 9, 9, 27.0),
        5: Evaluation(5, 6, 6, 6, 18.0),
    }

    candidates = select_rewrite_candidates(items, evaluations, max_candidates=4)

    assert [c.id for c in candidates] == [3, 5, 1, 2]


def test_candidates_exclude_ids():
    items = [make_raw_item(i) for i in range(1, 4)]

    candidates = select_rewrite_candidates(items, {}, exclude_ids=[2])

    assert [c.id for c in candidates] == [1, 3]

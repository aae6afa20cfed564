from __future__ import annotations

import pytest

from core.errors import OracleCallError, OracleShapeError
from core.schemas import ContentEvaluation, FactCheckResult
from processing.decoding import Ok, OracleError, ShapeError, ask, decode, extract_json, parse_json
from helpers import FakeOracle


def test_extract_json_strips_code_fence():
    content = '```json\n{"interest_level": 7}\n```'
    assert extract_json(content) == '{"interest_level": 7}'


def test_extract_json_finds_payload_inside_prose():
    content = 'Here is my rating: {"interest_level": 7} hope that helps'
    assert extract_json(content) == '{"interest_level": 7}'


def test_extract_json_prefers_first_container():
    content = 'Result: [{"road_name": "Hwy 15"}] and nothing else'
    assert extract_json(content) == '[{"road_name": "Hwy 15"}]'


def test_parse_json_falls_back_to_raw():
    assert parse_json("not json at all") == {"raw": "not json at all"}


def test_decode_valid_payload():
    result = decode(
        '{"interest_level": 7, "local_relevance": 8, "community_impact": 6, "reasoning": "ok"}',
        ContentEvaluation,
    )

    assert isinstance(result, Ok)
    assert result.unwrap().local_relevance == 8


def test_decode_rejects_out_of_range_score():
    result = decode(
        '{"interest_level": 11, "local_relevance": 8, "community_impact": 6}',
        ContentEvaluation,
    )

    assert isinstance(result, ShapeError)
    with pytest.raises(OracleShapeError):
        result.unwrap()


def test_decode_non_json_is_shape_error():
    result = decode("I cannot rate this post.", ContentEvaluation)

    assert isinstance(result, ShapeError)
    assert result.reason == "Response is not JSON"


def test_fact_check_total_defaults_to_sum():
    result = decode(
        '{"accuracy_score": 9, "timeliness_score": 8, "intent_alignment_score": 7, "passed": true}',
        FactCheckResult,
    )

    assert result.unwrap().score == 24


@pytest.mark.asyncio
async def test_ask_wraps_oracle_failure():
    oracle = FakeOracle(lambda prompt: TimeoutError("timed out"))

    result = await ask(oracle, "rate this", ContentEvaluation)

    assert isinstance(result, OracleError)
    with pytest.raises(OracleCallError):
        result.unwrap()

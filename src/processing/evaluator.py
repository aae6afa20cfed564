import asyncio
import logging
from dataclasses import dataclass, field
from typing import List

from core.entities import Evaluation, RawItem
from core.schemas import ContentEvaluation
from core.scoring import total_score
from processing.decoding import ask
from processing.prefilter import blank_rating_reason
from services.config import EvaluationConfig
from services.llm import Oracle

logger = logging.getLogger(__name__)


RATING_PROMPT = """You are rating posts for a daily local newsletter covering {localities}.

Rate the post on three criteria, each an integer from 1 to 10:
- interest_level: how interesting the story is to a general local reader
- local_relevance: how directly it concerns the local area
- community_impact: how much it affects people who live there

POST
Title: {title}
Description: {description}
Content: {body}

Return ONLY a JSON object:
{{"interest_level": 7, "local_relevance": 8, "community_impact": 6, "reasoning": "one or two sentences"}}"""


@dataclass
class BatchOutcome:
    evaluations: List[Evaluation] = field(default_factory=list)
    failed_item_ids: List[int] = field(default_factory=list)

    @property
    def failures(self) -> int:
        return len(self.failed_item_ids)

    @property
    def blank(self) -> int:
        return sum(1 for e in self.evaluations if e.is_blank)


def build_rating_prompt(item: RawItem, settings: EvaluationConfig) -> str:
    return RATING_PROMPT.format(
        localities=", ".join(settings.localities),
        title=item.title,
        description=item.description[:1000],
        body=item.body[:3000],
    )


async def evaluate_item(
    *,
    oracle: Oracle,
    item: RawItem,
    settings: EvaluationConfig,
) -> Evaluation:
    """
    Rates one post. Blank-policy posts return an unscored Evaluation without
    calling the oracle; malformed answers raise OracleShapeError.
    """
    reason = blank_rating_reason(item, word_threshold=settings.blank_word_threshold)
    if reason:
        logger.info(f"Blank rating for post {item.id}: {reason}")
        return Evaluation(
            raw_item_id=item.id,
            interest=None,
            relevance=None,
            impact=None,
            total_score=None,
            reasoning=f"Not rated: {reason}",
        )

    result = await ask(oracle, build_rating_prompt(item, settings), ContentEvaluation)
    rating = result.unwrap()

    return Evaluation(
        raw_item_id=item.id,
        interest=rating.interest_level,
        relevance=rating.local_relevance,
        impact=rating.community_impact,
        total_score=total_score(
            rating,
            item.text,
            weights=settings.weights,
            localities=settings.localities,
            multi_locality_bonus=settings.multi_locality_bonus,
        ),
        reasoning=rating.reasoning,
    )


async def evaluate_batch(
    *,
    oracle: Oracle,
    items: List[RawItem],
    settings: EvaluationConfig,
) -> BatchOutcome:
    """
    Rates all posts in fixed-size concurrent batches with a pause between
    batches. A failing post is logged and counted; the others carry on.

    Args:
        oracle: The rating oracle
        items: Posts of one campaign
        settings: Batch size, delay and scoring parameters

    Returns:
        BatchOutcome with one Evaluation per successfully rated post
    """
    outcome = BatchOutcome()
    if not items:
        return outcome

    batch_size = max(1, settings.batch_size)
    logger.info(f"Evaluating {len(items)} posts in batches of {batch_size}")

    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        results = await asyncio.gather(
            *(evaluate_item(oracle=oracle, item=item, settings=settings) for item in batch),
            return_exceptions=True,
        )

        for item, result in zip(batch, results):
            if isinstance(result, Exception):
                logger.error(f"Evaluation failed for post {item.id} ({item.title[:60]}): {result}")
                outcome.failed_item_ids.append(item.id)
            elif isinstance(result, BaseException):
                raise result
            else:
                outcome.evaluations.append(result)

        if start + batch_size < len(items):
            await asyncio.sleep(settings.batch_delay_seconds)

    logger.info(
        f"Evaluation complete: {len(outcome.evaluations)} rated "
        f"({outcome.blank} blank), {outcome.failures} failed"
    )
    return outcome

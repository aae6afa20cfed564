"""
Fact check of rewritten articles against their source posts.

``checked_article`` is the only way an Article is built: it returns None
unless the fact check passed.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from core.entities import Article, RawItem
from core.schemas import FactCheckResult
from processing.decoding import ask
from processing.rewriter import RewriteResult
from services.llm import Oracle

logger = logging.getLogger(__name__)


FACT_CHECK_PROMPT = """Compare a rewritten newsletter article with its original source post.

Rate each criterion as an integer from 1 to 10:
- accuracy_score: every fact in the article appears in the source, nothing invented
- timeliness_score: dates and tenses are correct relative to the source
- intent_alignment_score: the article keeps the meaning and intent of the source

passed is true only if nothing in the article is inaccurate or misleading.
List any problems in details.

ORIGINAL SOURCE
Title: {title}
Content: {source}

REWRITTEN ARTICLE
Headline: {headline}
Content: {body}

Return ONLY a JSON object:
{{"accuracy_score": 9, "timeliness_score": 8, "intent_alignment_score": 9, "score": 26, "passed": true, "details": "..."}}"""


@dataclass(frozen=True)
class FactCheckOutcome:
    accuracy: int
    timeliness: int
    intent_alignment: int
    total: int
    passed: bool
    issues: str


async def fact_check(
    *,
    oracle: Oracle,
    rewrite: RewriteResult,
    source: RawItem,
    pass_threshold: int = 20,
) -> FactCheckOutcome:
    """
    A rewrite passes when the oracle says so AND the total reaches the threshold.
    Raises OracleShapeError on a malformed answer.
    """
    prompt = FACT_CHECK_PROMPT.format(
        title=source.title,
        source=f"{source.description}\n{source.body}"[:4000],
        headline=rewrite.headline,
        body=rewrite.body,
    )
    result = (await ask(oracle, prompt, FactCheckResult)).unwrap()

    return FactCheckOutcome(
        accuracy=result.accuracy_score,
        timeliness=result.timeliness_score,
        intent_alignment=result.intent_alignment_score,
        total=result.score,
        passed=result.passed and result.score >= pass_threshold,
        issues=result.details,
    )


async def checked_article(
    *,
    oracle: Oracle,
    rewrite: RewriteResult,
    source: RawItem,
    pass_threshold: int = 20,
) -> Optional[Article]:
    outcome = await fact_check(
        oracle=oracle,
        rewrite=rewrite,
        source=source,
        pass_threshold=pass_threshold,
    )

    if not outcome.passed:
        logger.info(
            f"Fact check rejected post {source.id} (score {outcome.total}): {outcome.issues[:200]}"
        )
        return None

    return Article(
        raw_item_id=source.id,
        campaign_id=source.campaign_id,
        headline=rewrite.headline,
        body=rewrite.body,
        word_count=rewrite.word_count,
        fact_check_score=outcome.total,
        fact_check_details=outcome.issues,
        source_url=rewrite.source_url,
        author=rewrite.author,
    )

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from core.entities import Evaluation, RawItem
from core.schemas import RewrittenArticle
from processing.decoding import ask
from services.llm import Oracle

logger = logging.getLogger(__name__)


REWRITE_PROMPT = """Rewrite the following local news post as a short newsletter article.

Rules:
- Use ONLY facts stated in the post. Do not add names, numbers, dates or quotes.
- Headline: at most 12 words, no clickbait.
- Content: {min_words}-{max_words} words, neutral tone, third person.
- word_count: the number of words in content.

POST
Title: {title}
Description: {description}
Content: {body}

Return ONLY a JSON object:
{{"headline": "...", "content": "...", "word_count": 58}}"""


@dataclass(frozen=True)
class RewriteResult:
    """
    A rewritten post, with the source URL and author echoed from the source.
    """
    raw_item_id: int
    headline: str
    body: str
    word_count: int
    source_url: str
    author: Optional[str]


def build_rewrite_prompt(item: RawItem, min_words: int, max_words: int) -> str:
    return REWRITE_PROMPT.format(
        min_words=min_words,
        max_words=max_words,
        title=item.title,
        description=item.description[:1000],
        body=item.body[:3000],
    )


async def rewrite_item(
    *,
    oracle: Oracle,
    item: RawItem,
    min_words: int = 40,
    max_words: int = 75,
) -> RewriteResult:
    """
    Raises OracleShapeError unless headline, content and a numeric word
    count all come back.
    """
    result = await ask(oracle, build_rewrite_prompt(item, min_words, max_words), RewrittenArticle)
    rewritten = result.unwrap()

    actual = len(rewritten.content.split())
    if not min_words <= actual <= max_words:
        logger.warning(
            f"Rewrite of post {item.id} is {actual} words (asked {min_words}-{max_words})"
        )

    return RewriteResult(
        raw_item_id=item.id,
        headline=rewritten.headline,
        body=rewritten.content,
        word_count=rewritten.word_count,
        source_url=item.source_url,
        author=item.author,
    )


def select_rewrite_candidates(
    items: List[RawItem],
    evaluations: Dict[int, Evaluation],
    *,
    max_candidates: int = 12,
    exclude_ids: Iterable[int] = (),
) -> List[RawItem]:
    """
    Posts to rewrite, best rated first. Unscored posts (blank or failed
    rating) remain eligible and follow all scored ones in insertion order.
    """
    excluded = set(exclude_ids)
    eligible = [item for item in items if item.id not in excluded]

    def sort_key(item: RawItem):
        evaluation = evaluations.get(item.id)
        score = evaluation.total_score if evaluation else None
        return (score is None, -(score or 0.0))

    return sorted(eligible, key=sort_key)[:max_candidates]

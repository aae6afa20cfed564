import logging
from dataclasses import dataclass, field
from typing import List

from core.entities import DuplicateGroup, DuplicateMember, RawItem
from core.schemas import DeduplicationResult
from processing.decoding import ask
from services.llm import Oracle

logger = logging.getLogger(__name__)


DEDUP_PROMPT = """You are checking posts from several local news sources for duplicates.
Posts are duplicates when they report the same event or story, even if worded differently.

POSTS (index: title - description):
{posts}

Return ONLY a JSON object:
{{"groups": [{{"topic_signature": "short topic", "primary_article_index": 0, "duplicate_indices": [3, 5], "similarity_score": 0.9, "similarity_explanation": "why"}}],
 "unique_articles": [1, 2, 4]}}
Pick as primary the most complete post of each group. Use the indices shown above."""


@dataclass
class DeduplicationOutcome:
    groups: List[DuplicateGroup] = field(default_factory=list)
    unique_indices: List[int] = field(default_factory=list)

    def duplicate_item_ids(self) -> List[int]:
        return [m.raw_item_id for g in self.groups for m in g.members]


def build_dedup_prompt(items: List[RawItem]) -> str:
    lines = [
        f"{index}: {item.title} - {item.description[:200].replace(chr(10), ' ')}"
        for index, item in enumerate(items)
    ]
    return DEDUP_PROMPT.format(posts="\n".join(lines))


def _to_groups(result: DeduplicationResult, items: List[RawItem], campaign_id: int) -> DeduplicationOutcome:
    outcome = DeduplicationOutcome()
    claimed = set()
    duplicate_indices = set()

    for entry in result.groups:
        primary = entry.primary_article_index
        if not 0 <= primary < len(items) or primary in claimed:
            logger.warning(f"Dropping duplicate group with invalid primary index {primary}")
            continue

        duplicates = []
        for index in entry.duplicate_indices:
            if 0 <= index < len(items) and index != primary and index not in claimed and index not in duplicates:
                duplicates.append(index)
        if not duplicates:
            continue

        claimed.add(primary)
        claimed.update(duplicates)
        duplicate_indices.update(duplicates)
        outcome.groups.append(DuplicateGroup(
            campaign_id=campaign_id,
            primary_item_id=items[primary].id,
            topic=entry.topic_signature,
            explanation=entry.similarity_explanation,
            members=[DuplicateMember(items[i].id, entry.similarity_score) for i in duplicates],
        ))

    outcome.unique_indices = [i for i in range(len(items)) if i not in duplicate_indices]
    return outcome


async def find_duplicate_groups(
    *,
    oracle: Oracle,
    items: List[RawItem],
    campaign_id: int,
) -> DeduplicationOutcome:
    """
    Best-effort clustering of posts that cover the same story. Any failure
    yields an empty outcome, so later stages always proceed.
    """
    if len(items) < 2:
        return DeduplicationOutcome(unique_indices=list(range(len(items))))

    result = await ask(oracle, build_dedup_prompt(items), DeduplicationResult)
    try:
        parsed = result.unwrap()
        outcome = _to_groups(parsed, items, campaign_id)
    except Exception as e:
        logger.warning(f"Deduplication skipped: {e}")
        return DeduplicationOutcome(unique_indices=list(range(len(items))))

    logger.info(
        f"Deduplication found {len(outcome.groups)} groups covering "
        f"{len(outcome.duplicate_item_ids())} duplicate posts"
    )
    return outcome

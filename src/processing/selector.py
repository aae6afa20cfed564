import logging
from typing import Dict, List, Optional, Tuple

from core.entities import Article
from services.database import Database

logger = logging.getLogger(__name__)


def rank_articles(
    scored: List[Tuple[Article, Optional[float]]],
    top_k: int = 5,
) -> Dict[int, Optional[int]]:
    """
    Maps article id to rank 1..top_k for the active set and None for the rest.

    Comparator: total score descending, unscored articles after all scored
    ones, skipped articles never active. The sort is stable, so ties keep
    insertion order.
    """
    candidates = [(article, score) for article, score in scored if not article.skipped]
    ordered = sorted(candidates, key=lambda pair: (pair[1] is None, -(pair[1] or 0.0)))

    ranks: Dict[int, Optional[int]] = {article.id: None for article, _ in scored}
    for position, (article, _) in enumerate(ordered[:top_k], start=1):
        ranks[article.id] = position
    return ranks


async def select_top_articles(db: Database, campaign_id: int, top_k: int = 5) -> List[Article]:
    """
    Activates the top K articles of a campaign and deactivates the rest.
    """
    scored = await db.get_articles_with_scores(campaign_id)
    ranks = rank_articles(scored, top_k)
    await db.apply_selection(campaign_id, ranks)

    active = await db.get_active_articles(campaign_id)
    logger.info(f"Activated {len(active)} of {len(scored)} articles (top {top_k})")
    return active

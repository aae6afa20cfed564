"""
Module to score every rated post
"""

import re
from typing import Iterable, List, Mapping

from core.schemas import ContentEvaluation

DEFAULT_WEIGHTS = {
    "interest_level": 1.0,
    "local_relevance": 1.0,
    "community_impact": 1.0,
}

DEFAULT_LOCALITIES = ["St. Cloud", "Waite Park", "Sartell", "Sauk Rapids", "Cold Spring"]


def mentioned_localities(text: str, localities: Iterable[str]) -> List[str]:
    """
    Returns the configured localities named in the text, matched on word boundaries.
    """
    found = []
    for name in localities:
        pattern = r"\b" + re.escape(name) + r"\b"
        if re.search(pattern, text, re.IGNORECASE):
            found.append(name)
    return found


def weighted_score(
    rating: ContentEvaluation,
    weights: Mapping[str, float] = DEFAULT_WEIGHTS,
) -> float:
    return (
        rating.interest_level * weights.get("interest_level", 1.0)
        + rating.local_relevance * weights.get("local_relevance", 1.0)
        + rating.community_impact * weights.get("community_impact", 1.0)
    )


def total_score(
    rating: ContentEvaluation,
    text: str,
    *,
    weights: Mapping[str, float] = DEFAULT_WEIGHTS,
    localities: Iterable[str] = DEFAULT_LOCALITIES,
    multi_locality_bonus: float = 2.0,
) -> float:
    """
    Weighted sum of sub-scores plus a fixed bonus when the post names
    two or more local communities.
    """
    score = weighted_score(rating, weights)
    if len(mentioned_localities(text, localities)) >= 2:
        score += multi_locality_bonus
    return score

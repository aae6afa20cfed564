import logging
import re
from typing import Iterable, Optional

from core.entities import RawItem

logger = logging.getLogger(__name__)

WEATHER_TERMS = (
    "weather", "forecast", "temperature", "temperatures", "snowfall", "rainfall",
    "wind chill", "heat index", "winter storm", "thunderstorm", "blizzard",
)
EVENT_TERMS = (
    "event", "concert", "festival", "show", "game", "meeting", "fundraiser",
    "performance", "party", "celebration", "open house", "tournament", "parade",
)
PET_TERMS = (
    "dog", "dogs", "cat", "cats", "puppy", "kitten", "pet", "pets", "bird", "horse",
)
INCIDENT_TERMS = (
    "crash", "accident", "collision", "police", "officers", "deputies", "standoff",
    "fire", "fire crews", "emergency crews", "first responders", "shooting",
    "traffic incident", "road closure", "road closed", "lane closed", "hazmat", "rescue",
)
_PET_STATUS = r"(lost|missing|found|stray|runaway|escaped)"
_PET_WORD = "(" + "|".join(PET_TERMS) + ")"
# Status and animal within three words of each other, in either order
_PET_NOTICE = re.compile(
    rf"\b{_PET_STATUS}\W+(\w+\W+){{0,3}}?{_PET_WORD}\b|\b{_PET_WORD}\W+(\w+\W+){{0,3}}?{_PET_STATUS}\b",
    re.IGNORECASE,
)
_ONGOING = re.compile(
    r"\b(currently|ongoing|right now|at this time|on scene|are responding|is responding|"
    r"developing|active situation|avoid the area|until further notice|still closed)\b",
    re.IGNORECASE,
)
_SAME_DAY = re.compile(r"\b(today|tonight|this evening)\b", re.IGNORECASE)
_NEAR_DAY = re.compile(r"\b(today|tonight|tomorrow)\b", re.IGNORECASE)


def keyword_match(text: str, keywords: Iterable[str]) -> bool:
    text = text.lower()
    return any(re.search(r"\b" + re.escape(k.lower()) + r"\b", text) for k in keywords)


def word_count(text: str) -> int:
    return len(text.split())


def blank_rating_reason(item: RawItem, *, word_threshold: int = 10) -> Optional[str]:
    """
    Returns why a post gets no rating at all, or None when it should be rated.
    Left unscored: posts that are too short, same-day weather, pre-announcements
    of events happening today or tonight, lost or found pets, and incidents
    still in progress that will be stale by tomorrow.
    """
    description = item.description or item.body
    if word_count(description) <= word_threshold:
        return f"description has {word_count(description)} words"

    text = f"{item.title} {description}"

    if keyword_match(text, WEATHER_TERMS) and _NEAR_DAY.search(text):
        return "weather for today or tomorrow"

    if keyword_match(text, EVENT_TERMS) and _SAME_DAY.search(text):
        return "announces an event happening today or tonight"

    if _PET_NOTICE.search(text):
        return "lost or found pet"

    if keyword_match(text, INCIDENT_TERMS) and _ONGOING.search(text):
        return "incident still in progress"

    return None

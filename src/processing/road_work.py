import logging
from typing import List

from pydantic import ValidationError

from core.entities import RoadWorkItem
from core.schemas import RoadWorkEntry
from processing.decoding import parse_json
from services.llm import Oracle

logger = logging.getLogger(__name__)


ROAD_WORK_PROMPT = """Search the web for road, lane and bridge closures and detours in and around {area}
that are in effect on {campaign_date}. Only include items from official or news sources.

Return ONLY a JSON array, at most {max_items} entries:
[{{"road_name": "Hwy 15", "road_range": "from 2nd St S to Division St", "city_or_township": "St. Cloud",
  "reason": "resurfacing", "start_date": "Sep 15", "expected_reopen": "Oct 30", "source_url": "https://..."}}]"""


async def discover_road_work(
    *,
    oracle: Oracle,
    campaign_id: int,
    campaign_date: str,
    area: str,
    max_items: int = 9,
) -> List[RoadWorkItem]:
    """
    Best-effort web-search lookup of road work. Any failure yields an empty list.
    """
    try:
        content = await oracle.complete(
            ROAD_WORK_PROMPT.format(area=area, campaign_date=campaign_date, max_items=max_items)
        )
    except Exception as e:
        logger.error(f"Road work lookup failed: {e}")
        return []

    payload = parse_json(content)
    if isinstance(payload, dict):
        payload = payload.get("items") or payload.get("road_work") or []
    if not isinstance(payload, list):
        logger.warning("Road work response was not a list")
        return []

    items: List[RoadWorkItem] = []
    for entry in payload:
        try:
            parsed = RoadWorkEntry.model_validate(entry)
        except ValidationError as e:
            logger.warning(f"Skipping road work entry: {e.error_count()} error(s)")
            continue
        items.append(RoadWorkItem(campaign_id=campaign_id, **parsed.model_dump()))
        if len(items) >= max_items:
            break

    logger.info(f"Road work lookup returned {len(items)} items")
    return items

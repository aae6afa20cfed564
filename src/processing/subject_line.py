import logging
from typing import Optional

from processing.decoding import parse_json
from services.database import Database
from services.llm import Oracle

logger = logging.getLogger(__name__)

MAX_SUBJECT_LENGTH = 35

SUBJECT_PROMPT = """Write an email subject line for today's local newsletter based on its top story.
Maximum {max_length} characters, no emoji, no quotes, no trailing punctuation.

Headline: {headline}
Story: {body}

Return ONLY a JSON object: {{"subject_line": "..."}}"""


def clean_subject_line(payload, max_length: int = MAX_SUBJECT_LENGTH) -> str:
    """Pull the subject out of any tolerated response shape and trim it."""
    if isinstance(payload, dict):
        text = payload.get("subject_line") or payload.get("raw") or ""
    else:
        text = str(payload or "")
    text = " ".join(str(text).split()).strip().strip('"\'')
    if len(text) > max_length:
        text = text[:max_length].rstrip()
    return text


async def generate_subject_line(
    *,
    oracle: Oracle,
    db: Database,
    campaign_id: int,
    max_length: int = MAX_SUBJECT_LENGTH,
) -> Optional[str]:
    """
    Writes a subject line from the top active article unless the campaign
    already has one. Oracle failures are logged and yield None.
    """
    campaign = await db.get_campaign(campaign_id)
    if campaign is None:
        return None
    if campaign.subject_line:
        logger.info(f"Campaign {campaign_id} already has a subject line")
        return campaign.subject_line

    active = await db.get_active_articles(campaign_id)
    if not active:
        logger.warning(f"No active articles for campaign {campaign_id}, no subject line")
        return None

    top = active[0]
    try:
        content = await oracle.complete(
            SUBJECT_PROMPT.format(max_length=max_length, headline=top.headline, body=top.body)
        )
    except Exception as e:
        logger.error(f"Subject line generation failed for campaign {campaign_id}: {e}")
        return None

    subject = clean_subject_line(parse_json(content), max_length)
    if not subject:
        logger.warning(f"Empty subject line returned for campaign {campaign_id}")
        return None

    if not await db.set_subject_line_if_missing(campaign_id, subject):
        # Someone else wrote one in the meantime
        campaign = await db.get_campaign(campaign_id)
        return campaign.subject_line if campaign else None

    logger.info(f"Subject line for campaign {campaign_id}: {subject}")
    return subject

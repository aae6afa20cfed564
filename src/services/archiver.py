import logging
from typing import Optional

from core.entities import ArchiveRecord
from core.errors import ArchiveError
from services.database import Database

logger = logging.getLogger(__name__)

DEFAULT_REASON = "rss_processing_clear"


class CampaignArchiver:
    """
    Snapshots a campaign's posts, ratings and articles before they are cleared.
    """

    def __init__(self, db: Database):
        self.db = db

    async def archive(self, campaign_id: int, reason: str = DEFAULT_REASON) -> Optional[ArchiveRecord]:
        """
        Returns the new ArchiveRecord, or None when there was nothing to archive.
        Raises ArchiveError; callers decide whether that blocks them.
        """
        try:
            snapshot = await self.db.snapshot_campaign(campaign_id)
            if not any(snapshot.values()):
                logger.info(f"Nothing to archive for campaign {campaign_id}")
                return None

            record = await self.db.insert_archive(campaign_id, reason, snapshot)
        except Exception as e:
            logger.error(f"Archiving campaign {campaign_id} failed: {e}")
            raise ArchiveError("Archive failed", {"campaign_id": campaign_id, "reason": reason}) from e

        counts = record.counts
        logger.info(
            f"Archived campaign {campaign_id} ({reason}): {counts['articles']} articles, "
            f"{counts['posts']} posts, {counts['ratings']} ratings"
        )
        return record

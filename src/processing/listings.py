import logging
from typing import Dict, List, Optional

from core.entities import Listing
from processing.rotation import RotationSelector
from services.database import Database
from services.image_rehoster import ImageNamespace, ImageRehoster

logger = logging.getLogger(__name__)


class ListingSelector:
    """
    Picks the promotional listings of a campaign, a fixed quota per
    category, through the rotation selector.
    """

    def __init__(
        self,
        db: Database,
        rotation: RotationSelector,
        *,
        rehoster: Optional[ImageRehoster] = None,
        quotas: Optional[Dict[str, int]] = None,
    ):
        self.db = db
        self.rotation = rotation
        self.rehoster = rehoster
        self.quotas = quotas or {"Local": 1, "Greater": 2}

    async def select_for_campaign(self, campaign_id: int) -> List[Listing]:
        existing = await self.db.get_campaign_listings(campaign_id)
        if existing:
            logger.info(f"Campaign {campaign_id} already has {len(existing)} listings")
            return existing

        display_order = 0
        for category, quota in self.quotas.items():
            listings = {l.id: l for l in await self.db.get_active_listings(category)}
            if not listings:
                logger.warning(f"No active listings in category '{category}'")
                continue

            for listing_id in await self.rotation.draw_many(category, list(listings), quota):
                await self.db.add_campaign_listing(campaign_id, listing_id, display_order)
                display_order += 1
                await self._ensure_hosted_image(listings[listing_id])

        return await self.db.get_campaign_listings(campaign_id)

    async def _ensure_hosted_image(self, listing: Listing) -> None:
        if self.rehoster is None or listing.hosted_image_url or not listing.image_url:
            return
        hosted = await self.rehoster.rehost(listing.image_url, listing.title, ImageNamespace.LISTING)
        if hosted:
            await self.db.set_listing_hosted_image(listing.id, hosted)

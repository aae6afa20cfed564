"""
Source Factory - Creates ingestion adapters from stored feed descriptors.
"""
import logging
from typing import List, Optional

from core.entities import FeedSource
from ingestion.base import SourceAdapter
from ingestion.rss import RSSAdapter
from services.config import Config, get_enabled_feeds
from services.database import Database
from services.image_rehoster import ImageRehoster

logger = logging.getLogger(__name__)


def create_source_adapter(
    source: FeedSource,
    *,
    rehoster: Optional[ImageRehoster] = None,
    config: Optional[Config] = None,
) -> SourceAdapter:
    """
    Create a source adapter for a feed descriptor.

    Args:
        source: Stored feed descriptor
        rehoster: Used to rehost images from expiring CDNs at ingest time
        config: Application config supplying the CDN patterns

    Returns:
        Configured SourceAdapter instance

    Raises:
        ValueError: If source type is unknown
    """
    kind = source.kind.lower()

    if kind == "rss":
        kwargs = {}
        if config is not None:
            kwargs["ephemeral_patterns"] = config.images.ephemeral_cdn_patterns
        return RSSAdapter(source, rehoster=rehoster, **kwargs)

    else:
        raise ValueError(f"Unknown source type: {source.kind}")


def create_adapters(
    sources: List[FeedSource],
    *,
    rehoster: Optional[ImageRehoster] = None,
    config: Optional[Config] = None,
) -> List[SourceAdapter]:
    """
    Create adapters for all active sources; a bad descriptor is logged and skipped.
    """
    adapters = []

    for source in sources:
        if not source.active:
            continue
        try:
            adapters.append(create_source_adapter(source, rehoster=rehoster, config=config))
            logger.info(f"Created {source.kind} adapter: {source.name}")
        except Exception as e:
            logger.error(f"Failed to create adapter for {source.name}: {e}")

    return adapters


async def sync_feeds_from_config(db: Database, config: Config) -> int:
    """Seed/refresh the feeds table from the configured feed list."""
    count = 0
    for feed in get_enabled_feeds(config):
        await db.upsert_feed(feed.url, feed.name, kind=feed.type, active=feed.enabled)
        count += 1
    return count

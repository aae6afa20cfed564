"""
Command line entry point for the curation pipeline.

    curator run [--date YYYY-MM-DD]     curate a campaign now (default: tomorrow)
    curator tick                        run whatever scheduled jobs are due
    curator events [--date ...]         populate the event calendar
    curator road-work [--date ...]      refresh road work for a campaign
    curator sync-events [--date ...]    pull the event calendar into the events table
    curator import --file catalog.yml   import hand-maintained listings and events
    curator init-db                     create tables and sync configured feeds
"""
import argparse
import asyncio
import logging
import os
import random
import time
from dataclasses import dataclass
from datetime import date
from typing import Optional

from ingestion.catalog import import_catalog, load_catalog
from ingestion.events_api import EventSync, TribeEventsAdapter
from ingestion.source_factory import sync_feeds_from_config
from processing.events import EventPopulator
from processing.listings import ListingSelector
from processing.road_work import discover_road_work
from processing.rotation import RotationSelector
from services.alerts import AlertSink, create_alert_sink
from services.config import Config, load_config
from services.database import Database
from services.image_rehoster import ImageRehoster
from services.llm import OllamaOracle
from services.logging import setup_logging
from services.object_storage import GitHubStorage
from services.scheduler import ScheduleGate, campaign_date_for, next_run_time, parse_time
from workflows.curation import CampaignCurationWorkflow
from workflows.jobs import JobRunner

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: Config
    db: Database
    oracle: OllamaOracle
    road_work_oracle: Optional[OllamaOracle]
    rehoster: Optional[ImageRehoster]
    alerts: AlertSink
    events: EventPopulator
    event_sync: Optional[EventSync]
    curation: CampaignCurationWorkflow


def build_services(config: Config) -> Services:
    # ----------------------------
    # Initialize shared services
    # ----------------------------
    db = Database(config.DATABASE_PATH, timezone=config.schedule.timezone)
    rng = random.Random()

    oracle = OllamaOracle(
        base_url=config.OLLAMA_BASE_URL,
        model=config.OLLAMA_MODEL,
        temperature=config.OLLAMA_TEMPERATURE,
        timeout=config.OLLAMA_TIMEOUT,
    )

    road_work_oracle = None
    if config.road_work.enabled:
        road_work_oracle = OllamaOracle(
            base_url=config.OLLAMA_BASE_URL,
            model=config.road_work.model or config.OLLAMA_MODEL,
            temperature=config.OLLAMA_TEMPERATURE,
            timeout=config.OLLAMA_TIMEOUT,
        )

    rehoster = None
    if config.storage.configured:
        storage = GitHubStorage(
            token=config.storage.GITHUB_TOKEN,
            owner=config.storage.GITHUB_OWNER,
            repo=config.storage.GITHUB_REPO,
            branch=config.storage.branch,
        )
        rehoster = ImageRehoster(
            storage,
            timeout=config.images.download_timeout,
            listing_timeout=config.images.listing_timeout,
            max_bytes=config.images.max_bytes,
            listing_size=(config.images.listing_width, config.images.listing_height),
            jpeg_quality=config.images.jpeg_quality,
        )
    else:
        logger.warning("GitHub storage not configured, images keep their source URLs")

    alerts = create_alert_sink(config.SLACK_WEBHOOK_URL)

    events = EventPopulator(db, days=config.events.days, per_day=config.events.per_day, rng=rng)

    event_sync = None
    if config.events.sync_url:
        event_sync = EventSync(
            db,
            TribeEventsAdapter(
                config.events.sync_url,
                prefix=config.events.sync_prefix,
                user_agent=config.events.sync_user_agent,
            ),
            days=config.events.sync_days,
        )

    listings = None
    if config.listings.enabled:
        listings = ListingSelector(
            db,
            RotationSelector(db, rng),
            rehoster=rehoster,
            quotas=config.listings.quotas,
        )

    curation = CampaignCurationWorkflow(
        db=db,
        oracle=oracle,
        config=config,
        rehoster=rehoster,
        alerts=alerts,
        events=events,
        listings=listings,
        road_work_oracle=road_work_oracle,
    )

    return Services(
        config=config,
        db=db,
        oracle=oracle,
        road_work_oracle=road_work_oracle,
        rehoster=rehoster,
        alerts=alerts,
        events=events,
        event_sync=event_sync,
        curation=curation,
    )


async def prepare_database(services: Services) -> None:
    db_dir = os.path.dirname(services.config.DATABASE_PATH)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)
    await services.db.init_tables()
    count = await sync_feeds_from_config(services.db, services.config)
    logger.info(f"Synced {count} feeds from config")


async def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description='Local news curation pipeline')
    parser.add_argument('command', nargs='?', default='run',
                        choices=['run', 'tick', 'events', 'sync-events', 'road-work', 'import', 'init-db'],
                        help='Command to execute')
    parser.add_argument('--date', default=None,
                        help='Campaign date YYYY-MM-DD (default: tomorrow in the schedule time zone)')
    parser.add_argument('--file', default=None,
                        help='Catalog YAML for the import command')
    parser.add_argument('--debug', action='store_true',
                        help='Enable debug logging')
    args = parser.parse_args(argv)

    start_time = time.perf_counter()
    setup_logging(logging.DEBUG if args.debug else logging.INFO)

    config = load_config()
    services = build_services(config)
    await prepare_database(services)

    campaign_date = args.date or campaign_date_for(tz=config.schedule.timezone)

    if args.command == 'init-db':
        logger.info("Database ready")

    elif args.command == 'run':
        if not await services.oracle.health_check():
            logger.error("Oracle is not reachable, aborting run")
            return 1
        report = await services.curation.run(campaign_date)
        logger.info(
            f"Curation finished: {report.active_articles} active articles, "
            f"stages: {', '.join(report.completed_stages)}"
        )

    elif args.command == 'tick':
        runner = JobRunner(
            db=services.db,
            oracle=services.oracle,
            gate=ScheduleGate(
                services.db,
                timezone=config.schedule.timezone,
                window_minutes=config.schedule.window_minutes,
            ),
            schedule=config.schedule,
            curation=services.curation,
            events=services.events,
            event_sync=services.event_sync,
        )
        fired = await runner.tick()
        logger.info(f"Tick complete, fired: {', '.join(fired) or 'nothing'}")
        upcoming = next_run_time(parse_time(config.schedule.rss_processing_time), config.schedule.timezone)
        logger.info(f"Next curation run: {upcoming:%Y-%m-%d %H:%M %Z}")

    elif args.command == 'events':
        campaign = await services.db.get_campaign_by_date(campaign_date)
        if campaign is None:
            campaign = await services.db.create_campaign(campaign_date)
        rows = await services.events.populate(campaign)
        logger.info(f"Campaign {campaign_date} has {len(rows)} event rows")

    elif args.command == 'sync-events':
        if services.event_sync is None:
            logger.error("No event calendar configured (events.sync_url)")
            return 1
        await services.event_sync.run(date.fromisoformat(campaign_date))

    elif args.command == 'import':
        if not args.file:
            logger.error("The import command needs --file")
            return 1
        summary = await import_catalog(services.db, load_catalog(args.file))
        if summary.skipped:
            logger.warning(f"{summary.skipped} catalog entries were invalid")

    elif args.command == 'road-work':
        if services.road_work_oracle is None:
            logger.error("Road work is disabled in config")
            return 1
        campaign = await services.db.get_campaign_by_date(campaign_date)
        if campaign is None:
            logger.error(f"No campaign for {campaign_date}")
            return 1
        items = await discover_road_work(
            oracle=services.road_work_oracle,
            campaign_id=campaign.id,
            campaign_date=campaign_date,
            area=config.road_work.area,
            max_items=config.road_work.max_items,
        )
        if items:
            await services.db.replace_road_work(campaign.id, items)
        logger.info(f"Campaign {campaign_date} has {len(items)} road work items")

    end_time = time.perf_counter()
    logger.info(f"Total time: {end_time - start_time}")
    return 0


def cli() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    cli()

"""
Campaign curation workflow: ingestion through article selection for one edition.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from core.entities import ArchiveRecord, Campaign, CampaignStatus, can_transition
from core.errors import ArchiveError, CampaignStateError, CurationError
from ingestion.source_factory import create_adapters
from processing.deduplicator import find_duplicate_groups
from processing.evaluator import evaluate_batch
from processing.events import EventPopulator
from processing.fact_checker import checked_article
from processing.listings import ListingSelector
from processing.rewriter import rewrite_item, select_rewrite_candidates
from processing.road_work import discover_road_work
from processing.selector import select_top_articles
from processing.subject_line import generate_subject_line
from services.alerts import (
    AlertLevel,
    AlertSink,
    LogAlerts,
    low_article_message,
    run_complete_message,
    run_incomplete_message,
)
from services.archiver import CampaignArchiver
from services.config import Config
from services.database import Database
from services.image_rehoster import ImageNamespace, ImageRehoster
from services.llm import Oracle
from workflows.base import CampaignWorkflow

logger = logging.getLogger(__name__)


@dataclass
class CurationReport:
    campaign: Optional[Campaign] = None
    archive: Optional[ArchiveRecord] = None
    posts: int = 0
    source_failures: int = 0
    evaluated: int = 0
    blank_ratings: int = 0
    evaluation_failures: int = 0
    duplicate_groups: int = 0
    articles: int = 0
    fact_check_rejections: int = 0
    rewrite_failures: int = 0
    active_articles: int = 0
    images_rehosted: int = 0
    subject_line: Optional[str] = None
    completed_stages: List[str] = field(default_factory=list)


class CampaignCurationWorkflow(CampaignWorkflow):
    """
    Runs the curation stages in order for one campaign and owns its status.
    Only ``processing`` and ``draft`` are ever written here.
    """

    name = "curation"

    def __init__(
        self,
        *,
        db: Database,
        oracle: Oracle,
        config: Config,
        rehoster: Optional[ImageRehoster] = None,
        alerts: Optional[AlertSink] = None,
        events: Optional[EventPopulator] = None,
        listings: Optional[ListingSelector] = None,
        road_work_oracle: Optional[Oracle] = None,
        adapter_factory: Callable = create_adapters,
    ):
        self.db = db
        self.oracle = oracle
        self.config = config
        self.rehoster = rehoster
        self.alerts = alerts or LogAlerts()
        self.archiver = CampaignArchiver(db)
        self.events = events
        self.listings = listings
        self.road_work_oracle = road_work_oracle
        self.adapter_factory = adapter_factory

    async def run(self, campaign_date: str, now: Optional[datetime] = None) -> CurationReport:
        report = CurationReport()
        stage = "campaign"

        try:
            report.campaign = await self._prepare_campaign(campaign_date)
            campaign_id = report.campaign.id
            report.completed_stages.append(stage)

            stage = "archive"
            report.archive = await self._archive(report.campaign)
            report.completed_stages.append(stage)

            stage = "clear"
            cleared = await self.db.clear_campaign_items(campaign_id)
            logger.info(f"[{self.name}] Cleared {cleared} posts of campaign {campaign_id}")
            report.completed_stages.append(stage)

            stage = "ingest"
            await self._ingest(campaign_id, report, now)
            report.completed_stages.append(stage)

            stage = "evaluate"
            await self._evaluate(campaign_id, report)
            report.completed_stages.append(stage)

            stage = "deduplicate"
            duplicate_ids = await self._deduplicate(campaign_id, report)
            report.completed_stages.append(stage)

            stage = "rewrite"
            await self._rewrite_and_check(campaign_id, duplicate_ids, report)
            report.completed_stages.append(stage)

            stage = "select"
            active = await select_top_articles(self.db, campaign_id, self.config.selection.top_k)
            report.active_articles = len(active)
            report.completed_stages.append(stage)

            stage = "images"
            report.images_rehosted = await self._rehost_active_images(campaign_id)
            report.completed_stages.append(stage)

            stage = "subject_line"
            report.subject_line = await generate_subject_line(
                oracle=self.oracle, db=self.db, campaign_id=campaign_id
            )
            report.completed_stages.append(stage)

            stage = "auxiliary"
            await self._auxiliary_sections(report.campaign)
            report.completed_stages.append(stage)

            stage = "status"
            await self.db.set_campaign_status(campaign_id, CampaignStatus.DRAFT)
            report.campaign.status = CampaignStatus.DRAFT
            report.completed_stages.append(stage)

        except Exception as e:
            logger.exception(f"[{self.name}] Run for {campaign_date} failed during '{stage}': {e}")
            await self.alerts.send(
                run_incomplete_message(campaign_date, report.completed_stages, stage, str(e)),
                AlertLevel.ERROR,
            )
            raise

        await self._report(campaign_date, report)
        return report

    # ----------------------------
    # Stages
    # ----------------------------
    async def _prepare_campaign(self, campaign_date: str) -> Campaign:
        campaign = await self.db.get_campaign_by_date(campaign_date)
        if campaign is None:
            campaign = await self.db.create_campaign(campaign_date)
            logger.info(f"[{self.name}] Created campaign {campaign.id} for {campaign_date}")
            return campaign

        if campaign.status is CampaignStatus.PROCESSING:
            return campaign
        if not can_transition(campaign.status, CampaignStatus.PROCESSING):
            raise CampaignStateError(
                "Campaign cannot be reprocessed",
                {"campaign_id": campaign.id, "status": campaign.status.value},
            )

        await self.db.set_campaign_status(campaign.id, CampaignStatus.PROCESSING)
        campaign.status = CampaignStatus.PROCESSING
        logger.info(f"[{self.name}] Reprocessing campaign {campaign.id} for {campaign_date}")
        return campaign

    async def _archive(self, campaign: Campaign) -> Optional[ArchiveRecord]:
        try:
            return await self.archiver.archive(campaign.id)
        except ArchiveError as e:
            logger.warning(f"[{self.name}] Continuing without archive: {e}")
            await self.alerts.send(
                f"Archiving campaign {campaign.date} failed before reprocessing: {e}",
                AlertLevel.WARN,
            )
            return None

    async def _ingest(self, campaign_id: int, report: CurationReport, now: Optional[datetime]) -> None:
        feeds = await self.db.get_active_feeds()
        adapters = self.adapter_factory(feeds, rehoster=self.rehoster, config=self.config)

        for adapter in adapters:
            try:
                items = await adapter.fetch_items(now)
            except Exception as e:
                logger.error(f"[{self.name}] Source {adapter.name} failed: {e}", extra={"source": adapter.name})
                await self.db.record_feed_failure(adapter.source.id)
                report.source_failures += 1
                continue

            inserted = 0
            for item in items:
                if await self.db.insert_raw_item(campaign_id, adapter.source.id, item) is not None:
                    inserted += 1
            await self.db.record_feed_success(adapter.source.id, now)
            report.posts += inserted
            logger.info(f"[{self.name}] {adapter.name}: {inserted} new posts ({len(items) - inserted} already seen)")

        logger.info(f"[{self.name}] Ingested {report.posts} posts from {len(adapters)} sources")

    async def _evaluate(self, campaign_id: int, report: CurationReport) -> None:
        items = await self.db.get_raw_items(campaign_id)
        outcome = await evaluate_batch(
            oracle=self.oracle,
            items=items,
            settings=self.config.evaluation,
        )
        for evaluation in outcome.evaluations:
            await self.db.save_evaluation(evaluation)

        report.evaluated = len(outcome.evaluations)
        report.blank_ratings = outcome.blank
        report.evaluation_failures = outcome.failures

    async def _deduplicate(self, campaign_id: int, report: CurationReport) -> List[int]:
        items = await self.db.get_raw_items(campaign_id)
        outcome = await find_duplicate_groups(oracle=self.oracle, items=items, campaign_id=campaign_id)
        for group in outcome.groups:
            await self.db.save_duplicate_group(group)
        report.duplicate_groups = len(outcome.groups)
        return outcome.duplicate_item_ids()

    async def _rewrite_and_check(self, campaign_id: int, duplicate_ids: List[int], report: CurationReport) -> None:
        settings = self.config.rewriting
        items = await self.db.get_raw_items(campaign_id)
        evaluations = await self.db.get_evaluations(campaign_id)

        candidates = select_rewrite_candidates(
            items,
            evaluations,
            max_candidates=settings.max_candidates,
            exclude_ids=duplicate_ids if settings.exclude_duplicates else (),
        )
        logger.info(f"[{self.name}] Rewriting {len(candidates)} of {len(items)} posts")

        for item in candidates:
            try:
                rewrite = await rewrite_item(
                    oracle=self.oracle,
                    item=item,
                    min_words=settings.min_words,
                    max_words=settings.max_words,
                )
                article = await checked_article(
                    oracle=self.oracle,
                    rewrite=rewrite,
                    source=item,
                    pass_threshold=self.config.fact_check.pass_threshold,
                )
            except CurationError as e:
                logger.error(f"[{self.name}] Rewrite/fact check failed for post {item.id}: {e}")
                report.rewrite_failures += 1
                continue

            if article is None:
                report.fact_check_rejections += 1
                continue

            if await self.db.insert_article(article) is not None:
                report.articles += 1

        logger.info(
            f"[{self.name}] {report.articles} articles passed fact check, "
            f"{report.fact_check_rejections} rejected, {report.rewrite_failures} failed"
        )

    async def _rehost_active_images(self, campaign_id: int) -> int:
        if self.rehoster is None:
            return 0

        rehosted = 0
        for article in await self.db.get_active_articles(campaign_id):
            item = await self.db.get_raw_item(article.raw_item_id)
            if item is None or not item.image_url:
                continue
            hosted = await self.rehoster.rehost(item.image_url, article.headline, ImageNamespace.NEWS)
            if hosted and hosted != item.image_url:
                await self.db.update_raw_item_image(item.id, hosted)
                rehosted += 1
        return rehosted

    async def _auxiliary_sections(self, campaign: Campaign) -> None:
        """Events, listings and road work are best-effort sections."""
        if self.events is not None:
            try:
                await self.events.populate(campaign)
            except Exception as e:
                logger.warning(f"[{self.name}] Event population failed: {e}")

        if self.listings is not None:
            try:
                await self.listings.select_for_campaign(campaign.id)
            except Exception as e:
                logger.warning(f"[{self.name}] Listing selection failed: {e}")

        if self.road_work_oracle is not None and self.config.road_work.enabled:
            items = await discover_road_work(
                oracle=self.road_work_oracle,
                campaign_id=campaign.id,
                campaign_date=campaign.date,
                area=self.config.road_work.area,
                max_items=self.config.road_work.max_items,
            )
            if items:
                await self.db.replace_road_work(campaign.id, items)

    async def _report(self, campaign_date: str, report: CurationReport) -> None:
        logger.info(
            f"[{self.name}] Campaign {campaign_date} ready as draft: "
            f"{report.active_articles} active of {report.articles} articles"
        )
        await self.alerts.send(
            run_complete_message(campaign_date, report.active_articles, report.posts, report.archive),
            AlertLevel.INFO,
        )

        threshold = self.config.selection.low_article_threshold
        if report.active_articles <= threshold:
            await self.alerts.send(
                low_article_message(campaign_date, report.active_articles, threshold),
                AlertLevel.WARN,
            )

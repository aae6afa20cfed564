"""
Scheduled jobs driven by a periodic tick (e.g. cron every 5 minutes).
"""
import logging
from datetime import date, datetime
from typing import List, Optional

from ingestion.events_api import EventSync
from processing.events import EventPopulator
from processing.subject_line import generate_subject_line
from services.config import ScheduleConfig
from services.database import Database
from services.llm import Oracle
from services.scheduler import ScheduleGate, ScheduledJob, campaign_date_for, parse_time, shift_time
from workflows.curation import CampaignCurationWorkflow

logger = logging.getLogger(__name__)

EVENT_POPULATION = "event_population"
RSS_PROCESSING = "rss_processing"
SUBJECT_GENERATION = "subject_generation"


def build_jobs(schedule: ScheduleConfig) -> List[ScheduledJob]:
    """Events run 5 minutes before curation, the subject line backup 15 minutes after."""
    rss_time = parse_time(schedule.rss_processing_time)
    return [
        ScheduledJob(EVENT_POPULATION, shift_time(rss_time, -5), schedule.event_population_enabled),
        ScheduledJob(RSS_PROCESSING, rss_time, schedule.rss_processing_enabled),
        ScheduledJob(SUBJECT_GENERATION, shift_time(rss_time, 15), schedule.subject_generation_enabled),
    ]


class JobRunner:
    def __init__(
        self,
        *,
        db: Database,
        oracle: Oracle,
        gate: ScheduleGate,
        schedule: ScheduleConfig,
        curation: CampaignCurationWorkflow,
        events: EventPopulator,
        event_sync: Optional[EventSync] = None,
    ):
        self.db = db
        self.oracle = oracle
        self.gate = gate
        self.schedule = schedule
        self.curation = curation
        self.events = events
        self.event_sync = event_sync
        self.jobs = build_jobs(schedule)

    async def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Run every job whose gate opens now. Returns the names of the jobs that fired."""
        campaign_date = campaign_date_for(now, self.schedule.timezone)
        fired = []

        for job in self.jobs:
            if not await self.gate.should_fire(job, now):
                continue
            fired.append(job.name)
            try:
                await self.run_job(job.name, campaign_date, now)
            except Exception as e:
                logger.exception(f"Job '{job.name}' failed for {campaign_date}: {e}", extra={"job": job.name})

        return fired

    async def run_job(self, name: str, campaign_date: str, now: Optional[datetime] = None) -> None:
        if name == RSS_PROCESSING:
            await self.curation.run(campaign_date, now)

        elif name == EVENT_POPULATION:
            # Days the calendar cannot serve fall back to the stored events
            if self.event_sync is not None:
                await self.event_sync.run(date.fromisoformat(campaign_date))
            campaign = await self.db.get_campaign_by_date(campaign_date)
            if campaign is None:
                campaign = await self.db.create_campaign(campaign_date)
            await self.events.populate(campaign)

        elif name == SUBJECT_GENERATION:
            campaign = await self.db.get_campaign_by_date(campaign_date)
            if campaign is None:
                logger.warning(f"No campaign for {campaign_date}, skipping subject line")
                return
            await generate_subject_line(oracle=self.oracle, db=self.db, campaign_id=campaign.id)

        else:
            raise ValueError(f"Unknown job: {name}")

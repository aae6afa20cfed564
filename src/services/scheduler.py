"""
Once-per-day gating of periodic jobs in a fixed reference time zone.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from services.database import Database

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    time_of_day: time
    enabled: bool = True

    @property
    def marker_key(self) -> str:
        return f"last_{self.name}_run"


def parse_time(value: str) -> time:
    hour, minute = value.strip().split(":")[:2]
    return time(int(hour), int(minute))


def shift_time(value: time, minutes: int) -> time:
    shifted = datetime.combine(date(2000, 1, 1), value) + timedelta(minutes=minutes)
    return shifted.time()


def next_run_time(time_of_day: time, tz: str = "America/Chicago", now: Optional[datetime] = None) -> datetime:
    zone = ZoneInfo(tz)
    now = now.astimezone(zone) if now else datetime.now(zone)
    run = now.replace(hour=time_of_day.hour, minute=time_of_day.minute, second=0, microsecond=0)
    if run <= now:
        run += timedelta(days=1)
    return run


def campaign_date_for(now: Optional[datetime] = None, tz: str = "America/Chicago") -> str:
    """Evening processing prepares the edition for the next local day."""
    zone = ZoneInfo(tz)
    local = now.astimezone(zone) if now else datetime.now(zone)
    return (local.date() + timedelta(days=1)).isoformat()


class ScheduleGate:
    """
    A job fires when the local time is within the window around its time of
    day and its last-run marker is not today. The marker is moved to today
    before the job runs, so a crash can skip a day but never run it twice.
    """

    def __init__(self, db: Database, *, timezone: str = "America/Chicago", window_minutes: int = 15):
        self.db = db
        self.zone = ZoneInfo(timezone)
        self.window_minutes = window_minutes

    def local_now(self, now: Optional[datetime] = None) -> datetime:
        return now.astimezone(self.zone) if now else datetime.now(self.zone)

    def in_window(self, job: ScheduledJob, local: datetime) -> bool:
        current = local.hour * 60 + local.minute
        target = job.time_of_day.hour * 60 + job.time_of_day.minute
        diff = abs(current - target)
        # Windows may straddle midnight
        diff = min(diff, 24 * 60 - diff)
        return diff <= self.window_minutes

    async def should_fire(self, job: ScheduledJob, now: Optional[datetime] = None) -> bool:
        if not job.enabled:
            return False

        local = self.local_now(now)
        if not self.in_window(job, local):
            return False

        today = local.date().isoformat()
        claimed = await self.db.claim_daily_marker(job.marker_key, today)
        if claimed:
            logger.info(f"Job '{job.name}' fires for {today}", extra={"job": job.name})
        else:
            logger.debug(f"Job '{job.name}' already ran on {today}")
        return claimed

"""
Operational alerts. Delivery problems are logged and never raised.
"""
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

import httpx

from core.entities import ArchiveRecord

logger = logging.getLogger(__name__)


class AlertLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


EMOJI = {
    AlertLevel.INFO: ":information_source:",
    AlertLevel.WARN: ":warning:",
    AlertLevel.ERROR: ":rotating_light:",
}


class AlertSink(ABC):
    name: str

    @abstractmethod
    async def send(self, message: str, level: AlertLevel = AlertLevel.INFO) -> None:
        raise NotImplementedError


class LogAlerts(AlertSink):
    """Fallback sink when no webhook is configured."""

    name = "log"

    async def send(self, message: str, level: AlertLevel = AlertLevel.INFO) -> None:
        log = {AlertLevel.INFO: logger.info, AlertLevel.WARN: logger.warning}.get(level, logger.error)
        log(f"ALERT: {message}")


class SlackAlerts(AlertSink):
    name = "slack"

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.transport = transport

    async def send(self, message: str, level: AlertLevel = AlertLevel.INFO) -> None:
        text = f"{EMOJI[level]} {message}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                resp = await client.post(self.webhook_url, json={"text": text})
                if resp.status_code >= 400:
                    logger.error(f"Slack alert failed: {resp.status_code} {resp.text[:200]}")
        except Exception as e:
            logger.error(f"Slack alert error: {e}")


def create_alert_sink(webhook_url: Optional[str]) -> AlertSink:
    if webhook_url:
        return SlackAlerts(webhook_url)
    return LogAlerts()


def run_complete_message(
    campaign_date: str,
    active_articles: int,
    total_posts: int,
    archive: Optional[ArchiveRecord] = None,
) -> str:
    lines = [
        f"RSS processing complete for {campaign_date}",
        f"Posts ingested: {total_posts}",
        f"Active articles: {active_articles}",
    ]
    if archive is not None:
        counts = archive.counts
        lines.append(
            f"Archived previous run: {counts['articles']} articles, "
            f"{counts['posts']} posts, {counts['ratings']} ratings"
        )
    return "\n".join(lines)


def run_incomplete_message(campaign_date: str, completed: List[str], failed_step: str, error: str) -> str:
    return (
        f"RSS processing incomplete for {campaign_date}\n"
        f"Completed steps: {', '.join(completed) or 'none'}\n"
        f"Failed step: {failed_step}\n"
        f"Error: {error}"
    )


def low_article_message(campaign_date: str, active_articles: int, threshold: int) -> str:
    return (
        f"Low article count for {campaign_date}: {active_articles} active "
        f"(threshold {threshold}). Review the campaign before it is sent."
    )

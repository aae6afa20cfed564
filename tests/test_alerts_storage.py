from __future__ import annotations

import base64
import json
import logging

import httpx
import pytest

from core.entities import ArchiveRecord
from core.errors import StorageError
from services.alerts import (
    AlertLevel,
    LogAlerts,
    SlackAlerts,
    create_alert_sink,
    low_article_message,
    run_complete_message,
    run_incomplete_message,
)
from services.logging import JsonFormatter
from services.object_storage import GitHubStorage


def test_run_messages():
    archive = ArchiveRecord(
        id=1,
        campaign_id=1,
        reason="rss_processing_clear",
        snapshot={"posts": [{}, {}], "ratings": [{}], "articles": []},
    )

    complete = run_complete_message("2025-10-01", 4, 12, archive)
    incomplete = run_incomplete_message("2025-10-01", ["campaign", "archive"], "ingest", "boom")

    assert "Active articles: 4" in complete
    assert "0 articles, 2 posts, 1 ratings" in complete
    assert "Completed steps: campaign, archive" in incomplete
    assert "Failed step: ingest" in incomplete
    assert "threshold 3" in low_article_message("2025-10-01", 2, 3)


def test_alert_sink_selection():
    assert isinstance(create_alert_sink(None), LogAlerts)
    assert isinstance(create_alert_sink("https://hooks.slack.test/x"), SlackAlerts)


@pytest.mark.asyncio
async def test_slack_posts_text_payload():
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(200, text="ok")

    sink = SlackAlerts("https://hooks.slack.test/x", transport=httpx.MockTransport(handler))
    await sink.send("Low article count", AlertLevel.WARN)

    assert sent == [{"text": ":warning: Low article count"}]


@pytest.mark.asyncio
async def test_slack_failure_is_swallowed():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route to host")

    sink = SlackAlerts("https://hooks.slack.test/x", transport=httpx.MockTransport(handler))

    await sink.send("RSS processing complete")


def _github(handler) -> GitHubStorage:
    return GitHubStorage("token", "newsroom", "images", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_github_lookup():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer token"
        if request.url.path.endswith("known.jpg"):
            return httpx.Response(200, json={"download_url": "https://raw.test/known.jpg"})
        return httpx.Response(404, json={"message": "Not Found"})

    storage = _github(handler)

    assert await storage.get_existing_url("newsletter-images/known.jpg") == "https://raw.test/known.jpg"
    assert await storage.get_existing_url("newsletter-images/other.jpg") is None


@pytest.mark.asyncio
async def test_github_upload():
    received = {}

    def handler(request: httpx.Request) -> httpx.Response:
        received["method"] = request.method
        received["body"] = json.loads(request.content)
        return httpx.Response(201, json={"content": {"download_url": "https://raw.test/new.jpg"}})

    url = await _github(handler).upload(b"jpeg-bytes", "newsletter-images/new.jpg", "Add image")

    assert url == "https://raw.test/new.jpg"
    assert received["method"] == "PUT"
    assert base64.b64decode(received["body"]["content"]) == b"jpeg-bytes"
    assert received["body"]["branch"] == "main"


@pytest.mark.asyncio
async def test_github_errors_raise_storage_error():
    storage = _github(lambda request: httpx.Response(500, text="server error"))

    with pytest.raises(StorageError):
        await storage.get_existing_url("newsletter-images/x.jpg")
    with pytest.raises(StorageError):
        await storage.upload(b"x", "newsletter-images/x.jpg", "Add image")


def test_json_formatter_includes_context():
    record = logging.LogRecord("curator", logging.INFO, __file__, 1, "Ingested %d posts", (3,), None)
    record.campaign_id = 7

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Ingested 3 posts"
    assert payload["campaign_id"] == 7
    assert "stage" not in payload

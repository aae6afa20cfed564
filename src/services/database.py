import json
import aiosqlite
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo
import logging

from core.entities import (
    ArchiveRecord,
    Article,
    Campaign,
    CampaignEvent,
    CampaignStatus,
    DuplicateGroup,
    Evaluation,
    Event,
    FeedSource,
    Listing,
    RawItem,
    RoadWorkItem,
    RotationState,
)
from ingestion.base import IngestedItem

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _campaign(row) -> Campaign:
    return Campaign(
        id=row["id"],
        date=row["date"],
        status=CampaignStatus(row["status"]),
        subject_line=row["subject_line"],
        review_sent_at=_dt(row["review_sent_at"]),
        final_sent_at=_dt(row["final_sent_at"]),
        created_at=_dt(row["created_at"]),
    )


def _feed(row) -> FeedSource:
    return FeedSource(
        id=row["id"],
        url=row["url"],
        name=row["name"],
        kind=row["kind"],
        active=bool(row["active"]),
        processing_errors=row["processing_errors"],
        last_processed=_dt(row["last_processed"]),
    )


def _raw_item(row) -> RawItem:
    return RawItem(
        id=row["id"],
        campaign_id=row["campaign_id"],
        source_id=row["source_id"],
        external_id=row["external_id"],
        title=row["title"],
        description=row["description"],
        body=row["body"],
        author=row["author"],
        published_at=_dt(row["published_at"]),
        source_url=row["source_url"],
        image_url=row["image_url"],
    )


def _evaluation(row) -> Evaluation:
    return Evaluation(
        raw_item_id=row["raw_item_id"],
        interest=row["interest"],
        relevance=row["relevance"],
        impact=row["impact"],
        total_score=row["total_score"],
        reasoning=row["reasoning"] or "",
    )


def _article(row) -> Article:
    return Article(
        id=row["id"],
        raw_item_id=row["raw_item_id"],
        campaign_id=row["campaign_id"],
        headline=row["headline"],
        body=row["body"],
        word_count=row["word_count"],
        fact_check_score=row["fact_check_score"],
        fact_check_details=row["fact_check_details"] or "",
        source_url=row["source_url"] or "",
        author=row["author"],
        rank=row["rank"],
        is_active=bool(row["is_active"]),
        skipped=bool(row["skipped"]),
    )


def _event(row) -> Event:
    return Event(
        id=row["id"],
        external_id=row["external_id"],
        title=row["title"],
        description=row["description"] or "",
        start_date=datetime.fromisoformat(row["start_date"]),
        end_date=_dt(row["end_date"]),
        venue=row["venue"],
        address=row["address"],
        url=row["url"],
        image_url=row["image_url"],
        featured=bool(row["featured"]),
        paid_placement=bool(row["paid_placement"]),
        active=bool(row["active"]),
    )


def _campaign_event(row) -> CampaignEvent:
    return CampaignEvent(
        campaign_id=row["campaign_id"],
        event_id=row["event_id"],
        event_date=row["event_date"],
        is_selected=bool(row["is_selected"]),
        is_featured=bool(row["is_featured"]),
        display_order=row["display_order"],
    )


def _listing(row) -> Listing:
    return Listing(
        id=row["id"],
        title=row["title"],
        category=row["category"],
        url=row["url"],
        image_url=row["image_url"],
        hosted_image_url=row["hosted_image_url"],
        active=bool(row["active"]),
    )


class Database:
    def __init__(self, path: str, timezone: Optional[str] = None):
        self.path = path
        self.zone = ZoneInfo(timezone) if timezone else None

    def _local(self, value: Optional[datetime]) -> Optional[datetime]:
        """Aware datetimes become naive wall-clock time in the newsletter zone."""
        if value is None or value.tzinfo is None or self.zone is None:
            return value
        return value.astimezone(self.zone).replace(tzinfo=None)

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = await aiosqlite.connect(self.path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL;")
        await conn.execute("PRAGMA foreign_keys=ON;")
        try:
            yield conn
        finally:
            await conn.close()

    async def execute(self, query: str, params: tuple = ()) -> int:
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    async def fetchone(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()

    async def fetchall(self, query: str, params: tuple = ()):
        async with self.connect() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchall()

    async def init_tables(self) -> None:
        """Initialize database tables for campaign curation."""
        async with self.connect() as conn:
            await conn.executescript("""
                CREATE TABLE IF NOT EXISTS campaigns (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    date TEXT NOT NULL UNIQUE,
                    status TEXT NOT NULL DEFAULT 'processing'
                        CHECK (status IN ('processing', 'draft', 'in_review', 'sent', 'failed')),
                    subject_line TEXT,
                    review_sent_at TEXT,
                    final_sent_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                );

                CREATE TABLE IF NOT EXISTS feeds (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    url TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    kind TEXT NOT NULL DEFAULT 'rss',
                    active INTEGER NOT NULL DEFAULT 1,
                    processing_errors INTEGER NOT NULL DEFAULT 0,
                    last_processed TEXT
                );

                CREATE TABLE IF NOT EXISTS raw_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    campaign_id INTEGER NOT NULL REFERENCES campaigns(id),
                    source_id INTEGER NOT NULL REFERENCES feeds(id),
                    external_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    body TEXT NOT NULL DEFAULT '',
                    author TEXT,
                    published_at TEXT,
                    source_url TEXT NOT NULL DEFAULT '',
                    image_url TEXT,
                    created_at TEXT NOT NULL,
                    UNIQUE (campaign_id, source_id, external_id)
                );

                CREATE TABLE IF NOT EXISTS evaluations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    raw_item_id INTEGER NOT NULL UNIQUE REFERENCES raw_items(id) ON DELETE CASCADE,
                    interest INTEGER,
                    relevance INTEGER,
                    impact INTEGER,
                    total_score REAL,
                    reasoning TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS duplicate_groups (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    campaign_id INTEGER NOT NULL REFERENCES campaigns(id),
                    primary_item_id INTEGER NOT NULL REFERENCES raw_items(id) ON DELETE CASCADE,
                    topic TEXT NOT NULL DEFAULT '',
                    explanation TEXT NOT NULL DEFAULT ''
                );

                CREATE TABLE IF NOT EXISTS duplicate_members (
                    group_id INTEGER NOT NULL REFERENCES duplicate_groups(id) ON DELETE CASCADE,
                    raw_item_id INTEGER NOT NULL REFERENCES raw_items(id) ON DELETE CASCADE,
                    similarity REAL NOT NULL,
                    PRIMARY KEY (group_id, raw_item_id)
                );

                CREATE TABLE IF NOT EXISTS articles (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    campaign_id INTEGER NOT NULL REFERENCES campaigns(id),
                    raw_item_id INTEGER NOT NULL UNIQUE REFERENCES raw_items(id) ON DELETE CASCADE,
                    headline TEXT NOT NULL,
                    body TEXT NOT NULL,
                    word_count INTEGER NOT NULL,
                    fact_check_score REAL NOT NULL,
                    fact_check_details TEXT,
                    source_url TEXT,
                    author TEXT,
                    rank INTEGER,
                    is_active INTEGER NOT NULL DEFAULT 0,
                    skipped INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    external_id TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    description TEXT,
                    start_date TEXT NOT NULL,
                    end_date TEXT,
                    venue TEXT,
                    address TEXT,
                    url TEXT,
                    image_url TEXT,
                    featured INTEGER NOT NULL DEFAULT 0,
                    paid_placement INTEGER NOT NULL DEFAULT 0,
                    active INTEGER NOT NULL DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS campaign_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    campaign_id INTEGER NOT NULL REFERENCES campaigns(id),
                    event_id INTEGER NOT NULL REFERENCES events(id),
                    event_date TEXT NOT NULL,
                    is_selected INTEGER NOT NULL DEFAULT 1,
                    is_featured INTEGER NOT NULL DEFAULT 0,
                    display_order INTEGER NOT NULL DEFAULT 0,
                    UNIQUE (campaign_id, event_id, event_date)
                );

                CREATE TABLE IF NOT EXISTS rotation_state (
                    category TEXT PRIMARY KEY,
                    current_index INTEGER NOT NULL DEFAULT 0,
                    shuffle_order TEXT NOT NULL DEFAULT '[]',
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS listings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    category TEXT NOT NULL,
                    url TEXT,
                    image_url TEXT,
                    hosted_image_url TEXT,
                    active INTEGER NOT NULL DEFAULT 1,
                    UNIQUE(title, category)
                );

                CREATE TABLE IF NOT EXISTS campaign_listings (
                    campaign_id INTEGER NOT NULL REFERENCES campaigns(id),
                    listing_id INTEGER NOT NULL REFERENCES listings(id),
                    display_order INTEGER NOT NULL,
                    PRIMARY KEY (campaign_id, listing_id)
                );

                CREATE TABLE IF NOT EXISTS archives (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    campaign_id INTEGER NOT NULL,
                    reason TEXT NOT NULL,
                    snapshot TEXT NOT NULL,
                    article_count INTEGER NOT NULL,
                    post_count INTEGER NOT NULL,
                    rating_count INTEGER NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TRIGGER IF NOT EXISTS archives_immutable
                BEFORE UPDATE ON archives
                BEGIN
                    SELECT RAISE(ABORT, 'archive records are immutable');
                END;

                CREATE TABLE IF NOT EXISTS app_settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS road_work_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    campaign_id INTEGER NOT NULL REFERENCES campaigns(id),
                    road_name TEXT NOT NULL,
                    road_range TEXT,
                    city_or_township TEXT,
                    reason TEXT,
                    start_date TEXT,
                    expected_reopen TEXT,
                    source_url TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_raw_items_campaign ON raw_items(campaign_id);
                CREATE INDEX IF NOT EXISTS idx_articles_campaign ON articles(campaign_id);
                CREATE INDEX IF NOT EXISTS idx_campaign_events_day ON campaign_events(campaign_id, event_date);
                CREATE INDEX IF NOT EXISTS idx_archives_campaign ON archives(campaign_id);
            """)
            await conn.commit()
            logger.info("Database tables initialized")

    # ----------------------------
    # Campaigns
    # ----------------------------
    async def get_campaign(self, campaign_id: int) -> Optional[Campaign]:
        row = await self.fetchone("SELECT * FROM campaigns WHERE id = ?", (campaign_id,))
        return _campaign(row) if row else None

    async def get_campaign_by_date(self, campaign_date: str) -> Optional[Campaign]:
        row = await self.fetchone("SELECT * FROM campaigns WHERE date = ?", (campaign_date,))
        return _campaign(row) if row else None

    async def create_campaign(self, campaign_date: str) -> Campaign:
        """Create the edition for a date; returns the existing one if another run got there first."""
        await self.execute(
            "INSERT OR IGNORE INTO campaigns (date, status, created_at) VALUES (?, ?, ?)",
            (campaign_date, CampaignStatus.PROCESSING.value, _now()),
        )
        return await self.get_campaign_by_date(campaign_date)

    async def set_campaign_status(self, campaign_id: int, status: CampaignStatus) -> None:
        await self.execute(
            "UPDATE campaigns SET status = ?, updated_at = ? WHERE id = ?",
            (status.value, _now(), campaign_id),
        )

    async def set_subject_line_if_missing(self, campaign_id: int, subject_line: str) -> bool:
        """Write the subject line only if none exists yet."""
        changed = await self.execute(
            """
            UPDATE campaigns SET subject_line = ?, updated_at = ?
            WHERE id = ? AND (subject_line IS NULL OR TRIM(subject_line) = '')
            """,
            (subject_line, _now(), campaign_id),
        )
        return changed == 1

    # ----------------------------
    # Feeds
    # ----------------------------
    async def upsert_feed(self, url: str, name: str, kind: str = "rss", active: bool = True) -> int:
        async with self.connect() as conn:
            await conn.execute(
                """
                INSERT INTO feeds (url, name, kind, active) VALUES (?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET name = excluded.name, kind = excluded.kind,
                    active = excluded.active
                """,
                (url, name, kind, int(active)),
            )
            await conn.commit()
            cursor = await conn.execute("SELECT id FROM feeds WHERE url = ?", (url,))
            row = await cursor.fetchone()
            return row["id"]

    async def get_active_feeds(self) -> List[FeedSource]:
        rows = await self.fetchall("SELECT * FROM feeds WHERE active = 1 ORDER BY id")
        return [_feed(row) for row in rows]

    async def record_feed_success(self, feed_id: int, when: Optional[datetime] = None) -> None:
        await self.execute(
            "UPDATE feeds SET processing_errors = 0, last_processed = ? WHERE id = ?",
            (_iso(when) or _now(), feed_id),
        )

    async def record_feed_failure(self, feed_id: int) -> None:
        await self.execute(
            "UPDATE feeds SET processing_errors = processing_errors + 1 WHERE id = ?",
            (feed_id,),
        )

    # ----------------------------
    # Raw items
    # ----------------------------
    async def insert_raw_item(self, campaign_id: int, source_id: int, item: IngestedItem) -> Optional[int]:
        """Insert an ingested post. Returns None when the external id was already seen."""
        async with self.connect() as conn:
            cursor = await conn.execute(
                """
                INSERT OR IGNORE INTO raw_items
                (campaign_id, source_id, external_id, title, description, body, author,
                 published_at, source_url, image_url, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    campaign_id,
                    source_id,
                    item.external_id,
                    item.title,
                    item.description,
                    item.body,
                    item.author,
                    _iso(item.published_at),
                    item.source_url,
                    item.image_url,
                    _now(),
                ),
            )
            await conn.commit()
            return cursor.lastrowid if cursor.rowcount == 1 else None

    async def get_raw_items(self, campaign_id: int) -> List[RawItem]:
        rows = await self.fetchall(
            "SELECT * FROM raw_items WHERE campaign_id = ? ORDER BY id", (campaign_id,)
        )
        return [_raw_item(row) for row in rows]

    async def get_raw_item(self, raw_item_id: int) -> Optional[RawItem]:
        row = await self.fetchone("SELECT * FROM raw_items WHERE id = ?", (raw_item_id,))
        return _raw_item(row) if row else None

    async def update_raw_item_image(self, raw_item_id: int, image_url: str) -> None:
        await self.execute(
            "UPDATE raw_items SET image_url = ? WHERE id = ?", (image_url, raw_item_id)
        )

    async def clear_campaign_items(self, campaign_id: int) -> int:
        """Delete the working set of a campaign. Ratings and members cascade."""
        async with self.connect() as conn:
            await conn.execute("DELETE FROM duplicate_groups WHERE campaign_id = ?", (campaign_id,))
            await conn.execute("DELETE FROM articles WHERE campaign_id = ?", (campaign_id,))
            await conn.execute("DELETE FROM road_work_items WHERE campaign_id = ?", (campaign_id,))
            cursor = await conn.execute("DELETE FROM raw_items WHERE campaign_id = ?", (campaign_id,))
            await conn.commit()
            return cursor.rowcount

    # ----------------------------
    # Evaluations
    # ----------------------------
    async def save_evaluation(self, evaluation: Evaluation) -> None:
        await self.execute(
            """
            INSERT OR REPLACE INTO evaluations
            (raw_item_id, interest, relevance, impact, total_score, reasoning, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                evaluation.raw_item_id,
                evaluation.interest,
                evaluation.relevance,
                evaluation.impact,
                evaluation.total_score,
                evaluation.reasoning,
                _now(),
            ),
        )

    async def get_evaluations(self, campaign_id: int) -> Dict[int, Evaluation]:
        rows = await self.fetchall(
            """
            SELECT e.* FROM evaluations e
            JOIN raw_items r ON r.id = e.raw_item_id
            WHERE r.campaign_id = ?
            """,
            (campaign_id,),
        )
        return {row["raw_item_id"]: _evaluation(row) for row in rows}

    # ----------------------------
    # Duplicate groups
    # ----------------------------
    async def save_duplicate_group(self, group: DuplicateGroup) -> int:
        async with self.connect() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO duplicate_groups (campaign_id, primary_item_id, topic, explanation)
                VALUES (?, ?, ?, ?)
                """,
                (group.campaign_id, group.primary_item_id, group.topic, group.explanation),
            )
            group_id = cursor.lastrowid
            await conn.executemany(
                """
                INSERT OR IGNORE INTO duplicate_members (group_id, raw_item_id, similarity)
                VALUES (?, ?, ?)
                """,
                [(group_id, m.raw_item_id, m.similarity) for m in group.members],
            )
            await conn.commit()
            return group_id

    # ----------------------------
    # Articles
    # ----------------------------
    async def insert_article(self, article: Article) -> Optional[int]:
        """Insert a fact-checked article. At most one article exists per raw item."""
        async with self.connect() as conn:
            cursor = await conn.execute(
                """
                INSERT OR IGNORE INTO articles
                (campaign_id, raw_item_id, headline, body, word_count, fact_check_score,
                 fact_check_details, source_url, author, rank, is_active, skipped, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    article.campaign_id,
                    article.raw_item_id,
                    article.headline,
                    article.body,
                    article.word_count,
                    article.fact_check_score,
                    article.fact_check_details,
                    article.source_url,
                    article.author,
                    article.rank,
                    int(article.is_active),
                    int(article.skipped),
                    _now(),
                ),
            )
            await conn.commit()
            return cursor.lastrowid if cursor.rowcount == 1 else None

    async def get_articles(self, campaign_id: int) -> List[Article]:
        rows = await self.fetchall(
            "SELECT * FROM articles WHERE campaign_id = ? ORDER BY id", (campaign_id,)
        )
        return [_article(row) for row in rows]

    async def get_articles_with_scores(self, campaign_id: int) -> List[Tuple[Article, Optional[float]]]:
        """Articles in insertion order joined to the total score of their source post."""
        rows = await self.fetchall(
            """
            SELECT a.*, e.total_score AS total_score FROM articles a
            LEFT JOIN evaluations e ON e.raw_item_id = a.raw_item_id
            WHERE a.campaign_id = ?
            ORDER BY a.id
            """,
            (campaign_id,),
        )
        return [(_article(row), row["total_score"]) for row in rows]

    async def apply_selection(self, campaign_id: int, ranks: Dict[int, Optional[int]]) -> None:
        """Set rank and is_active for every article of the campaign in one transaction."""
        async with self.connect() as conn:
            await conn.execute(
                "UPDATE articles SET is_active = 0, rank = NULL WHERE campaign_id = ?",
                (campaign_id,),
            )
            await conn.executemany(
                "UPDATE articles SET is_active = 1, rank = ? WHERE id = ? AND campaign_id = ?",
                [(rank, article_id, campaign_id) for article_id, rank in ranks.items() if rank is not None],
            )
            await conn.commit()

    async def get_active_articles(self, campaign_id: int) -> List[Article]:
        rows = await self.fetchall(
            """
            SELECT * FROM articles
            WHERE campaign_id = ? AND is_active = 1 AND skipped = 0
            ORDER BY rank
            """,
            (campaign_id,),
        )
        return [_article(row) for row in rows]

    # ----------------------------
    # Events
    # ----------------------------
    async def upsert_event(
        self,
        *,
        external_id: str,
        title: str,
        start_date: datetime,
        end_date: Optional[datetime] = None,
        description: str = "",
        venue: Optional[str] = None,
        address: Optional[str] = None,
        url: Optional[str] = None,
        image_url: Optional[str] = None,
        featured: Optional[bool] = None,
        paid_placement: Optional[bool] = None,
        active: bool = True,
    ) -> int:
        """
        Insert or refresh an event by external id. Times are stored as local
        wall-clock time. ``featured`` and ``paid_placement`` left as None keep
        the stored flags, so a calendar sync never clears a manual placement.
        """
        flags = tuple(None if flag is None else int(flag) for flag in (featured, paid_placement))
        async with self.connect() as conn:
            await conn.execute(
                """
                INSERT INTO events
                (external_id, title, description, start_date, end_date, venue, address, url,
                 image_url, featured, paid_placement, active)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, COALESCE(?, 0), COALESCE(?, 0), ?)
                ON CONFLICT(external_id) DO UPDATE SET
                    title = excluded.title, description = excluded.description,
                    start_date = excluded.start_date, end_date = excluded.end_date,
                    venue = excluded.venue, address = excluded.address, url = excluded.url,
                    image_url = excluded.image_url,
                    featured = COALESCE(?, events.featured),
                    paid_placement = COALESCE(?, events.paid_placement),
                    active = excluded.active
                """,
                (
                    external_id, title, description,
                    self._local(start_date).isoformat(), _iso(self._local(end_date)),
                    venue, address, url, image_url, *flags, int(active), *flags,
                ),
            )
            await conn.commit()
            cursor = await conn.execute("SELECT id FROM events WHERE external_id = ?", (external_id,))
            row = await cursor.fetchone()
            return row["id"]

    async def get_events_for_day(self, day: date) -> List[Event]:
        """
        Active events whose [start, end] span overlaps the day, oldest first.
        Days are compared on the stored wall-clock date, never shifted to UTC.
        """
        rows = await self.fetchall(
            """
            SELECT * FROM events
            WHERE active = 1
              AND substr(start_date, 1, 10) <= ?
              AND substr(COALESCE(end_date, start_date), 1, 10) >= ?
            ORDER BY start_date, id
            """,
            (day.isoformat(), day.isoformat()),
        )
        return [_event(row) for row in rows]

    async def get_campaign_events(self, campaign_id: int, event_date: Optional[str] = None) -> List[CampaignEvent]:
        if event_date is None:
            rows = await self.fetchall(
                "SELECT * FROM campaign_events WHERE campaign_id = ? ORDER BY event_date, display_order",
                (campaign_id,),
            )
        else:
            rows = await self.fetchall(
                """
                SELECT * FROM campaign_events WHERE campaign_id = ? AND event_date = ?
                ORDER BY display_order
                """,
                (campaign_id, event_date),
            )
        return [_campaign_event(row) for row in rows]

    async def insert_campaign_events(self, rows: List[CampaignEvent]) -> int:
        async with self.connect() as conn:
            cursor = await conn.executemany(
                """
                INSERT OR IGNORE INTO campaign_events
                (campaign_id, event_id, event_date, is_selected, is_featured, display_order)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (r.campaign_id, r.event_id, r.event_date, int(r.is_selected), int(r.is_featured), r.display_order)
                    for r in rows
                ],
            )
            await conn.commit()
            return cursor.rowcount

    # ----------------------------
    # Rotation state
    # ----------------------------
    async def get_rotation_state(self, category: str) -> Optional[RotationState]:
        row = await self.fetchone("SELECT * FROM rotation_state WHERE category = ?", (category,))
        if row is None:
            return None
        return RotationState(
            category=row["category"],
            current_index=row["current_index"],
            shuffle_order=json.loads(row["shuffle_order"]),
        )

    async def save_rotation_state(self, state: RotationState) -> None:
        """Persist cursor and shuffle order together in a single statement."""
        await self.execute(
            """
            INSERT INTO rotation_state (category, current_index, shuffle_order, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(category) DO UPDATE SET
                current_index = excluded.current_index,
                shuffle_order = excluded.shuffle_order,
                updated_at = excluded.updated_at
            """,
            (state.category, state.current_index, json.dumps(state.shuffle_order), _now()),
        )

    # ----------------------------
    # Listings
    # ----------------------------
    async def add_listing(
        self,
        title: str,
        category: str,
        url: Optional[str] = None,
        image_url: Optional[str] = None,
        active: bool = True,
    ) -> int:
        """Insert or refresh a listing keyed by title and category. A new image drops the hosted copy."""
        async with self.connect() as conn:
            await conn.execute(
                """
                INSERT INTO listings (title, category, url, image_url, active) VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(title, category) DO UPDATE SET
                    url = excluded.url,
                    hosted_image_url = CASE WHEN listings.image_url IS excluded.image_url
                        THEN listings.hosted_image_url ELSE NULL END,
                    image_url = excluded.image_url,
                    active = excluded.active
                """,
                (title, category, url, image_url, int(active)),
            )
            await conn.commit()
            cursor = await conn.execute(
                "SELECT id FROM listings WHERE title = ? AND category = ?", (title, category)
            )
            row = await cursor.fetchone()
            return row["id"]

    async def get_active_listings(self, category: str) -> List[Listing]:
        rows = await self.fetchall(
            "SELECT * FROM listings WHERE category = ? AND active = 1 ORDER BY id", (category,)
        )
        return [_listing(row) for row in rows]

    async def get_campaign_listings(self, campaign_id: int) -> List[Listing]:
        rows = await self.fetchall(
            """
            SELECT l.* FROM campaign_listings cl
            JOIN listings l ON l.id = cl.listing_id
            WHERE cl.campaign_id = ?
            ORDER BY cl.display_order
            """,
            (campaign_id,),
        )
        return [_listing(row) for row in rows]

    async def add_campaign_listing(self, campaign_id: int, listing_id: int, display_order: int) -> None:
        await self.execute(
            """
            INSERT OR IGNORE INTO campaign_listings (campaign_id, listing_id, display_order)
            VALUES (?, ?, ?)
            """,
            (campaign_id, listing_id, display_order),
        )

    async def set_listing_hosted_image(self, listing_id: int, hosted_url: str) -> None:
        await self.execute(
            "UPDATE listings SET hosted_image_url = ? WHERE id = ?", (hosted_url, listing_id)
        )

    # ----------------------------
    # Archives
    # ----------------------------
    async def snapshot_campaign(self, campaign_id: int) -> Dict[str, List[Dict[str, Any]]]:
        posts = await self.fetchall(
            "SELECT * FROM raw_items WHERE campaign_id = ? ORDER BY id", (campaign_id,)
        )
        ratings = await self.fetchall(
            """
            SELECT e.* FROM evaluations e
            JOIN raw_items r ON r.id = e.raw_item_id
            WHERE r.campaign_id = ?
            ORDER BY e.raw_item_id
            """,
            (campaign_id,),
        )
        articles = await self.fetchall(
            "SELECT * FROM articles WHERE campaign_id = ? ORDER BY rank IS NULL, rank, id",
            (campaign_id,),
        )
        return {
            "posts": [dict(row) for row in posts],
            "ratings": [dict(row) for row in ratings],
            "articles": [dict(row) for row in articles],
        }

    async def insert_archive(self, campaign_id: int, reason: str, snapshot: Dict[str, Any]) -> ArchiveRecord:
        created_at = _now()
        async with self.connect() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO archives
                (campaign_id, reason, snapshot, article_count, post_count, rating_count, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    campaign_id,
                    reason,
                    json.dumps(snapshot, default=str),
                    len(snapshot.get("articles", [])),
                    len(snapshot.get("posts", [])),
                    len(snapshot.get("ratings", [])),
                    created_at,
                ),
            )
            await conn.commit()
            return ArchiveRecord(
                id=cursor.lastrowid,
                campaign_id=campaign_id,
                reason=reason,
                snapshot=snapshot,
                created_at=datetime.fromisoformat(created_at),
            )

    async def get_archives(self, campaign_id: int) -> List[ArchiveRecord]:
        rows = await self.fetchall(
            "SELECT * FROM archives WHERE campaign_id = ? ORDER BY id", (campaign_id,)
        )
        return [
            ArchiveRecord(
                id=row["id"],
                campaign_id=row["campaign_id"],
                reason=row["reason"],
                snapshot=json.loads(row["snapshot"]),
                created_at=_dt(row["created_at"]),
            )
            for row in rows
        ]

    # ----------------------------
    # App settings
    # ----------------------------
    async def get_setting(self, key: str) -> Optional[str]:
        row = await self.fetchone("SELECT value FROM app_settings WHERE key = ?", (key,))
        return row["value"] if row else None

    async def claim_daily_marker(self, key: str, today: str) -> bool:
        """
        Compare-and-set of a last-run marker. Returns True only for the
        caller that moved the marker to ``today``.
        """
        changed = await self.execute(
            """
            INSERT INTO app_settings (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            WHERE app_settings.value <> excluded.value
            """,
            (key, today, _now()),
        )
        return changed == 1

    # ----------------------------
    # Road work
    # ----------------------------
    async def replace_road_work(self, campaign_id: int, items: List[RoadWorkItem]) -> None:
        async with self.connect() as conn:
            await conn.execute("DELETE FROM road_work_items WHERE campaign_id = ?", (campaign_id,))
            await conn.executemany(
                """
                INSERT INTO road_work_items
                (campaign_id, road_name, road_range, city_or_township, reason, start_date,
                 expected_reopen, source_url)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        campaign_id, i.road_name, i.road_range, i.city_or_township, i.reason,
                        i.start_date, i.expected_reopen, i.source_url,
                    )
                    for i in items
                ],
            )
            await conn.commit()

    async def get_road_work(self, campaign_id: int) -> List[RoadWorkItem]:
        rows = await self.fetchall(
            "SELECT * FROM road_work_items WHERE campaign_id = ? ORDER BY id", (campaign_id,)
        )
        return [
            RoadWorkItem(
                campaign_id=row["campaign_id"],
                road_name=row["road_name"],
                road_range=row["road_range"] or "",
                city_or_township=row["city_or_township"] or "",
                reason=row["reason"] or "",
                start_date=row["start_date"] or "",
                expected_reopen=row["expected_reopen"] or "",
                source_url=row["source_url"] or "",
            )
            for row in rows
        ]

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Dict, Any


class CampaignStatus(str, Enum):
    PROCESSING = "processing"
    DRAFT = "draft"
    IN_REVIEW = "in_review"
    SENT = "sent"
    FAILED = "failed"


# Target statuses reachable from each status. A curation run may restart
# any edition that has not gone out yet.
ALLOWED_TRANSITIONS: Dict[CampaignStatus, frozenset] = {
    CampaignStatus.PROCESSING: frozenset({CampaignStatus.PROCESSING, CampaignStatus.DRAFT}),
    CampaignStatus.DRAFT: frozenset({CampaignStatus.PROCESSING, CampaignStatus.IN_REVIEW}),
    CampaignStatus.IN_REVIEW: frozenset(
        {CampaignStatus.PROCESSING, CampaignStatus.SENT, CampaignStatus.FAILED}
    ),
    CampaignStatus.SENT: frozenset(),
    CampaignStatus.FAILED: frozenset({CampaignStatus.PROCESSING}),
}


def can_transition(current: CampaignStatus, target: CampaignStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass
class Campaign:
    """
    One day's edition, keyed by its ISO date.
    """
    id: int
    date: str
    status: CampaignStatus
    subject_line: Optional[str] = None
    review_sent_at: Optional[datetime] = None
    final_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class FeedSource:
    """
    A content source descriptor and its running error bookkeeping.
    """
    id: int
    url: str
    name: str
    kind: str = "rss"
    active: bool = True
    processing_errors: int = 0
    last_processed: Optional[datetime] = None


@dataclass
class RawItem:
    """
    One ingested post owned by a campaign.
    """
    id: int
    campaign_id: int
    source_id: int
    external_id: str
    title: str
    description: str
    body: str
    author: Optional[str]
    published_at: Optional[datetime]
    source_url: str
    image_url: Optional[str] = None

    @property
    def text(self) -> str:
        return f"{self.title}\n{self.description}\n{self.body}"


@dataclass(frozen=True)
class Evaluation:
    """
    Oracle rating of a raw item. All scores are None for a blank rating.
    """
    raw_item_id: int
    interest: Optional[int]
    relevance: Optional[int]
    impact: Optional[int]
    total_score: Optional[float]
    reasoning: str = ""

    @property
    def is_blank(self) -> bool:
        return self.total_score is None


@dataclass(frozen=True)
class DuplicateMember:
    raw_item_id: int
    similarity: float


@dataclass
class DuplicateGroup:
    """
    Cluster of raw items that cover the same story.
    """
    campaign_id: int
    primary_item_id: int
    topic: str
    members: List[DuplicateMember] = field(default_factory=list)
    explanation: str = ""
    id: Optional[int] = None


@dataclass
class Article:
    """
    A rewritten and fact-checked candidate for publication.
    """
    raw_item_id: int
    campaign_id: int
    headline: str
    body: str
    word_count: int
    fact_check_score: float
    fact_check_details: str = ""
    source_url: str = ""
    author: Optional[str] = None
    rank: Optional[int] = None
    is_active: bool = False
    skipped: bool = False
    id: Optional[int] = None


@dataclass
class RotationState:
    """
    Persisted shuffle order and cursor for one listing category.
    """
    category: str
    current_index: int = 0
    shuffle_order: List[int] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.current_index >= len(self.shuffle_order)


@dataclass(frozen=True)
class Event:
    id: int
    external_id: str
    title: str
    start_date: datetime
    end_date: Optional[datetime] = None
    description: str = ""
    venue: Optional[str] = None
    address: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    featured: bool = False
    paid_placement: bool = False
    active: bool = True


@dataclass(frozen=True)
class CampaignEvent:
    campaign_id: int
    event_id: int
    event_date: str
    is_selected: bool = True
    is_featured: bool = False
    display_order: int = 0


@dataclass(frozen=True)
class Listing:
    id: int
    title: str
    category: str
    url: Optional[str] = None
    image_url: Optional[str] = None
    hosted_image_url: Optional[str] = None
    active: bool = True


@dataclass(frozen=True)
class ArchiveRecord:
    """
    Immutable snapshot of a campaign's working set.
    """
    id: int
    campaign_id: int
    reason: str
    snapshot: Dict[str, Any]
    created_at: Optional[datetime] = None

    @property
    def counts(self) -> Dict[str, int]:
        return {
            "articles": len(self.snapshot.get("articles", [])),
            "posts": len(self.snapshot.get("posts", [])),
            "ratings": len(self.snapshot.get("ratings", [])),
        }


@dataclass(frozen=True)
class RoadWorkItem:
    campaign_id: int
    road_name: str
    road_range: str = ""
    city_or_township: str = ""
    reason: str = ""
    start_date: str = ""
    expected_reopen: str = ""
    source_url: str = ""

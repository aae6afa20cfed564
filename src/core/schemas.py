"""
Pydantic schemas for the JSON shapes the oracle is asked to return
"""
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class ContentEvaluation(BaseModel):
    """
    Pydantic schema for a single post rating
    """
    interest_level: int = Field(..., ge=1, le=10)
    local_relevance: int = Field(..., ge=1, le=10)
    community_impact: int = Field(..., ge=1, le=10)
    reasoning: str = ""


class DuplicateGroupEntry(BaseModel):
    topic_signature: str = ""
    primary_article_index: int
    duplicate_indices: List[int] = []
    similarity_score: float = Field(0.8, ge=0.0, le=1.0)
    similarity_explanation: str = ""


class DeduplicationResult(BaseModel):
    """
    Pydantic schema for the cross-source duplicate analysis
    """
    groups: List[DuplicateGroupEntry] = []
    unique_articles: List[int] = []


class RewrittenArticle(BaseModel):
    """
    Pydantic schema for a rewritten newsletter article
    """
    headline: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    word_count: int = Field(..., ge=1)

    @field_validator("headline", "content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class FactCheckResult(BaseModel):
    """
    Pydantic schema for the fact check of a rewrite against its source
    """
    accuracy_score: int = Field(..., ge=1, le=10)
    timeliness_score: int = Field(..., ge=1, le=10)
    intent_alignment_score: int = Field(..., ge=1, le=10)
    score: Optional[int] = Field(None, ge=3, le=30)
    passed: bool
    details: str = ""

    @model_validator(mode="after")
    def _fill_total(self) -> "FactCheckResult":
        if self.score is None:
            self.score = self.accuracy_score + self.timeliness_score + self.intent_alignment_score
        return self


class SubjectLine(BaseModel):
    subject_line: str = Field(..., min_length=1)


class RoadWorkEntry(BaseModel):
    road_name: str = Field(..., min_length=1)
    road_range: str = ""
    city_or_township: str = ""
    reason: str = ""
    start_date: str = ""
    expected_reopen: str = ""
    source_url: str = ""

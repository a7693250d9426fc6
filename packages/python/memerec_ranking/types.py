from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from memerec_core.types import Item

HOT_SCORE_LEVELS: tuple[tuple[float, str], ...] = (
    (1000, "viral"),
    (500, "trending"),
    (100, "popular"),
    (50, "active"),
    (10, "normal"),
)


def hot_score_level(score: float) -> str:
    for threshold, level in HOT_SCORE_LEVELS:
        if score >= threshold:
            return level
    return "new"


class Attribution(BaseModel):
    matched_tags: list[str] = Field(default_factory=list)
    similar_user_count: int = 0
    social_reasons: list[str] = Field(default_factory=list)


class RecommendationCandidate(BaseModel):
    item_id: str
    title: str | None = None
    tags: list[str] = Field(default_factory=list)
    author_id: str | None = None
    type: str | None = None
    created_at: datetime | None = None
    hot_score: float = 0.0
    hot_score_level: str = "new"

    recommendation_type: str
    per_strategy_scores: dict[str, float] = Field(default_factory=dict)
    blended_score: float = 0.0
    attribution: Attribution = Field(default_factory=Attribution)
    # strategy-specific intermediate scores (preference_match, social_score, ...)
    details: dict[str, float] = Field(default_factory=dict)
    reason: str | None = None

    @classmethod
    def from_item(cls, item: Item, *, recommendation_type: str, **kw: Any) -> "RecommendationCandidate":
        return cls(
            item_id=item.id,
            title=item.title,
            tags=list(item.tags),
            author_id=item.author_id,
            type=item.type,
            created_at=item.created_at,
            hot_score=item.hot_score,
            hot_score_level=hot_score_level(item.hot_score),
            recommendation_type=recommendation_type,
            **kw,
        )


class RankedCandidates(BaseModel):
    recommendations: list[RecommendationCandidate] = Field(default_factory=list)
    algorithm: str
    recommendation_type: str
    is_fallback: bool = False
    page: int = 1
    limit: int = 20
    total: int = 0
    has_more: bool = False
    user_id: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)

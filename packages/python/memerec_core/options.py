from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidOptions
from .types import Strategy


def _split_csv(v: Any) -> Any:
    if isinstance(v, str):
        return [p.strip() for p in v.split(",") if p.strip()]
    return v


class RecommendationOptions(BaseModel):
    """Validated options shared by every recommendation operation.

    Parsed once at the boundary; strategies never re-interpret raw values.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    limit: int = Field(default=20, ge=1, le=100)
    page: int = Field(default=1, ge=1)
    exclude_ids: frozenset[str] = frozenset()
    min_similarity: float = Field(default=0.1, ge=0.0, le=1.0)
    max_similar_users: int = Field(default=50, ge=1, le=1000)
    exclude_interacted: bool = True
    include_hot_score: bool = True
    hot_score_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    tags: tuple[str, ...] = ()
    types: tuple[str, ...] = ()
    custom_weights: dict[Strategy, float] | None = None
    include_diversity: bool = True
    include_cold_start_analysis: bool = True
    clear_cache: bool = False
    min_interactions: int = Field(default=3, ge=1)
    time_decay: bool = True

    @field_validator("exclude_ids", "tags", "types", mode="before")
    @classmethod
    def _csv(cls, v: Any) -> Any:
        return _split_csv(v)

    @field_validator("custom_weights")
    @classmethod
    def _non_negative(cls, v: dict[Strategy, float] | None):
        if v is None:
            return v
        for k, w in v.items():
            if w < 0:
                raise ValueError(f"weight for {k.value} must be >= 0")
        return v

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def signature(self) -> str:
        """Stable cache-key fragment for the options that change results."""
        parts = [
            f"l{self.limit}",
            f"p{self.page}",
            f"ms{self.min_similarity:g}",
            f"mu{self.max_similar_users}",
            f"ei{int(self.exclude_interacted)}",
            f"hs{int(self.include_hot_score)}:{self.hot_score_weight:g}",
            f"mi{self.min_interactions}",
            f"td{int(self.time_decay)}",
        ]
        if self.tags:
            parts.append("t" + "|".join(sorted(self.tags)))
        if self.types:
            parts.append("y" + "|".join(sorted(self.types)))
        if self.exclude_ids:
            parts.append("x" + "|".join(sorted(self.exclude_ids)))
        if self.custom_weights:
            parts.append(
                "w"
                + "|".join(
                    f"{k.value}={w:g}"
                    for k, w in sorted(self.custom_weights.items(), key=lambda kv: kv[0].value)
                )
            )
        return ",".join(parts)


class UserBehavior(BaseModel):
    click_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    engagement_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    diversity_preference: float = Field(default=0.0, ge=0.0, le=1.0)


def parse_options(raw: Mapping[str, Any] | None = None, **overrides: Any) -> RecommendationOptions:
    """Build options from loosely-typed input (query params, JSON).

    Non-numeric page/limit strings are rejected instead of silently defaulted.
    """
    data = {k: v for k, v in dict(raw or {}).items() if v is not None}
    data.update(overrides)
    try:
        return RecommendationOptions.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise InvalidOptions(f"invalid options: {fields}") from e

"""Strategy weight tables, user activity analysis and behavior-driven focus."""

from __future__ import annotations

import math
from typing import Mapping

from pydantic import BaseModel, Field

from memerec_core.options import UserBehavior
from memerec_core.types import Strategy

Weights = dict[Strategy, float]

H, L, U = Strategy.HOT, Strategy.LATEST, Strategy.UPDATED
CB, CF, SO = Strategy.CONTENT_BASED, Strategy.COLLABORATIVE, Strategy.SOCIAL

DEFAULT_WEIGHTS: Weights = {H: 0.22, L: 0.22, U: 0.16, CB: 0.17, CF: 0.12, SO: 0.11}
COLD_START_WEIGHTS: Weights = {H: 0.80, L: 0.15, U: 0.05, CB: 0.0, CF: 0.0, SO: 0.0}

ACTIVITY_WEIGHTS: dict[str, Weights] = {
    "very_active": {CB: 0.28, CF: 0.18, SO: 0.18, H: 0.13, L: 0.13, U: 0.10},
    "active": {CB: 0.22, CF: 0.18, SO: 0.13, H: 0.18, L: 0.17, U: 0.12},
    "moderate": {CB: 0.17, CF: 0.13, SO: 0.08, H: 0.22, L: 0.25, U: 0.15},
    "low": {H: 0.35, L: 0.25, U: 0.20, CB: 0.15, CF: 0.03, SO: 0.02},
}
ACTIVITY_WEIGHTS["inactive"] = ACTIVITY_WEIGHTS["low"]

FOCUS_WEIGHTS: dict[str, Weights] = {
    "personalization": {CB: 0.32, CF: 0.23, SO: 0.18, H: 0.09, L: 0.09, U: 0.09},
    "social": {SO: 0.27, CF: 0.23, CB: 0.18, H: 0.13, L: 0.09, U: 0.10},
    "exploration": {L: 0.25, U: 0.20, H: 0.20, CB: 0.17, CF: 0.10, SO: 0.08},
    "discovery": {H: 0.50, L: 0.30, U: 0.20, CB: 0.0, CF: 0.0, SO: 0.0},
}

ACTIVITY_LEVELS: tuple[tuple[float, str], ...] = (
    (50, "very_active"),
    (30, "active"),
    (15, "moderate"),
    (5, "low"),
)


def normalize_weights(weights: Mapping[Strategy, float]) -> Weights:
    """Scale to sum 1 over every strategy; all-zero input falls back to defaults."""
    full = {s: max(0.0, float(weights.get(s, 0.0))) for s in Strategy}
    total = sum(full.values())
    if total <= 0:
        return normalize_weights(DEFAULT_WEIGHTS)
    return {s: w / total for s, w in full.items()}


def activity_score(total_interactions: int) -> float:
    return math.log10(max(total_interactions, 0) + 1) * 10


def activity_level(score: float) -> str:
    for threshold, level in ACTIVITY_LEVELS:
        if score >= threshold:
            return level
    return "inactive"


class UserActivity(BaseModel):
    total_interactions: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    activity_score: float = 0.0
    activity_level: str = "inactive"


class ColdStartStatus(BaseModel):
    is_cold_start: bool
    total_interactions: int
    confidence: float
    activity_level: str
    reason: str | None = None


class StrategyAdjustment(BaseModel):
    user_id: str
    focus: str
    weights: dict[str, float]
    behavior: UserBehavior
    cold_start: ColdStartStatus | None = None


def weights_for(activity: UserActivity, cold_start: bool) -> Weights:
    if cold_start:
        return normalize_weights(COLD_START_WEIGHTS)
    return normalize_weights(ACTIVITY_WEIGHTS.get(activity.activity_level, DEFAULT_WEIGHTS))


def choose_focus(behavior: UserBehavior, cold_start: bool) -> tuple[str, Weights | None]:
    """First matching rule wins; None weights mean 'use the activity table'."""
    if behavior.click_rate > 0.3:
        return "personalization", normalize_weights(FOCUS_WEIGHTS["personalization"])
    if behavior.engagement_rate > 0.5:
        return "social", normalize_weights(FOCUS_WEIGHTS["social"])
    if behavior.diversity_preference > 0.7:
        return "exploration", normalize_weights(FOCUS_WEIGHTS["exploration"])
    if cold_start:
        return "discovery", normalize_weights(FOCUS_WEIGHTS["discovery"])
    return "balanced", None


def as_public(weights: Mapping[Strategy, float]) -> dict[str, float]:
    return {s.value: round(w, 6) for s, w in weights.items()}

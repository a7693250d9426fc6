from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Tunables for the recommendation engine.

    Defaults match the production constants; override with MEMEREC_* env vars.
    """

    # time decay
    decay_factor: float = 0.95
    max_days: int = 365
    decay_floor: float = 0.1
    include_dislikes: bool = True

    # population bounds for the interaction matrix
    active_user_cap: int = Field(default=1000, ge=1)
    public_item_cap: int = Field(default=5000, ge=1)

    # tag preferences / cold start
    min_tag_interactions: int = Field(default=3, ge=1)
    cold_start_confidence: float = 0.1
    cold_start_min_interactions: int = 5
    cold_start_multiplier: float = 2.0

    # social scoring
    max_social_score: float = 20.0
    social_reason_min_score: float = 2.0
    max_social_reasons: int = 3

    hot_score_scale: float = 1000.0

    # cache
    cache_namespace: str = "memerec:v1"
    tag_preferences_ttl_sec: int = 1800
    recommendations_ttl_sec: int = 600
    similar_users_ttl_sec: int = 3600
    social_graph_ttl_sec: int = 1800
    stats_ttl_sec: int = 300

    # cache warm-up
    warm_batch_size: int = Field(default=1000, ge=1)
    warm_batch_delay_sec: float = 1.0

    model_config = SettingsConfigDict(
        env_prefix="MEMEREC_", env_file=".env", extra="ignore"
    )

    @field_validator("decay_factor")
    @classmethod
    def _check_decay_factor(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("decay_factor must be in (0, 1]")
        return v

    @field_validator("decay_floor", "cold_start_confidence")
    @classmethod
    def _check_unit(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("value must be in [0, 1]")
        return v

    @field_validator("max_days", "hot_score_scale", "max_social_score")
    @classmethod
    def _check_positive(cls, v):
        if v <= 0:
            raise ValueError("value must be positive")
        return v


@lru_cache
def get_engine_settings() -> EngineSettings:
    return EngineSettings()

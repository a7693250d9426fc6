from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Sequence

from pydantic import BaseModel, Field, TypeAdapter

from memerec_cache.versioned_cache import CacheFamily, CacheInvalidator, VersionedCache
from memerec_core.config import EngineSettings
from memerec_core.errors import DomainError, NotFound
from memerec_core.options import RecommendationOptions, UserBehavior
from memerec_core.ports import FollowRepo, InteractionRepo, ItemRepo, UserRepo
from memerec_core.types import UserFilter, utcnow
from memerec_ranking.types import RankedCandidates
from memerec_social.graph_builder import SocialGraphBuilder, SocialInfluenceStats
from memerec_user.interactions.aggregator import InteractionAggregator
from memerec_user.taste.tag_preferences import TagPreferenceModel

from .collaborative import CollaborativeRecommender
from .content_based import ContentBasedRecommender
from .fallback import PopularityFallback
from .feeds import FeedStrategies
from .mixed import MixedRecommender, MixedResult
from .social_collaborative import SocialCollaborativeRecommender
from .strategy import (
    DEFAULT_WEIGHTS,
    ColdStartStatus,
    StrategyAdjustment,
    UserActivity,
    as_public,
    normalize_weights,
)

log = logging.getLogger(__name__)


class AlgorithmStats(BaseModel):
    user_id: str
    total_public_items: int = 0
    hot_items: int = 0
    trending_items: int = 0
    viral_items: int = 0
    default_weights: dict[str, float] = Field(default_factory=dict)
    applied_weights: dict[str, float] = Field(default_factory=dict)
    activity: UserActivity
    cold_start: ColdStartStatus
    top_tags: list[str] = Field(default_factory=list)
    tag_confidence: float = 0.0
    social: SocialInfluenceStats


class WarmReport(BaseModel):
    total: int = 0
    warmed: int = 0
    failed: int = 0
    batches: int = 0


_STATS_ADAPTER = TypeAdapter(AlgorithmStats)


class RecommendationService:
    """Entry point used by the HTTP layer and the worker."""

    def __init__(
        self,
        *,
        interactions: InteractionRepo,
        items: ItemRepo,
        follows: FollowRepo,
        users: UserRepo,
        cache: VersionedCache,
        settings: EngineSettings,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.cache = cache
        self.items = items
        self.users = users
        self.invalidator = CacheInvalidator(cache)
        self._sleep = sleep

        self.aggregator = InteractionAggregator(
            interactions=interactions, items=items, users=users, settings=settings, clock=clock
        )
        self.tag_model = TagPreferenceModel(
            aggregator=self.aggregator, items=items, cache=cache, settings=settings
        )
        self.graph_builder = SocialGraphBuilder(follows=follows, cache=cache, settings=settings)
        fallback = PopularityFallback(items, settings)
        self.feeds = FeedStrategies(items, settings, clock)
        self.content = ContentBasedRecommender(
            tag_model=self.tag_model,
            aggregator=self.aggregator,
            items=items,
            fallback=fallback,
            cache=cache,
            settings=settings,
        )
        self.collaborative = CollaborativeRecommender(
            aggregator=self.aggregator, items=items, fallback=fallback, cache=cache, settings=settings
        )
        self.social = SocialCollaborativeRecommender(
            graph_builder=self.graph_builder,
            aggregator=self.aggregator,
            items=items,
            users=users,
            fallback=fallback,
            cache=cache,
            settings=settings,
        )
        self.mixed = MixedRecommender(
            feeds=self.feeds,
            content=self.content,
            collaborative=self.collaborative,
            social=self.social,
            tag_model=self.tag_model,
            aggregator=self.aggregator,
            cache=cache,
            settings=settings,
        )

    # ---------- Recommendation operations ----------
    async def content_based_recommendations(
        self, user_id: str, options: RecommendationOptions
    ) -> RankedCandidates:
        return await self.content.content_based_recommendations(user_id, options)

    async def tag_based_recommendations(
        self, tags: Sequence[str], options: RecommendationOptions
    ) -> RankedCandidates:
        return await self.content.tag_based_recommendations(list(tags), options)

    async def collaborative_filtering_recommendations(
        self, user_id: str, options: RecommendationOptions
    ) -> RankedCandidates:
        return await self.collaborative.collaborative_filtering_recommendations(user_id, options)

    async def social_collaborative_filtering_recommendations(
        self, user_id: str, options: RecommendationOptions
    ) -> RankedCandidates:
        return await self.social.social_collaborative_filtering_recommendations(user_id, options)

    async def get_mixed_recommendations(
        self, user_id: str, options: RecommendationOptions
    ) -> MixedResult:
        if options.clear_cache:
            await self.clear_user_cache(user_id)
        return await self.mixed.get_mixed_recommendations(user_id, options)

    async def adjust_recommendation_strategy(
        self, user_id: str, behavior: UserBehavior
    ) -> StrategyAdjustment:
        return await self.mixed.adjust_recommendation_strategy(user_id, behavior)

    async def get_recommendation_algorithm_stats(self, user_id: str) -> AlgorithmStats:
        async def compute() -> AlgorithmStats:
            found = await self.users.load_users(UserFilter(ids=[user_id], status=None))
            if not found:
                raise NotFound(f"user {user_id} not found")
            total, hot, trending, viral, (activity, prefs, cold), social = await asyncio.gather(
                self.items.count_items(),
                self.items.count_items(min_hot_score=100),
                self.items.count_items(min_hot_score=500),
                self.items.count_items(min_hot_score=1000),
                self.mixed.cold_start_status(user_id),
                self.graph_builder.get_user_social_influence_stats(user_id),
            )
            applied = self.mixed.applied_weights(activity, cold, RecommendationOptions())
            return AlgorithmStats(
                user_id=user_id,
                total_public_items=total,
                hot_items=hot,
                trending_items=trending,
                viral_items=viral,
                default_weights=as_public(normalize_weights(DEFAULT_WEIGHTS)),
                applied_weights=as_public(applied),
                activity=activity,
                cold_start=cold,
                top_tags=prefs.top_tags(5),
                tag_confidence=prefs.confidence,
                social=social,
            )

        res = await self.cache.with_version(
            CacheFamily.STATS,
            "algorithm",
            compute,
            ttl_sec=self.settings.stats_ttl_sec,
            adapter=_STATS_ADAPTER,
            user_id=user_id,
        )
        return res.data

    async def get_user_social_influence_stats(self, user_id: str) -> SocialInfluenceStats:
        return await self.graph_builder.get_user_social_influence_stats(user_id)

    # ---------- Cache management ----------
    async def clear_user_cache(self, user_id: str) -> None:
        await self.invalidator.clear_user(user_id)

    async def cache_version_stats(self) -> dict[str, str]:
        return await self.cache.version_stats()

    async def warm_cache(
        self,
        user_ids: Sequence[str] | None = None,
        options: RecommendationOptions | None = None,
    ) -> WarmReport:
        """Precompute mixed recommendations in fixed batches with a pause between them."""
        ids = list(user_ids) if user_ids is not None else await self.aggregator.default_user_ids()
        opts = options or RecommendationOptions()
        size = self.settings.warm_batch_size
        report = WarmReport(total=len(ids))

        for start in range(0, len(ids), size):
            batch = ids[start : start + size]
            if report.batches:
                await self._sleep(self.settings.warm_batch_delay_sec)
            results = await asyncio.gather(
                *(self.mixed.get_mixed_recommendations(uid, opts) for uid in batch),
                return_exceptions=True,
            )
            report.batches += 1
            for uid, r in zip(batch, results):
                if isinstance(r, DomainError):
                    report.failed += 1
                    log.warning("cache warm-up failed for %s: %s", uid, r)
                elif isinstance(r, BaseException):
                    raise r
                else:
                    report.warmed += 1
        log.info(
            "cache warm-up done: %d/%d users in %d batches",
            report.warmed,
            report.total,
            report.batches,
        )
        return report

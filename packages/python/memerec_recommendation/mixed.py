from __future__ import annotations

import asyncio
import logging
import math
from collections import Counter

from pydantic import BaseModel, Field, TypeAdapter

from memerec_cache.versioned_cache import CacheFamily, VersionedCache
from memerec_core.config import EngineSettings
from memerec_core.options import RecommendationOptions, UserBehavior
from memerec_core.types import POSITIVE_TYPES, Strategy
from memerec_ranking.diversification import DiversityMetrics, diversity_metrics
from memerec_ranking.pagination import paginate
from memerec_ranking.types import Attribution, RankedCandidates, RecommendationCandidate
from memerec_user.interactions.aggregator import InteractionAggregator
from memerec_user.taste.tag_preferences import TagPreferenceModel, TagPreferences

from .collaborative import CollaborativeRecommender
from .content_based import ContentBasedRecommender
from .feeds import FeedStrategies
from .social_collaborative import SocialCollaborativeRecommender
from .strategy import (
    ColdStartStatus,
    StrategyAdjustment,
    UserActivity,
    Weights,
    activity_level,
    activity_score,
    as_public,
    choose_focus,
    normalize_weights,
    weights_for,
)

log = logging.getLogger(__name__)

POPULARITY_STRATEGIES = (Strategy.HOT, Strategy.LATEST, Strategy.UPDATED)


class MixedResult(BaseModel):
    user_id: str
    algorithm: str = "mixed"
    recommendations: list[RecommendationCandidate] = Field(default_factory=list)
    weights: dict[str, float] = Field(default_factory=dict)
    cold_start_status: ColdStartStatus | None = None
    diversity: DiversityMetrics | None = None
    strategies: dict[str, str] = Field(default_factory=dict)
    page: int = 1
    limit: int = 20
    total: int = 0
    has_more: bool = False


_ADAPTER = TypeAdapter(MixedResult)


def merge_candidates(
    results: dict[Strategy, RankedCandidates], weights: Weights
) -> list[RecommendationCandidate]:
    """
    Merge by item id. blended = sum(w_s x score_s) / sum(w_s) over the
    strategies that actually returned the item, so the result is a convex
    combination and strategies with no opinion do not drag it down.
    """
    merged: dict[str, RecommendationCandidate] = {}
    for strategy, ranked in results.items():
        for c in ranked.recommendations:
            m = merged.get(c.item_id)
            if m is None:
                m = merged[c.item_id] = c.model_copy(
                    update={
                        "recommendation_type": "mixed",
                        "per_strategy_scores": {},
                        "attribution": Attribution(),
                        "details": {},
                        "reason": None,
                    }
                )
            m.per_strategy_scores[strategy.value] = c.blended_score
            a = m.attribution
            a.matched_tags = list(dict.fromkeys([*a.matched_tags, *c.attribution.matched_tags]))
            a.similar_user_count = max(a.similar_user_count, c.attribution.similar_user_count)
            a.social_reasons = list(dict.fromkeys([*a.social_reasons, *c.attribution.social_reasons]))
            for k, v in c.details.items():
                m.details.setdefault(k, v)

    reasons = {
        (s.value, c.item_id): c.reason
        for s, ranked in results.items()
        for c in ranked.recommendations
        if c.reason
    }
    out = []
    for m in merged.values():
        num = sum(weights[Strategy(s)] * v for s, v in m.per_strategy_scores.items())
        den = sum(weights[Strategy(s)] for s in m.per_strategy_scores)
        m.blended_score = num / den if den > 0 else 0.0
        # reason from the strategy contributing the most
        top = max(
            m.per_strategy_scores,
            key=lambda s: (weights[Strategy(s)] * m.per_strategy_scores[s], s),
        )
        m.reason = reasons.get((top, m.item_id)) or next(
            (reasons[(s, m.item_id)] for s in m.per_strategy_scores if (s, m.item_id) in reasons),
            None,
        )
        out.append(m)
    out.sort(key=lambda c: (-c.blended_score, -len(c.per_strategy_scores), c.item_id))
    return out


class MixedRecommender:
    def __init__(
        self,
        *,
        feeds: FeedStrategies,
        content: ContentBasedRecommender,
        collaborative: CollaborativeRecommender,
        social: SocialCollaborativeRecommender,
        tag_model: TagPreferenceModel,
        aggregator: InteractionAggregator,
        cache: VersionedCache,
        settings: EngineSettings,
    ):
        self.feeds = feeds
        self.content = content
        self.collaborative = collaborative
        self.social = social
        self.tag_model = tag_model
        self.aggregator = aggregator
        self.cache = cache
        self.settings = settings

    async def analyze_user_activity(self, user_id: str) -> UserActivity:
        events = await self.aggregator.load_events([user_id], types=POSITIVE_TYPES)
        by_type = Counter(ev.type.value for ev in events)
        score = activity_score(len(events))
        return UserActivity(
            total_interactions=len(events),
            by_type=dict(by_type),
            activity_score=score,
            activity_level=activity_level(score),
        )

    def _cold_start(self, activity: UserActivity, prefs: TagPreferences) -> ColdStartStatus:
        reasons = []
        if activity.total_interactions < self.settings.cold_start_min_interactions:
            reasons.append("few interactions")
        if prefs.confidence < self.settings.cold_start_confidence:
            reasons.append("low tag confidence")
        return ColdStartStatus(
            is_cold_start=bool(reasons),
            total_interactions=activity.total_interactions,
            confidence=prefs.confidence,
            activity_level=activity.activity_level,
            reason=", ".join(reasons) or None,
        )

    async def cold_start_status(
        self, user_id: str, options: RecommendationOptions | None = None
    ) -> tuple[UserActivity, TagPreferences, ColdStartStatus]:
        activity, prefs = await asyncio.gather(
            self.analyze_user_activity(user_id),
            self.tag_model.calculate_user_tag_preferences(
                user_id, options, force_refresh=bool(options and options.clear_cache)
            ),
        )
        return activity, prefs, self._cold_start(activity, prefs)

    def applied_weights(
        self, activity: UserActivity, cold: ColdStartStatus, options: RecommendationOptions
    ) -> Weights:
        weights = weights_for(activity, cold.is_cold_start)
        if options.custom_weights:
            weights = normalize_weights({**weights, **options.custom_weights})
        return weights

    async def get_mixed_recommendations(
        self, user_id: str, options: RecommendationOptions
    ) -> MixedResult:
        res = await self.cache.with_version(
            CacheFamily.MIXED,
            f"{options.signature()}|d{int(options.include_diversity)}c{int(options.include_cold_start_analysis)}",
            lambda: self._mixed(user_id, options),
            ttl_sec=self.settings.recommendations_ttl_sec,
            adapter=_ADAPTER,
            user_id=user_id,
            force_refresh=options.clear_cache,
        )
        return res.data

    def _run(self, strategy: Strategy, user_id: str, opts: RecommendationOptions):
        if strategy is Strategy.HOT:
            return self.feeds.hot(opts)
        if strategy is Strategy.LATEST:
            return self.feeds.latest(opts)
        if strategy is Strategy.UPDATED:
            return self.feeds.updated(opts)
        if strategy is Strategy.CONTENT_BASED:
            return self.content.content_based_recommendations(user_id, opts)
        if strategy is Strategy.COLLABORATIVE:
            return self.collaborative.collaborative_filtering_recommendations(user_id, opts)
        return self.social.social_collaborative_filtering_recommendations(user_id, opts)

    async def _mixed(self, user_id: str, options: RecommendationOptions) -> MixedResult:
        activity, _, cold = await self.cold_start_status(user_id, options)
        weights = self.applied_weights(activity, cold, options)

        # enough depth per strategy to fill the requested page after merging
        wanted = options.offset + options.limit
        plan: dict[Strategy, RecommendationOptions] = {}
        for strategy, w in weights.items():
            if w <= 0:
                continue
            n = math.ceil(wanted * w)
            if cold.is_cold_start and strategy in POPULARITY_STRATEGIES:
                n = math.ceil(n * self.settings.cold_start_multiplier)
            plan[strategy] = options.model_copy(
                update={"limit": max(1, min(n, 100)), "page": 1, "custom_weights": None}
            )

        ranked = await asyncio.gather(
            *(self._run(s, user_id, o) for s, o in plan.items())
        )
        results = dict(zip(plan.keys(), ranked))
        merged = [
            c for c in merge_candidates(results, weights) if c.item_id not in options.exclude_ids
        ]
        window, total, has_more = paginate(merged, options.page, options.limit)

        log.info(
            "mixed recommendations for %s: %d candidates, cold_start=%s",
            user_id,
            total,
            cold.is_cold_start,
        )
        return MixedResult(
            user_id=user_id,
            recommendations=window,
            weights=as_public(weights),
            cold_start_status=cold if options.include_cold_start_analysis else None,
            diversity=diversity_metrics(window) if options.include_diversity else None,
            strategies={s.value: r.recommendation_type for s, r in results.items()},
            page=options.page,
            limit=options.limit,
            total=total,
            has_more=has_more,
        )

    async def adjust_recommendation_strategy(
        self, user_id: str, behavior: UserBehavior
    ) -> StrategyAdjustment:
        activity, _, cold = await self.cold_start_status(user_id)
        focus, weights = choose_focus(behavior, cold.is_cold_start)
        if weights is None:
            weights = weights_for(activity, cold.is_cold_start)
        return StrategyAdjustment(
            user_id=user_id,
            focus=focus,
            weights=as_public(weights),
            behavior=behavior,
            cold_start=cold,
        )

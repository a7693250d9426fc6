from __future__ import annotations

import logging

from pydantic import TypeAdapter

from memerec_cache.versioned_cache import CacheFamily, VersionedCache
from memerec_core.config import EngineSettings
from memerec_core.options import RecommendationOptions
from memerec_core.ports import ItemRepo
from memerec_core.types import InteractionType, ItemFilter, Strategy
from memerec_ranking.pagination import paginate
from memerec_ranking.similarity import (
    blend_with_hot,
    clamp01,
    content_similarity,
    jaccard,
    preference_match,
)
from memerec_ranking.types import Attribution, RankedCandidates, RecommendationCandidate
from memerec_user.interactions.aggregator import InteractionAggregator
from memerec_user.taste.tag_preferences import TagPreferenceModel

from .fallback import PopularityFallback

log = logging.getLogger(__name__)

_ADAPTER = TypeAdapter(RankedCandidates)

# interactions that mark an item as already seen by the user
EXCLUDING_TYPES = (
    InteractionType.LIKE,
    InteractionType.COLLECT,
    InteractionType.COMMENT,
    InteractionType.SHARE,
)
TOP_TAGS = 5


class ContentBasedRecommender:
    def __init__(
        self,
        *,
        tag_model: TagPreferenceModel,
        aggregator: InteractionAggregator,
        items: ItemRepo,
        fallback: PopularityFallback,
        cache: VersionedCache,
        settings: EngineSettings,
    ):
        self.tag_model = tag_model
        self.aggregator = aggregator
        self.items = items
        self.fallback = fallback
        self.cache = cache
        self.settings = settings

    def _blend(self, score: float, hot: float, options: RecommendationOptions) -> float:
        if not options.include_hot_score:
            return clamp01(score)
        return blend_with_hot(score, hot, options.hot_score_weight, self.settings.hot_score_scale)

    async def content_based_recommendations(
        self, user_id: str, options: RecommendationOptions
    ) -> RankedCandidates:
        res = await self.cache.with_version(
            CacheFamily.CONTENT_BASED,
            options.signature(),
            lambda: self._content_based(user_id, options),
            ttl_sec=self.settings.recommendations_ttl_sec,
            adapter=_ADAPTER,
            user_id=user_id,
            force_refresh=options.clear_cache,
        )
        return res.data

    async def _content_based(
        self, user_id: str, options: RecommendationOptions
    ) -> RankedCandidates:
        prefs = await self.tag_model.calculate_user_tag_preferences(
            user_id, options, force_refresh=options.clear_cache
        )
        if prefs.confidence < self.settings.cold_start_confidence:
            return await self.fallback.rank(
                Strategy.CONTENT_BASED.value,
                options,
                user_id=user_id,
                reason="low tag preference confidence",
                zero_fields=("preference_match", "content_similarity"),
            )

        exclude = set(options.exclude_ids)
        if options.exclude_interacted:
            events = await self.aggregator.load_events([user_id], types=EXCLUDING_TYPES)
            exclude |= {ev.item_id for ev in events}

        pool = await self.items.load_items(
            ItemFilter(
                tags=options.tags or None,
                types=options.types or None,
                exclude_ids=exclude,
                order_by="hot_score",
                limit=self.settings.public_item_cap,
            )
        )

        top_tags = prefs.top_tags(TOP_TAGS)
        scored: list[RecommendationCandidate] = []
        for it in pool:
            pm, matched = preference_match(it.tags, prefs.preferences)
            cs = content_similarity(it.tags, top_tags, prefs.preferences) if top_tags else 0.0
            base = pm * 0.6 + cs * 0.4
            score = self._blend(base, it.hot_score, options)
            if score < options.min_similarity:
                continue
            scored.append(
                RecommendationCandidate.from_item(
                    it,
                    recommendation_type=Strategy.CONTENT_BASED.value,
                    blended_score=score,
                    per_strategy_scores={Strategy.CONTENT_BASED.value: score},
                    attribution=Attribution(matched_tags=matched),
                    details={"preference_match": pm, "content_similarity": cs},
                    reason=_tag_reason(matched),
                )
            )

        scored.sort(key=lambda c: (-c.blended_score, c.item_id))
        window, total, has_more = paginate(scored, options.page, options.limit)
        return RankedCandidates(
            recommendations=window,
            algorithm=Strategy.CONTENT_BASED.value,
            recommendation_type=Strategy.CONTENT_BASED.value,
            page=options.page,
            limit=options.limit,
            total=total,
            has_more=has_more,
            user_id=user_id,
            meta={
                "confidence": prefs.confidence,
                "top_tags": top_tags,
                "total_interactions": prefs.total_interactions,
            },
        )

    async def tag_based_recommendations(
        self, tags: list[str], options: RecommendationOptions
    ) -> RankedCandidates:
        query_tags = sorted(set(tags))
        if not query_tags:
            return await self.fallback.rank("tag_based", options, reason="no tags given")

        async def compute() -> RankedCandidates:
            pool = await self.items.load_items(
                ItemFilter(
                    tags=query_tags,
                    types=options.types or None,
                    exclude_ids=set(options.exclude_ids),
                    order_by="hot_score",
                    limit=self.settings.public_item_cap,
                )
            )
            scored = []
            for it in pool:
                sim = jaccard(query_tags, it.tags)
                score = self._blend(sim, it.hot_score, options)
                if score < options.min_similarity:
                    continue
                matched = [t for t in query_tags if t in it.tags]
                scored.append(
                    RecommendationCandidate.from_item(
                        it,
                        recommendation_type="tag_based",
                        blended_score=score,
                        per_strategy_scores={"tag_based": score},
                        attribution=Attribution(matched_tags=matched),
                        details={"tag_similarity": sim},
                        reason=_tag_reason(matched),
                    )
                )
            scored.sort(key=lambda c: (-c.blended_score, c.item_id))
            window, total, has_more = paginate(scored, options.page, options.limit)
            return RankedCandidates(
                recommendations=window,
                algorithm="tag_based",
                recommendation_type="tag_based",
                page=options.page,
                limit=options.limit,
                total=total,
                has_more=has_more,
                meta={"query_tags": query_tags},
            )

        res = await self.cache.with_version(
            CacheFamily.TAG_BASED,
            f"{'|'.join(query_tags)}#{options.signature()}",
            compute,
            ttl_sec=self.settings.recommendations_ttl_sec,
            adapter=_ADAPTER,
            force_refresh=options.clear_cache,
        )
        return res.data


def _tag_reason(matched: list[str]) -> str | None:
    if not matched:
        return None
    return "Because you like " + ", ".join(f"#{t}" for t in matched[:3])

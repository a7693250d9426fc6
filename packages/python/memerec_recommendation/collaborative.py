from __future__ import annotations

import asyncio
import logging
from collections import defaultdict

from pydantic import BaseModel, TypeAdapter

from memerec_cache.versioned_cache import CacheFamily, VersionedCache
from memerec_core.config import EngineSettings
from memerec_core.options import RecommendationOptions
from memerec_core.ports import ItemRepo
from memerec_core.types import ItemFilter, Strategy, UserId
from memerec_ranking.pagination import paginate
from memerec_ranking.similarity import blend_with_hot, clamp01, pearson_similarity
from memerec_ranking.types import Attribution, RankedCandidates, RecommendationCandidate
from memerec_user.interactions.aggregator import (
    InteractionAggregator,
    InteractionMatrix,
    InteractionVector,
)
from memerec_user.signals.weights import MAX_EVENT_WEIGHT

from .fallback import PopularityFallback

log = logging.getLogger(__name__)


class SimilarUser(BaseModel):
    user_id: str
    similarity: float


_RANKED_ADAPTER = TypeAdapter(RankedCandidates)
_SIMILAR_ADAPTER = TypeAdapter(list[SimilarUser])


def find_similar_users(
    target_user: UserId,
    interaction_matrix: InteractionMatrix,
    min_similarity: float = 0.1,
    max_users: int = 50,
) -> list[SimilarUser]:
    target = interaction_matrix.get(target_user)
    if not target:
        return []
    out = []
    for uid, vec in interaction_matrix.items():
        if uid == target_user:
            continue
        sim = pearson_similarity(target, vec)
        if sim >= min_similarity:
            out.append(SimilarUser(user_id=uid, similarity=sim))
    out.sort(key=lambda s: (-s.similarity, s.user_id))
    return out[:max_users]


def aggregate_neighbor_scores(
    target: InteractionVector,
    neighbors: list[SimilarUser],
    matrix: InteractionMatrix,
    *,
    exclude_interacted: bool,
    exclude_ids: frozenset[str] | set[str] = frozenset(),
) -> dict[str, tuple[float, int]]:
    """item -> (sum(score x sim) / sum(sim), contributing neighbors)"""
    weighted: dict[str, float] = defaultdict(float)
    sims: dict[str, float] = defaultdict(float)
    counts: dict[str, int] = defaultdict(int)
    for n in neighbors:
        for item_id, score in matrix.get(n.user_id, {}).items():
            if exclude_interacted and item_id in target:
                continue
            if item_id in exclude_ids:
                continue
            weighted[item_id] += score * n.similarity
            sims[item_id] += n.similarity
            counts[item_id] += 1
    return {
        item_id: (weighted[item_id] / total, counts[item_id])
        for item_id, total in sims.items()
        if total > 0
    }


class CollaborativeRecommender:
    def __init__(
        self,
        *,
        aggregator: InteractionAggregator,
        items: ItemRepo,
        fallback: PopularityFallback,
        cache: VersionedCache,
        settings: EngineSettings,
    ):
        self.aggregator = aggregator
        self.items = items
        self.fallback = fallback
        self.cache = cache
        self.settings = settings

    async def _population_matrix(
        self, user_id: UserId, target: InteractionVector
    ) -> InteractionMatrix:
        users, items = await asyncio.gather(
            self.aggregator.default_user_ids(),
            self.aggregator.default_item_ids(),
        )
        population = list(dict.fromkeys([user_id, *users]))
        universe = list(dict.fromkeys([*target.keys(), *items]))
        matrix = await self.aggregator.build_interaction_matrix(population, universe)
        matrix[user_id] = target
        return matrix

    async def similar_users(
        self,
        user_id: UserId,
        options: RecommendationOptions,
        *,
        target: InteractionVector | None = None,
        matrix: InteractionMatrix | None = None,
    ) -> list[SimilarUser]:
        async def compute() -> list[SimilarUser]:
            vec = target if target is not None else await self.aggregator.user_vector(user_id)
            if not vec:
                return []
            m = matrix if matrix is not None else await self._population_matrix(user_id, vec)
            return find_similar_users(
                user_id, m, options.min_similarity, options.max_similar_users
            )

        res = await self.cache.with_version(
            CacheFamily.SIMILAR_USERS,
            f"ms{options.min_similarity:g}:mu{options.max_similar_users}",
            compute,
            ttl_sec=self.settings.similar_users_ttl_sec,
            adapter=_SIMILAR_ADAPTER,
            user_id=user_id,
            force_refresh=options.clear_cache,
        )
        return res.data

    async def collaborative_filtering_recommendations(
        self, user_id: UserId, options: RecommendationOptions
    ) -> RankedCandidates:
        res = await self.cache.with_version(
            CacheFamily.COLLABORATIVE,
            options.signature(),
            lambda: self._collaborative(user_id, options),
            ttl_sec=self.settings.recommendations_ttl_sec,
            adapter=_RANKED_ADAPTER,
            user_id=user_id,
            force_refresh=options.clear_cache,
        )
        return res.data

    async def _collaborative(
        self, user_id: UserId, options: RecommendationOptions
    ) -> RankedCandidates:
        target = await self.aggregator.user_vector(user_id)
        if not target:
            return await self.fallback.rank(
                "collaborative", options, user_id=user_id,
                reason="no interaction history", zero_fields=("collaborative_score",),
            )

        matrix = await self._population_matrix(user_id, target)
        neighbors = await self.similar_users(
            user_id, options, target=target, matrix=matrix
        )
        if not neighbors:
            return await self.fallback.rank(
                "collaborative", options, user_id=user_id,
                reason="no similar users", zero_fields=("collaborative_score",),
            )

        agg = aggregate_neighbor_scores(
            target,
            neighbors,
            matrix,
            exclude_interacted=options.exclude_interacted,
            exclude_ids=options.exclude_ids,
        )
        agg = {k: v for k, v in agg.items() if v[0] > 0}
        meta = {"similar_users": len(neighbors)}
        if not agg:
            return self._empty(user_id, options, meta)

        items = await self.items.load_items(
            ItemFilter(
                ids=sorted(agg),
                tags=options.tags or None,
                types=options.types or None,
            )
        )
        scored = []
        for it in items:
            raw, count = agg[it.id]
            cf = clamp01(raw / MAX_EVENT_WEIGHT)
            score = (
                blend_with_hot(cf, it.hot_score, options.hot_score_weight, self.settings.hot_score_scale)
                if options.include_hot_score
                else cf
            )
            scored.append(
                RecommendationCandidate.from_item(
                    it,
                    recommendation_type=Strategy.COLLABORATIVE.value,
                    blended_score=score,
                    per_strategy_scores={Strategy.COLLABORATIVE.value: score},
                    attribution=Attribution(similar_user_count=count),
                    details={"collaborative_score": raw},
                    reason=f"Liked by {count} user{'s' if count != 1 else ''} with similar taste",
                )
            )
        scored.sort(key=lambda c: (-c.blended_score, c.item_id))
        window, total, has_more = paginate(scored, options.page, options.limit)
        return RankedCandidates(
            recommendations=window,
            algorithm=Strategy.COLLABORATIVE.value,
            recommendation_type=Strategy.COLLABORATIVE.value,
            page=options.page,
            limit=options.limit,
            total=total,
            has_more=has_more,
            user_id=user_id,
            meta=meta,
        )

    def _empty(self, user_id: UserId, options: RecommendationOptions, meta: dict) -> RankedCandidates:
        return RankedCandidates(
            algorithm=Strategy.COLLABORATIVE.value,
            recommendation_type=Strategy.COLLABORATIVE.value,
            page=options.page,
            limit=options.limit,
            user_id=user_id,
            meta=meta,
        )

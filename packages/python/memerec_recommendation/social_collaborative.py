from __future__ import annotations

import asyncio
import logging

from pydantic import TypeAdapter

from memerec_cache.versioned_cache import CacheFamily, VersionedCache
from memerec_core.config import EngineSettings
from memerec_core.options import RecommendationOptions
from memerec_core.ports import ItemRepo, UserRepo
from memerec_core.types import (
    POSITIVE_TYPES,
    InteractionEvent,
    ItemFilter,
    Strategy,
    UserFilter,
    UserId,
)
from memerec_ranking.pagination import paginate
from memerec_ranking.similarity import blend_with_hot, clamp01
from memerec_ranking.types import Attribution, RankedCandidates, RecommendationCandidate
from memerec_social.graph import (
    SocialGraph,
    distances_from,
    social_similarity,
    social_weighted_similarity,
)
from memerec_social.graph_builder import SocialGraphBuilder
from memerec_social.scoring import (
    PUBLISH,
    SocialContribution,
    actions_by_item,
    contribution_weight,
    score_item,
)
from memerec_user.interactions.aggregator import InteractionAggregator
from memerec_user.signals.reducers import group_by_user
from memerec_user.signals.weights import compute_item_weights

from .fallback import PopularityFallback

log = logging.getLogger(__name__)

_ADAPTER = TypeAdapter(RankedCandidates)


class SocialCollaborativeRecommender:
    def __init__(
        self,
        *,
        graph_builder: SocialGraphBuilder,
        aggregator: InteractionAggregator,
        items: ItemRepo,
        users: UserRepo,
        fallback: PopularityFallback,
        cache: VersionedCache,
        settings: EngineSettings,
    ):
        self.graph_builder = graph_builder
        self.aggregator = aggregator
        self.items = items
        self.users = users
        self.fallback = fallback
        self.cache = cache
        self.settings = settings

    async def social_collaborative_filtering_recommendations(
        self, user_id: UserId, options: RecommendationOptions
    ) -> RankedCandidates:
        res = await self.cache.with_version(
            CacheFamily.SOCIAL_COLLABORATIVE,
            options.signature(),
            lambda: self._social(user_id, options),
            ttl_sec=self.settings.recommendations_ttl_sec,
            adapter=_ADAPTER,
            user_id=user_id,
            force_refresh=options.clear_cache,
        )
        return res.data

    async def _fallback(self, user_id: UserId, options: RecommendationOptions, reason: str):
        return await self.fallback.rank(
            "social_collaborative",
            options,
            user_id=user_id,
            reason=reason,
            zero_fields=("social_score",),
        )

    def _neighbor_similarity(
        self,
        user_id: UserId,
        neighbor_ids: list[UserId],
        graph: SocialGraph,
        own_events: list[InteractionEvent],
        neighbor_events: list[InteractionEvent],
    ) -> dict[UserId, float]:
        """Pearson similarity of each neighbor to the user, re-weighted by social closeness and influence."""
        agg = self.aggregator
        now = agg.clock()
        target = compute_item_weights(own_events, now, agg.decay, agg.weights)
        vectors = {
            uid: compute_item_weights(evs, now, agg.decay, agg.weights)
            for uid, evs in group_by_user(neighbor_events).items()
        }
        out = {}
        for uid in neighbor_ids:
            node = graph.get(uid)
            out[uid] = social_weighted_similarity(
                target,
                vectors.get(uid, {}),
                social_similarity(user_id, uid, graph),
                node.influence_score if node else 0.0,
            )
        return out

    async def _social(self, user_id: UserId, options: RecommendationOptions) -> RankedCandidates:
        graph = await self.graph_builder.build_neighborhood(
            user_id, force_refresh=options.clear_cache
        )
        if user_id not in graph:
            return await self._fallback(user_id, options, "no social graph")

        distances = {
            uid: d for uid, d in distances_from(user_id, graph).items() if d.reachable
        }
        if not distances:
            return await self._fallback(user_id, options, "no reachable neighbors")

        neighbor_ids = sorted(distances)
        events, authored, own_events, users = await asyncio.gather(
            self.aggregator.load_events(neighbor_ids, types=POSITIVE_TYPES),
            self.items.load_items(
                ItemFilter(
                    author_ids=neighbor_ids,
                    order_by="created_at",
                    limit=self.settings.public_item_cap,
                )
            ),
            self.aggregator.user_events(user_id),
            self.users.load_users(UserFilter(ids=neighbor_ids, status=None)),
        )
        usernames = {u.id: u.username for u in users}
        seen = set(options.exclude_ids)
        if options.exclude_interacted:
            seen |= {ev.item_id for ev in own_events}

        similarity = self._neighbor_similarity(user_id, neighbor_ids, graph, own_events, events)

        actions = [(ev.item_id, ev.user_id, ev.type.value) for ev in events]
        actions += [(it.id, it.author_id, PUBLISH) for it in authored if it.author_id]
        per_item = actions_by_item(
            (item_id, uid, action)
            for item_id, uid, action in actions
            if item_id not in seen and uid in distances
        )
        if not per_item:
            return await self._fallback(user_id, options, "no neighbor activity")

        scores = {}
        for item_id, pairs in per_item.items():
            contribs = []
            for uid, action in pairs:
                dist = distances[uid]
                node = graph.get(uid)
                influence = node.influence_score if node else 0.0
                contribs.append(
                    SocialContribution(
                        user_id=uid,
                        username=usernames.get(uid),
                        action=action,
                        weight=contribution_weight(action, dist, influence),
                        distance=dist,
                        influence_score=influence,
                    )
                )
            scores[item_id] = score_item(
                item_id,
                contribs,
                max_social_score=self.settings.max_social_score,
                max_reasons=self.settings.max_social_reasons,
                min_reason_weight=self.settings.social_reason_min_score,
            )

        items = await self.items.load_items(
            ItemFilter(
                ids=sorted(scores),
                tags=options.tags or None,
                types=options.types or None,
            )
        )
        scored = []
        for it in items:
            s = scores[it.id]
            contributors = sorted({c.user_id for c in s.contributions})
            social = clamp01(s.social_score / self.settings.max_social_score)
            score = (
                blend_with_hot(social, it.hot_score, options.hot_score_weight, self.settings.hot_score_scale)
                if options.include_hot_score
                else social
            )
            scored.append(
                RecommendationCandidate.from_item(
                    it,
                    recommendation_type=Strategy.SOCIAL.value,
                    blended_score=score,
                    per_strategy_scores={Strategy.SOCIAL.value: score},
                    attribution=Attribution(
                        similar_user_count=len(contributors),
                        social_reasons=[r.text for r in s.reasons],
                    ),
                    details={
                        "social_score": s.social_score,
                        "interaction_score": s.interaction_score,
                        "distance_score": s.distance_score,
                        "influence_score": s.influence_score,
                        "social_weighted_similarity": max(similarity[u] for u in contributors),
                    },
                    reason=s.reasons[0].text if s.reasons else None,
                )
            )
        scored.sort(key=lambda c: (-c.blended_score, c.item_id))
        window, total, has_more = paginate(scored, options.page, options.limit)
        return RankedCandidates(
            recommendations=window,
            algorithm=Strategy.SOCIAL.value,
            recommendation_type=Strategy.SOCIAL.value,
            page=options.page,
            limit=options.limit,
            total=total,
            has_more=has_more,
            user_id=user_id,
            meta={
                "neighbors": len(distances),
                "similar_neighbors": [
                    {"user_id": uid, "similarity": round(sim, 4)}
                    for uid, sim in sorted(similarity.items(), key=lambda kv: (-kv[1], kv[0]))[:10]
                ],
            },
        )

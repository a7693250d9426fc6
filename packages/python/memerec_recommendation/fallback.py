from __future__ import annotations

import logging

from memerec_core.config import EngineSettings
from memerec_core.options import RecommendationOptions
from memerec_core.ports import ItemRepo
from memerec_core.types import ItemFilter
from memerec_ranking.pagination import paginate
from memerec_ranking.similarity import normalize_hot
from memerec_ranking.types import RankedCandidates, RecommendationCandidate

log = logging.getLogger(__name__)


class PopularityFallback:
    """
    The one degraded path every strategy takes when it lacks signal:
    public items by hot score, tagged `<strategy>_fallback`.
    """

    def __init__(self, items: ItemRepo, settings: EngineSettings):
        self.items = items
        self.settings = settings

    async def rank(
        self,
        strategy: str,
        options: RecommendationOptions,
        *,
        user_id: str | None = None,
        reason: str = "insufficient signal",
        zero_fields: tuple[str, ...] = (),
    ) -> RankedCandidates:
        log.info("%s falling back to popularity for user=%s (%s)", strategy, user_id, reason)
        fetched = await self.items.load_items(
            ItemFilter(
                tags=options.tags or None,
                types=options.types or None,
                exclude_ids=set(options.exclude_ids),
                order_by="hot_score",
                limit=options.offset + options.limit + 1,
            )
        )
        fetched.sort(key=lambda it: (-it.hot_score, it.id))
        rec_type = f"{strategy}_fallback"
        ranked = [
            RecommendationCandidate.from_item(
                it,
                recommendation_type=rec_type,
                blended_score=normalize_hot(it.hot_score, self.settings.hot_score_scale),
                per_strategy_scores={
                    strategy: normalize_hot(it.hot_score, self.settings.hot_score_scale)
                },
                details={f: 0.0 for f in zero_fields},
                reason="Popular right now",
            )
            for it in fetched
        ]
        window, total, has_more = paginate(ranked, options.page, options.limit)
        return RankedCandidates(
            recommendations=window,
            algorithm=strategy,
            recommendation_type=rec_type,
            is_fallback=True,
            page=options.page,
            limit=options.limit,
            total=total,
            has_more=has_more,
            user_id=user_id,
            meta={"fallback_reason": reason},
        )

"""Popularity-style feeds used by the mixed orchestrator: hot, latest, updated."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Callable

from memerec_core.config import EngineSettings
from memerec_core.options import RecommendationOptions
from memerec_core.ports import ItemRepo
from memerec_core.types import Item, ItemFilter, ItemOrder, Strategy, utcnow
from memerec_ranking.pagination import paginate
from memerec_ranking.similarity import clamp01, normalize_hot
from memerec_ranking.types import RankedCandidates, RecommendationCandidate

MIN_QUERY_LIMIT = 50


def updated_content_score(item: Item, now: datetime) -> float:
    """hot score boosted by edit freshness, more so for older content."""
    if item.modified_at is None or item.modified_at == item.created_at:
        return item.hot_score

    hours = (now - item.modified_at).total_seconds() / 3600.0
    if hours <= 1:
        freshness = 2.0
    elif hours <= 6:
        freshness = 1.5
    elif hours <= 24:
        freshness = 1.3
    elif hours <= 72:
        freshness = 1.1
    else:
        freshness = 1.0

    age_bonus = 1.0
    if item.created_at is not None:
        days = (now - item.created_at).total_seconds() / 86400.0
        if days > 7:
            age_bonus = 1.4
        elif days > 3:
            age_bonus = 1.2

    return item.hot_score * freshness * age_bonus


def recency_score(item: Item, now: datetime) -> float:
    if item.created_at is None:
        return 0.0
    hours = max(0.0, (now - item.created_at).total_seconds() / 3600.0)
    return 1.0 / (1.0 + hours / 24.0)


class FeedStrategies:
    def __init__(
        self,
        items: ItemRepo,
        settings: EngineSettings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.items = items
        self.settings = settings
        self.clock = clock

    async def _windowed(
        self,
        options: RecommendationOptions,
        *,
        order_by: ItemOrder,
        window: timedelta,
        widened: timedelta,
    ) -> list[Item]:
        """Load within `window`, widening once when it yields under half a page."""
        needed = options.offset + options.limit
        now = self.clock()

        def filt(since: datetime) -> ItemFilter:
            f = ItemFilter(
                tags=options.tags or None,
                types=options.types or None,
                exclude_ids=set(options.exclude_ids),
                order_by=order_by,
                limit=max(needed, MIN_QUERY_LIMIT),
            )
            if order_by == "modified_at":
                f.modified_after = since
            else:
                f.created_after = since
            return f

        found = await self.items.load_items(filt(now - window))
        if len(found) < math.ceil(options.limit * 0.5):
            found = await self.items.load_items(filt(now - widened))
        return found

    def _ranked(
        self,
        strategy: Strategy,
        scored: list[tuple[Item, float]],
        options: RecommendationOptions,
        reason: str,
    ) -> RankedCandidates:
        scored.sort(key=lambda p: (-p[1], p[0].id))
        cands = [
            RecommendationCandidate.from_item(
                it,
                recommendation_type=strategy.value,
                blended_score=s,
                per_strategy_scores={strategy.value: s},
                reason=reason,
            )
            for it, s in scored
        ]
        window, total, has_more = paginate(cands, options.page, options.limit)
        return RankedCandidates(
            recommendations=window,
            algorithm=strategy.value,
            recommendation_type=strategy.value,
            page=options.page,
            limit=options.limit,
            total=total,
            has_more=has_more,
        )

    async def hot(self, options: RecommendationOptions) -> RankedCandidates:
        found = await self._windowed(
            options, order_by="hot_score", window=timedelta(days=7), widened=timedelta(days=30)
        )
        scale = self.settings.hot_score_scale
        scored = [(it, normalize_hot(it.hot_score, scale)) for it in found]
        return self._ranked(Strategy.HOT, scored, options, "Trending right now")

    async def latest(self, options: RecommendationOptions) -> RankedCandidates:
        found = await self._windowed(
            options, order_by="created_at", window=timedelta(hours=24), widened=timedelta(days=7)
        )
        now = self.clock()
        scored = [(it, recency_score(it, now)) for it in found]
        return self._ranked(Strategy.LATEST, scored, options, "Freshly posted")

    async def updated(self, options: RecommendationOptions) -> RankedCandidates:
        found = await self._windowed(
            options, order_by="modified_at", window=timedelta(days=30), widened=timedelta(days=90)
        )
        now = self.clock()
        scale = self.settings.hot_score_scale
        scored = [
            (it, clamp01(updated_content_score(it, now) / scale))
            for it in found
            if it.modified_at is not None
        ]
        return self._ranked(Strategy.UPDATED, scored, options, "Recently updated")

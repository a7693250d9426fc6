from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Mapping

from pydantic import BaseModel, Field, TypeAdapter

from memerec_cache.versioned_cache import CacheFamily, VersionedCache
from memerec_core.config import EngineSettings
from memerec_core.options import RecommendationOptions
from memerec_core.ports import ItemRepo
from memerec_core.types import POSITIVE_TYPES, InteractionEvent, Item, ItemFilter, ItemId
from memerec_user.interactions.aggregator import InteractionAggregator
from memerec_user.signals.decay import DecayParams
from memerec_user.signals.weights import InteractionWeights, event_weight, weights_signature

log = logging.getLogger(__name__)


class TagPreferences(BaseModel):
    user_id: str
    preferences: dict[str, float] = Field(default_factory=dict)
    interaction_counts: dict[str, int] = Field(default_factory=dict)
    total_interactions: int = 0
    confidence: float = 0.0

    def top_tags(self, n: int = 5) -> list[str]:
        ranked = sorted(self.preferences.items(), key=lambda kv: (-kv[1], kv[0]))
        return [tag for tag, _ in ranked[:n]]


_ADAPTER = TypeAdapter(TagPreferences)


def build_tag_preferences(
    user_id: str,
    events: Iterable[InteractionEvent],
    items_by_id: Mapping[ItemId, Item],
    now: datetime,
    *,
    weights: InteractionWeights,
    decay: DecayParams | None,
    min_interactions: int = 3,
) -> TagPreferences:
    """
    Fold a user's events onto the tags of the items they touched.

    - every event adds weight(type) x decay to each tag of its item
    - a tag's interaction count is the number of distinct items behind it;
      tags below `min_interactions` are dropped
    - survivors are divided by the max survivor, so the top tag is exactly 1.0
    - confidence = kept tags / all touched tags
    """
    scores: dict[str, float] = defaultdict(float)
    touched: dict[str, set[ItemId]] = defaultdict(set)
    total = 0

    for ev in events:
        if ev.type not in POSITIVE_TYPES:
            continue
        total += 1
        item = items_by_id.get(ev.item_id)
        if item is None or not item.tags:
            continue
        w = event_weight(ev, now, weights, decay)
        for tag in set(item.tags):
            scores[tag] += w
            touched[tag].add(item.id)

    counts = {tag: len(ids) for tag, ids in touched.items()}
    kept = {tag: s for tag, s in scores.items() if counts[tag] >= min_interactions}
    top = max(kept.values(), default=0.0)
    preferences = (
        {tag: max(0.0, min(1.0, s / top)) for tag, s in kept.items()} if top > 0 else {}
    )

    return TagPreferences(
        user_id=user_id,
        preferences=preferences,
        interaction_counts=counts,
        total_interactions=total,
        confidence=len(preferences) / max(len(scores), 1),
    )


class TagPreferenceModel:
    def __init__(
        self,
        *,
        aggregator: InteractionAggregator,
        items: ItemRepo,
        cache: VersionedCache,
        settings: EngineSettings,
    ):
        self.aggregator = aggregator
        self.items = items
        self.cache = cache
        self.settings = settings

    def _cache_key(self, time_decay: bool, min_interactions: int) -> str:
        decay = self.aggregator.decay.signature() if time_decay else "nodecay"
        return f"{weights_signature(self.aggregator.weights)}|{decay}|mi{min_interactions}"

    async def calculate_user_tag_preferences(
        self,
        user_id: str,
        options: RecommendationOptions | None = None,
        *,
        force_refresh: bool = False,
    ) -> TagPreferences:
        opts = options or RecommendationOptions(
            min_interactions=self.settings.min_tag_interactions
        )

        async def compute() -> TagPreferences:
            events = await self.aggregator.load_events([user_id], types=POSITIVE_TYPES)
            ids = sorted({ev.item_id for ev in events})
            items = (
                await self.items.load_items(ItemFilter(ids=ids, public_only=False))
                if ids
                else []
            )
            prefs = build_tag_preferences(
                user_id,
                events,
                {it.id: it for it in items},
                self.aggregator.clock(),
                weights=self.aggregator.weights,
                decay=self.aggregator.decay if opts.time_decay else None,
                min_interactions=opts.min_interactions,
            )
            log.debug(
                "tag preferences for %s: %d tags, confidence %.2f",
                user_id,
                len(prefs.preferences),
                prefs.confidence,
            )
            return prefs

        res = await self.cache.with_version(
            CacheFamily.TAG_PREFERENCES,
            self._cache_key(opts.time_decay, opts.min_interactions),
            compute,
            ttl_sec=self.settings.tag_preferences_ttl_sec,
            adapter=_ADAPTER,
            user_id=user_id,
            force_refresh=force_refresh or opts.clear_cache,
        )
        return res.data

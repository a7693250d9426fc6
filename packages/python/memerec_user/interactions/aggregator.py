from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Sequence

from memerec_core.config import EngineSettings
from memerec_core.ports import InteractionRepo, ItemRepo, UserRepo
from memerec_core.types import (
    InteractionEvent,
    InteractionType,
    ItemFilter,
    ItemId,
    UserFilter,
    UserId,
    utcnow,
)
from memerec_user.signals.decay import DecayParams
from memerec_user.signals.reducers import group_by_user
from memerec_user.signals.weights import (
    DEFAULT_INTERACTION_WEIGHTS,
    InteractionWeights,
    compute_item_weights,
)

log = logging.getLogger(__name__)

InteractionVector = dict[ItemId, float]
InteractionMatrix = dict[UserId, InteractionVector]


class InteractionAggregator:
    """Loads raw interaction events and folds them into time-decayed vectors."""

    def __init__(
        self,
        *,
        interactions: InteractionRepo,
        items: ItemRepo,
        users: UserRepo,
        settings: EngineSettings,
        weights: InteractionWeights = DEFAULT_INTERACTION_WEIGHTS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.interactions = interactions
        self.items = items
        self.users = users
        self.settings = settings
        self.weights = weights
        self.decay = DecayParams.from_settings(settings)
        self.clock = clock

    @property
    def types(self) -> list[InteractionType]:
        return [
            t
            for t in InteractionType
            if t is not InteractionType.DISLIKE or self.settings.include_dislikes
        ]

    async def load_events(
        self,
        user_ids: Sequence[UserId] | None,
        item_ids: Sequence[ItemId] | None = None,
        types: Sequence[InteractionType] | None = None,
    ) -> list[InteractionEvent]:
        """Fan out one read per interaction type and join; any failure propagates."""
        kinds = list(types) if types is not None else self.types
        batches = await asyncio.gather(
            *(self.interactions.load_interactions(user_ids, item_ids, t) for t in kinds)
        )
        return [ev for batch in batches for ev in batch]

    async def user_events(self, user_id: UserId) -> list[InteractionEvent]:
        return await self.load_events([user_id])

    async def default_user_ids(self) -> list[UserId]:
        users = await self.users.load_users(
            UserFilter(status="active", limit=self.settings.active_user_cap)
        )
        return [u.id for u in users]

    async def default_item_ids(self) -> list[ItemId]:
        items = await self.items.load_items(
            ItemFilter(order_by="created_at", limit=self.settings.public_item_cap)
        )
        return [it.id for it in items]

    async def build_interaction_matrix(
        self,
        user_ids: Sequence[UserId] | None = None,
        item_ids: Sequence[ItemId] | None = None,
    ) -> InteractionMatrix:
        if not user_ids:
            user_ids = await self.default_user_ids()
        if not item_ids:
            item_ids = await self.default_item_ids()
        if not user_ids or not item_ids:
            return {}

        events = await self.load_events(user_ids, item_ids)
        now = self.clock()
        matrix: InteractionMatrix = {}
        for uid, evs in group_by_user(events).items():
            vec = compute_item_weights(evs, now, self.decay, self.weights)
            if vec:
                matrix[uid] = vec
        log.debug(
            "interaction matrix: %d users, %d items, %d events",
            len(matrix),
            len(item_ids),
            len(events),
        )
        return matrix

    async def user_vector(self, user_id: UserId) -> InteractionVector:
        events = await self.user_events(user_id)
        return compute_item_weights(events, self.clock(), self.decay, self.weights)

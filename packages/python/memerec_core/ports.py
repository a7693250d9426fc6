from __future__ import annotations

from typing import Protocol, Sequence

from .types import (
    FollowEdge,
    InteractionEvent,
    InteractionType,
    Item,
    ItemFilter,
    UserFilter,
    UserId,
    ItemId,
    UserRecord,
)


class InteractionRepo(Protocol):
    async def load_interactions(
        self,
        user_ids: Sequence[UserId] | None,
        item_ids: Sequence[ItemId] | None,
        type: InteractionType,
    ) -> list[InteractionEvent]: ...


class ItemRepo(Protocol):
    async def load_items(self, filter: ItemFilter) -> list[Item]: ...

    async def count_items(self, *, min_hot_score: float | None = None) -> int: ...


class FollowRepo(Protocol):
    async def load_follow_edges(self, user_ids: Sequence[UserId]) -> list[FollowEdge]: ...


class UserRepo(Protocol):
    async def load_users(self, filter: UserFilter) -> list[UserRecord]: ...

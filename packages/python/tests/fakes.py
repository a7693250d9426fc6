"""In-memory ports and data builders shared by the engine tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Sequence

from memerec_cache.backends import InMemoryCacheBackend
from memerec_cache.versioned_cache import VersionedCache
from memerec_core.config import EngineSettings
from memerec_core.types import (
    FollowEdge,
    InteractionEvent,
    InteractionType,
    Item,
    ItemFilter,
    UserFilter,
    UserRecord,
)
from memerec_recommendation.service import RecommendationService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def days_ago(n: float) -> datetime:
    return NOW - timedelta(days=n)


def ev(user_id: str, item_id: str, type: str = "like", age_days: float = 0.0) -> InteractionEvent:
    return InteractionEvent(
        user_id=user_id,
        item_id=item_id,
        type=InteractionType(type),
        occurred_at=days_ago(age_days),
    )


def item(id: str, tags=(), hot: float = 0.0, author: str | None = None, age_days: float = 1.0, **kw) -> Item:
    return Item(
        id=id,
        tags=tuple(tags),
        hot_score=hot,
        author_id=author,
        created_at=kw.pop("created_at", days_ago(age_days)),
        **kw,
    )


class FakeInteractionRepo:
    def __init__(self, events: Sequence[InteractionEvent] = ()):
        self.events = list(events)
        self.calls: list[tuple] = []

    async def load_interactions(self, user_ids, item_ids, type):
        self.calls.append((tuple(user_ids or ()), tuple(item_ids or ()), type))
        return [
            e
            for e in self.events
            if e.type is type
            and (user_ids is None or e.user_id in user_ids)
            and (item_ids is None or e.item_id in item_ids)
        ]


class FakeItemRepo:
    def __init__(self, items: Sequence[Item] = ()):
        self.items = list(items)
        self.filters: list[ItemFilter] = []

    def _match(self, it: Item, f: ItemFilter) -> bool:
        if f.ids is not None and it.id not in f.ids:
            return False
        if f.author_ids is not None and it.author_id not in f.author_ids:
            return False
        if f.public_only and it.status != "public":
            return False
        if f.tags and not set(f.tags) & set(it.tags):
            return False
        if f.types and it.type not in f.types:
            return False
        if it.id in f.exclude_ids:
            return False
        if f.created_after is not None and (it.created_at is None or it.created_at < f.created_after):
            return False
        if f.modified_after is not None and (
            it.modified_at is None or it.modified_at < f.modified_after
        ):
            return False
        return True

    async def load_items(self, filter: ItemFilter) -> list[Item]:
        self.filters.append(filter)
        found = [it for it in self.items if self._match(it, filter)]

        def key(it: Item):
            v = getattr(it, filter.order_by)
            if v is None:
                return (0, 0.0)
            return (1, v.timestamp() if isinstance(v, datetime) else float(v))

        found.sort(key=key, reverse=True)
        return found[: filter.limit] if filter.limit is not None else found

    async def count_items(self, *, min_hot_score: float | None = None) -> int:
        return sum(
            1
            for it in self.items
            if it.status == "public" and (min_hot_score is None or it.hot_score >= min_hot_score)
        )


class FakeFollowRepo:
    def __init__(self, edges: Sequence[tuple[str, str]] = ()):
        self.edges = [FollowEdge(follower_id=a, following_id=b) for a, b in edges]
        self.calls: list[list[str]] = []

    async def load_follow_edges(self, user_ids):
        self.calls.append(list(user_ids))
        ids = set(user_ids)
        return [e for e in self.edges if e.follower_id in ids or e.following_id in ids]


class FakeUserRepo:
    def __init__(self, users: Sequence[UserRecord] = ()):
        self.users = list(users)

    async def load_users(self, filter: UserFilter) -> list[UserRecord]:
        found = [
            u
            for u in self.users
            if (filter.ids is None or u.id in filter.ids)
            and (filter.status is None or u.status == filter.status)
        ]
        return found[: filter.limit] if filter.limit is not None else found


@dataclass
class World:
    """Everything a RecommendationService test needs, built from plain data."""

    events: list[InteractionEvent] = field(default_factory=list)
    items: list[Item] = field(default_factory=list)
    follows: list[tuple[str, str]] = field(default_factory=list)
    users: list[UserRecord] = field(default_factory=list)

    def service(self, settings: EngineSettings | None = None, **kw) -> RecommendationService:
        user_ids = {u.id for u in self.users}
        users = list(self.users) + [
            UserRecord(id=uid, username=uid)
            for uid in sorted(
                {e.user_id for e in self.events}
                | {a for pair in self.follows for a in pair}
            )
            if uid not in user_ids
        ]
        self.interaction_repo = FakeInteractionRepo(self.events)
        self.item_repo = FakeItemRepo(self.items)
        self.follow_repo = FakeFollowRepo(self.follows)
        self.user_repo = FakeUserRepo(users)
        self.backend = InMemoryCacheBackend()
        return RecommendationService(
            interactions=self.interaction_repo,
            items=self.item_repo,
            follows=self.follow_repo,
            users=self.user_repo,
            cache=VersionedCache(self.backend),
            settings=settings or EngineSettings(_env_file=None),
            clock=lambda: NOW,
            **kw,
        )



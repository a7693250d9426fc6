from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Sequence

UserId = str
ItemId = str


class InteractionType(str, Enum):
    LIKE = "like"
    COMMENT = "comment"
    SHARE = "share"
    COLLECT = "collect"
    VIEW = "view"
    DISLIKE = "dislike"


POSITIVE_TYPES: tuple[InteractionType, ...] = (
    InteractionType.LIKE,
    InteractionType.COMMENT,
    InteractionType.SHARE,
    InteractionType.COLLECT,
    InteractionType.VIEW,
)


class Strategy(str, Enum):
    HOT = "hot"
    LATEST = "latest"
    UPDATED = "updated"
    CONTENT_BASED = "content_based"
    COLLABORATIVE = "collaborative_filtering"
    SOCIAL = "social_collaborative_filtering"


@dataclass(frozen=True)
class InteractionEvent:
    user_id: UserId
    item_id: ItemId
    type: InteractionType
    occurred_at: datetime  # tz-aware


@dataclass(frozen=True)
class Item:
    id: ItemId
    tags: tuple[str, ...] = ()
    hot_score: float = 0.0
    author_id: UserId | None = None
    created_at: datetime | None = None
    modified_at: datetime | None = None
    type: str | None = None
    status: str = "public"
    title: str | None = None


@dataclass(frozen=True)
class FollowEdge:
    follower_id: UserId
    following_id: UserId
    created_at: datetime | None = None


@dataclass(frozen=True)
class UserRecord:
    id: UserId
    status: str = "active"
    username: str | None = None


ItemOrder = Literal["hot_score", "created_at", "modified_at"]


@dataclass
class ItemFilter:
    """Query shape for ItemRepo.load_items. Empty fields mean 'no constraint'."""

    ids: Sequence[ItemId] | None = None
    author_ids: Sequence[UserId] | None = None
    tags: Sequence[str] | None = None
    types: Sequence[str] | None = None
    exclude_ids: set[ItemId] = field(default_factory=set)
    created_after: datetime | None = None
    modified_after: datetime | None = None
    public_only: bool = True
    order_by: ItemOrder = "hot_score"
    limit: int | None = None


@dataclass
class UserFilter:
    ids: Sequence[UserId] | None = None
    status: str | None = "active"
    limit: int | None = None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from pydantic import BaseModel

from memerec_core.types import InteractionType, ItemId, UserId

from .graph import SocialDistance

PUBLISH = "publish"

# weight of a neighbor's action on an item, before distance/influence
SOCIAL_INTERACTION_WEIGHTS: dict[str, float] = {
    PUBLISH: 5.0,
    InteractionType.LIKE.value: 3.0,
    InteractionType.COMMENT.value: 3.0,
    InteractionType.SHARE.value: 4.0,
    InteractionType.COLLECT.value: 2.0,
    InteractionType.VIEW.value: 1.0,
}

REASON_TEMPLATES: dict[str, str] = {
    PUBLISH: "Your friend {username} posted this meme",
    InteractionType.LIKE.value: "Your friend {username} liked this meme",
    InteractionType.COMMENT.value: "Your friend {username} commented on this meme",
    InteractionType.SHARE.value: "Your friend {username} shared this meme",
    InteractionType.COLLECT.value: "Your friend {username} saved this meme",
    InteractionType.VIEW.value: "Your friend {username} viewed this meme",
}


@dataclass(frozen=True)
class SocialContribution:
    user_id: UserId
    username: str | None
    action: str
    weight: float  # action weight x distance weight x (1 + influence / 100)
    distance: SocialDistance
    influence_score: float


class SocialReason(BaseModel):
    type: str
    text: str
    weight: float
    user_id: str
    distance_kind: str


@dataclass
class ItemSocialScore:
    item_id: ItemId
    social_score: float = 0.0
    interaction_score: float = 0.0
    distance_score: float = 0.0
    influence_score: float = 0.0
    contributions: list[SocialContribution] = field(default_factory=list)
    reasons: list[SocialReason] = field(default_factory=list)


def contribution_weight(action: str, distance: SocialDistance, influence: float) -> float:
    base = SOCIAL_INTERACTION_WEIGHTS.get(action, 0.0) * distance.weight
    return base * (1.0 + influence / 100.0)


def generate_social_reasons(
    contributions: Iterable[SocialContribution],
    *,
    max_reasons: int = 3,
    min_weight: float = 2.0,
) -> list[SocialReason]:
    """One reason per action type, from that type's strongest contributor."""
    best: dict[str, SocialContribution] = {}
    for c in contributions:
        if c.weight < min_weight:
            continue
        cur = best.get(c.action)
        if cur is None or (c.weight, c.user_id) > (cur.weight, cur.user_id):
            best[c.action] = c

    reasons = []
    for action, c in best.items():
        template = REASON_TEMPLATES.get(action)
        if template is None:
            continue
        reasons.append(
            SocialReason(
                type=action,
                text=template.format(username=c.username or "someone you follow"),
                weight=round(c.weight, 4),
                user_id=c.user_id,
                distance_kind=c.distance.kind.value,
            )
        )
    reasons.sort(key=lambda r: (-r.weight, r.type))
    return reasons[:max_reasons]


def score_item(
    item_id: ItemId,
    contributions: Iterable[SocialContribution],
    *,
    max_social_score: float = 20.0,
    max_reasons: int = 3,
    min_reason_weight: float = 2.0,
) -> ItemSocialScore:
    """
    social_score = interaction + distance + influence sums, capped.
    Every (neighbor, action) pair contributes, so a neighbor who posted and
    liked an item counts twice and can yield a reason for each action.
    """
    contribs = sorted(contributions, key=lambda c: (-c.weight, c.user_id, c.action))
    out = ItemSocialScore(item_id=item_id, contributions=contribs)
    for c in contribs:
        out.interaction_score += c.weight
        out.distance_score += c.distance.weight
        out.influence_score += c.influence_score
    total = out.interaction_score + out.distance_score + out.influence_score
    out.social_score = min(total, max_social_score)
    out.reasons = generate_social_reasons(
        contribs, max_reasons=max_reasons, min_weight=min_reason_weight
    )
    return out


def actions_by_item(
    actions: Iterable[tuple[ItemId, UserId, str]],
) -> dict[ItemId, list[tuple[UserId, str]]]:
    """Group (item, neighbor, action) triples by item, repeats of the same triple collapsed."""
    out: dict[ItemId, list[tuple[UserId, str]]] = defaultdict(list)
    for item_id, uid, action in dict.fromkeys(actions):
        out[item_id].append((uid, action))
    return out

"""
Follow graph: adjacency, social distance and influence.

Nodes are built from follow edges. A node for a user whose own edges were
never loaded (the outer ring of a neighborhood) only knows the edges that
touch already-loaded users.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from enum import Enum
from typing import Iterable, Mapping

from pydantic import BaseModel, Field

from memerec_core.types import FollowEdge, UserId
from memerec_ranking.similarity import pearson_similarity

log = logging.getLogger(__name__)

MAX_DEPTH = 3


class DistanceKind(str, Enum):
    DIRECT_FOLLOW = "direct_follow"
    MUTUAL_FOLLOW = "mutual_follow"
    SECOND_DEGREE = "second_degree"
    THIRD_DEGREE = "third_degree"
    UNKNOWN = "unknown"


DISTANCE_WEIGHTS: dict[DistanceKind, float] = {
    DistanceKind.DIRECT_FOLLOW: 1.0,
    DistanceKind.MUTUAL_FOLLOW: 1.5,
    DistanceKind.SECOND_DEGREE: 0.6,
    DistanceKind.THIRD_DEGREE: 0.3,
    DistanceKind.UNKNOWN: 0.0,
}

# influence = followers x 0.3 + following x 0.2 + mutual x 0.5, capped
INFLUENCE_WEIGHTS = {"followers": 0.3, "following": 0.2, "mutual": 0.5}
MAX_INFLUENCE_SCORE = 100.0

INFLUENCE_LEVELS: tuple[tuple[float, str], ...] = (
    (50, "influencer"),
    (20, "popular"),
    (10, "active"),
    (5, "moderate"),
    (1, "low"),
)


class SocialNode(BaseModel):
    user_id: UserId
    followers: set[UserId] = Field(default_factory=set)
    following: set[UserId] = Field(default_factory=set)
    mutual: set[UserId] = Field(default_factory=set)
    influence_score: float = 0.0
    influence_level: str = "none"


SocialGraph = dict[UserId, SocialNode]


class SocialDistance(BaseModel):
    distance: float  # 1, 2, 3 or math.inf
    kind: DistanceKind
    weight: float

    @property
    def reachable(self) -> bool:
        return math.isfinite(self.distance)


UNREACHABLE = SocialDistance(
    distance=math.inf, kind=DistanceKind.UNKNOWN, weight=0.0
)


def influence_level(score: float) -> str:
    for threshold, level in INFLUENCE_LEVELS:
        if score >= threshold:
            return level
    return "none"


def calculate_social_influence_score(node: SocialNode | None) -> float:
    if node is None:
        return 0.0
    raw = (
        len(node.followers) * INFLUENCE_WEIGHTS["followers"]
        + len(node.following) * INFLUENCE_WEIGHTS["following"]
        + len(node.mutual) * INFLUENCE_WEIGHTS["mutual"]
    )
    return min(raw, MAX_INFLUENCE_SCORE)


def build_graph_from_edges(edges: Iterable[FollowEdge]) -> SocialGraph:
    graph: SocialGraph = {}

    def node(uid: UserId) -> SocialNode:
        n = graph.get(uid)
        if n is None:
            n = graph[uid] = SocialNode(user_id=uid)
        return n

    for e in edges:
        if e.follower_id == e.following_id:
            continue
        node(e.follower_id).following.add(e.following_id)
        node(e.following_id).followers.add(e.follower_id)

    for n in graph.values():
        n.mutual = n.following & n.followers
        n.influence_score = calculate_social_influence_score(n)
        n.influence_level = influence_level(n.influence_score)
    return graph


def calculate_social_distance(
    source: UserId,
    target: UserId,
    graph: Mapping[UserId, SocialNode],
    max_depth: int = MAX_DEPTH,
) -> SocialDistance:
    """
    Minimum hop count from source to target.

    Hop 1 counts an edge in either direction (both directions = mutual).
    Hops 2 and 3 walk "following" edges only. Breadth-first with an explicit
    visited set; the graph is cyclic.
    """
    if source == target:
        return UNREACHABLE
    src = graph.get(source)
    if src is None:
        return UNREACHABLE

    follows = target in src.following
    followed_by = target in src.followers
    if follows and followed_by:
        kind = DistanceKind.MUTUAL_FOLLOW
        return SocialDistance(distance=1, kind=kind, weight=DISTANCE_WEIGHTS[kind])
    if follows or followed_by:
        kind = DistanceKind.DIRECT_FOLLOW
        return SocialDistance(distance=1, kind=kind, weight=DISTANCE_WEIGHTS[kind])

    visited = {source}
    queue: deque[tuple[UserId, int]] = deque([(source, 0)])
    while queue:
        uid, depth = queue.popleft()
        if depth >= max_depth:
            continue
        n = graph.get(uid)
        if n is None:
            continue
        for nxt in sorted(n.following):
            if nxt in visited:
                continue
            if nxt == target:
                return _by_depth(depth + 1)
            visited.add(nxt)
            queue.append((nxt, depth + 1))
    return UNREACHABLE


def _by_depth(depth: int) -> SocialDistance:
    # depth 1 is handled before the walk
    kind = DistanceKind.SECOND_DEGREE if depth == 2 else DistanceKind.THIRD_DEGREE
    return SocialDistance(distance=depth, kind=kind, weight=DISTANCE_WEIGHTS[kind])


def distances_from(
    source: UserId,
    graph: Mapping[UserId, SocialNode],
    max_depth: int = MAX_DEPTH,
) -> dict[UserId, SocialDistance]:
    """Distances from source to every user reachable within max_depth."""
    out: dict[UserId, SocialDistance] = {}
    src = graph.get(source)
    if src is None:
        return out
    for uid in src.following | src.followers:
        if uid != source:
            out[uid] = calculate_social_distance(source, uid, graph, max_depth)

    visited = {source} | src.following
    frontier = set(src.following)
    for depth in range(2, max_depth + 1):
        nxt: set[UserId] = set()
        for uid in frontier:
            n = graph.get(uid)
            if n is None:
                continue
            for v in n.following:
                if v in visited:
                    continue
                visited.add(v)
                nxt.add(v)
                if v not in out:
                    out[v] = _by_depth(depth)
        frontier = nxt
    return out


# social similarity = shared followers x 0.3 + shared following x 0.3 + tie bonus
SHARED_FOLLOWERS_WEIGHT = 0.3
SHARED_FOLLOWING_WEIGHT = 0.3
MUTUAL_TIE_BONUS = 0.4
ONE_WAY_TIE_BONUS = 0.2

# weighted similarity = behavior x 0.6 + social x 0.3 + min(influence / 100, 1) x 0.1
BEHAVIOR_WEIGHT = 0.6
SOCIAL_WEIGHT = 0.3
INFLUENCE_WEIGHT = 0.1


def _overlap(a: set[UserId], b: set[UserId]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / max(len(a), len(b))


def social_similarity(a: UserId, b: UserId, graph: Mapping[UserId, SocialNode]) -> float:
    """How alike two users' follow neighborhoods are, in [0, 1]."""
    na, nb = graph.get(a), graph.get(b)
    if na is None or nb is None:
        return 0.0

    sim = _overlap(na.followers, nb.followers) * SHARED_FOLLOWERS_WEIGHT
    sim += _overlap(na.following, nb.following) * SHARED_FOLLOWING_WEIGHT

    a_follows_b = b in na.following or a in nb.followers
    b_follows_a = a in na.followers or b in nb.following
    if a_follows_b and b_follows_a:
        sim += MUTUAL_TIE_BONUS
    elif a_follows_b or b_follows_a:
        sim += ONE_WAY_TIE_BONUS
    return min(sim, 1.0)


def social_weighted_similarity(
    target: Mapping[str, float],
    other: Mapping[str, float],
    social: float,
    other_influence: float,
) -> float:
    """Behavioral (Pearson) similarity re-weighted by social closeness and the other user's influence."""
    behavior = pearson_similarity(target, other)
    influence = min(other_influence / MAX_INFLUENCE_SCORE, 1.0)
    weighted = behavior * BEHAVIOR_WEIGHT + social * SOCIAL_WEIGHT + influence * INFLUENCE_WEIGHT
    return min(weighted, 1.0)

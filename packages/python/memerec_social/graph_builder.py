from __future__ import annotations

import logging
from typing import Sequence

from pydantic import BaseModel, TypeAdapter

from memerec_cache.versioned_cache import CacheFamily, VersionedCache
from memerec_core.config import EngineSettings
from memerec_core.ports import FollowRepo
from memerec_core.types import FollowEdge, UserId

from .graph import (
    MAX_DEPTH,
    SocialGraph,
    SocialNode,
    build_graph_from_edges,
)

log = logging.getLogger(__name__)

_GRAPH_ADAPTER = TypeAdapter(dict[str, SocialNode])


class SocialInfluenceStats(BaseModel):
    user_id: str
    influence_score: float = 0.0
    influence_level: str = "none"
    followers: int = 0
    following: int = 0
    mutual_follows: int = 0
    network_density: float = 0.0
    social_reach: int = 0


class SocialGraphBuilder:
    def __init__(
        self,
        *,
        follows: FollowRepo,
        cache: VersionedCache,
        settings: EngineSettings,
    ):
        self.follows = follows
        self.cache = cache
        self.settings = settings

    async def build_social_graph(self, user_ids: Sequence[UserId]) -> SocialGraph:
        """Graph over every follow edge touching the given users."""
        edges = await self.follows.load_follow_edges(list(dict.fromkeys(user_ids)))
        return build_graph_from_edges(edges)

    async def build_neighborhood(
        self,
        user_id: UserId,
        depth: int = MAX_DEPTH,
        *,
        force_refresh: bool = False,
    ) -> SocialGraph:
        """
        Expand outward from user_id so distances up to `depth` can be resolved.
        Each round loads the edges of the users discovered by the previous one.
        """

        async def compute() -> SocialGraph:
            edges: dict[tuple[str, str], FollowEdge] = {}
            loaded: set[UserId] = set()
            frontier: set[UserId] = {user_id}
            for round_no in range(depth):
                todo = sorted(frontier - loaded)
                if not todo:
                    break
                batch = await self.follows.load_follow_edges(todo)
                loaded.update(todo)
                nxt: set[UserId] = set()
                for e in batch:
                    edges[(e.follower_id, e.following_id)] = e
                    if e.follower_id in frontier:
                        nxt.add(e.following_id)
                    # followers of the root are direct neighbors too; beyond
                    # that only "following" hops count toward distance
                    if round_no == 0 and e.following_id == user_id:
                        nxt.add(e.follower_id)
                frontier = nxt
            graph = build_graph_from_edges(edges.values())
            log.debug(
                "social neighborhood of %s: %d nodes, %d edges", user_id, len(graph), len(edges)
            )
            return graph

        res = await self.cache.with_version(
            CacheFamily.SOCIAL_GRAPH,
            f"d{depth}",
            compute,
            ttl_sec=self.settings.social_graph_ttl_sec,
            adapter=_GRAPH_ADAPTER,
            user_id=user_id,
            force_refresh=force_refresh,
        )
        return res.data

    async def get_user_social_influence_stats(self, user_id: UserId) -> SocialInfluenceStats:
        graph = await self.build_social_graph([user_id])
        node = graph.get(user_id)
        if node is None:
            return SocialInfluenceStats(user_id=user_id)
        connections = len(node.followers) + len(node.following)
        return SocialInfluenceStats(
            user_id=user_id,
            influence_score=node.influence_score,
            influence_level=node.influence_level,
            followers=len(node.followers),
            following=len(node.following),
            mutual_follows=len(node.mutual),
            network_density=min(connections / 100, 1.0),
            social_reach=len(node.followers) + len(node.mutual),
        )

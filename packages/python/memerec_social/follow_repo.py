from __future__ import annotations

import logging
from typing import Sequence

from anyio import to_thread

from memerec_core.rows import STORE_ERRORS, chunked, ensure_ts, map_pgrest
from memerec_core.types import FollowEdge, UserId

log = logging.getLogger(__name__)

TABLE = "follows"
COLUMNS = "follower_id,following_id,created_at"


class SupabaseFollowRepo:
    def __init__(self, client):
        self.client = client

    async def load_follow_edges(self, user_ids: Sequence[UserId]) -> list[FollowEdge]:
        return await to_thread.run_sync(self._load_sync, list(user_ids))

    def _load_sync(self, user_ids: list[UserId]) -> list[FollowEdge]:
        if not user_ids:
            return []
        seen: set[tuple[str, str]] = set()
        out: list[FollowEdge] = []
        try:
            for chunk in chunked(user_ids):
                # edges touching the chunk from either side
                for col in ("follower_id", "following_id"):
                    res = (
                        self.client.table(TABLE)
                        .select(COLUMNS)
                        .in_(col, chunk)
                        .eq("status", "active")
                        .execute()
                    )
                    for r in res.data or []:
                        key = (str(r["follower_id"]), str(r["following_id"]))
                        if key in seen or key[0] == key[1]:
                            continue
                        seen.add(key)
                        out.append(
                            FollowEdge(
                                follower_id=key[0],
                                following_id=key[1],
                                created_at=ensure_ts(r.get("created_at")),
                            )
                        )
        except STORE_ERRORS as e:
            log.exception("loading follow edges failed")
            raise map_pgrest(e, TABLE) from e
        return out

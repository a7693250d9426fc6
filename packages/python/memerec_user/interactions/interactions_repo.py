from __future__ import annotations

import logging
from typing import Sequence

from anyio import to_thread

from memerec_core.rows import STORE_ERRORS, chunked, ensure_ts, map_pgrest
from memerec_core.types import InteractionEvent, InteractionType, ItemId, UserId

log = logging.getLogger(__name__)

# one table per interaction type, all shaped (user_id, meme_id, created_at)
TABLES: dict[InteractionType, str] = {
    InteractionType.LIKE: "likes",
    InteractionType.COMMENT: "comments",
    InteractionType.SHARE: "shares",
    InteractionType.COLLECT: "collections",
    InteractionType.VIEW: "views",
    InteractionType.DISLIKE: "dislikes",
}
COLUMNS = "user_id,meme_id,created_at"


class SupabaseInteractionRepo:
    def __init__(self, client):
        self.client = client

    # ---------- Async facade (runs sync work in threadpool) ----------
    async def load_interactions(
        self,
        user_ids: Sequence[UserId] | None,
        item_ids: Sequence[ItemId] | None,
        type: InteractionType,
    ) -> list[InteractionEvent]:
        return await to_thread.run_sync(self._load_sync, user_ids, item_ids, type)

    # ---------- Private sync implementations ----------
    def _load_sync(
        self,
        user_ids: Sequence[UserId] | None,
        item_ids: Sequence[ItemId] | None,
        type: InteractionType,
    ) -> list[InteractionEvent]:
        table = TABLES[type]
        user_chunks = list(chunked(list(user_ids))) if user_ids else [None]
        item_chunks = list(chunked(list(item_ids))) if item_ids else [None]

        rows: list[dict] = []
        try:
            for uc in user_chunks:
                for ic in item_chunks:
                    qb = self.client.table(table).select(COLUMNS)
                    if uc is not None:
                        qb = qb.in_("user_id", uc)
                    if ic is not None:
                        qb = qb.in_("meme_id", ic)
                    res = qb.execute()
                    rows.extend(res.data or [])
        except STORE_ERRORS as e:
            log.exception("loading %s interactions failed", type.value)
            raise map_pgrest(e, table) from e

        out: list[InteractionEvent] = []
        for r in rows:
            ts = ensure_ts(r.get("created_at"))
            if ts is None or not r.get("user_id") or not r.get("meme_id"):
                continue
            out.append(
                InteractionEvent(
                    user_id=str(r["user_id"]),
                    item_id=str(r["meme_id"]),
                    type=type,
                    occurred_at=ts,
                )
            )
        return out

from __future__ import annotations

import logging
from datetime import datetime

from anyio import to_thread

from memerec_core.rows import STORE_ERRORS, chunked, ensure_ts, map_pgrest
from memerec_core.types import Item, ItemFilter

log = logging.getLogger(__name__)

TABLE = "memes"
COLUMNS = "id,title,tags,hot_score,author_id,created_at,modified_at,type,status"


def _row_to_item(row: dict) -> Item:
    return Item(
        id=str(row["id"]),
        title=row.get("title"),
        tags=tuple(str(t) for t in (row.get("tags") or [])),
        hot_score=float(row.get("hot_score") or 0.0),
        author_id=str(row["author_id"]) if row.get("author_id") else None,
        created_at=ensure_ts(row.get("created_at")),
        modified_at=ensure_ts(row.get("modified_at")),
        type=row.get("type"),
        status=row.get("status") or "public",
    )


def _order_key(item: Item, col: str) -> tuple[int, float]:
    v = getattr(item, col, None)
    if v is None:
        return (0, 0.0)
    if isinstance(v, datetime):
        return (1, v.timestamp())
    return (1, float(v))


class SupabaseItemRepo:
    def __init__(self, client):
        self.client = client

    async def load_items(self, filter: ItemFilter) -> list[Item]:
        return await to_thread.run_sync(self._load_sync, filter)

    async def count_items(self, *, min_hot_score: float | None = None) -> int:
        return await to_thread.run_sync(self._count_sync, min_hot_score)

    def _query(self, f: ItemFilter, ids: list[str] | None, authors: list[str] | None):
        qb = self.client.table(TABLE).select(COLUMNS)
        if ids is not None:
            qb = qb.in_("id", ids)
        if authors is not None:
            qb = qb.in_("author_id", authors)
        if f.public_only:
            qb = qb.eq("status", "public")
        if f.tags:
            qb = qb.overlaps("tags", list(f.tags))
        if f.types:
            qb = qb.in_("type", list(f.types))
        if f.created_after is not None:
            qb = qb.gte("created_at", f.created_after.isoformat())
        if f.modified_after is not None:
            qb = qb.gte("modified_at", f.modified_after.isoformat())
        qb = qb.order(f.order_by, desc=True)
        if f.limit is not None and ids is None and authors is None:
            # exclusions are applied client-side, so over-fetch by their count
            qb = qb.limit(f.limit + len(f.exclude_ids))
        return qb

    def _load_sync(self, f: ItemFilter) -> list[Item]:
        try:
            id_chunks = list(chunked(list(f.ids))) if f.ids is not None else [None]
            author_chunks = (
                list(chunked(list(f.author_ids))) if f.author_ids is not None else [None]
            )
            rows: list[dict] = []
            for ic in id_chunks:
                for ac in author_chunks:
                    rows.extend(self._query(f, ic, ac).execute().data or [])
        except STORE_ERRORS as e:
            log.exception("loading memes failed")
            raise map_pgrest(e, TABLE) from e

        items = [_row_to_item(r) for r in rows if r.get("id") is not None]
        if len(id_chunks) * len(author_chunks) > 1:
            items.sort(key=lambda it: _order_key(it, f.order_by), reverse=True)
        if f.exclude_ids:
            items = [it for it in items if it.id not in f.exclude_ids]
        if f.limit is not None:
            items = items[: f.limit]
        return items

    def _count_sync(self, min_hot_score: float | None) -> int:
        try:
            qb = (
                self.client.table(TABLE)
                .select("id", count="exact")
                .eq("status", "public")
            )
            if min_hot_score is not None:
                qb = qb.gte("hot_score", min_hot_score)
            res = qb.limit(1).execute()
        except STORE_ERRORS as e:
            raise map_pgrest(e, TABLE) from e
        return int(res.count or 0)

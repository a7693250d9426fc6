from __future__ import annotations

import logging

from anyio import to_thread

from memerec_core.rows import STORE_ERRORS, chunked, map_pgrest
from memerec_core.types import UserFilter, UserRecord

log = logging.getLogger(__name__)

TABLE = "users"


class SupabaseUserRepo:
    def __init__(self, client):
        self.client = client

    async def load_users(self, filter: UserFilter) -> list[UserRecord]:
        return await to_thread.run_sync(self._load_sync, filter)

    def _load_sync(self, f: UserFilter) -> list[UserRecord]:
        def q(ids: list[str] | None):
            qb = self.client.table(TABLE).select("id,status,username")
            if ids is not None:
                qb = qb.in_("id", ids)
            if f.status:
                qb = qb.eq("status", f.status)
            if f.limit is not None:
                qb = qb.limit(f.limit)
            return qb

        try:
            if f.ids is not None:
                rows: list[dict] = []
                for chunk in chunked(list(f.ids)):
                    rows.extend(q(chunk).execute().data or [])
            else:
                rows = q(None).execute().data or []
        except STORE_ERRORS as e:
            log.exception("loading users failed")
            raise map_pgrest(e, TABLE) from e

        return [
            UserRecord(
                id=str(r["id"]),
                status=r.get("status") or "active",
                username=r.get("username"),
            )
            for r in rows
            if r.get("id") is not None
        ]

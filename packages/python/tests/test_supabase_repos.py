from typing import Any, Dict, List

import pytest
from postgrest.exceptions import APIError

from memerec_core.errors import DataUnavailable
from memerec_core.types import InteractionType, ItemFilter, UserFilter
from memerec_social.follow_repo import SupabaseFollowRepo
from memerec_user.interactions.interactions_repo import SupabaseInteractionRepo
from memerec_user.items.items_repo import SupabaseItemRepo
from memerec_user.users_repo import SupabaseUserRepo


class _FakeQuery:
    def __init__(self, client: "FakeSupabaseClient", table: str):
        self._client = client
        self.table = table
        self.ops: List[tuple] = []

    def _op(self, *op):
        self.ops.append(op)
        return self

    def select(self, cols: str = "*", count: str | None = None):
        return self._op("select", cols, count)

    def in_(self, col, values):
        return self._op("in", col, list(values))

    def eq(self, col, value):
        return self._op("eq", col, value)

    def gte(self, col, value):
        return self._op("gte", col, value)

    def overlaps(self, col, values):
        return self._op("overlaps", col, list(values))

    def order(self, col, desc: bool = False):
        return self._op("order", col, desc)

    def limit(self, n):
        return self._op("limit", n)

    def execute(self):
        self._client.executed.append(self)
        if self._client.error is not None:
            raise self._client.error

        class _Resp:
            def __init__(self, data, count):
                self.data = data
                self.count = count

        rows = self._client.responder(self) if self._client.responder else []
        return _Resp(rows, self._client.count)


class FakeSupabaseClient:
    def __init__(self, responder=None, error: Exception | None = None, count: int | None = None):
        self.responder = responder
        self.error = error
        self.count = count
        self.executed: List[_FakeQuery] = []

    def table(self, name: str):
        return _FakeQuery(self, name)


def _arg(q: _FakeQuery, kind: str, col: str | None = None) -> Any:
    for op in q.ops:
        if op[0] == kind and (col is None or op[1] == col):
            return op[-1] if kind != "select" else op[1]
    return None


@pytest.mark.anyio
async def test_interactions_are_mapped_and_bad_rows_skipped():
    rows: List[Dict[str, Any]] = [
        {"user_id": "u1", "meme_id": "m1", "created_at": "2026-02-01T10:00:00Z"},
        {"user_id": "u1", "meme_id": None, "created_at": "2026-02-01T10:00:00Z"},
        {"user_id": "u2", "meme_id": "m2", "created_at": "garbage"},
    ]
    client = FakeSupabaseClient(responder=lambda q: rows)
    events = await SupabaseInteractionRepo(client).load_interactions(["u1", "u2"], None, InteractionType.SHARE)

    assert len(events) == 1
    assert events[0].item_id == "m1"
    assert events[0].type is InteractionType.SHARE
    assert events[0].occurred_at.tzinfo is not None
    assert client.executed[0].table == "shares"


@pytest.mark.anyio
async def test_interaction_queries_are_chunked():
    client = FakeSupabaseClient()
    users = [f"u{i}" for i in range(450)]
    await SupabaseInteractionRepo(client).load_interactions(users, ["m1"], InteractionType.LIKE)

    assert len(client.executed) == 3
    assert [len(_arg(q, "in", "user_id")) for q in client.executed] == [200, 200, 50]
    assert all(_arg(q, "in", "meme_id") == ["m1"] for q in client.executed)


@pytest.mark.anyio
async def test_store_errors_become_data_unavailable():
    err = APIError({"message": "timeout", "code": "PGRST000", "hint": None, "details": None})
    client = FakeSupabaseClient(error=err)
    with pytest.raises(DataUnavailable) as exc:
        await SupabaseInteractionRepo(client).load_interactions(["u1"], None, InteractionType.LIKE)
    assert "PGRST000" in str(exc.value)

    with pytest.raises(DataUnavailable):
        await SupabaseItemRepo(client).load_items(ItemFilter(limit=5))


@pytest.mark.anyio
async def test_item_query_shape_and_client_side_exclusion():
    rows = [
        {"id": "m1", "tags": ["funny"], "hot_score": 10, "created_at": "2026-02-01T10:00:00+00:00"},
        {"id": "m2", "tags": ["funny"], "hot_score": 5, "created_at": "2026-02-01T10:00:00+00:00"},
        {"id": "m3", "tags": None, "hot_score": None, "created_at": None},
    ]
    client = FakeSupabaseClient(responder=lambda q: rows)
    items = await SupabaseItemRepo(client).load_items(
        ItemFilter(tags=["funny"], types=["image"], exclude_ids={"m1"}, limit=1)
    )

    assert [it.id for it in items] == ["m2"]
    q = client.executed[0]
    assert q.table == "memes"
    assert _arg(q, "eq", "status") == "public"
    assert _arg(q, "overlaps", "tags") == ["funny"]
    assert _arg(q, "in", "type") == ["image"]
    assert _arg(q, "order") is True
    # over-fetch by the number of exclusions
    assert _arg(q, "limit") == 2


@pytest.mark.anyio
async def test_item_rows_default_missing_fields():
    client = FakeSupabaseClient(responder=lambda q: [{"id": 7, "tags": None, "hot_score": None}])
    (it,) = await SupabaseItemRepo(client).load_items(ItemFilter(ids=["7"], public_only=False))
    assert (it.id, it.tags, it.hot_score, it.status) == ("7", (), 0.0, "public")
    assert _arg(client.executed[0], "eq", "status") is None


@pytest.mark.anyio
async def test_count_items_uses_exact_count():
    client = FakeSupabaseClient(count=42)
    assert await SupabaseItemRepo(client).count_items(min_hot_score=100) == 42
    q = client.executed[0]
    assert q.ops[0] == ("select", "id", "exact")
    assert _arg(q, "gte", "hot_score") == 100


@pytest.mark.anyio
async def test_follow_edges_are_deduped_and_self_edges_dropped():
    def responder(q):
        return [
            {"follower_id": "a", "following_id": "b"},
            {"follower_id": "b", "following_id": "a"},
            {"follower_id": "a", "following_id": "a"},
        ]

    client = FakeSupabaseClient(responder=responder)
    edges = await SupabaseFollowRepo(client).load_follow_edges(["a"])

    assert {(e.follower_id, e.following_id) for e in edges} == {("a", "b"), ("b", "a")}
    assert len(edges) == 2
    assert [_arg(q, "in") for q in client.executed] == [["a"], ["a"]]
    assert await SupabaseFollowRepo(client).load_follow_edges([]) == []


@pytest.mark.anyio
async def test_users_filter_by_status():
    client = FakeSupabaseClient(responder=lambda q: [{"id": "u1", "username": "kim"}])
    users = await SupabaseUserRepo(client).load_users(UserFilter(limit=10))
    assert users[0].username == "kim"
    assert users[0].status == "active"
    q = client.executed[0]
    assert _arg(q, "eq", "status") == "active"
    assert _arg(q, "limit") == 10

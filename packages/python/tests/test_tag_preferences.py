import pytest

from memerec_user.signals.decay import DecayParams
from memerec_user.signals.weights import DEFAULT_INTERACTION_WEIGHTS
from memerec_user.taste.tag_preferences import build_tag_preferences

from fakes import NOW, World, ev, item


def _build(events, items, min_interactions=3):
    return build_tag_preferences(
        "u1",
        events,
        {it.id: it for it in items},
        NOW,
        weights=DEFAULT_INTERACTION_WEIGHTS,
        decay=DecayParams(),
        min_interactions=min_interactions,
    )


def test_repeated_events_on_one_item_count_once():
    x = item("X", ["funny", "meme"])
    prefs = _build([ev("u1", "X") for _ in range(5)], [x])

    assert prefs.preferences == {}
    assert prefs.confidence == 0.0
    assert prefs.interaction_counts == {"funny": 1, "meme": 1}
    assert prefs.total_interactions == 5


def test_tags_below_threshold_are_dropped():
    items = [item("a", ["funny", "cats"]), item("b", ["funny"]), item("c", ["funny"])]
    prefs = _build([ev("u1", it.id) for it in items], items)

    assert prefs.preferences == {"funny": 1.0}
    assert prefs.interaction_counts == {"funny": 3, "cats": 1}
    assert prefs.confidence == pytest.approx(0.5)


def test_preferences_are_normalized_to_top_tag():
    items = [
        item("a", ["funny", "cats"]),
        item("b", ["funny", "cats"]),
        item("c", ["funny"]),
        item("d", ["cats"]),
    ]
    events = [ev("u1", "a", "share"), ev("u1", "b"), ev("u1", "c"), ev("u1", "d")]
    prefs = _build(events, items, min_interactions=2)

    assert max(prefs.preferences.values()) == 1.0
    assert all(0.0 <= v <= 1.0 for v in prefs.preferences.values())
    # funny: 3 + 1 + 1, cats: 3 + 1 + 1
    assert prefs.preferences["funny"] == pytest.approx(prefs.preferences["cats"])
    assert prefs.top_tags(1) == ["cats"]


def test_dislikes_do_not_count_toward_preferences():
    items = [item(i, ["politics"]) for i in ("a", "b", "c")]
    prefs = _build([ev("u1", it.id, "dislike") for it in items], items)
    assert prefs.preferences == {}
    assert prefs.total_interactions == 0


@pytest.mark.anyio
async def test_model_caches_per_user():
    w = World(
        events=[ev("u1", i) for i in ("a", "b", "c")],
        items=[item(i, ["funny"]) for i in ("a", "b", "c")],
    )
    svc = w.service()

    first = await svc.tag_model.calculate_user_tag_preferences("u1")
    calls = len(w.interaction_repo.calls)
    second = await svc.tag_model.calculate_user_tag_preferences("u1")

    assert first == second
    assert first.preferences == {"funny": 1.0}
    assert len(w.interaction_repo.calls) == calls

    await svc.clear_user_cache("u1")
    await svc.tag_model.calculate_user_tag_preferences("u1")
    assert len(w.interaction_repo.calls) > calls

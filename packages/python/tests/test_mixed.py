import pytest

from memerec_core.options import RecommendationOptions, UserBehavior
from memerec_core.types import Strategy
from memerec_ranking.types import RankedCandidates, RecommendationCandidate
from memerec_recommendation.mixed import merge_candidates
from memerec_recommendation.strategy import (
    COLD_START_WEIGHTS,
    activity_level,
    activity_score,
    normalize_weights,
)

from fakes import World, ev, item

ITEMS = [
    item(f"m{i}", ["funny", "cats"] if i % 2 else ["funny", "dogs"], hot=100 * i, author=f"a{i % 3}")
    for i in range(10)
]


def _active_world():
    return World(events=[ev("u1", f"m{i}") for i in range(6)], items=ITEMS)


def _cold_world():
    return World(events=[ev("u1", "m1"), ev("u1", "m2")], items=ITEMS)


def _cand(item_id, score, strategy="hot", reason=None):
    return RecommendationCandidate(
        item_id=item_id,
        recommendation_type=strategy,
        blended_score=score,
        per_strategy_scores={strategy: score},
        reason=reason,
    )


def test_merge_is_weighted_over_contributing_strategies():
    weights = normalize_weights({Strategy.HOT: 0.5, Strategy.CONTENT_BASED: 0.25, Strategy.LATEST: 0.25})
    results = {
        Strategy.HOT: RankedCandidates(
            algorithm="hot",
            recommendation_type="hot",
            recommendations=[_cand("x", 0.8, "hot", "Trending right now"), _cand("y", 0.3, "hot")],
        ),
        Strategy.CONTENT_BASED: RankedCandidates(
            algorithm="content_based",
            recommendation_type="content_based",
            recommendations=[_cand("x", 0.4, "content_based", "Because you like #funny")],
        ),
    }
    merged = merge_candidates(results, weights)

    assert [c.item_id for c in merged] == ["x", "y"]
    x = merged[0]
    assert x.recommendation_type == "mixed"
    assert x.per_strategy_scores == {"hot": 0.8, "content_based": 0.4}
    assert x.blended_score == pytest.approx((0.5 * 0.8 + 0.25 * 0.4) / 0.75)
    assert x.reason == "Trending right now"
    assert merged[1].blended_score == pytest.approx(0.3)


@pytest.mark.parametrize(
    "total,level",
    [(0, "inactive"), (2, "inactive"), (3, "low"), (9, "low"), (99, "moderate"), (999, "active"), (99999, "very_active")],
)
def test_activity_levels(total, level):
    assert activity_level(activity_score(total)) == level


@pytest.mark.anyio
async def test_mixed_for_active_user():
    svc = _active_world().service()
    res = await svc.get_mixed_recommendations("u1", RecommendationOptions(limit=5))

    assert res.algorithm == "mixed"
    assert sum(res.weights.values()) == pytest.approx(1.0, abs=1e-5)
    assert not res.cold_start_status.is_cold_start
    assert res.cold_start_status.activity_level == "low"
    assert set(res.strategies) == {s.value for s in Strategy}
    assert res.strategies["collaborative_filtering"] == "collaborative_fallback"

    ids = [c.item_id for c in res.recommendations]
    assert 0 < len(ids) <= 5
    assert len(set(ids)) == len(ids)
    assert all(c.recommendation_type == "mixed" for c in res.recommendations)
    assert all(0.0 <= c.blended_score <= 1.0 for c in res.recommendations)
    scores = [c.blended_score for c in res.recommendations]
    assert scores == sorted(scores, reverse=True)
    assert res.diversity.total_candidates == len(ids)


@pytest.mark.anyio
async def test_mixed_for_cold_start_user_uses_popularity_only():
    res = await _cold_world().service().get_mixed_recommendations("u1", RecommendationOptions())

    status = res.cold_start_status
    assert status.is_cold_start
    assert status.total_interactions == 2
    assert "few interactions" in status.reason
    expected = normalize_weights(COLD_START_WEIGHTS)
    assert res.weights == {s.value: pytest.approx(w) for s, w in expected.items()}
    assert set(res.strategies) == {"hot", "latest", "updated"}


@pytest.mark.anyio
async def test_custom_weights_are_merged_and_renormalized():
    opts = RecommendationOptions(custom_weights={Strategy.SOCIAL: 1.0})
    res = await _cold_world().service().get_mixed_recommendations("u1", opts)

    assert res.weights["social_collaborative_filtering"] == pytest.approx(0.5)
    assert res.weights["hot"] == pytest.approx(0.4)
    assert "social_collaborative_filtering" in res.strategies


@pytest.mark.anyio
async def test_mixed_excludes_ids_and_can_skip_analysis():
    opts = RecommendationOptions(
        exclude_ids=["m9", "m8"], include_diversity=False, include_cold_start_analysis=False
    )
    res = await _active_world().service().get_mixed_recommendations("u1", opts)

    ids = {c.item_id for c in res.recommendations}
    assert not ids & {"m8", "m9"}
    assert res.diversity is None
    assert res.cold_start_status is None


@pytest.mark.anyio
async def test_mixed_is_cached_until_cleared():
    w = _active_world()
    svc = w.service()
    await svc.get_mixed_recommendations("u1", RecommendationOptions())
    calls = len(w.item_repo.filters)

    await svc.get_mixed_recommendations("u1", RecommendationOptions())
    assert len(w.item_repo.filters) == calls

    await svc.get_mixed_recommendations("u1", RecommendationOptions(clear_cache=True))
    assert len(w.item_repo.filters) > calls
    assert (await svc.cache_version_stats())["mixed:u1"] == "1.0.1"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "behavior,focus",
    [
        (UserBehavior(click_rate=0.5), "personalization"),
        (UserBehavior(engagement_rate=0.6), "social"),
        (UserBehavior(diversity_preference=0.9), "exploration"),
        (UserBehavior(), "balanced"),
    ],
)
async def test_adjust_strategy_for_active_user(behavior, focus):
    adj = await _active_world().service().adjust_recommendation_strategy("u1", behavior)
    assert adj.focus == focus
    assert sum(adj.weights.values()) == pytest.approx(1.0, abs=1e-5)


@pytest.mark.anyio
async def test_adjust_strategy_for_cold_user_is_discovery():
    adj = await _cold_world().service().adjust_recommendation_strategy("u1", UserBehavior())
    assert adj.focus == "discovery"
    assert adj.weights["content_based"] == 0.0
    assert adj.cold_start.is_cold_start

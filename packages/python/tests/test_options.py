import pytest
from pydantic import ValidationError

from memerec_core.errors import InvalidOptions
from memerec_core.options import RecommendationOptions, UserBehavior, parse_options
from memerec_core.types import Strategy


def test_defaults():
    opts = parse_options()
    assert opts.limit == 20
    assert opts.page == 1
    assert opts.min_similarity == 0.1
    assert opts.hot_score_weight == 0.3
    assert opts.offset == 0


def test_query_string_values_are_coerced():
    opts = parse_options({"limit": "5", "page": "3", "tags": "funny, cats", "exclude_ids": "m1,m2"})
    assert opts.limit == 5
    assert opts.offset == 10
    assert opts.tags == ("funny", "cats")
    assert opts.exclude_ids == frozenset({"m1", "m2"})


@pytest.mark.parametrize(
    "raw",
    [
        {"limit": "abc"},
        {"limit": 0},
        {"limit": 101},
        {"page": 0},
        {"hot_score_weight": 1.5},
        {"custom_weights": {"hot": -1.0}},
        {"custom_weights": {"trending": 1.0}},
    ],
)
def test_invalid_options_are_rejected(raw):
    with pytest.raises(InvalidOptions) as exc:
        parse_options(raw)
    assert exc.value.status == 422


def test_custom_weights_keys_become_strategies():
    opts = parse_options({"custom_weights": {"hot": 0.5, "content_based": 0.5}})
    assert opts.custom_weights == {Strategy.HOT: 0.5, Strategy.CONTENT_BASED: 0.5}


def test_signature_tracks_result_shaping_options():
    base = RecommendationOptions()
    assert base.signature() == RecommendationOptions().signature()
    assert base.signature() != RecommendationOptions(limit=10).signature()
    assert (
        RecommendationOptions(tags=["a", "b"]).signature()
        == RecommendationOptions(tags=["b", "a"]).signature()
    )


def test_user_behavior_bounds():
    assert UserBehavior(click_rate=0.4).click_rate == 0.4
    with pytest.raises(ValidationError):
        UserBehavior(engagement_rate=1.2)

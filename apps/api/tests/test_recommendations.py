from fastapi.testclient import TestClient

from memerec_core.types import Strategy


def test_health(test_client):
    res = test_client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_content_based_parses_query_options(test_client, stub_service):
    res = test_client.get(
        "/recommendations/users/u1/content-based",
        params={"limit": 5, "page": 2, "tags": "funny,cats", "include_hot_score": "false"},
    )
    assert res.status_code == 200
    body = res.json()
    assert body["recommendation_type"] == "content_based"
    assert body["recommendations"][0]["item_id"] == "m1"

    name, user_id, options = stub_service.calls[0]
    assert (name, user_id) == ("content_based", "u1")
    assert (options.limit, options.page, options.tags) == (5, 2, ("funny", "cats"))
    assert options.include_hot_score is False


def test_tags_accept_repeated_params(test_client, stub_service):
    res = test_client.get("/recommendations/tags?tags=funny&tags=cats&exclude_ids=m9")
    assert res.status_code == 200
    name, tags, options = stub_service.calls[0]
    assert tags == ("funny", "cats")
    assert options.exclude_ids == frozenset({"m9"})


def test_strategy_endpoints(test_client):
    for path, kind in (
        ("collaborative", "collaborative_filtering"),
        ("social", "social_collaborative_filtering"),
    ):
        res = test_client.get(f"/recommendations/users/u1/{path}")
        assert res.status_code == 200
        assert res.json()["algorithm"] == kind


def test_mixed_with_custom_weights(test_client, stub_service):
    res = test_client.get(
        "/recommendations/users/u1/mixed",
        params={"weights": "hot:0.7,content_based:0.3", "clear_cache": "true"},
    )
    assert res.status_code == 200
    assert res.json()["algorithm"] == "mixed"

    options = stub_service.calls[0][2]
    assert options.custom_weights == {Strategy.HOT: 0.7, Strategy.CONTENT_BASED: 0.3}
    assert options.clear_cache is True


def test_invalid_options_are_422(test_client, stub_service):
    for params in ({"limit": "abc"}, {"limit": 0}, {"weights": "hot:0.5,trending:1"}, {"weights": "hot"}):
        res = test_client.get("/recommendations/users/u1/mixed", params=params)
        assert res.status_code == 422, params
        assert res.json()["error"]["code"] == "invalid_options"
    assert stub_service.calls == []


def test_unknown_user_stats_is_404(test_client):
    res = test_client.get("/recommendations/users/ghost/stats")
    assert res.status_code == 404
    assert res.json() == {"error": {"code": "not_found", "message": "user ghost not found"}}

    ok = test_client.get("/recommendations/users/u1/stats")
    assert ok.status_code == 200
    assert ok.json()["cold_start"]["is_cold_start"] is True


def test_store_failure_is_503(test_client):
    res = test_client.get("/recommendations/users/down/collaborative")
    assert res.status_code == 503
    assert res.json()["error"]["code"] == "data_unavailable"


def test_adjust_strategy(test_client, stub_service):
    res = test_client.post("/recommendations/users/u1/strategy", json={"click_rate": 0.5})
    assert res.status_code == 200
    assert res.json()["focus"] == "personalization"
    assert stub_service.calls[0][2].click_rate == 0.5

    bad = test_client.post("/recommendations/users/u1/strategy", json={"click_rate": 2})
    assert bad.status_code == 422


def test_clear_cache_and_versions(test_client, stub_service):
    res = test_client.delete("/recommendations/users/u1/cache")
    assert res.status_code == 204
    assert stub_service.calls[0] == ("clear", "u1")

    versions = test_client.get("/recommendations/cache/versions")
    assert versions.json() == {"mixed:u1": "1.0.1"}


def test_missing_service_is_500(app):
    with TestClient(app) as c:
        res = c.get("/recommendations/users/u1/mixed")
    assert res.status_code == 500
    assert res.json()["detail"] == "Recommendation service not initialized"

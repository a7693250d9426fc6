import json

import httpx
import pytest

from memerec_core.options import RecommendationOptions
from memerec_logging.rec_logger import RecommendationLogger
from memerec_ranking.types import RecommendationCandidate


def _cands(n):
    return [
        RecommendationCandidate(
            item_id=f"m{i}",
            recommendation_type="mixed",
            blended_score=1.0 - i / 10,
            per_strategy_scores={"hot": 0.5},
        )
        for i in range(n)
    ]


def _logger(handler, **kw):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RecommendationLogger("https://db.example.co", "key", client, **kw), client


@pytest.mark.anyio
async def test_log_served_writes_query_then_results():
    seen = []

    def handler(request: httpx.Request):
        seen.append((request.url.path, json.loads(request.content), request.headers["apikey"]))
        return httpx.Response(201)

    logger, client = _logger(handler)
    async with client:
        await logger.log_served(
            endpoint="recommendations/mixed",
            query_id="q1",
            user_id="u1",
            options=RecommendationOptions(page=2, limit=2),
            recommendation_type="mixed",
            candidates=_cands(2),
        )

    assert [p for p, _, _ in seen] == ["/rest/v1/rec_queries", "/rest/v1/rec_results"]
    query = seen[0][1][0]
    assert query["batch_size"] == 2
    assert query["request_meta"]["page"] == 2
    results = seen[1][1]
    assert [r["rank"] for r in results] == [3, 4]
    assert results[0]["score_parts"] == {"hot": 0.5}
    assert seen[0][2] == "key"


@pytest.mark.anyio
async def test_failed_query_insert_skips_results_and_never_raises():
    paths = []

    def handler(request: httpx.Request):
        paths.append(request.url.path)
        return httpx.Response(500, text="boom")

    logger, client = _logger(handler)
    async with client:
        await logger.log_served(
            endpoint="recommendations/tags",
            query_id="q1",
            user_id=None,
            options=RecommendationOptions(),
            recommendation_type="tag_based",
            candidates=_cands(1),
        )
    assert paths == ["/rest/v1/rec_queries"]


@pytest.mark.anyio
async def test_transport_errors_are_swallowed():
    def handler(request: httpx.Request):
        raise httpx.ConnectError("down", request=request)

    logger, client = _logger(handler)
    async with client:
        await logger.log_served(
            endpoint="recommendations/social",
            query_id="q1",
            user_id="u1",
            options=RecommendationOptions(),
            recommendation_type="social_collaborative_filtering",
            candidates=_cands(1),
        )


@pytest.mark.anyio
async def test_disabled_without_credentials_or_sample():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(201)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    async with client:
        for logger in (
            RecommendationLogger(None, "key", client),
            RecommendationLogger("https://db.example.co", "key", client, sample=0.0),
        ):
            await logger.log_served(
                endpoint="recommendations/mixed",
                query_id="q",
                user_id="u1",
                options=RecommendationOptions(),
                recommendation_type="mixed",
                candidates=_cands(1),
            )
    assert calls == []

from typing import Any, Dict, List

import os

import pytest
from fastapi.testclient import TestClient

from memerec_core.errors import DataUnavailable, NotFound
from memerec_ranking.types import RankedCandidates, RecommendationCandidate
from memerec_recommendation.mixed import MixedResult
from memerec_recommendation.service import AlgorithmStats
from memerec_recommendation.strategy import ColdStartStatus, StrategyAdjustment, UserActivity
from memerec_social.graph_builder import SocialInfluenceStats


def _ranked(kind: str, user_id: str | None = None) -> RankedCandidates:
    return RankedCandidates(
        algorithm=kind,
        recommendation_type=kind,
        user_id=user_id,
        total=1,
        recommendations=[
            RecommendationCandidate(
                item_id="m1",
                recommendation_type=kind,
                blended_score=0.9,
                tags=["funny"],
            )
        ],
    )


class StubRecommendationService:
    """Records what the routes pass in; user 'ghost' is unknown, 'down' has a broken store."""

    def __init__(self):
        self.calls: List[tuple] = []

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if "down" in args:
            raise DataUnavailable("likes query failed (PGRST000): timeout")
        if "ghost" in args:
            raise NotFound("user ghost not found")

    async def content_based_recommendations(self, user_id, options):
        self._record("content_based", user_id, options)
        return _ranked("content_based", user_id)

    async def tag_based_recommendations(self, tags, options):
        self._record("tag_based", tuple(tags), options)
        return _ranked("tag_based")

    async def collaborative_filtering_recommendations(self, user_id, options):
        self._record("collaborative", user_id, options)
        return _ranked("collaborative_filtering", user_id)

    async def social_collaborative_filtering_recommendations(self, user_id, options):
        self._record("social", user_id, options)
        return _ranked("social_collaborative_filtering", user_id)

    async def get_mixed_recommendations(self, user_id, options):
        self._record("mixed", user_id, options)
        return MixedResult(user_id=user_id, weights={"hot": 1.0}, total=0)

    async def get_recommendation_algorithm_stats(self, user_id):
        self._record("stats", user_id)
        return AlgorithmStats(
            user_id=user_id,
            activity=UserActivity(),
            cold_start=ColdStartStatus(
                is_cold_start=True, total_interactions=0, confidence=0.0, activity_level="inactive"
            ),
            social=SocialInfluenceStats(user_id=user_id),
        )

    async def adjust_recommendation_strategy(self, user_id, behavior):
        self._record("strategy", user_id, behavior)
        return StrategyAdjustment(
            user_id=user_id, focus="personalization", weights={"content_based": 1.0}, behavior=behavior
        )

    async def clear_user_cache(self, user_id):
        self._record("clear", user_id)

    async def cache_version_stats(self) -> Dict[str, str]:
        self._record("versions")
        return {"mixed:u1": "1.0.1"}


@pytest.fixture()
def app():
    # the engine needs live Supabase credentials; routes get a stub instead
    os.environ["MEMEREC_SKIP_ENGINE_INIT"] = "1"
    from app.main import app  # type: ignore

    return app


@pytest.fixture()
def stub_service():
    return StubRecommendationService()


@pytest.fixture()
def test_client(app, stub_service):
    from app.deps.deps import get_recommendation_service  # type: ignore

    app.dependency_overrides[get_recommendation_service] = lambda: stub_service
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()

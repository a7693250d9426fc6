import asyncio
import uuid

from fastapi import APIRouter, Depends

from memerec_core.options import RecommendationOptions, UserBehavior
from memerec_logging.rec_logger import Endpoint, RecommendationLogger
from memerec_ranking.types import RankedCandidates, RecommendationCandidate
from memerec_recommendation.mixed import MixedResult
from memerec_recommendation.service import AlgorithmStats, RecommendationService
from memerec_recommendation.strategy import StrategyAdjustment

from app.deps.deps import get_options, get_rec_logger, get_recommendation_service

router = APIRouter(prefix="/recommendations", tags=["recommendations"])


def _log_served(
    logger: RecommendationLogger | None,
    endpoint: Endpoint,
    user_id: str | None,
    options: RecommendationOptions,
    recommendation_type: str,
    candidates: list[RecommendationCandidate],
) -> None:
    if logger is None:
        return
    asyncio.create_task(
        logger.log_served(
            endpoint=endpoint,
            query_id=uuid.uuid4().hex,
            user_id=user_id,
            options=options,
            recommendation_type=recommendation_type,
            candidates=candidates,
        )
    )


@router.get("/users/{user_id}/content-based", response_model=RankedCandidates)
async def content_based(
    user_id: str,
    options: RecommendationOptions = Depends(get_options),
    service: RecommendationService = Depends(get_recommendation_service),
    logger: RecommendationLogger | None = Depends(get_rec_logger),
):
    res = await service.content_based_recommendations(user_id, options)
    _log_served(
        logger, "recommendations/content-based", user_id, options,
        res.recommendation_type, res.recommendations,
    )
    return res


@router.get("/tags", response_model=RankedCandidates)
async def tag_based(
    options: RecommendationOptions = Depends(get_options),
    service: RecommendationService = Depends(get_recommendation_service),
    logger: RecommendationLogger | None = Depends(get_rec_logger),
):
    res = await service.tag_based_recommendations(options.tags, options)
    _log_served(
        logger, "recommendations/tags", None, options,
        res.recommendation_type, res.recommendations,
    )
    return res


@router.get("/users/{user_id}/collaborative", response_model=RankedCandidates)
async def collaborative(
    user_id: str,
    options: RecommendationOptions = Depends(get_options),
    service: RecommendationService = Depends(get_recommendation_service),
    logger: RecommendationLogger | None = Depends(get_rec_logger),
):
    res = await service.collaborative_filtering_recommendations(user_id, options)
    _log_served(
        logger, "recommendations/collaborative", user_id, options,
        res.recommendation_type, res.recommendations,
    )
    return res


@router.get("/users/{user_id}/social", response_model=RankedCandidates)
async def social(
    user_id: str,
    options: RecommendationOptions = Depends(get_options),
    service: RecommendationService = Depends(get_recommendation_service),
    logger: RecommendationLogger | None = Depends(get_rec_logger),
):
    res = await service.social_collaborative_filtering_recommendations(user_id, options)
    _log_served(
        logger, "recommendations/social", user_id, options,
        res.recommendation_type, res.recommendations,
    )
    return res


@router.get("/users/{user_id}/mixed", response_model=MixedResult)
async def mixed(
    user_id: str,
    options: RecommendationOptions = Depends(get_options),
    service: RecommendationService = Depends(get_recommendation_service),
    logger: RecommendationLogger | None = Depends(get_rec_logger),
):
    res = await service.get_mixed_recommendations(user_id, options)
    _log_served(
        logger, "recommendations/mixed", user_id, options,
        res.algorithm, res.recommendations,
    )
    return res


@router.get("/users/{user_id}/stats", response_model=AlgorithmStats)
async def algorithm_stats(
    user_id: str,
    service: RecommendationService = Depends(get_recommendation_service),
):
    return await service.get_recommendation_algorithm_stats(user_id)


@router.post("/users/{user_id}/strategy", response_model=StrategyAdjustment)
async def adjust_strategy(
    user_id: str,
    behavior: UserBehavior,
    service: RecommendationService = Depends(get_recommendation_service),
):
    return await service.adjust_recommendation_strategy(user_id, behavior)


@router.delete("/users/{user_id}/cache", status_code=204)
async def clear_cache(
    user_id: str,
    service: RecommendationService = Depends(get_recommendation_service),
):
    await service.clear_user_cache(user_id)


@router.get("/cache/versions")
async def cache_versions(
    service: RecommendationService = Depends(get_recommendation_service),
) -> dict[str, str]:
    return await service.cache_version_stats()

import asyncio
import logging
import time

import schedule
from pydantic_settings import BaseSettings, SettingsConfigDict

from memerec_cache.backends import RedisCacheBackend
from memerec_cache.redis_infra import make_redis_client
from memerec_cache.versioned_cache import VersionedCache
from memerec_core.config import get_engine_settings
from memerec_recommendation.service import RecommendationService, WarmReport
from memerec_social.follow_repo import SupabaseFollowRepo
from memerec_user.interactions.interactions_repo import SupabaseInteractionRepo
from memerec_user.items.items_repo import SupabaseItemRepo
from memerec_user.users_repo import SupabaseUserRepo

log = logging.getLogger("worker")


class Settings(BaseSettings):
    app_name: str = "Memerec Cache Warm-up Worker"
    supabase_url: str
    supabase_api_key: str
    redis_url: str
    warm_interval_minutes: int = 10
    log_level: str = "INFO"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


def build_service(settings: Settings) -> tuple[RecommendationService, RedisCacheBackend]:
    from supabase import create_client

    engine_settings = get_engine_settings()
    sb = create_client(settings.supabase_url, settings.supabase_api_key)
    # the worker only makes sense against the shared cache the API reads from
    backend = RedisCacheBackend(
        client=make_redis_client(settings.redis_url),
        namespace=engine_settings.cache_namespace,
    )
    service = RecommendationService(
        interactions=SupabaseInteractionRepo(sb),
        items=SupabaseItemRepo(sb),
        follows=SupabaseFollowRepo(sb),
        users=SupabaseUserRepo(sb),
        cache=VersionedCache(backend),
        settings=engine_settings,
    )
    return service, backend


async def warm_once(settings: Settings) -> WarmReport:
    service, backend = build_service(settings)
    try:
        return await service.warm_cache()
    finally:
        await backend.aclose()


def tick(settings: Settings) -> None:
    started = time.perf_counter()
    report = asyncio.run(warm_once(settings))
    log.info(
        "[worker] warmed %d/%d users (%d failed) in %.1fs",
        report.warmed,
        report.total,
        report.failed,
        time.perf_counter() - started,
    )


def main() -> None:
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    log.info("[worker] starting %s", settings.app_name)
    schedule.every(settings.warm_interval_minutes).minutes.do(tick, settings)
    tick(settings)
    while True:
        schedule.run_pending()
        time.sleep(1)


if __name__ == "__main__":
    main()

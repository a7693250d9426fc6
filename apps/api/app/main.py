import logging
import os
from contextlib import asynccontextmanager

import httpx
from dotenv import find_dotenv, load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic_settings import BaseSettings, SettingsConfigDict

from memerec_cache.backends import CacheBackend, InMemoryCacheBackend, RedisCacheBackend
from memerec_cache.redis_infra import make_redis_client
from memerec_cache.versioned_cache import VersionedCache
from memerec_core.config import get_engine_settings
from memerec_core.errors import DomainError
from memerec_logging.rec_logger import RecommendationLogger
from memerec_recommendation.service import RecommendationService
from memerec_social.follow_repo import SupabaseFollowRepo
from memerec_user.interactions.interactions_repo import SupabaseInteractionRepo
from memerec_user.items.items_repo import SupabaseItemRepo
from memerec_user.users_repo import SupabaseUserRepo

from .routers import all_routers

log = logging.getLogger(__name__)


class Settings(BaseSettings):
    app_name: str = "Memerec Recommendation API"
    # credentials
    supabase_url: str | None = None
    supabase_api_key: str | None = None
    # cache backend
    use_redis_cache: bool = False
    redis_url: str | None = None
    # telemetry (0 disables)
    telemetry_sample: float = 0.0
    log_level: str = "INFO"
    # env config
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


def _should_init_engine() -> bool:
    flag = os.getenv("MEMEREC_SKIP_ENGINE_INIT", "")
    return flag.strip().lower() not in {"1", "true", "yes"}


def _make_cache_backend(settings: Settings, namespace: str) -> CacheBackend:
    if settings.use_redis_cache:
        if not settings.redis_url:
            raise RuntimeError("USE_REDIS_CACHE is set but REDIS_URL is missing")
        return RedisCacheBackend(client=make_redis_client(settings.redis_url), namespace=namespace)
    log.warning("Redis cache disabled; using in-process cache backend")
    return InMemoryCacheBackend()


def _init_engine(app: FastAPI) -> None:
    from supabase import create_client

    settings: Settings = app.state.settings
    missing = [
        name
        for name, value in {
            "SUPABASE_URL": settings.supabase_url,
            "SUPABASE_API_KEY": settings.supabase_api_key,
        }.items()
        if not (value and value.strip())
    ]
    if missing:
        raise RuntimeError("Missing credentials in environment: " + ", ".join(sorted(missing)))

    engine_settings = get_engine_settings()
    sb = create_client(settings.supabase_url, settings.supabase_api_key)
    backend = _make_cache_backend(settings, engine_settings.cache_namespace)

    app.state.cache_backend = backend
    app.state.recommendation_service = RecommendationService(
        interactions=SupabaseInteractionRepo(sb),
        items=SupabaseItemRepo(sb),
        follows=SupabaseFollowRepo(sb),
        users=SupabaseUserRepo(sb),
        cache=VersionedCache(backend),
        settings=engine_settings,
    )
    app.state.http_client = httpx.AsyncClient()
    app.state.rec_logger = RecommendationLogger(
        settings.supabase_url,
        settings.supabase_api_key,
        app.state.http_client,
        sample=settings.telemetry_sample,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    load_dotenv(find_dotenv(), override=False)

    settings = Settings()
    app.state.settings = settings
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if _should_init_engine():
        _init_engine(app)
    else:
        log.warning("Engine initialization skipped by MEMEREC_SKIP_ENGINE_INIT")

    try:
        yield
    finally:
        client = getattr(app.state, "http_client", None)
        if client is not None:
            await client.aclose()
        backend = getattr(app.state, "cache_backend", None)
        if isinstance(backend, RedisCacheBackend):
            await backend.aclose()


app = FastAPI(title="Memerec Recommendation API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status,
        content={"error": {"code": exc.code, "message": str(exc)}},
    )


@app.get("/health")
def health():
    s = getattr(app.state, "settings", None)
    return {"status": "ok", "service": s.app_name if s else app.title}


@app.get("/")
def read_root():
    return {"status": "ok"}


for r in all_routers:
    app.include_router(r)

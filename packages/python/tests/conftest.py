import pytest

from memerec_cache.backends import InMemoryCacheBackend
from memerec_cache.versioned_cache import VersionedCache
from memerec_core.config import EngineSettings

from fakes import World


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(_env_file=None)


@pytest.fixture
def cache() -> VersionedCache:
    return VersionedCache(InMemoryCacheBackend())


@pytest.fixture
def world() -> World:
    return World()

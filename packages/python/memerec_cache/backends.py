from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from memerec_core.errors import DataUnavailable

from .versioning import DEFAULT_VERSION, CacheVersion, VersionLevel

log = logging.getLogger(__name__)


class CacheBackend(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_sec: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def get_version(self, family: str) -> CacheVersion: ...

    async def bump_version(
        self, family: str, level: VersionLevel = VersionLevel.PATCH
    ) -> CacheVersion: ...

    async def list_versions(self) -> dict[str, CacheVersion]: ...


class RedisCacheBackend:
    """
    Redis-backed cache.
    Data:     {namespace}:data:{key}        -> JSON string, SET ... EX ttl
    Versions: {namespace}:version:{family}  -> hash {major, minor, patch}
    Families: {namespace}:families          -> set of family names ever bumped
    """

    def __init__(self, *, client: Redis, namespace: str = "memerec:v1") -> None:
        # client must use decode_responses=True so values come back as str
        self._r = client
        self._ns = namespace

    def _k(self, key: str) -> str:
        return f"{self._ns}:data:{key}"

    def _vk(self, family: str) -> str:
        return f"{self._ns}:version:{family}"

    @property
    def _families_key(self) -> str:
        return f"{self._ns}:families"

    async def get(self, key: str) -> str | None:
        try:
            return await self._r.get(self._k(key))
        except RedisError as e:
            raise DataUnavailable(f"cache read failed: {e}") from e

    async def set(self, key: str, value: str, ttl_sec: int) -> None:
        try:
            await self._r.set(self._k(key), value, ex=max(1, int(ttl_sec)))
        except RedisError as e:
            raise DataUnavailable(f"cache write failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._r.delete(self._k(key))
        except RedisError as e:
            raise DataUnavailable(f"cache delete failed: {e}") from e

    async def get_version(self, family: str) -> CacheVersion:
        try:
            raw = await self._r.hgetall(self._vk(family))
        except RedisError as e:
            raise DataUnavailable(f"cache version read failed: {e}") from e
        return CacheVersion.from_mapping(raw) if raw else DEFAULT_VERSION

    async def bump_version(
        self, family: str, level: VersionLevel = VersionLevel.PATCH
    ) -> CacheVersion:
        """Increment inside MULTI/EXEC so readers only ever see a whole version."""
        k = self._vk(family)
        try:
            async with self._r.pipeline(transaction=True) as pipe:
                pipe.hsetnx(k, "major", DEFAULT_VERSION.major)
                pipe.hsetnx(k, "minor", DEFAULT_VERSION.minor)
                pipe.hsetnx(k, "patch", DEFAULT_VERSION.patch)
                if level is VersionLevel.MAJOR:
                    pipe.hincrby(k, "major", 1)
                    pipe.hset(k, mapping={"minor": 0, "patch": 0})
                elif level is VersionLevel.MINOR:
                    pipe.hincrby(k, "minor", 1)
                    pipe.hset(k, "patch", 0)
                else:
                    pipe.hincrby(k, "patch", 1)
                pipe.sadd(self._families_key, family)
                pipe.hgetall(k)
                results = await pipe.execute()
        except RedisError as e:
            raise DataUnavailable(f"cache version bump failed: {e}") from e
        version = CacheVersion.from_mapping(results[-1])
        log.info("cache family %s bumped to %s (%s)", family, version, level.value)
        return version

    async def list_versions(self) -> dict[str, CacheVersion]:
        try:
            families = sorted(await self._r.smembers(self._families_key))
            if not families:
                return {}
            pipe = self._r.pipeline()
            for fam in families:
                pipe.hgetall(self._vk(fam))
            rows = await pipe.execute()
        except RedisError as e:
            raise DataUnavailable(f"cache version listing failed: {e}") from e
        return {fam: CacheVersion.from_mapping(row) for fam, row in zip(families, rows)}

    async def aclose(self) -> None:
        await self._r.aclose()


class InMemoryCacheBackend:
    """Process-local backend for tests and single-instance setups without Redis."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: dict[str, tuple[str, float]] = {}
        self._versions: dict[str, CacheVersion] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def get(self, key: str) -> str | None:
        hit = self._data.get(key)
        if hit is None:
            return None
        value, expires_at = hit
        if self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_sec: int) -> None:
        self._data[key] = (value, self._clock() + max(1, int(ttl_sec)))

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def get_version(self, family: str) -> CacheVersion:
        return self._versions.get(family, DEFAULT_VERSION)

    async def bump_version(
        self, family: str, level: VersionLevel = VersionLevel.PATCH
    ) -> CacheVersion:
        async with self._lock:
            version = self._versions.get(family, DEFAULT_VERSION).bump(level)
            self._versions[family] = version
        return version

    async def list_versions(self) -> dict[str, CacheVersion]:
        return dict(sorted(self._versions.items()))

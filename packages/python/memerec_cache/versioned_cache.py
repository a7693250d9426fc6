from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from .backends import CacheBackend
from .versioning import CacheVersion, VersionLevel

log = logging.getLogger(__name__)

T = TypeVar("T")


class CacheFamily(str, Enum):
    TAG_PREFERENCES = "tag_preferences"
    CONTENT_BASED = "content_based"
    TAG_BASED = "tag_based"
    COLLABORATIVE = "collaborative"
    SIMILAR_USERS = "similar_users"
    SOCIAL_GRAPH = "social_graph"
    SOCIAL_COLLABORATIVE = "social_collaborative"
    MIXED = "mixed"
    STATS = "stats"


# families whose entries depend on one user's own history
USER_FAMILIES: tuple[CacheFamily, ...] = (
    CacheFamily.TAG_PREFERENCES,
    CacheFamily.CONTENT_BASED,
    CacheFamily.COLLABORATIVE,
    CacheFamily.SIMILAR_USERS,
    CacheFamily.SOCIAL_COLLABORATIVE,
    CacheFamily.MIXED,
    CacheFamily.STATS,
)
SOCIAL_FAMILIES: tuple[CacheFamily, ...] = (
    CacheFamily.SOCIAL_GRAPH,
    CacheFamily.SOCIAL_COLLABORATIVE,
    CacheFamily.MIXED,
)


@dataclass
class CacheResult(Generic[T]):
    data: T
    version: str
    from_cache: bool


def user_scope(family: CacheFamily | str, user_id: str) -> str:
    fam = family.value if isinstance(family, CacheFamily) else family
    return f"{fam}:{user_id}"


class VersionedCache:
    """
    Cache whose entries are valid only while their embedded version matches
    the family's current version counter.

    Entry key: {family}:{scope}:{key}
    Payload:   {"data": ..., "version": "1.0.3" | "1.2.0/1.0.5", "timestamp": epoch}

    User-scoped entries carry "<family version>/<user scope version>" so a
    family-wide bump and a per-user bump both invalidate them.
    """

    def __init__(self, backend: CacheBackend, *, clock: Callable[[], float] = time.time):
        self.backend = backend
        self._clock = clock

    async def current_version(
        self, family: CacheFamily | str, user_id: str | None = None
    ) -> str:
        fam = family.value if isinstance(family, CacheFamily) else family
        base = await self.backend.get_version(fam)
        if user_id is None:
            return str(base)
        scoped = await self.backend.get_version(user_scope(fam, user_id))
        return f"{base}/{scoped}"

    async def bump(
        self,
        family: CacheFamily | str,
        level: VersionLevel = VersionLevel.PATCH,
        *,
        user_id: str | None = None,
    ) -> CacheVersion:
        fam = family.value if isinstance(family, CacheFamily) else family
        target = user_scope(fam, user_id) if user_id is not None else fam
        return await self.backend.bump_version(target, level)

    def _entry_key(self, family: str, user_id: str | None, key: str) -> str:
        return f"{family}:{user_id or '-'}:{key}"

    def _decode(self, raw: str, adapter: TypeAdapter[T]) -> tuple[str, T]:
        payload = json.loads(raw)
        if not isinstance(payload, dict) or not isinstance(payload.get("version"), str):
            raise ValueError("cache payload missing version")
        if "data" not in payload or "timestamp" not in payload:
            raise ValueError("cache payload missing data/timestamp")
        return payload["version"], adapter.validate_python(payload["data"])

    def _encode(self, data: T, version: str, adapter: TypeAdapter[T]) -> str:
        payload: dict[str, Any] = {
            "data": adapter.dump_python(data, mode="json"),
            "version": version,
            "timestamp": self._clock(),
        }
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))

    async def with_version(
        self,
        family: CacheFamily | str,
        key: str,
        compute_fn: Callable[[], Awaitable[T]],
        *,
        ttl_sec: int,
        adapter: TypeAdapter[T],
        user_id: str | None = None,
        force_refresh: bool = False,
    ) -> CacheResult[T]:
        fam = family.value if isinstance(family, CacheFamily) else family
        version = await self.current_version(fam, user_id)
        entry_key = self._entry_key(fam, user_id, key)

        if not force_refresh:
            raw = await self.backend.get(entry_key)
            if raw is not None:
                try:
                    cached_version, data = self._decode(raw, adapter)
                except (ValueError, ValidationError) as e:
                    # json.JSONDecodeError is a ValueError
                    log.warning("dropping corrupt cache entry %s: %s", entry_key, e)
                    await self.backend.delete(entry_key)
                else:
                    if cached_version == version:
                        return CacheResult(data=data, version=version, from_cache=True)
                    log.debug(
                        "stale cache entry %s (%s != %s)", entry_key, cached_version, version
                    )

        data = await compute_fn()
        await self.backend.set(entry_key, self._encode(data, version, adapter), ttl_sec)
        return CacheResult(data=data, version=version, from_cache=False)

    async def version_stats(self) -> dict[str, str]:
        versions = await self.backend.list_versions()
        return {fam: str(v) for fam, v in versions.items()}


class CacheInvalidator:
    """Version bumps issued by write paths; never deletes keys."""

    def __init__(self, cache: VersionedCache):
        self.cache = cache

    async def on_interaction(self, user_id: str) -> None:
        for fam in USER_FAMILIES:
            await self.cache.bump(fam, VersionLevel.PATCH, user_id=user_id)

    async def on_follow(self, user_id: str) -> None:
        for fam in SOCIAL_FAMILIES:
            await self.cache.bump(fam, VersionLevel.PATCH, user_id=user_id)

    async def on_tags_changed(self) -> None:
        for fam in (
            CacheFamily.TAG_PREFERENCES,
            CacheFamily.CONTENT_BASED,
            CacheFamily.TAG_BASED,
            CacheFamily.MIXED,
        ):
            await self.cache.bump(fam, VersionLevel.MINOR)

    async def clear_user(self, user_id: str) -> None:
        families = dict.fromkeys((*USER_FAMILIES, *SOCIAL_FAMILIES))
        for fam in families:
            await self.cache.bump(fam, VersionLevel.PATCH, user_id=user_id)

    async def reset(self) -> None:
        for fam in CacheFamily:
            await self.cache.bump(fam, VersionLevel.MAJOR)

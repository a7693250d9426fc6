from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class VersionLevel(str, Enum):
    PATCH = "patch"  # data for one scope changed
    MINOR = "minor"  # shared inputs changed (tags, weights)
    MAJOR = "major"  # full reset / format change


@dataclass(frozen=True, order=True)
class CacheVersion:
    major: int = 1
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, raw: str | None) -> "CacheVersion":
        if not raw:
            return DEFAULT_VERSION
        parts = raw.strip().split(".")
        if len(parts) != 3:
            raise ValueError(f"not a semantic version: {raw!r}")
        major, minor, patch = (int(p) for p in parts)
        if min(major, minor, patch) < 0:
            raise ValueError(f"negative version component: {raw!r}")
        return cls(major, minor, patch)

    @classmethod
    def from_mapping(cls, data: dict) -> "CacheVersion":
        if not data:
            return DEFAULT_VERSION
        return cls(
            int(data.get("major", 1)),
            int(data.get("minor", 0)),
            int(data.get("patch", 0)),
        )

    def bump(self, level: VersionLevel = VersionLevel.PATCH) -> "CacheVersion":
        if level is VersionLevel.MAJOR:
            return CacheVersion(self.major + 1, 0, 0)
        if level is VersionLevel.MINOR:
            return CacheVersion(self.major, self.minor + 1, 0)
        return CacheVersion(self.major, self.minor, self.patch + 1)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


DEFAULT_VERSION = CacheVersion()


def compare_versions(a: str, b: str) -> int:
    """-1 / 0 / 1, numeric per component (1.0.10 > 1.0.9)."""
    va, vb = CacheVersion.parse(a), CacheVersion.parse(b)
    return (va > vb) - (va < vb)

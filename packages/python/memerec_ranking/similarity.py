from __future__ import annotations

from typing import Iterable, Mapping

import numpy as np

# near-zero variance is treated as "no signal"
_EPS = 1e-12


def clamp01(x: float) -> float:
    return max(0.0, min(1.0, float(x)))


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    sa, sb = set(a), set(b)
    union = sa | sb
    if not union:
        return 0.0
    return len(sa & sb) / len(union)


def normalize_hot(hot_score: float, scale: float = 1000.0) -> float:
    return clamp01(hot_score / scale) if scale > 0 else 0.0


def blend_with_hot(score: float, hot_score: float, weight: float, scale: float = 1000.0) -> float:
    """score x (1 - w) + normalized_hot x w"""
    return clamp01(score * (1.0 - weight) + normalize_hot(hot_score, scale) * weight)


def preference_match(
    item_tags: Iterable[str], preferences: Mapping[str, float]
) -> tuple[float, list[str]]:
    """
    Overlap between an item's tags and a preference vector.
    match_ratio x 0.4 + avg_matched_preference x 0.6
    """
    tags = list(dict.fromkeys(item_tags))
    if not tags or not preferences:
        return 0.0, []
    matched = [t for t in tags if t in preferences]
    if not matched:
        return 0.0, []
    ratio = len(matched) / len(tags)
    avg = sum(preferences[t] for t in matched) / len(matched)
    return clamp01(ratio * 0.4 + avg * 0.6), matched


def content_similarity(
    item_tags: Iterable[str],
    top_tags: Iterable[str],
    preferences: Mapping[str, float] | None = None,
) -> float:
    """Jaccard against the user's top tags, optionally weighted by their preference."""
    tags, top = set(item_tags), set(top_tags)
    sim = jaccard(tags, top)
    if not preferences:
        return clamp01(sim)
    common = tags & top
    pref_weight = (
        sum(preferences.get(t, 0.0) for t in common) / len(common) if common else 0.0
    )
    return clamp01(sim * 0.6 + pref_weight * 0.4)


def pearson_similarity(a: Mapping[str, float], b: Mapping[str, float]) -> float:
    """
    Pearson correlation over the items both users touched, clamped to [0, 1].
    0 when there is no overlap or either side has zero variance.
    """
    common = sorted(a.keys() & b.keys())
    if not common:
        return 0.0
    x = np.fromiter((a[k] for k in common), dtype=np.float64, count=len(common))
    y = np.fromiter((b[k] for k in common), dtype=np.float64, count=len(common))
    n = len(common)
    num = float(np.dot(x, y) - x.sum() * y.sum() / n)
    var_x = float(np.dot(x, x) - x.sum() ** 2 / n)
    var_y = float(np.dot(y, y) - y.sum() ** 2 / n)
    if var_x <= _EPS or var_y <= _EPS:
        return 0.0
    return clamp01(num / np.sqrt(var_x * var_y))

from __future__ import annotations

from typing import Sequence, TypeVar

T = TypeVar("T")


def paginate(items: Sequence[T], page: int, limit: int) -> tuple[list[T], int, bool]:
    """Slice a ranked list; returns (window, total, has_more)."""
    start = (page - 1) * limit
    window = list(items[start : start + limit])
    total = len(items)
    return window, total, start + limit < total

"""Helpers shared by the Supabase-backed repositories."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterator, Sequence, TypeVar

import httpx
from postgrest.exceptions import APIError as PostgrestAPIError

from .errors import DataUnavailable

T = TypeVar("T")

MAX_IN = 200  # keep matches PostgREST URL/param safety


def ensure_ts(value) -> datetime | None:
    """Normalize timestamps coming from Postgres/Supabase into tz-aware datetimes."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        # Supabase returns ISO strings that may end with `Z`; make them explicit UTC.
        normalized = raw.replace("Z", "+00:00") if raw.endswith("Z") else raw
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def chunked(values: Sequence[T], size: int = MAX_IN) -> Iterator[list[T]]:
    for i in range(0, len(values), size):
        yield list(values[i : i + size])


def map_pgrest(e: Exception, table: str) -> DataUnavailable:
    code = getattr(e, "code", None) or "unknown"
    return DataUnavailable(f"{table} query failed ({code}): {getattr(e, 'message', e)}")


# errors that mean the store itself is unreachable or rejected the query
STORE_ERRORS = (PostgrestAPIError, httpx.HTTPError)

from __future__ import annotations

import logging
import random
from typing import Any, Literal

import httpx

from memerec_core.options import RecommendationOptions
from memerec_ranking.types import RecommendationCandidate

log = logging.getLogger(__name__)

Endpoint = Literal[
    "recommendations/content-based",
    "recommendations/tags",
    "recommendations/collaborative",
    "recommendations/social",
    "recommendations/mixed",
]


class RecommendationLogger:
    """
    Best-effort telemetry for served recommendations (Supabase REST).

    - rec_queries: one row per request
    - rec_results: one row per returned candidate

    Never raises: failures are logged and dropped so serving is unaffected.
    """

    def __init__(
        self,
        supabase_url: str | None,
        api_key: str | None,
        client: httpx.AsyncClient,
        *,
        sample: float = 1.0,
        timeout_s: float = 5.0,
    ):
        self.supabase_url = (supabase_url or "").rstrip("/")
        self.api_key = api_key or ""
        self.client = client
        self.sample = float(max(0.0, min(1.0, sample)))
        self.timeout_s = timeout_s

    def _enabled(self) -> bool:
        return bool(self.supabase_url and self.api_key and self.sample > 0)

    def _sampled(self) -> bool:
        return self.sample >= 1.0 or random.random() < self.sample

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Prefer": "resolution=merge-duplicates",
        }

    async def _post(self, path: str, payload: list[dict[str, Any]]) -> bool:
        if not self._enabled() or not payload:
            return False
        try:
            r = await self.client.post(
                f"{self.supabase_url}/rest/v1/{path}",
                headers=self._headers(),
                json=payload,
                timeout=self.timeout_s,
            )
        except httpx.HTTPError as e:
            log.warning("rec_logger POST %s error: %s", path, e)
            return False
        if r.status_code not in (200, 201, 204):
            log.warning("rec_logger POST %s failed %s: %s", path, r.status_code, r.text[:300])
            return False
        return True

    async def log_served(
        self,
        *,
        endpoint: Endpoint,
        query_id: str,
        user_id: str | None,
        options: RecommendationOptions,
        recommendation_type: str,
        candidates: list[RecommendationCandidate],
    ) -> None:
        if not self._enabled() or not self._sampled():
            return
        query_row = {
            "endpoint": endpoint,
            "query_id": query_id,
            "user_id": user_id,
            "recommendation_type": recommendation_type,
            "batch_size": len(candidates),
            "request_meta": options.model_dump(mode="json"),
        }
        if not await self._post("rec_queries", [query_row]):
            return
        offset = options.offset
        rows = [
            {
                "endpoint": endpoint,
                "query_id": query_id,
                "item_id": c.item_id,
                "rank": offset + i + 1,
                "score_final": c.blended_score,
                "score_parts": c.per_strategy_scores,
                "recommendation_type": c.recommendation_type,
            }
            for i, c in enumerate(candidates)
        ]
        await self._post("rec_results", rows)

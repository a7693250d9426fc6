from typing import Any, cast

from fastapi import HTTPException, Request, status

from memerec_core.errors import InvalidOptions
from memerec_core.options import RecommendationOptions, parse_options
from memerec_core.types import Strategy
from memerec_logging.rec_logger import RecommendationLogger
from memerec_recommendation.service import RecommendationService

LIST_PARAMS = ("exclude_ids", "tags", "types")


def _get_state_attr(request: Request, name: str, error_detail: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_detail,
        )
    return value


def get_recommendation_service(request: Request) -> RecommendationService:
    return cast(
        RecommendationService,
        _get_state_attr(
            request, "recommendation_service", "Recommendation service not initialized"
        ),
    )


def get_rec_logger(request: Request) -> RecommendationLogger | None:
    # telemetry is optional; absent logger means "don't log"
    return getattr(request.app.state, "rec_logger", None)


def _parse_weights(raw: str) -> dict[str, float]:
    """'hot:0.5,content_based:0.3' -> {'hot': 0.5, 'content_based': 0.3}"""
    out: dict[str, float] = {}
    for part in raw.split(","):
        if not part.strip():
            continue
        name, sep, value = part.partition(":")
        if not sep:
            raise InvalidOptions(f"invalid options: weights entry {part!r}")
        try:
            out[Strategy(name.strip()).value] = float(value)
        except ValueError as e:
            raise InvalidOptions(f"invalid options: weights entry {part!r}") from e
    return out


def get_options(request: Request) -> RecommendationOptions:
    """Query string -> validated options. Repeated and comma separated lists both work."""
    qp = request.query_params
    raw: dict[str, Any] = {k: v for k, v in qp.items() if k not in LIST_PARAMS and k != "weights"}
    for key in LIST_PARAMS:
        values = qp.getlist(key)
        if values:
            raw[key] = ",".join(values)
    if "weights" in qp:
        raw["custom_weights"] = _parse_weights(qp["weights"])
    return parse_options(raw)

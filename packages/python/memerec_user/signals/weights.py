from __future__ import annotations

from datetime import datetime
from typing import Iterable, Mapping

from memerec_core.types import InteractionEvent, InteractionType, ItemId

from .decay import DecayParams, tdecay
from .reducers import group_by_item

InteractionWeights = Mapping[InteractionType, float]

DEFAULT_INTERACTION_WEIGHTS: dict[InteractionType, float] = {
    InteractionType.LIKE: 1.0,
    InteractionType.COMMENT: 2.0,
    InteractionType.SHARE: 3.0,
    InteractionType.COLLECT: 1.5,
    InteractionType.VIEW: 0.1,
    InteractionType.DISLIKE: -0.5,
}

# largest positive per-event weight, used to normalize aggregated scores
MAX_EVENT_WEIGHT = max(DEFAULT_INTERACTION_WEIGHTS.values())


def weights_signature(weights: InteractionWeights) -> str:
    return ",".join(f"{t.value}={w:g}" for t, w in sorted(weights.items(), key=lambda kv: kv[0].value))


def event_weight(
    ev: InteractionEvent,
    now: datetime,
    weights: InteractionWeights,
    decay: DecayParams | None,
) -> float:
    """type weight x time decay for a single event (decay=None disables decay)."""
    w = weights.get(ev.type, 0.0)
    if w == 0.0:
        return 0.0
    if decay is None:
        return w
    return w * tdecay(ev.occurred_at, now, decay)


def compute_item_weights(
    events: Iterable[InteractionEvent],
    now: datetime,
    decay: DecayParams,
    weights: InteractionWeights = DEFAULT_INTERACTION_WEIGHTS,
) -> dict[ItemId, float]:
    """
    Collapse one user's events into item -> accumulated score.

    Events of the same type on the same item add up; negative weights
    (dislike) subtract. Items whose contributions cancel exactly are kept
    out of the vector.
    """
    out: dict[ItemId, float] = {}
    for item_id, evs in group_by_item(events).items():
        total = sum(event_weight(ev, now, weights, decay) for ev in evs)
        if total != 0.0:
            out[item_id] = total
    return out

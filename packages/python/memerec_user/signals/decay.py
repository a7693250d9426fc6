from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from memerec_core.config import EngineSettings


@dataclass(frozen=True)
class DecayParams:
    factor: float = 0.95
    max_days: int = 365
    floor: float = 0.1

    @classmethod
    def from_settings(cls, s: EngineSettings) -> "DecayParams":
        return cls(factor=s.decay_factor, max_days=s.max_days, floor=s.decay_floor)

    def signature(self) -> str:
        return f"{self.factor:g}:{self.max_days}:{self.floor:g}"


# signed day difference, positive when ts is in the past
def _days(ts: datetime, now: datetime) -> float:
    return (now - ts).total_seconds() / 86400.0


# daily exponential decay, 1.0 for now/future, never below the floor
def tdecay(ts: datetime, now: datetime, params: DecayParams) -> float:
    days = _days(ts, now)
    if days <= 0:
        return 1.0
    if days > params.max_days:
        return params.floor
    return max(params.factor**days, params.floor)

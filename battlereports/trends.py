"""Period-over-period trend comparison."""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from decimal import ROUND_HALF_UP, Context, Decimal
from enum import Enum
from typing import Dict, Optional

from .config import TREND_FLAT_THRESHOLD
from .normalize import PeriodTotals


class Direction(str, Enum):
    """Which way a metric should move to count as an improvement."""

    INCREASE = "increase"
    DECREASE = "decrease"


class TrendKind(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    FLAT = "flat"
    FAVORABLE = "favorable"
    UNFAVORABLE = "unfavorable"


METRIC_DIRECTIONS: Dict[str, Direction] = {
    "kill_score": Direction.INCREASE,
    "deaths": Direction.DECREASE,
    "severely_wounded": Direction.DECREASE,
    "wounded": Direction.DECREASE,
    "enemy_kill_score": Direction.DECREASE,
    "enemy_deaths": Direction.INCREASE,
    "enemy_severely_wounded": Direction.INCREASE,
    "enemy_wounded": Direction.INCREASE,
    "dps": Direction.INCREASE,
    "sps": Direction.INCREASE,
    "tps": Direction.DECREASE,
    "battle_duration": Direction.INCREASE,
}


@dataclass(frozen=True)
class Trend:
    kind: TrendKind
    percent: Optional[float] = None

    @property
    def label(self) -> str:
        if self.kind is TrendKind.NOT_APPLICABLE or self.percent is None:
            return "N/A"
        if self.kind is TrendKind.FLAT:
            return "0.0%"
        places = Decimal("1") if abs(self.percent) >= 10 else Decimal("0.1")
        # wide enough for any finite float percent
        rounded = Decimal(repr(self.percent)).quantize(
            places, rounding=ROUND_HALF_UP, context=Context(prec=400)
        )
        sign = "+" if self.percent > 0 else ""
        return f"{sign}{rounded}%"

    def to_dict(self) -> Dict[str, object]:
        return {"kind": self.kind.value, "percent": self.percent, "label": self.label}


NOT_APPLICABLE = Trend(TrendKind.NOT_APPLICABLE)


def _finite_or_zero(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def compare(
    value: float,
    previous_value: Optional[float],
    preferred: Direction = Direction.INCREASE,
) -> Trend:
    """Classify the change from ``previous_value`` to ``value``.

    No baseline, or a zero baseline, gives ``NOT_APPLICABLE`` rather than a
    0% or infinite change.
    """
    if previous_value is None:
        return NOT_APPLICABLE

    safe_previous = _finite_or_zero(previous_value)
    safe_value = _finite_or_zero(value)
    if safe_previous == 0:
        return NOT_APPLICABLE

    percent = (safe_value - safe_previous) / safe_previous * 100
    if not math.isfinite(percent) or abs(percent) < TREND_FLAT_THRESHOLD:
        return Trend(TrendKind.FLAT, 0.0)

    improved = (percent > 0) == (Direction(preferred) is Direction.INCREASE)
    return Trend(TrendKind.FAVORABLE if improved else TrendKind.UNFAVORABLE, percent)


def compare_totals(current: PeriodTotals, previous: Optional[PeriodTotals]) -> Dict[str, Trend]:
    out: Dict[str, Trend] = {}
    for f in fields(current):
        baseline = getattr(previous, f.name) if previous is not None else None
        out[f.name] = compare(getattr(current, f.name), baseline, METRIC_DIRECTIONS[f.name])
    return out

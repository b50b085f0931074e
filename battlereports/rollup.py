"""Per-pairing rollups over a current window and its preceding window.

Rollups are rebuilt from source records on every request and never stored.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .normalize import (
    LOADOUT_GRANULARITIES,
    BattleEvent,
    LoadoutSnapshot,
    PeriodTotals,
    build_loadout_key,
    build_loadout_snapshot,
    event_from_document,
    normalize_documents,
)
from .timestamps import DateRange, from_epoch_millis, utc_month_key
from .trends import Trend, compare_totals

logger = logging.getLogger(__name__)

PairingKey = Tuple[int, int]

ENEMY_GRANULARITIES = ("overall",) + LOADOUT_GRANULARITIES


@dataclass(frozen=True)
class Window:
    """Half-open ``[start_ms, end_ms)`` interval."""

    start_ms: int
    end_ms: int

    def __post_init__(self) -> None:
        if self.end_ms <= self.start_ms:
            raise ValueError(f"Window end {self.end_ms} must be after start {self.start_ms}")

    @classmethod
    def from_date_range(cls, date_range: DateRange) -> "Window":
        return cls(date_range.start_ms, date_range.end_ms)

    @property
    def length_ms(self) -> int:
        return self.end_ms - self.start_ms

    def contains(self, millis: int) -> bool:
        return self.start_ms <= millis < self.end_ms

    def previous(self) -> "Window":
        return Window(self.start_ms - self.length_ms, self.start_ms)

    def to_dict(self) -> Dict[str, str]:
        return {
            "start": from_epoch_millis(self.start_ms).isoformat().replace("+00:00", "Z"),
            "end": from_epoch_millis(self.end_ms).isoformat().replace("+00:00", "Z"),
        }


@dataclass
class MonthlyAggregate:
    month_key: str
    count: int
    totals: PeriodTotals

    def to_dict(self) -> Dict[str, Any]:
        return {"month_key": self.month_key, "count": self.count, "totals": self.totals.to_dict()}


@dataclass
class PairingAggregate:
    primary_commander_id: int
    secondary_commander_id: int
    count: int
    totals: PeriodTotals
    previous_count: int = 0
    previous_totals: PeriodTotals = field(default_factory=PeriodTotals.zero)
    monthly: List[MonthlyAggregate] = field(default_factory=list)

    @property
    def pairing_key(self) -> PairingKey:
        return (self.primary_commander_id, self.secondary_commander_id)

    def trends(self) -> Dict[str, Trend]:
        return compare_totals(self.totals, self.previous_totals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary_commander_id": self.primary_commander_id,
            "secondary_commander_id": self.secondary_commander_id,
            "count": self.count,
            "totals": self.totals.to_dict(),
            "previous_count": self.previous_count,
            "previous_totals": self.previous_totals.to_dict(),
            "trends": {name: t.to_dict() for name, t in self.trends().items()},
            "monthly": [m.to_dict() for m in self.monthly],
        }


def _event_order(event: BattleEvent) -> Tuple[int, str]:
    return (event.timestamp_ms, event.record_id)


def sum_totals(events: Iterable[BattleEvent]) -> PeriodTotals:
    totals = PeriodTotals.zero()
    for event in sorted(events, key=_event_order):
        totals = totals + event.totals
    return totals


def _group_by_pairing(events: Iterable[BattleEvent]) -> Dict[PairingKey, List[BattleEvent]]:
    groups: Dict[PairingKey, List[BattleEvent]] = defaultdict(list)
    for event in events:
        groups[event.pairing_key].append(event)
    return groups


def build_monthly(events: Iterable[BattleEvent]) -> List[MonthlyAggregate]:
    buckets: Dict[str, List[BattleEvent]] = defaultdict(list)
    for event in events:
        buckets[utc_month_key(event.timestamp_ms)].append(event)
    return [
        MonthlyAggregate(month_key=key, count=len(buckets[key]), totals=sum_totals(buckets[key]))
        for key in sorted(buckets)
    ]


def _rank(aggregate: PairingAggregate) -> Tuple[float, int, int, int]:
    return (
        -aggregate.totals.kill_score,
        -aggregate.count,
        aggregate.primary_commander_id,
        aggregate.secondary_commander_id,
    )


def aggregate_pairings(
    events: Iterable[BattleEvent],
    window: Window,
    previous_window: Optional[Window] = None,
) -> List[PairingAggregate]:
    """Roll battle events up into one aggregate per pairing seen in ``window``.

    Args:
        events: Normalized battle events, in any order
        window: The current period
        previous_window: Trend baseline; defaults to the equally-sized window
            immediately before ``window``

    Returns:
        Aggregates sorted by kill score, then count, then pairing key
    """
    if previous_window is None:
        previous_window = window.previous()

    current: List[BattleEvent] = []
    previous: List[BattleEvent] = []
    for event in events:
        if window.contains(event.timestamp_ms):
            current.append(event)
        elif previous_window.contains(event.timestamp_ms):
            previous.append(event)

    previous_groups = _group_by_pairing(previous)
    aggregates: List[PairingAggregate] = []
    for key, group in _group_by_pairing(current).items():
        baseline = previous_groups.get(key, [])
        aggregates.append(
            PairingAggregate(
                primary_commander_id=key[0],
                secondary_commander_id=key[1],
                count=len(group),
                totals=sum_totals(group),
                previous_count=len(baseline),
                previous_totals=sum_totals(baseline),
                monthly=build_monthly(group),
            )
        )

    aggregates.sort(key=_rank)
    logger.debug(
        f"Aggregated {len(current)} current and {len(previous)} previous records "
        f"into {len(aggregates)} pairings"
    )
    return aggregates


def aggregate_documents(
    documents: Iterable[Dict[str, Any]],
    window: Window,
    previous_window: Optional[Window] = None,
) -> List[PairingAggregate]:
    return aggregate_pairings(normalize_documents(documents), window, previous_window)


@dataclass
class LoadoutAggregate:
    key: str
    loadout: LoadoutSnapshot
    count: int
    totals: PeriodTotals

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "loadout": asdict(self.loadout),
            "count": self.count,
            "totals": self.totals.to_dict(),
        }


@dataclass
class EnemyAggregate:
    enemy_primary_commander_id: int
    enemy_secondary_commander_id: int
    count: int
    totals: PeriodTotals

    @property
    def enemy_pairing_key(self) -> PairingKey:
        return (self.enemy_primary_commander_id, self.enemy_secondary_commander_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enemy_primary_commander_id": self.enemy_primary_commander_id,
            "enemy_secondary_commander_id": self.enemy_secondary_commander_id,
            "count": self.count,
            "totals": self.totals.to_dict(),
        }


def _pairing_reports(
    documents: Iterable[Dict[str, Any]], window: Window, pairing: PairingKey
) -> Iterator[Tuple[BattleEvent, Dict[str, Any]]]:
    """Yield ``(event, report)`` for each document of ``pairing`` inside ``window``."""
    pairing = (int(pairing[0]), int(pairing[1]))
    for doc in documents:
        if not isinstance(doc, dict):
            continue
        event = event_from_document(doc)
        if event is None or event.pairing_key != pairing:
            continue
        if not window.contains(event.timestamp_ms):
            continue
        report = doc.get("report")
        yield event, report if isinstance(report, dict) else {}


def aggregate_loadouts(
    documents: Iterable[Dict[str, Any]],
    window: Window,
    pairing: PairingKey,
    granularity: str = "exact",
) -> List[LoadoutAggregate]:
    """Break one pairing's battles in ``window`` down by the loadout it fielded.

    ``normalized`` granularity coarsens equipment attributes and drops
    armament values, so near-identical builds share a bucket.
    """
    if granularity not in LOADOUT_GRANULARITIES:
        raise ValueError(f"Unknown loadout granularity: {granularity}")

    snapshots: Dict[str, LoadoutSnapshot] = {}
    groups: Dict[str, List[BattleEvent]] = defaultdict(list)
    for event, report in _pairing_reports(documents, window, pairing):
        snapshot = build_loadout_snapshot(report, granularity)
        key = build_loadout_key(snapshot)
        snapshots.setdefault(key, snapshot)
        groups[key].append(event)

    aggregates = [
        LoadoutAggregate(key=key, loadout=snapshots[key], count=len(group), totals=sum_totals(group))
        for key, group in groups.items()
    ]
    aggregates.sort(key=lambda a: (-a.totals.kill_score, -a.count, a.key))
    logger.debug(f"Pairing {pairing} has {len(aggregates)} {granularity} loadouts")
    return aggregates


def aggregate_enemies(
    documents: Iterable[Dict[str, Any]],
    window: Window,
    pairing: PairingKey,
    granularity: str = "overall",
    loadout_key: Optional[str] = None,
) -> List[EnemyAggregate]:
    """Break one pairing's battles in ``window`` down by the enemy pairing faced.

    With ``exact`` or ``normalized`` granularity only battles whose loadout key
    equals ``loadout_key`` are counted.
    """
    if granularity not in ENEMY_GRANULARITIES:
        raise ValueError(f"Unknown enemy granularity: {granularity}")
    if granularity != "overall" and not loadout_key:
        raise ValueError("Missing loadout_key for a loadout-scoped enemy breakdown")

    groups: Dict[PairingKey, List[BattleEvent]] = defaultdict(list)
    for event, report in _pairing_reports(documents, window, pairing):
        if granularity != "overall":
            if build_loadout_key(build_loadout_snapshot(report, granularity)) != loadout_key:
                continue
        groups[event.enemy_pairing_key].append(event)

    aggregates = [
        EnemyAggregate(
            enemy_primary_commander_id=key[0],
            enemy_secondary_commander_id=key[1],
            count=len(group),
            totals=sum_totals(group),
        )
        for key, group in groups.items()
    ]
    aggregates.sort(key=lambda a: (-a.totals.kill_score, -a.count) + a.enemy_pairing_key)
    logger.debug(f"Pairing {pairing} faced {len(aggregates)} enemy pairings")
    return aggregates

from __future__ import annotations

import hashlib
import json
import logging
import math
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .parsers import (
    ArmamentBuff,
    EquipmentToken,
    parse_armament_buffs,
    parse_equipment,
    parse_semicolon_numbers,
)
from .timestamps import to_epoch_millis

logger = logging.getLogger(__name__)

LOADOUT_GRANULARITIES = ("exact", "normalized")


@dataclass(frozen=True)
class PeriodTotals:
    kill_score: float = 0
    deaths: float = 0
    severely_wounded: float = 0
    wounded: float = 0
    enemy_kill_score: float = 0
    enemy_deaths: float = 0
    enemy_severely_wounded: float = 0
    enemy_wounded: float = 0
    # derived per record
    dps: float = 0
    sps: float = 0
    tps: float = 0
    battle_duration: float = 0

    @classmethod
    def zero(cls) -> "PeriodTotals":
        return cls()

    def __add__(self, other: "PeriodTotals") -> "PeriodTotals":
        if not isinstance(other, PeriodTotals):
            return NotImplemented
        return PeriodTotals(
            **{f.name: getattr(self, f.name) + getattr(other, f.name) for f in fields(self)}
        )

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class BattleEvent:
    record_id: str
    primary_commander_id: int
    secondary_commander_id: int
    timestamp_ms: int
    totals: PeriodTotals
    enemy_primary_commander_id: int = 0
    enemy_secondary_commander_id: int = 0

    @property
    def pairing_key(self) -> Tuple[int, int]:
        return (self.primary_commander_id, self.secondary_commander_id)

    @property
    def enemy_pairing_key(self) -> Tuple[int, int]:
        return (self.enemy_primary_commander_id, self.enemy_secondary_commander_id)


@dataclass(frozen=True)
class LoadoutArmament:
    id: int
    value: Optional[float] = None


@dataclass(frozen=True)
class LoadoutSnapshot:
    equipment: Tuple[EquipmentToken, ...]
    armaments: Tuple[LoadoutArmament, ...]
    inscriptions: Tuple[float, ...]
    formation: Optional[int]


def _safe_number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, dict) and "$numberLong" in value:
        value = value["$numberLong"]
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(number) if number.is_integer() else number


def normalize_commander_id(value: Any) -> int:
    number = _safe_number(value)
    return int(number) if float(number).is_integer() else 0


def _section(doc: Optional[Dict[str, Any]], *path: str) -> Dict[str, Any]:
    node: Any = doc or {}
    for key in path:
        node = node.get(key) if isinstance(node, dict) else None
        if node is None:
            return {}
    return node if isinstance(node, dict) else {}


def totals_from_battle_results(results: Optional[Dict[str, Any]], duration_ms: float = 0) -> PeriodTotals:
    results = results or {}
    severely_wounded = _safe_number(results.get("severely_wounded"))
    enemy_severely_wounded = _safe_number(results.get("enemy_severely_wounded"))
    enemy_wounded = _safe_number(results.get("enemy_wounded"))
    return PeriodTotals(
        kill_score=_safe_number(results.get("kill_score")),
        deaths=_safe_number(results.get("death")),
        severely_wounded=severely_wounded,
        wounded=_safe_number(results.get("wounded")),
        enemy_kill_score=_safe_number(results.get("enemy_kill_score")),
        enemy_deaths=_safe_number(results.get("enemy_death")),
        enemy_severely_wounded=enemy_severely_wounded,
        enemy_wounded=enemy_wounded,
        dps=enemy_wounded + enemy_severely_wounded,
        sps=enemy_severely_wounded,
        tps=severely_wounded,
        battle_duration=duration_ms,
    )


def extract_event_time(report: Optional[Dict[str, Any]]) -> Optional[int]:
    return to_epoch_millis(_section(report, "metadata").get("email_time"))


def extract_battle_duration(report: Optional[Dict[str, Any]]) -> int:
    metadata = _section(report, "metadata")
    start = to_epoch_millis(metadata.get("start_date"))
    end = to_epoch_millis(metadata.get("end_date"))
    if start is None or end is None:
        return 0
    return max(0, end - start)


def document_id(doc: Dict[str, Any]) -> str:
    for candidate in (doc.get("_id"), _section(doc, "metadata").get("hash")):
        if isinstance(candidate, dict) and "$oid" in candidate:
            candidate = candidate["$oid"]
        if candidate not in (None, ""):
            return str(candidate)
    key_src = json.dumps(doc, sort_keys=True, default=str)
    return hashlib.sha1(key_src.encode("utf-8")).hexdigest()


def event_from_document(doc: Dict[str, Any]) -> Optional[BattleEvent]:
    report = _section(doc, "report")
    timestamp_ms = extract_event_time(report)
    if timestamp_ms is None:
        return None

    self_side = _section(report, "self")
    primary = normalize_commander_id(_section(self_side, "primary_commander").get("id"))
    if primary <= 0:
        return None
    secondary = normalize_commander_id(_section(self_side, "secondary_commander").get("id"))
    enemy_side = _section(report, "enemy")

    return BattleEvent(
        record_id=document_id(doc),
        primary_commander_id=primary,
        secondary_commander_id=secondary,
        timestamp_ms=timestamp_ms,
        totals=totals_from_battle_results(
            _section(report, "battle_results"), extract_battle_duration(report)
        ),
        enemy_primary_commander_id=normalize_commander_id(
            _section(enemy_side, "primary_commander").get("id")
        ),
        enemy_secondary_commander_id=normalize_commander_id(
            _section(enemy_side, "secondary_commander").get("id")
        ),
    )


def normalize_documents(documents: Iterable[Dict[str, Any]]) -> List[BattleEvent]:
    events: List[BattleEvent] = []
    dropped = 0
    for doc in documents:
        event = event_from_document(doc) if isinstance(doc, dict) else None
        if event is None:
            dropped += 1
            continue
        events.append(event)
    if dropped:
        logger.debug(f"Dropped {dropped} document(s) without a valid time or pairing")
    return events


def _normalize_equipment_attr(attr: Optional[int]) -> Optional[int]:
    if attr is None:
        return None
    base = math.trunc(attr / 10)
    return base * 10 if base > 0 else 0


def _formation(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value == 0:
        return None
    return int(value)


def build_loadout_snapshot(report: Optional[Dict[str, Any]], granularity: str = "exact") -> LoadoutSnapshot:
    if granularity not in LOADOUT_GRANULARITIES:
        raise ValueError(f"Unknown loadout granularity: {granularity}")

    self_side = _section(report, "self")
    equipment = parse_equipment(self_side.get("equipment"))
    buffs: List[ArmamentBuff] = parse_armament_buffs(self_side.get("armament_buffs"))
    inscriptions = tuple(sorted(set(parse_semicolon_numbers(self_side.get("inscriptions")))))
    formation = _formation(self_side.get("formation"))

    if granularity == "normalized":
        return LoadoutSnapshot(
            equipment=tuple(
                EquipmentToken(t.slot, t.item_id, t.craft_level, _normalize_equipment_attr(t.attr))
                for t in equipment
            ),
            armaments=tuple(LoadoutArmament(b.id) for b in buffs),
            inscriptions=inscriptions,
            formation=formation,
        )

    return LoadoutSnapshot(
        equipment=tuple(equipment),
        armaments=tuple(LoadoutArmament(b.id, b.value) for b in buffs),
        inscriptions=inscriptions,
        formation=formation,
    )


def build_loadout_key(snapshot: LoadoutSnapshot) -> str:
    equipment = "|".join(
        f"{t.slot}:{t.item_id}_{t.craft_level or 0}:{t.attr or 0}" for t in snapshot.equipment
    )
    armaments = "|".join(
        str(b.id) if b.value is None else f"{b.id}_{b.value}" for b in snapshot.armaments
    )
    inscriptions = "|".join(str(i) for i in snapshot.inscriptions)
    formation = snapshot.formation if snapshot.formation is not None else "none"
    return "|".join(
        [f"eq:{equipment}", f"arm:{armaments}", f"ins:{inscriptions}", f"fm:{formation}"]
    )

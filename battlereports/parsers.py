"""Decoders for the compact text fields embedded in battle report documents.

The game client writes equipment, inscriptions and armament buffs as small
delimited strings. Payloads are not under our control, so every decoder
skips malformed segments and keeps the rest instead of rejecting the field.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Dict, Generic, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

EMPTY_INSCRIPTION = -1
MAX_TIER = 5
SPECIAL_TALENT_BASE = 10

_LEADING_WRAPPER = "{ \t\r\n"
_TRAILING_WRAPPER = "} \t\r\n"


@dataclass(frozen=True)
class EquipmentToken:
    slot: int
    item_id: int
    craft_level: Optional[int] = None
    attr: Optional[int] = None


@dataclass(frozen=True)
class TierInfo:
    tier: Optional[int]
    special_talent: bool


@dataclass(frozen=True)
class ArmamentBuff:
    id: int
    value: float


@dataclass(frozen=True)
class Decoded(Generic[T]):
    """Decoder output; ``skipped`` counts dropped segments for diagnostics."""

    items: Tuple[T, ...]
    skipped: int = 0


def _parse_number(text: Optional[str]) -> Optional[float]:
    if text is None:
        return None
    text = text.strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _parse_int(text: Optional[str]) -> Optional[int]:
    value = _parse_number(text)
    if value is None or not value.is_integer():
        return None
    return int(value)


def _parse_decimal(text: str) -> Decimal:
    try:
        value = Decimal(text.strip())
    except InvalidOperation:
        return Decimal(0)
    return value if value.is_finite() else Decimal(0)


def _as_number(value: float) -> float | int:
    return int(value) if value.is_integer() else value


def _split_segments(raw: str, sep: str) -> List[str]:
    return [s.strip() for s in raw.split(sep) if s.strip()]


def _log_skipped(kind: str, skipped: int, raw: str) -> None:
    if skipped:
        logger.debug(f"Skipped {skipped} malformed {kind} segment(s) in {raw!r}")


def _parse_equipment_segment(segment: str) -> Optional[EquipmentToken]:
    parts = segment.split(":")
    slot = _parse_int(parts[0])
    if slot is None:
        return None
    id_craft = parts[1] if len(parts) > 1 else ""
    id_part, _, craft_part = id_craft.partition("_")
    item_id = _parse_int(id_part)
    if item_id is None:
        return None
    attr = _parse_int(parts[2]) if len(parts) > 2 else None
    return EquipmentToken(
        slot=slot,
        item_id=item_id,
        craft_level=_parse_int(craft_part) if craft_part else None,
        attr=attr,
    )


def decode_equipment(raw: Optional[str]) -> Decoded[EquipmentToken]:
    if not raw:
        return Decoded(())
    body = raw.lstrip(_LEADING_WRAPPER).rstrip(_TRAILING_WRAPPER)
    if not body:
        return Decoded(())

    by_slot: Dict[int, EquipmentToken] = {}
    skipped = 0
    for segment in _split_segments(body, ","):
        token = _parse_equipment_segment(segment)
        if token is None:
            skipped += 1
            continue
        by_slot[token.slot] = token

    _log_skipped("equipment", skipped, raw)
    return Decoded(tuple(by_slot[s] for s in sorted(by_slot)), skipped)


def parse_equipment(raw: Optional[str]) -> List[EquipmentToken]:
    return list(decode_equipment(raw).items)


def encode_equipment(tokens: List[EquipmentToken]) -> str:
    """Inverse of ``parse_equipment`` for well-formed tokens."""
    out = []
    for t in sorted(tokens, key=lambda t: t.slot):
        segment = f"{t.slot}:{t.item_id}"
        if t.craft_level is not None:
            segment += f"_{t.craft_level}"
        if t.attr is not None:
            segment += f":{t.attr}"
        out.append(segment)
    return "{" + ",".join(out) + "}"


def decode_tier(attr: Optional[float]) -> TierInfo:
    if attr is None or isinstance(attr, bool) or not math.isfinite(attr):
        return TierInfo(tier=None, special_talent=False)
    special = attr >= SPECIAL_TALENT_BASE
    base = attr % SPECIAL_TALENT_BASE if special else attr
    if not float(base).is_integer() or not 0 <= base <= MAX_TIER:
        return TierInfo(tier=None, special_talent=special)
    return TierInfo(tier=int(base), special_talent=special)


def decode_semicolon_numbers(raw: Optional[str]) -> Decoded[float | int]:
    if not raw:
        return Decoded(())
    out: List[float | int] = []
    skipped = 0
    for segment in _split_segments(raw, ";"):
        value = _parse_number(segment)
        if value is None:
            skipped += 1
            continue
        if value == EMPTY_INSCRIPTION:
            continue
        out.append(_as_number(value))
    _log_skipped("numeric", skipped, raw)
    return Decoded(tuple(out), skipped)


def parse_semicolon_numbers(raw: Optional[str]) -> List[float | int]:
    return list(decode_semicolon_numbers(raw).items)


def decode_armament_buffs(raw: Optional[str]) -> Decoded[ArmamentBuff]:
    if not raw:
        return Decoded(())
    # Decimal keeps "5_0.10;5_0.05" at exactly 0.15
    totals: Dict[int, Decimal] = {}
    skipped = 0
    for segment in _split_segments(raw, ";"):
        id_part, _, value_part = segment.partition("_")
        buff_id = _parse_int(id_part)
        if buff_id is None:
            skipped += 1
            continue
        value = _parse_decimal(value_part)
        totals[buff_id] = totals.get(buff_id, Decimal(0)) + value

    _log_skipped("armament", skipped, raw)
    return Decoded(
        tuple(ArmamentBuff(i, float(totals[i])) for i in sorted(totals)),
        skipped,
    )


def parse_armament_buffs(raw: Optional[str]) -> List[ArmamentBuff]:
    return list(decode_armament_buffs(raw).items)


def inscription_rarity(inscription_id: float) -> str:
    if not math.isfinite(inscription_id) or inscription_id < 1000:
        return "common"
    last_digit = int(inscription_id) % 10
    if last_digit == 1:
        return "special"
    if last_digit == 2:
        return "rare"
    return "common"

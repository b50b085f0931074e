from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .normalize import BattleEvent, normalize_documents
from .rollup import (
    PairingAggregate,
    Window,
    aggregate_enemies,
    aggregate_loadouts,
    aggregate_pairings,
)

logger = logging.getLogger(__name__)


def _bound_events(
    events: List[BattleEvent], window: Window, previous_window: Window, max_records: int
) -> List[BattleEvent]:
    """Keep at most ``max_records`` events per window, most recent first."""
    current = [e for e in events if window.contains(e.timestamp_ms)]
    previous = [
        e for e in events
        if previous_window.contains(e.timestamp_ms) and not window.contains(e.timestamp_ms)
    ]
    bounded: List[BattleEvent] = []
    for name, group in (("current", current), ("previous", previous)):
        if len(group) > max_records:
            logger.warning(f"Capped {name} window at {max_records} of {len(group)} records")
            group = sorted(group, key=lambda e: (e.timestamp_ms, e.record_id), reverse=True)
            group = group[:max_records]
        bounded.extend(group)
    return bounded


def build_report(
    documents: Iterable[Dict[str, Any]],
    window: Window,
    previous_window: Optional[Window] = None,
    max_records: Optional[int] = None,
) -> Dict[str, Any]:
    docs = list(documents)
    events = normalize_documents(docs)
    previous_window = previous_window or window.previous()
    considered = events
    if max_records is not None:
        considered = _bound_events(events, window, previous_window, max_records)
    pairings: List[PairingAggregate] = aggregate_pairings(considered, window, previous_window)
    return {
        "meta": {
            "documents": len(docs),
            "events": len(events),
            "pairings": len(pairings),
        },
        "window": window.to_dict(),
        "previous_window": previous_window.to_dict(),
        "items": [p.to_dict() for p in pairings],
    }


def build_breakdown(
    documents: Iterable[Dict[str, Any]],
    window: Window,
    pairing: Tuple[int, int],
    breakdown: str,
    granularity: Optional[str] = None,
    loadout_key: Optional[str] = None,
) -> Dict[str, Any]:
    docs = list(documents)
    if breakdown == "loadouts":
        items = aggregate_loadouts(docs, window, pairing, granularity or "exact")
    elif breakdown == "enemies":
        items = aggregate_enemies(docs, window, pairing, granularity or "overall", loadout_key)
    else:
        raise ValueError(f"Unknown breakdown: {breakdown}")
    return {
        "breakdown": breakdown,
        "pairing": {"primary_commander_id": pairing[0], "secondary_commander_id": pairing[1]},
        "window": window.to_dict(),
        "items": [item.to_dict() for item in items],
    }

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from battlereports.normalize import (
    BattleEvent,
    PeriodTotals,
    build_loadout_key,
    build_loadout_snapshot,
)
from battlereports.rollup import (
    Window,
    aggregate_documents,
    aggregate_enemies,
    aggregate_loadouts,
    aggregate_pairings,
)
from battlereports.trends import TrendKind

FIXTURE = Path(__file__).parent / "fixtures" / "battle_mails_sample.json"


def _ms(year: int, month: int, day: int) -> int:
    return int(datetime(year, month, day, tzinfo=timezone.utc).timestamp()) * 1000


def _event(record_id: str, pairing, ts: int, kills: float = 0, deaths: float = 0) -> BattleEvent:
    return BattleEvent(
        record_id=record_id,
        primary_commander_id=pairing[0],
        secondary_commander_id=pairing[1],
        timestamp_ms=ts,
        totals=PeriodTotals(kill_score=kills, deaths=deaths),
    )


MARCH = Window(_ms(2024, 3, 1), _ms(2024, 4, 1))


def _events():
    return [
        _event("a1", (1, 2), _ms(2024, 3, 5), kills=100, deaths=4),
        _event("a2", (1, 2), _ms(2024, 3, 10), kills=50, deaths=6),
        _event("b1", (3, 4), _ms(2024, 3, 7), kills=500),
        _event("c0", (5, 6), _ms(2024, 2, 20), kills=999),
        _event("a0", (1, 2), _ms(2024, 2, 25), kills=40, deaths=10),
        _event("old", (1, 2), _ms(2023, 6, 1), kills=1),
    ]


def test_counts_and_totals_per_pairing() -> None:
    rows = aggregate_pairings(_events(), MARCH)
    assert [r.pairing_key for r in rows] == [(3, 4), (1, 2)]

    a = rows[1]
    assert a.count == 2
    assert a.totals == PeriodTotals(kill_score=150, deaths=10)
    assert a.previous_count == 1
    assert a.previous_totals == PeriodTotals(kill_score=40, deaths=10)


def test_previous_only_pairings_are_not_emitted() -> None:
    rows = aggregate_pairings(_events(), MARCH)
    assert (5, 6) not in {r.pairing_key for r in rows}


def test_missing_history_gives_zero_baseline() -> None:
    rows = aggregate_pairings(_events(), MARCH)
    b = rows[0]
    assert b.previous_count == 0
    assert b.previous_totals == PeriodTotals.zero()
    assert b.trends()["kill_score"].kind is TrendKind.NOT_APPLICABLE


def test_trends_against_previous_window() -> None:
    a = aggregate_pairings(_events(), MARCH)[1]
    trends = a.trends()
    assert trends["kill_score"].kind is TrendKind.FAVORABLE
    assert trends["kill_score"].percent == pytest.approx(275.0)
    assert trends["deaths"].kind is TrendKind.FLAT


def test_output_independent_of_input_order() -> None:
    forward = [r.to_dict() for r in aggregate_pairings(_events(), MARCH)]
    backward = [r.to_dict() for r in aggregate_pairings(list(reversed(_events())), MARCH)]
    assert forward == backward


def test_monthly_buckets_only_for_months_with_records() -> None:
    window = Window(_ms(2024, 2, 1), _ms(2024, 5, 1))
    events = [
        _event("x3", (1, 2), _ms(2024, 4, 20), kills=3),
        _event("x1", (1, 2), _ms(2024, 2, 3), kills=1),
        _event("x2", (1, 2), _ms(2024, 4, 2), kills=2),
        _event("prev", (1, 2), _ms(2024, 1, 2), kills=9),
    ]
    [row] = aggregate_pairings(events, window)
    assert [(m.month_key, m.count) for m in row.monthly] == [("2024-02", 1), ("2024-04", 2)]
    assert row.monthly[1].totals.kill_score == 5


def test_ties_break_on_count_then_pairing() -> None:
    events = [
        _event("p1", (9, 1), _ms(2024, 3, 2), kills=10),
        _event("p2", (2, 7), _ms(2024, 3, 3), kills=5),
        _event("p3", (2, 7), _ms(2024, 3, 4), kills=5),
        _event("p4", (4, 0), _ms(2024, 3, 5), kills=10),
    ]
    rows = aggregate_pairings(events, MARCH)
    assert [r.pairing_key for r in rows] == [(2, 7), (4, 0), (9, 1)]


def test_no_implicit_record_cap(monkeypatch) -> None:
    monkeypatch.setenv("BATTLEREPORTS_MAX_RECORDS", "3")
    events = [_event("lone", (7, 8), MARCH.start_ms, kills=1)] + [
        _event(f"r{i}", (1, 2), _ms(2024, 3, 10 + i), kills=10) for i in range(3)
    ]
    rows = aggregate_pairings(events, MARCH)
    assert {r.pairing_key: r.count for r in rows} == {(1, 2): 3, (7, 8): 1}


def test_window_helpers() -> None:
    assert MARCH.previous().end_ms == MARCH.start_ms
    assert MARCH.previous().length_ms == MARCH.length_ms
    assert MARCH.contains(MARCH.start_ms)
    assert not MARCH.contains(MARCH.end_ms)
    with pytest.raises(ValueError):
        Window(5, 5)


def test_aggregate_documents_from_fixture() -> None:
    documents = json.loads(FIXTURE.read_text(encoding="utf-8"))
    [row] = aggregate_documents(documents, MARCH)
    assert row.pairing_key == (101, 202)
    assert row.count == 1
    assert row.totals.dps == 460
    assert row.totals.battle_duration == 90_000
    assert [m.month_key for m in row.monthly] == ["2024-03"]


def _doc(record_id: str, ts_ms: int, pairing, enemy, kills: float, equipment: str, formation: int):
    return {
        "_id": record_id,
        "report": {
            "metadata": {"email_time": ts_ms},
            "self": {
                "primary_commander": {"id": pairing[0]},
                "secondary_commander": {"id": pairing[1]},
                "equipment": equipment,
                "formation": formation,
            },
            "enemy": {
                "primary_commander": {"id": enemy[0]},
                "secondary_commander": {"id": enemy[1]},
            },
            "battle_results": {"kill_score": kills},
        },
    }


def _breakdown_docs():
    return [
        _doc("d1", _ms(2024, 3, 2), (1, 2), (30, 40), 100, "{1:500_1:12}", 1),
        _doc("d2", _ms(2024, 3, 3), (1, 2), (30, 40), 50, "{1:500_1:15}", 1),
        _doc("d3", _ms(2024, 3, 4), (1, 2), (50, 60), 400, "{1:600}", 2),
        _doc("other", _ms(2024, 3, 4), (9, 9), (30, 40), 999, "{1:500_1:12}", 1),
        _doc("feb", _ms(2024, 2, 4), (1, 2), (30, 40), 999, "{1:500_1:12}", 1),
    ]


def test_loadouts_exact_granularity() -> None:
    rows = aggregate_loadouts(_breakdown_docs(), MARCH, (1, 2))
    assert [r.count for r in rows] == [1, 1, 1]
    assert [r.totals.kill_score for r in rows] == [400, 100, 50]
    assert rows[0].key == "eq:1:600_0:0|arm:|ins:|fm:2"
    assert rows[0].loadout.formation == 2
    assert rows[1].key == build_loadout_key(build_loadout_snapshot(_breakdown_docs()[0]["report"]))


def test_loadouts_normalized_granularity_merges_attrs() -> None:
    rows = aggregate_loadouts(_breakdown_docs(), MARCH, (1, 2), "normalized")
    assert [(r.key, r.count, r.totals.kill_score) for r in rows] == [
        ("eq:1:600_0:0|arm:|ins:|fm:2", 1, 400),
        ("eq:1:500_1:10|arm:|ins:|fm:1", 2, 150),
    ]
    assert rows[1].to_dict()["loadout"]["equipment"][0]["attr"] == 10


def test_loadouts_unknown_granularity() -> None:
    with pytest.raises(ValueError):
        aggregate_loadouts(_breakdown_docs(), MARCH, (1, 2), "overall")


def test_enemies_overall() -> None:
    rows = aggregate_enemies(_breakdown_docs(), MARCH, (1, 2))
    assert [(r.enemy_pairing_key, r.count, r.totals.kill_score) for r in rows] == [
        ((50, 60), 1, 400),
        ((30, 40), 2, 150),
    ]
    assert rows[1].to_dict()["enemy_primary_commander_id"] == 30


def test_enemies_for_one_loadout() -> None:
    key = "eq:1:500_1:10|arm:|ins:|fm:1"
    [row] = aggregate_enemies(_breakdown_docs(), MARCH, (1, 2), "normalized", key)
    assert row.enemy_pairing_key == (30, 40)
    assert row.count == 2
    assert aggregate_enemies(_breakdown_docs(), MARCH, (1, 2), "exact", key) == []


def test_enemies_require_loadout_key_below_overall() -> None:
    with pytest.raises(ValueError):
        aggregate_enemies(_breakdown_docs(), MARCH, (1, 2), "exact")
    with pytest.raises(ValueError):
        aggregate_enemies(_breakdown_docs(), MARCH, (1, 2), "weekly", "eq:|arm:|ins:|fm:none")


def test_breakdowns_from_fixture() -> None:
    documents = json.loads(FIXTURE.read_text(encoding="utf-8"))
    [loadout] = aggregate_loadouts(documents, MARCH, (101, 202))
    assert loadout.key == build_loadout_key(build_loadout_snapshot(documents[0]["report"], "exact"))
    assert loadout.totals.kill_score == 1200
    [enemy] = aggregate_enemies(documents, MARCH, (101, 202), "exact", loadout.key)
    assert enemy.enemy_pairing_key == (303, 404)
    assert enemy.count == 1

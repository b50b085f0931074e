from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from battlereports.config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, engine_config_from_env
from battlereports.query import PageQuery, RollupQuery
from battlereports.rollup import Window

MARCH = Window(1_709_251_200_000, 1_711_929_600_000)


def test_explicit_instants_in_any_shape() -> None:
    query = RollupQuery(windowStart=1_709_251_200, windowEnd="2024-04-01T00:00:00Z")
    assert query.window() == MARCH
    by_name = RollupQuery(window_start={"$numberLong": "1709251200000"}, window_end=1_711_929_600_000)
    assert by_name.window() == MARCH


def test_day_bounds_and_year_fallback() -> None:
    assert RollupQuery(start="2024-03-01", end="2024-03-31").window() == MARCH
    year = RollupQuery(year=2023).window()
    assert year == Window(1_672_531_200_000, 1_704_067_200_000)
    now = datetime(2022, 7, 4, tzinfo=timezone.utc)
    assert RollupQuery().window(now=now).start_ms == 1_640_995_200_000


@pytest.mark.parametrize(
    "params",
    [
        {"windowStart": 1_709_251_200},
        {"windowStart": "garbage", "windowEnd": 1_711_929_600},
        {"windowStart": 1_711_929_600, "windowEnd": 1_709_251_200},
        {"year": 1999},
    ],
)
def test_invalid_rollup_queries(params) -> None:
    with pytest.raises(ValidationError):
        RollupQuery(**params)


def test_page_query() -> None:
    assert PageQuery().limit == DEFAULT_PAGE_SIZE
    assert PageQuery(cursor="   ").cursor is None
    with pytest.raises(ValidationError):
        PageQuery(limit=0)
    with pytest.raises(ValidationError):
        PageQuery(limit=MAX_PAGE_SIZE + 1)


def test_engine_config_from_env(monkeypatch) -> None:
    monkeypatch.setenv("BATTLEREPORTS_PAGE_SIZE", "9999")
    monkeypatch.setenv("BATTLEREPORTS_MAX_RECORDS", "abc")
    config = engine_config_from_env()
    assert config.page_size == MAX_PAGE_SIZE
    assert config.max_records == 50_000

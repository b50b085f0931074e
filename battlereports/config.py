from __future__ import annotations

import os
from dataclasses import dataclass


DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 500

# Upper bound on records fed to a single aggregation call.
DEFAULT_MAX_RECORDS = 50_000

# |percent| below this is rendered as a flat 0.0% trend.
TREND_FLAT_THRESHOLD = 0.05

# 9999-12-31T23:59:59.999Z
MAX_CANONICAL_MILLIS = 253_402_300_799_999


@dataclass(frozen=True)
class EngineConfig:
    page_size: int
    max_records: int


def _int_from_env(name: str, default: int, lo: int, hi: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(lo, min(hi, value))


def engine_config_from_env() -> EngineConfig:
    page_size = _int_from_env("BATTLEREPORTS_PAGE_SIZE", DEFAULT_PAGE_SIZE, 1, MAX_PAGE_SIZE)
    max_records = _int_from_env("BATTLEREPORTS_MAX_RECORDS", DEFAULT_MAX_RECORDS, 1, 10_000_000)
    return EngineConfig(page_size=page_size, max_records=max_records)

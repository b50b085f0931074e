"""Validated query parameters for rollup and list requests."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from .rollup import Window
from .timestamps import resolve_date_range, to_epoch_millis


class RollupQuery(BaseModel):
    """Window selection for a pairing rollup.

    Explicit ``windowStart``/``windowEnd`` instants win; otherwise ``start``
    and ``end`` days are used, falling back to the calendar ``year``.
    """

    window_start: Optional[int] = Field(
        default=None,
        alias="windowStart",
        description="Window start instant (any supported timestamp shape)",
    )
    window_end: Optional[int] = Field(
        default=None,
        alias="windowEnd",
        description="Window end instant, exclusive",
    )
    start: Optional[str] = Field(default=None, description="First day, YYYY-MM-DD")
    end: Optional[str] = Field(default=None, description="Last day, YYYY-MM-DD, inclusive")
    year: Optional[int] = Field(default=None, ge=2015, le=9998)

    class Config:
        populate_by_name = True

    @field_validator("window_start", "window_end", mode="before")
    @classmethod
    def normalize_instant(cls, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        millis = to_epoch_millis(value)
        if millis is None:
            raise ValueError("invalid timestamp")
        return millis

    @model_validator(mode="after")
    def check_instants(self) -> "RollupQuery":
        if (self.window_start is None) != (self.window_end is None):
            raise ValueError("windowStart and windowEnd must be given together")
        if self.window_start is not None and self.window_end <= self.window_start:
            raise ValueError("windowEnd must be after windowStart")
        return self

    def window(self, now: Optional[datetime] = None) -> Window:
        if self.window_start is not None and self.window_end is not None:
            return Window(self.window_start, self.window_end)
        now = now or datetime.now(timezone.utc)
        year = self.year if self.year is not None else now.year
        return Window.from_date_range(resolve_date_range(self.start, self.end, year))


class PageQuery(BaseModel):
    """Cursor and page size for a descending-time list."""

    cursor: Optional[str] = None
    limit: int = Field(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)

    @field_validator("cursor", mode="before")
    @classmethod
    def blank_cursor(cls, value: Any) -> Optional[str]:
        if isinstance(value, str):
            value = value.strip()
        return value or None

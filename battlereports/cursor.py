"""Opaque cursors for descending-time pagination.

A cursor names the last item of a page as ``(sort_key, tiebreak_id)``. The
next page holds only items strictly below that pair, so items sharing a
``sort_key`` are neither repeated nor skipped across pages.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, List, Optional, Tuple, TypeVar

from .config import engine_config_from_env
from .timestamps import is_canonical

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SEPARATOR = ":"


class InvalidCursorError(ValueError):
    """Raised for a cursor that can't be resumed; restart from the head."""


@dataclass(frozen=True, order=True)
class Cursor:
    sort_key: int
    tiebreak_id: str


@dataclass
class Page(Generic[T]):
    items: List[T]
    next_cursor: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.next_cursor is not None


def encode_cursor(sort_key: int, tiebreak_id: str) -> str:
    if isinstance(sort_key, bool) or not isinstance(sort_key, int) or not is_canonical(sort_key):
        raise InvalidCursorError(f"Cursor sort key is not a valid timestamp: {sort_key!r}")
    if not tiebreak_id:
        raise InvalidCursorError("Cursor tiebreak id must not be empty")
    payload = f"{sort_key}{_SEPARATOR}{tiebreak_id}".encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("ascii").rstrip("=")


def decode_cursor(token: str) -> Cursor:
    if not isinstance(token, str) or not token:
        raise InvalidCursorError("Cursor is empty")

    padded = token + "=" * (-len(token) % 4)
    try:
        payload = base64.b64decode(padded, altchars=b"-_", validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
        logger.debug(f"Rejecting undecodable cursor {token!r}: {exc}")
        raise InvalidCursorError("Cursor is malformed") from exc

    sort_part, sep, tiebreak_id = payload.partition(_SEPARATOR)
    if not sep or not (sort_part.isascii() and sort_part.isdigit()) or not tiebreak_id:
        logger.debug(f"Rejecting cursor with missing fields {token!r}")
        raise InvalidCursorError("Cursor is malformed")

    cursor = Cursor(int(sort_part), tiebreak_id)
    if not is_canonical(cursor.sort_key):
        raise InvalidCursorError("Cursor sort key is out of range")
    # one logical position, one cursor string
    if encode_cursor(cursor.sort_key, cursor.tiebreak_id) != token:
        raise InvalidCursorError("Cursor is not in canonical form")
    return cursor


def paginate(
    items: Iterable[T],
    key: Callable[[T], Tuple[Optional[int], str]],
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
) -> Page[T]:
    """Return the next page of ``items`` in descending ``key`` order.

    ``key`` maps an item to ``(sort_key, tiebreak_id)``; items whose sort
    key is not a canonical timestamp are left out. Raises
    ``InvalidCursorError`` for a bad ``cursor``.
    """
    if limit is None:
        limit = engine_config_from_env().page_size
    if limit < 1:
        raise ValueError("limit must be at least 1")

    after = decode_cursor(cursor) if cursor else None

    keyed: List[Tuple[Tuple[int, str], T]] = []
    for item in items:
        sort_key, tiebreak_id = key(item)
        if not is_canonical(sort_key) or not tiebreak_id:
            continue
        position = (int(sort_key), str(tiebreak_id))
        if after is not None and position >= (after.sort_key, after.tiebreak_id):
            continue
        keyed.append((position, item))

    keyed.sort(key=lambda pair: pair[0], reverse=True)
    window = keyed[: limit + 1]
    page = window[:limit]
    next_cursor = None
    if len(window) > limit:
        last_sort_key, last_tiebreak = page[-1][0]
        next_cursor = encode_cursor(last_sort_key, last_tiebreak)
    return Page(items=[item for _, item in page], next_cursor=next_cursor)

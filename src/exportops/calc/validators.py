"""Coercion and classification helpers shared by every engine.

Input rows come from spreadsheets, PDF extraction and several generations of
the database schema, so numbers may arrive as ``"12,5"`` and dates as loose
ISO strings.  Nothing in here raises on bad input.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Optional

_PG_UNDEFINED_TABLE = "42P01"
_PG_UNDEFINED_COLUMN = "42703"


def coerce_number(value: Any, fallback: float = 0.0) -> float:
    """Return *value* as a finite float, or *fallback*.

    Strings are trimmed and a comma decimal separator is accepted.
    """
    if value is None or isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else fallback

    text = str(value).strip().replace(",", ".", 1)
    if not text or "_" in text:
        return fallback
    try:
        number = float(text)
    except ValueError:
        return fallback
    return number if math.isfinite(number) else fallback


def normalize_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def parse_timestamp(value: Any) -> Optional[float]:
    """Epoch milliseconds for a date-like value, ``None`` when unparsable.

    Naive values are read as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    else:
        text = normalize_text(value)
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp() * 1000.0


def matches_date_range(date_value: Any, start: Any = None, end: Any = None) -> bool:
    """Inclusive date-window check.

    No bounds means no constraint.  A row without a parsable date never
    matches a bounded window.  An unparsable bound is ignored.
    """
    if not start and not end:
        return True
    ts = parse_timestamp(date_value)
    if ts is None:
        return False

    start_ts = parse_timestamp(start) if start else None
    end_ts = parse_timestamp(end) if end else None
    if start_ts is not None and ts < start_ts:
        return False
    if end_ts is not None and ts > end_ts:
        return False
    return True


# ---------------------------------------------------------------------------
# Backend error classification
# ---------------------------------------------------------------------------
def _error_codes(error: BaseException) -> set:
    codes = set()
    for candidate in (error, getattr(error, "orig", None)):
        if candidate is None:
            continue
        for attr in ("code", "pgcode", "sqlstate"):
            code = getattr(candidate, attr, None)
            if isinstance(code, str) and code:
                codes.add(code)
    return codes


def _error_message(error: BaseException) -> str:
    parts = [str(getattr(error, "message", "") or ""), str(error)]
    orig = getattr(error, "orig", None)
    if orig is not None:
        parts.append(str(orig))
    return " ".join(parts).lower()


def is_missing_column_error(error: Optional[BaseException]) -> bool:
    """True when the backend reports an unknown column."""
    if error is None:
        return False
    if _PG_UNDEFINED_COLUMN in _error_codes(error):
        return True
    message = _error_message(error)
    if "no such column" in message:
        return True
    return "column" in message and "does not exist" in message


def is_missing_relation_error(error: Optional[BaseException]) -> bool:
    """True when the backend reports an unknown table or view."""
    if error is None:
        return False
    if _PG_UNDEFINED_TABLE in _error_codes(error):
        return True
    if is_missing_column_error(error):
        return False
    message = _error_message(error)
    if "no such table" in message:
        return True
    return "relation" in message and ("does not exist" in message or "missing" in message)


def is_missing_table_error(error: Optional[BaseException]) -> bool:
    """Schema drift (absent relation or column) as opposed to a real fault."""
    return is_missing_relation_error(error) or is_missing_column_error(error)


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------
def summarize_warning(label: str, reason: Optional[str] = None) -> str:
    return f"{label}: {reason}" if reason else label


def combine_warnings(*parts: Optional[str]) -> Optional[str]:
    """Join the non-empty warnings once each, in order, with `` | ``."""
    seen: list[str] = []
    for part in parts:
        if part and part not in seen:
            seen.append(part)
    return " | ".join(seen) if seen else None

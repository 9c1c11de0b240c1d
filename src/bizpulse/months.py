# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Calendar-month helpers for BizPulse.

Every KPI is computed for exactly one calendar month, identified by a
``YYYY-MM`` string. This module turns such a string into a half-open UTC
interval expressed in epoch milliseconds (the unit used by ClickUp for all
task and comment timestamps) and provides the month arithmetic used by the
snapshot chain.

All computations are done in UTC. The local timezone of the machine running
the engine never influences which month a timestamp belongs to.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .errors import InvalidMonthError, RangeTooLargeError

_MONTH_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")

# Safety bound for month lists built by backfills.
MAX_MONTHS_IN_RANGE = 240


@dataclass(frozen=True)
class MonthRange:
    """
    Half-open UTC interval covering one calendar month.

    Attributes
    ----------
    month:
        The ``YYYY-MM`` identifier.
    start_ms:
        First millisecond of the month (inclusive).
    end_exclusive_ms:
        First millisecond of the next month (exclusive).
    """

    month: str
    start_ms: int
    end_exclusive_ms: int

    @property
    def start(self) -> datetime:
        return datetime.fromtimestamp(self.start_ms / 1000, tz=timezone.utc)

    @property
    def end_exclusive(self) -> datetime:
        return datetime.fromtimestamp(self.end_exclusive_ms / 1000, tz=timezone.utc)

    def contains(self, timestamp_ms: Optional[int]) -> bool:
        """Return True if the timestamp falls inside the month."""
        return is_within_month(timestamp_ms, self)


def _parse_month(month: object) -> tuple[int, int]:
    """Return (year, month_index0) or raise InvalidMonthError."""
    if not isinstance(month, str):
        raise InvalidMonthError(month)
    match = _MONTH_RE.match(month)
    if not match:
        raise InvalidMonthError(month)
    return int(match.group(1)), int(match.group(2)) - 1


def _format_month(year: int, month_index0: int) -> str:
    return f"{year:04d}-{month_index0 + 1:02d}"


def _utc_ms(year: int, month_index0: int) -> int:
    # Normalize month overflow/underflow (e.g. index 12 -> January next year).
    year += month_index0 // 12
    month_index0 %= 12
    dt = datetime(year, month_index0 + 1, 1, tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def validate_month(month: object, field_name: str = "month") -> str:
    """Return ``month`` unchanged if it is a valid YYYY-MM string."""
    try:
        _parse_month(month)
    except InvalidMonthError as exc:
        raise InvalidMonthError(month, field_name=field_name) from exc
    return month  # type: ignore[return-value]


def month_range(month: str) -> MonthRange:
    """
    Build the half-open UTC interval of a ``YYYY-MM`` month.

    Raises
    ------
    InvalidMonthError
        If ``month`` is not ``YYYY-MM`` with ``MM`` in 01..12.
    """
    year, idx = _parse_month(month)
    return MonthRange(
        month=month,
        start_ms=_utc_ms(year, idx),
        end_exclusive_ms=_utc_ms(year, idx + 1),
    )


def is_within_month(timestamp_ms: Optional[int], rng: MonthRange) -> bool:
    """``start <= ts < end_exclusive``; None is never within a month."""
    if timestamp_ms is None:
        return False
    return rng.start_ms <= timestamp_ms < rng.end_exclusive_ms


def add_months(month: str, delta: int) -> str:
    """Shift a ``YYYY-MM`` month by ``delta`` months (may be negative)."""
    year, idx = _parse_month(month)
    total = year * 12 + idx + delta
    return _format_month(total // 12, total % 12)


def previous_month(month: str) -> str:
    return add_months(month, -1)


def compare_months(a: str, b: str) -> int:
    """Return -1, 0 or 1. Valid YYYY-MM strings order lexicographically."""
    if a == b:
        return 0
    return -1 if a < b else 1


def month_of(moment: datetime) -> str:
    """Return the UTC ``YYYY-MM`` month containing ``moment``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return _format_month(utc.year, utc.month - 1)


def list_months_inclusive(start: str, end: str) -> list[str]:
    """
    List every month from ``start`` to ``end`` (both inclusive).

    Returns an empty list when ``start`` is after ``end``.

    Raises
    ------
    RangeTooLargeError
        If the range spans more than MAX_MONTHS_IN_RANGE months.
    """
    s_year, s_idx = _parse_month(start)
    e_year, e_idx = _parse_month(end)
    count = (e_year * 12 + e_idx) - (s_year * 12 + s_idx) + 1
    if count <= 0:
        return []
    if count > MAX_MONTHS_IN_RANGE:
        raise RangeTooLargeError(start, end, MAX_MONTHS_IN_RANGE)
    return [add_months(start, i) for i in range(count)]


def to_iso_utc(moment: datetime) -> str:
    """Format a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` in UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def ms_to_iso(timestamp_ms: Optional[int]) -> Optional[str]:
    """
    Format epoch milliseconds as an ISO UTC string.

    None, and timestamps outside the range ``datetime`` can represent, give
    None.
    """
    if timestamp_ms is None:
        return None
    try:
        moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    except (OverflowError, ValueError, OSError):
        return None
    return to_iso_utc(moment)


def parse_iso_ms(value: object) -> Optional[int]:
    """Parse an ISO-8601 timestamp into epoch milliseconds, or None."""
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)

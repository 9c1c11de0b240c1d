# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Snapshot chain and month-over-month diffs for BizPulse.

A snapshot is the persisted metrics document of one calendar month:

    {
        "version": "v1",
        "month": "2025-12",
        "computedAt": "2025-12-16T12:00:00.000Z",
        "metrics": {...},                 # DashboardMetrics document
        "diffFromPreviousPct": {...},     # same tree, leaves are % changes
    }

The diff tree mirrors the metrics tree: money metrics get
``{"grossPct", "netPct"}`` leaves, count and percent metrics get
``{"valuePct"}`` leaves. Percentages are rounded to 2 decimals.

Snapshots are generated month by month in ascending order; each month is
diffed against the one before it. The first month of a chain (no previous
snapshot) gets a diff tree whose every leaf is null.
"""

import logging
import math
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from .metrics import METRIC_GROUPS
from .months import (
    add_months,
    compare_months,
    list_months_inclusive,
    month_of,
    to_iso_utc,
    validate_month,
)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = "v1"


def round2(n: float) -> float:
    """Round half up to 2 decimals."""
    return math.floor(n * 100 + 0.5) / 100


def delta_pct(current: Optional[float], previous: Optional[float]) -> Optional[float]:
    """
    Percentage change from ``previous`` to ``current``.

    None if either side is None, if ``previous`` is 0, or if the result is
    not finite.

    Examples
    --------
    >>> delta_pct(110, 100)
    10.0
    >>> delta_pct(5, 0) is None
    True
    """
    if current is None or previous is None:
        return None
    if previous == 0:
        return None
    raw = (current - previous) / previous * 100
    if not math.isfinite(raw):
        return None
    return round2(raw)


def _as_document(metrics: Any) -> Mapping[str, Any]:
    """Accept a DashboardMetrics object or its dict form."""
    to_dict = getattr(metrics, "to_dict", None)
    return to_dict() if callable(to_dict) else metrics


def _is_money_leaf(leaf: Mapping[str, Any]) -> bool:
    return "grossILS" in leaf or "netILS" in leaf


def compute_diff_from_previous_pct(current: Any, previous: Any) -> dict[str, Any]:
    """
    Leaf-wise percentage diff of two metrics documents.

    Metrics absent from ``previous`` diff as null.
    """
    cur = _as_document(current)
    prev = _as_document(previous)

    diff: dict[str, Any] = {}
    for group in METRIC_GROUPS:
        cur_group = cur.get(group) or {}
        prev_group = prev.get(group) or {}
        group_diff: dict[str, Any] = {}
        for key, leaf in cur_group.items():
            if not isinstance(leaf, Mapping):
                continue
            prev_leaf = prev_group.get(key) or {}
            if _is_money_leaf(leaf):
                group_diff[key] = {
                    "grossPct": delta_pct(leaf.get("grossILS"), prev_leaf.get("grossILS")),
                    "netPct": delta_pct(leaf.get("netILS"), prev_leaf.get("netILS")),
                }
            else:
                group_diff[key] = {
                    "valuePct": delta_pct(leaf.get("value"), prev_leaf.get("value"))
                }
        diff[group] = group_diff
    return diff


def null_diff_like(example: Any) -> Any:
    """Copy of ``example`` (nested dicts/lists) with every leaf set to None."""
    if isinstance(example, Mapping):
        return {k: null_diff_like(v) for k, v in example.items()}
    if isinstance(example, list):
        return [null_diff_like(v) for v in example]
    return None


def target_snapshot_month(now: Optional[datetime] = None) -> str:
    """The month a refresh targets by default: the current UTC month."""
    return month_of(now or datetime.now(timezone.utc))


def list_missing_snapshot_months(last_month: Optional[str], target_month: str) -> list[str]:
    """
    Months to generate so that the chain reaches ``target_month``.

    - no snapshot yet                    -> ``[target_month]``
    - last snapshot at or after target   -> ``[]``
    - otherwise                          -> ``last_month + 1 .. target_month``

    Raises
    ------
    InvalidMonthError
        If either month is malformed.
    RangeTooLargeError
        If more than 240 months would be generated.
    """
    validate_month(target_month, "targetMonth")
    if last_month is None:
        return [target_month]
    validate_month(last_month, "lastMonth")

    if compare_months(last_month, target_month) >= 0:
        return []
    return list_months_inclusive(add_months(last_month, 1), target_month)


@dataclass(frozen=True)
class SnapshotRecord:
    month: str
    computed_at: str
    metrics: dict[str, Any]
    diff_from_previous_pct: dict[str, Any]
    version: str = SNAPSHOT_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "month": self.month,
            "computedAt": self.computed_at,
            "metrics": self.metrics,
            "diffFromPreviousPct": self.diff_from_previous_pct,
        }


async def generate_snapshot_records(
    months: Iterable[str],
    compute_dashboard: Callable[[str], Awaitable[Any]],
    previous_snapshot: Optional[Mapping[str, Any]] = None,
    computed_at: Optional[datetime] = None,
) -> list[SnapshotRecord]:
    """
    Compute one snapshot record per month, oldest first.

    Months are processed sequentially; each month is diffed against the
    metrics of the month before it (``previous_snapshot["metrics"]`` for
    the first one, if given).

    Parameters
    ----------
    months:
        Months to compute, in any order.
    compute_dashboard:
        Coroutine function returning the metrics of a month (a
        DashboardMetrics object or its dict form).
    previous_snapshot:
        Stored snapshot (or any mapping with a ``metrics`` key) preceding
        the first month.
    computed_at:
        Stamp written on every record (defaults to now, UTC).
    """
    stamp = to_iso_utc(computed_at or datetime.now(timezone.utc))
    ordered = sorted(months)

    prev_metrics: Optional[Mapping[str, Any]] = (
        previous_snapshot.get("metrics") if previous_snapshot else None
    )

    records: list[SnapshotRecord] = []
    for month in ordered:
        metrics = dict(_as_document(await compute_dashboard(month)))

        if prev_metrics is not None:
            diff = compute_diff_from_previous_pct(metrics, prev_metrics)
        else:
            diff = null_diff_like(compute_diff_from_previous_pct(metrics, metrics))

        records.append(
            SnapshotRecord(
                month=month,
                computed_at=stamp,
                metrics=metrics,
                diff_from_previous_pct=diff,
            )
        )
        logger.debug("Generated snapshot record for %s", month)
        prev_metrics = metrics

    return records

# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Calculation breakdown documents for BizPulse.

A breakdown explains *which* records contributed to a reported metric, so
the dashboard can show a drill-down next to each KPI. It is stored beside
the snapshot as ``snapshots/{month}/metricBreakdowns/{metricKey}``.

Three kinds exist:

- ``none``        : intentionally no breakdown (ratios, follower counts),
- ``names``       : the list of tasks that were counted,
- ``line_items``  : tasks with the amount each one contributed.

Amounts are stored as integer agorot (ILS x 100, rounded half up) so that
the UI can sum them without floating-point drift.
"""

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Optional

from .months import ms_to_iso

BREAKDOWN_SCHEMA_VERSION = 1

KIND_NONE = "none"
KIND_NAMES = "names"
KIND_LINE_ITEMS = "line_items"

# Metric keys whose breakdown document is stored under another id.
BREAKDOWN_DOC_KEYS = {"avgRevenuePerDeal": "avgRevenuePerDealGross"}

LINE_ITEM_KEYS = frozenset(
    {"monthlyRevenue", "expectedCashflow", "expectedExpenses", "avgRevenuePerDealGross"}
)

NONE_KEYS = frozenset(
    {"landingConversionPct", "closeRatePct", "followersEndOfMonth", "followersDeltaMonth"}
)


@dataclass(frozen=True)
class Contribution:
    """One record counted in a metric (and, for money, how much it added)."""

    id: Optional[str]
    name: str
    status: Optional[str] = None
    date_ms: Optional[int] = None
    amount_gross_ils: Optional[float] = None


def to_agorot(amount_ils: Optional[float]) -> int:
    """ILS -> integer agorot, rounding half up. None counts as 0."""
    if amount_ils is None:
        return 0
    return int(math.floor(amount_ils * 100 + 0.5))


def breakdown_doc_key(metric_key: str) -> str:
    return BREAKDOWN_DOC_KEYS.get(metric_key, metric_key)


def _base(metric_key: str, kind: str, generated_at: Optional[str]) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "schemaVersion": BREAKDOWN_SCHEMA_VERSION,
        "metricKey": metric_key,
        "kind": kind,
    }
    if generated_at is not None:
        doc["generatedAt"] = generated_at
    return doc


def _item(c: Contribution) -> dict[str, Any]:
    item: dict[str, Any] = {}
    if c.id is not None:
        item["id"] = c.id
    item["name"] = c.name
    if c.status is not None:
        item["status"] = c.status
    date_iso = ms_to_iso(c.date_ms)
    if date_iso is not None:
        item["dateIso"] = date_iso
    return item


def none_breakdown(metric_key: str, generated_at: Optional[str] = None) -> dict[str, Any]:
    return _base(metric_key, KIND_NONE, generated_at)


def names_breakdown(
    metric_key: str,
    contributions: Iterable[Contribution],
    generated_at: Optional[str] = None,
) -> dict[str, Any]:
    doc = _base(metric_key, KIND_NAMES, generated_at)
    doc["items"] = [_item(c) for c in contributions]
    return doc


def line_items_breakdown(
    metric_key: str,
    contributions: Iterable[Contribution],
    generated_at: Optional[str] = None,
) -> dict[str, Any]:
    doc = _base(metric_key, KIND_LINE_ITEMS, generated_at)
    doc["currency"] = "ILS"
    items = []
    for c in contributions:
        item = _item(c)
        item["amountAgorot"] = to_agorot(c.amount_gross_ils)
        items.append(item)
    doc["items"] = items
    return doc


def build_breakdowns(
    metric_keys: Iterable[str],
    contributions: Mapping[str, Iterable[Contribution]],
    generated_at: Optional[str] = None,
) -> dict[str, dict[str, Any]]:
    """
    Build one breakdown document per metric key.

    Parameters
    ----------
    metric_keys:
        camelCase metric keys as they appear in the metrics document.
    contributions:
        Contributions keyed by breakdown document key.
    generated_at:
        ISO timestamp stamped on every document.

    Returns
    -------
    dict
        Breakdown documents keyed by document key.
    """
    out: dict[str, dict[str, Any]] = {}
    for metric_key in metric_keys:
        doc_key = breakdown_doc_key(metric_key)
        items = list(contributions.get(doc_key, ()))
        if doc_key in NONE_KEYS:
            out[doc_key] = none_breakdown(doc_key, generated_at)
        elif doc_key in LINE_ITEM_KEYS:
            out[doc_key] = line_items_breakdown(doc_key, items, generated_at)
        else:
            out[doc_key] = names_breakdown(doc_key, items, generated_at)
    return out


def breakdown_total_agorot(doc: Mapping[str, Any]) -> int:
    """Sum of the line items of a breakdown (0 for other kinds)."""
    if doc.get("kind") != KIND_LINE_ITEMS:
        return 0
    return sum(int(item.get("amountAgorot", 0)) for item in doc.get("items", []))

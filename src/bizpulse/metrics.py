# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Metric value objects for BizPulse.

Every KPI is reported as one of three shapes:

- :class:`CountMetric`     -> ``{"value": int | None, "meta": ...}``
- :class:`PercentMetric`   -> ``{"value": float | None, "meta": ...}``
- :class:`CurrencyMetric`  -> ``{"grossILS": ..., "netILS": ..., "meta": ...}``

``meta`` records the provenance of the value: its ``source`` ("clickup",
"instagram" or "computed") and optional human-readable ``notes``. A null
value is always accompanied by a note explaining why.

The four metric groups (financial, marketing, sales, operations) and the
:class:`DashboardMetrics` document that nests them serialize to the
camelCase JSON layout consumed by the snapshot store and the dashboard UI.
Groups also carry, outside of their serialized form, the per-record
contributions used to build breakdown documents.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Optional, Union

from .breakdowns import Contribution
from .vat import NetGross

SOURCE_CLICKUP = "clickup"
SOURCE_INSTAGRAM = "instagram"
SOURCE_COMPUTED = "computed"


def camel_case(name: str) -> str:
    """``monthly_revenue`` -> ``monthlyRevenue``."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


@dataclass(frozen=True)
class MetricMeta:
    source: str
    notes: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"source": self.source}
        if self.notes:
            out["notes"] = list(self.notes)
        return out


@dataclass(frozen=True)
class CountMetric:
    value: Optional[int]
    meta: MetricMeta

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "meta": self.meta.to_dict()}


@dataclass(frozen=True)
class PercentMetric:
    value: Optional[float]
    meta: MetricMeta

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "meta": self.meta.to_dict()}


@dataclass(frozen=True)
class CurrencyMetric:
    gross_ils: Optional[float]
    net_ils: Optional[float]
    meta: MetricMeta

    def to_dict(self) -> dict[str, Any]:
        return {
            "grossILS": self.gross_ils,
            "netILS": self.net_ils,
            "meta": self.meta.to_dict(),
        }


Metric = Union[CountMetric, PercentMetric, CurrencyMetric]


def _notes(notes: Optional[Iterable[str]]) -> tuple[str, ...]:
    return tuple(notes) if notes else ()


def count_metric(
    source: str, value: Optional[int], notes: Optional[Iterable[str]] = None
) -> CountMetric:
    return CountMetric(value, MetricMeta(source, _notes(notes)))


def percent_metric(
    source: str, value: Optional[float], notes: Optional[Iterable[str]] = None
) -> PercentMetric:
    return PercentMetric(value, MetricMeta(source, _notes(notes)))


def currency_metric(
    source: str,
    amounts: NetGross,
    notes: Optional[Iterable[str]] = None,
) -> CurrencyMetric:
    """
    Build a currency metric from an :func:`~bizpulse.vat.ensure_net_gross`
    result. The VAT notes of ``amounts`` are appended after ``notes``.
    """
    all_notes = _notes(notes) + tuple(amounts.notes)
    return CurrencyMetric(
        amounts.gross_ils, amounts.net_ils, MetricMeta(source, all_notes)
    )


# ---------------------------------------------------------------------------
# Metric groups
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _MetricGroup:
    """Base class: serializes every metric field under its camelCase key."""

    def metric_items(self) -> list[tuple[str, Metric]]:
        return [
            (camel_case(f.name), getattr(self, f.name))
            for f in fields(self)
            if f.name != "contributions"
        ]

    def to_dict(self) -> dict[str, Any]:
        return {key: metric.to_dict() for key, metric in self.metric_items()}


@dataclass(frozen=True)
class FinancialMetrics(_MetricGroup):
    monthly_revenue: CurrencyMetric
    expected_cashflow: CurrencyMetric
    expected_expenses: CurrencyMetric
    contributions: Mapping[str, tuple[Contribution, ...]] = field(
        default_factory=dict, compare=False
    )


@dataclass(frozen=True)
class MarketingMetrics(_MetricGroup):
    total_leads: CountMetric
    relevant_leads: CountMetric
    landing_visits: CountMetric
    landing_signups: CountMetric
    landing_conversion_pct: PercentMetric
    followers_end_of_month: CountMetric
    followers_delta_month: CountMetric
    contributions: Mapping[str, tuple[Contribution, ...]] = field(
        default_factory=dict, compare=False
    )


@dataclass(frozen=True)
class SalesMetrics(_MetricGroup):
    avg_revenue_per_deal: CurrencyMetric
    sales_calls: CountMetric
    closures: CountMetric
    close_rate_pct: PercentMetric
    contributions: Mapping[str, tuple[Contribution, ...]] = field(
        default_factory=dict, compare=False
    )


@dataclass(frozen=True)
class OperationsMetrics(_MetricGroup):
    active_customers: CountMetric
    cancellations: CountMetric
    referrals_word_of_mouth: CountMetric
    returning_customers: CountMetric
    contributions: Mapping[str, tuple[Contribution, ...]] = field(
        default_factory=dict, compare=False
    )


METRIC_GROUPS = ("financial", "marketing", "sales", "operations")


@dataclass(frozen=True)
class DashboardMetrics:
    """The versioned metrics document of one month."""

    month: str
    computed_at: str
    financial: FinancialMetrics
    marketing: MarketingMetrics
    sales: SalesMetrics
    operations: OperationsMetrics
    version: str = "v1"

    def groups(self) -> list[tuple[str, _MetricGroup]]:
        return [(name, getattr(self, name)) for name in METRIC_GROUPS]

    def contributions(self) -> dict[str, tuple[Contribution, ...]]:
        """Contributions of every group, keyed by breakdown document key."""
        out: dict[str, tuple[Contribution, ...]] = {}
        for _, group in self.groups():
            out.update(group.contributions)
        return out

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "version": self.version,
            "month": self.month,
            "computedAt": self.computed_at,
        }
        for name, group in self.groups():
            out[name] = group.to_dict()
        return out

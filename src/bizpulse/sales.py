# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Sales metrics for BizPulse.

- salesCalls         : leads created in the month whose status is no longer
                       "New Lead",
- closures           : Closed Won leads whose close date (``date_closed``,
                       else ``date_updated``) falls in the month, plus the
                       deals moved to the Event Calendar by automation and
                       closed in the month,
- avgRevenuePerDeal  : average budget of the moved deals closed in the
                       month when there are any, else
                       ``monthlyRevenue / closures``,
- closeRatePct       : ``closures / salesCalls * 100`` (null when there
                       were no sales calls).
"""

from collections.abc import Iterable
from typing import Optional

from .breakdowns import Contribution
from .config import StatusVocabulary
from .financial import ClosedWonDeal
from .metrics import (
    SOURCE_CLICKUP,
    SOURCE_COMPUTED,
    CurrencyMetric,
    SalesMetrics,
    count_metric,
    currency_metric,
    percent_metric,
)
from .months import MonthRange
from .normalize import NormalizedLead, status_equals
from .vat import ensure_net_gross


def compute_sales_metrics(
    rng: MonthRange,
    leads: Iterable[NormalizedLead],
    monthly_revenue: CurrencyMetric,
    extra_closed_won: Iterable[ClosedWonDeal] = (),
    vocabulary: Optional[StatusVocabulary] = None,
    closure_notes: Iterable[str] = (),
) -> SalesMetrics:
    """
    ``closure_notes`` are appended to the closures metric (e.g. when the
    automation move detection stopped at its lookup budget).
    """
    vocab = vocabulary or StatusVocabulary()

    calls: list[Contribution] = []
    closures: list[Contribution] = []

    for lead in leads:
        if rng.contains(lead.created_ms):
            if lead.status is not None and not status_equals(lead.status, vocab.new_lead):
                calls.append(
                    Contribution(lead.id, lead.name, lead.status, lead.created_ms)
                )

        if status_equals(lead.status, vocab.closed_won) and rng.contains(lead.close_ms):
            closures.append(
                Contribution(
                    lead.id,
                    lead.name,
                    lead.status,
                    lead.close_ms,
                    lead.budget_gross_ils,
                )
            )

    moved_deals: list[Contribution] = []
    notes = ["Closed Won deals with closeDate in month"]
    for deal in extra_closed_won:
        if rng.contains(deal.close_ms):
            item = Contribution(
                deal.id, deal.name, vocab.closed_won, deal.close_ms, deal.budget_gross_ils
            )
            closures.append(item)
            moved_deals.append(item)
            notes.extend(n for n in deal.notes if n not in notes)
    notes.extend(n for n in closure_notes if n not in notes)

    closures_count = len(closures)
    calls_count = len(calls)

    # Average deal size.
    deal_budgets = [d for d in moved_deals if d.amount_gross_ils is not None]
    avg_items: tuple[Contribution, ...] = ()
    if deal_budgets:
        avg_gross = sum(d.amount_gross_ils or 0.0 for d in deal_budgets) / len(deal_budgets)
        avg_revenue = currency_metric(
            SOURCE_COMPUTED,
            ensure_net_gross(gross_ils=avg_gross),
            [f"Average budget of {len(deal_budgets)} closed-won Event Calendar deals"],
        )
        avg_items = tuple(deal_budgets)
    elif closures_count == 0:
        avg_revenue = currency_metric(
            SOURCE_COMPUTED, ensure_net_gross(), ["closedWonCount == 0 => null"]
        )
    elif monthly_revenue.gross_ils is None:
        avg_revenue = currency_metric(
            SOURCE_COMPUTED, ensure_net_gross(), ["monthlyRevenue missing => null"]
        )
    else:
        avg_revenue = currency_metric(
            SOURCE_COMPUTED,
            ensure_net_gross(gross_ils=monthly_revenue.gross_ils / closures_count),
            ["monthlyRevenue / closures"],
        )
        avg_items = tuple(closures)

    close_rate = percent_metric(
        SOURCE_COMPUTED,
        None if calls_count == 0 else closures_count / calls_count * 100,
        ["salesCalls == 0 => null"] if calls_count == 0 else None,
    )

    return SalesMetrics(
        avg_revenue_per_deal=avg_revenue,
        sales_calls=count_metric(
            SOURCE_CLICKUP,
            calls_count,
            [f"Leads created in month where status != {vocab.new_lead}"],
        ),
        closures=count_metric(
            SOURCE_CLICKUP, closures_count, notes
        ),
        close_rate_pct=close_rate,
        contributions={
            "salesCalls": tuple(calls),
            "closures": tuple(closures),
            "avgRevenuePerDealGross": avg_items,
        },
    )

# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Dashboard composer for BizPulse.

This module computes the full metrics document of exactly one month:

1. fetch the three ClickUp lists (Incoming Leads, Event Calendar,
   Expenses) concurrently,
2. normalize the tasks,
3. detect the deals moved out of the leads list by automation,
4. run the financial passes (with budgeted, cached comment lookups),
5. compute the marketing (including Instagram followers), sales and
   operations groups,
6. optionally build the breakdown documents explaining each metric.

A single :class:`~bizpulse.sources.CommentCache` is shared by all passes of
a run, so a task's comments are fetched at most once per computation.

Only an invalid month string is surfaced to the caller. Every per-task or
insights failure is recorded as a note on the affected metric.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .breakdowns import build_breakdowns
from .config import AppConfig, default_app_config
from .financial import (
    compute_expected_cashflow,
    compute_expected_expenses,
    compute_financial_metrics,
    compute_lead_based_revenue,
    compute_monthly_revenue,
    find_closed_won_moves,
)
from .marketing import compute_follower_metrics, compute_marketing_metrics
from .metrics import DashboardMetrics
from .months import month_range, to_iso_utc
from .normalize import normalize_event, normalize_expense, normalize_lead
from .operations import compute_operations_metrics
from .sales import compute_sales_metrics
from .sources import CommentCache, CommentLookups, InsightsSource, TaskSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DashboardResult:
    """Metrics of a month plus their breakdown documents."""

    metrics: DashboardMetrics
    breakdowns: dict[str, dict[str, Any]] = field(default_factory=dict)


async def _compute(
    month: str,
    task_source: TaskSource,
    insights_source: Optional[InsightsSource],
    computed_at: Optional[datetime],
    config: Optional[AppConfig],
) -> DashboardMetrics:
    cfg = config or default_app_config()
    vocab = cfg.vocabulary
    budgets = cfg.budgets

    rng = month_range(month)
    now = computed_at or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    lead_tasks, event_tasks, expense_tasks = await asyncio.gather(
        task_source.list_tasks(cfg.lists.incoming_leads, include_closed=True),
        task_source.list_tasks(cfg.lists.event_calendar, include_closed=True),
        task_source.list_tasks(cfg.lists.expenses, include_closed=True),
    )
    logger.info(
        "Fetched %d leads, %d events, %d expenses for %s",
        len(lead_tasks),
        len(event_tasks),
        len(expense_tasks),
        month,
    )

    leads = [normalize_lead(t, cfg.fields) for t in lead_tasks]
    events = [normalize_event(t, cfg.fields) for t in event_tasks]
    expenses = [normalize_expense(t, cfg.fields) for t in expense_tasks]

    cache = CommentCache(task_source)

    moves = await find_closed_won_moves(
        rng,
        events,
        {lead.id for lead in leads},
        CommentLookups(cache, budgets.closed_won_moves, "closed_won_moves"),
        vocab,
    )

    if events:
        monthly_revenue = await compute_monthly_revenue(
            rng,
            events,
            CommentLookups(cache, budgets.monthly_revenue, "monthly_revenue"),
            vocab,
        )
    else:
        monthly_revenue = compute_lead_based_revenue(rng, leads, moves.deals, vocab)

    expected_cashflow = await compute_expected_cashflow(
        rng,
        events,
        CommentLookups(cache, budgets.expected_cashflow, "expected_cashflow"),
        vocab,
    )
    expected_expenses = compute_expected_expenses(rng, expenses)

    financial = compute_financial_metrics(monthly_revenue, expected_cashflow, expected_expenses)

    followers = await compute_follower_metrics(month, now, insights_source)
    marketing = compute_marketing_metrics(rng, leads, vocab, followers)
    sales = compute_sales_metrics(
        rng,
        leads,
        financial.monthly_revenue,
        moves.deals,
        vocab,
        closure_notes=moves.notes,
    )
    operations = compute_operations_metrics(rng, leads, events, now, vocab)

    logger.info(
        "Computed dashboard for %s (%d comment fetches)", month, cache.fetch_count
    )

    return DashboardMetrics(
        month=month,
        computed_at=to_iso_utc(now),
        financial=financial,
        marketing=marketing,
        sales=sales,
        operations=operations,
    )


async def compute_dashboard(
    month: str,
    task_source: TaskSource,
    insights_source: Optional[InsightsSource] = None,
    computed_at: Optional[datetime] = None,
    config: Optional[AppConfig] = None,
) -> DashboardMetrics:
    """
    Compute the metrics document of ``month``.

    Parameters
    ----------
    month:
        Target month, ``YYYY-MM``.
    task_source:
        ClickUp task source.
    insights_source:
        Optional Instagram insights source. Without it the follower metrics
        are null with a note.
    computed_at:
        Computation time (defaults to now, UTC). Drives the follower window
        and the "active customers" cut-off.
    config:
        Workspace configuration (defaults to :func:`default_app_config`).

    Raises
    ------
    InvalidMonthError
        If ``month`` is not a valid ``YYYY-MM`` string.
    """
    return await _compute(month, task_source, insights_source, computed_at, config)


async def compute_dashboard_with_breakdowns(
    month: str,
    task_source: TaskSource,
    insights_source: Optional[InsightsSource] = None,
    computed_at: Optional[datetime] = None,
    config: Optional[AppConfig] = None,
) -> DashboardResult:
    """Same as :func:`compute_dashboard`, plus one breakdown per metric."""
    metrics = await _compute(month, task_source, insights_source, computed_at, config)

    metric_keys = [
        key for _, group in metrics.groups() for key, _ in group.metric_items()
    ]
    breakdowns = build_breakdowns(
        metric_keys, metrics.contributions(), generated_at=metrics.computed_at
    )
    return DashboardResult(metrics=metrics, breakdowns=breakdowns)

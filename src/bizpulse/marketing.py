# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Marketing metrics for BizPulse.

Lead metrics are computed from the "Incoming Leads" list:

- totalLeads            : leads created in the month,
- relevantLeads         : totalLeads minus Closed Lost leads whose loss
                          reason is "Not Relevant",
- landingVisits         : leads created in the month with source
                          "Landing Page" (ClickUp is the source of truth),
- landingSignups        : equal to landingVisits in v1,
- landingConversionPct  : null when there are no visits, else 100.

Follower metrics come from the Instagram insights source and are only
available for the current and the previous calendar month (the insights
API window):

- followersEndOfMonth   : last follower-count sample inside the month,
- followersDeltaMonth   : end-of-month minus previous end-of-month,
                          computable for the current month only.

An insights failure never fails the dashboard: both follower metrics are
reported as null with a note.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from .breakdowns import Contribution
from .config import StatusVocabulary
from .errors import InsightsFetchError
from .metrics import (
    SOURCE_CLICKUP,
    SOURCE_COMPUTED,
    SOURCE_INSTAGRAM,
    CountMetric,
    MarketingMetrics,
    count_metric,
    percent_metric,
)
from .months import MonthRange, month_of, month_range, parse_iso_ms, previous_month
from .normalize import NormalizedLead, status_equals
from .sources import InsightsSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FollowerMetrics:
    end_of_month: CountMetric
    delta_month: CountMetric


def _lead_item(lead: NormalizedLead) -> Contribution:
    return Contribution(id=lead.id, name=lead.name, status=lead.status, date_ms=lead.created_ms)


def pick_last_in_month(
    series: Iterable[Mapping[str, Any]], rng: MonthRange
) -> Optional[int]:
    """Value of the latest sample whose ``endTimeIso`` falls in the month."""
    last_ms: Optional[int] = None
    last_value: Optional[int] = None
    for sample in series:
        ms = parse_iso_ms(sample.get("endTimeIso"))
        if ms is None or not rng.contains(ms):
            continue
        if last_ms is None or ms > last_ms:
            last_ms = ms
            last_value = sample.get("value")
    return last_value


async def _fetch_series(insights: InsightsSource, rng: MonthRange) -> list[Mapping[str, Any]]:
    try:
        return list(
            await insights.get_follower_count_series(rng.start_ms, rng.end_exclusive_ms)
        )
    except Exception as exc:
        raise InsightsFetchError(exc) from exc


async def compute_follower_metrics(
    month: str,
    computed_at: datetime,
    insights: Optional[InsightsSource],
) -> FollowerMetrics:
    """
    End-of-month follower count and monthly delta.

    Only the month of ``computed_at`` and the month before it are
    supported. Failures of the insights source degrade both metrics to
    null with a note.
    """
    rng = month_range(month)
    now_month = month_of(computed_at)
    prev_now_month = previous_month(now_month)

    end_value: Optional[int] = None
    delta_value: Optional[int] = None
    notes: list[str] = []

    if insights is None:
        notes.append("Instagram client not configured")
    elif month not in (now_month, prev_now_month):
        notes.append(
            "Followers metrics supported only for current + previous month (insights window)"
        )
    else:
        try:
            end_value = pick_last_in_month(await _fetch_series(insights, rng), rng)
            if end_value is None:
                notes.append("No follower_count samples returned for month range")

            if month == now_month:
                prev_rng = month_range(prev_now_month)
                prev_end = pick_last_in_month(await _fetch_series(insights, prev_rng), prev_rng)
                if prev_end is None or end_value is None:
                    notes.append(
                        "Delta not computable (missing sample for current or previous month)"
                    )
                else:
                    delta_value = end_value - prev_end
            else:
                notes.append(
                    "Delta for previous month requires month-2, outside supported window"
                )
        except InsightsFetchError as exc:
            logger.warning("%s (month=%s)", exc, month)
            notes.append(str(exc))
            end_value = None
            delta_value = None

    return FollowerMetrics(
        end_of_month=count_metric(SOURCE_INSTAGRAM, end_value, notes),
        delta_month=count_metric(SOURCE_INSTAGRAM, delta_value, notes),
    )


def compute_marketing_metrics(
    rng: MonthRange,
    leads: Iterable[NormalizedLead],
    vocabulary: Optional[StatusVocabulary] = None,
    followers: Optional[FollowerMetrics] = None,
) -> MarketingMetrics:
    """Lead-based marketing metrics, plus the follower metrics if given."""
    vocab = vocabulary or StatusVocabulary()

    created: list[NormalizedLead] = []
    not_relevant: set[str] = set()
    landing: list[NormalizedLead] = []

    for lead in leads:
        if not rng.contains(lead.created_ms):
            continue
        created.append(lead)

        if status_equals(lead.status, vocab.closed_lost) and status_equals(
            lead.loss_reason, vocab.not_relevant_reason
        ):
            not_relevant.add(lead.id)

        if status_equals(lead.source, vocab.landing_page_source):
            landing.append(lead)

    total = len(created)
    relevant = [lead for lead in created if lead.id not in not_relevant]
    visits = len(landing)

    if followers is None:
        followers = FollowerMetrics(
            end_of_month=count_metric(SOURCE_INSTAGRAM, None, ["Instagram client not configured"]),
            delta_month=count_metric(SOURCE_INSTAGRAM, None, ["Instagram client not configured"]),
        )

    landing_items = tuple(_lead_item(lead) for lead in landing)

    return MarketingMetrics(
        total_leads=count_metric(
            SOURCE_CLICKUP, total, ["Count of Incoming Leads tasks created in month"]
        ),
        relevant_leads=count_metric(
            SOURCE_CLICKUP,
            len(relevant),
            [f"totalLeads minus {vocab.closed_lost} with Loss Reason = {vocab.not_relevant_reason}"],
        ),
        landing_visits=count_metric(
            SOURCE_CLICKUP, visits, [f"ClickUp proxy: Source = {vocab.landing_page_source}"]
        ),
        landing_signups=count_metric(
            SOURCE_CLICKUP, visits, ["v1: same as landingVisits (ClickUp is authoritative)"]
        ),
        landing_conversion_pct=percent_metric(
            SOURCE_COMPUTED,
            None if visits == 0 else 100.0,
            ["visits == 0 => null"] if visits == 0 else ["v1: landingSignups equals landingVisits"],
        ),
        followers_end_of_month=followers.end_of_month,
        followers_delta_month=followers.delta_month,
        contributions={
            "totalLeads": tuple(_lead_item(lead) for lead in created),
            "relevantLeads": tuple(_lead_item(lead) for lead in relevant),
            "landingVisits": landing_items,
            "landingSignups": landing_items,
        },
    )

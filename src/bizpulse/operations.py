# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Operations metrics for BizPulse.

- activeCustomers       : Event Calendar tasks in an open operational status
                          (booked, staffing, logistics, ready) whose event
                          date is at or after the computation time,
- cancellations         : Event Calendar tasks in status "Cancelled" updated
                          in the month,
- referralsWordOfMouth  : leads created in the month with source
                          "Word of Mouth",
- returningCustomers    : distinct normalized phones of leads created in the
                          month that belong to a Closed Won lead closed
                          before the month.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Optional

from .breakdowns import Contribution
from .config import StatusVocabulary
from .metrics import SOURCE_CLICKUP, OperationsMetrics, count_metric
from .months import MonthRange
from .normalize import NormalizedEvent, NormalizedLead, status_equals, status_in


def compute_operations_metrics(
    rng: MonthRange,
    leads: Sequence[NormalizedLead],
    events: Iterable[NormalizedEvent],
    computed_at: datetime,
    vocabulary: Optional[StatusVocabulary] = None,
) -> OperationsMetrics:
    vocab = vocabulary or StatusVocabulary()
    now_ms = int(computed_at.timestamp() * 1000)

    active: list[Contribution] = []
    cancelled: list[Contribution] = []
    for ev in events:
        if (
            status_in(ev.status, vocab.open_statuses)
            and ev.requested_date_ms is not None
            and ev.requested_date_ms >= now_ms
        ):
            active.append(Contribution(ev.id, ev.name, ev.status, ev.requested_date_ms))

        if status_equals(ev.status, vocab.cancelled) and rng.contains(ev.updated_ms):
            cancelled.append(Contribution(ev.id, ev.name, ev.status, ev.updated_ms))

    referrals = [
        Contribution(lead.id, lead.name, lead.status, lead.created_ms)
        for lead in leads
        if rng.contains(lead.created_ms)
        and status_equals(lead.source, vocab.word_of_mouth_source)
    ]

    historical_phones: set[str] = set()
    for lead in leads:
        if not status_equals(lead.status, vocab.closed_won):
            continue
        close_ms = lead.close_ms
        if close_ms is None or close_ms >= rng.start_ms:
            continue
        if lead.phone_normalized:
            historical_phones.add(lead.phone_normalized)

    returning: dict[str, Contribution] = {}
    for lead in leads:
        if not rng.contains(lead.created_ms) or not lead.phone_normalized:
            continue
        if lead.phone_normalized in historical_phones and lead.phone_normalized not in returning:
            returning[lead.phone_normalized] = Contribution(
                lead.id, lead.name, lead.status, lead.created_ms
            )

    open_set = ", ".join(vocab.open_statuses)
    return OperationsMetrics(
        active_customers=count_metric(
            SOURCE_CLICKUP,
            len(active),
            [f"Event Calendar: statuses {{{open_set}}} and eventDate >= computedAt"],
        ),
        cancellations=count_metric(
            SOURCE_CLICKUP,
            len(cancelled),
            [f"v1: status == {vocab.cancelled} and date_updated in month"],
        ),
        referrals_word_of_mouth=count_metric(
            SOURCE_CLICKUP,
            len(referrals),
            [f"Incoming Leads: Source = {vocab.word_of_mouth_source}, created in month"],
        ),
        returning_customers=count_metric(
            SOURCE_CLICKUP,
            len(returning),
            ["Unique normalized phones created in month that match historical Closed Won phones"],
        ),
        contributions={
            "activeCustomers": tuple(active),
            "cancellations": tuple(cancelled),
            "referralsWordOfMouth": tuple(referrals),
            "returningCustomers": tuple(returning.values()),
        },
    )

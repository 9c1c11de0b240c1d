# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Financial metrics for BizPulse: revenue recognition and expected cashflow.

Money figures are built over the Event Calendar list (one task per booked
event). All amounts read from ClickUp are treated as gross ILS (VAT
included); each figure is totalled in gross and converted to net through
:func:`~bizpulse.vat.ensure_net_gross` exactly once, at the end.

Monthly revenue (recognized)
----------------------------
For every non-cancelled event task:

1. Balance: the task's "done" timestamp is the first automation
   "Status has changed to : Done" comment, else ``date_closed``, else
   ``date_updated`` when the current status denotes completion. If it falls
   in the month, the "Balance Due" field is recognized (0 with a note when
   the field is missing).
2. Deposit: when the deposit field is non-zero, or the task was updated in
   the month, the earliest deposit-paid comment is looked for. If it falls
   in the month, the deposit is recognized.

A task may contribute both its deposit and its balance in the same month;
both are accumulated into one line item. Comment lookups are capped
(``LookupBudgets.monthly_revenue``); past the cap, deposits are no longer
checked and the done timestamp falls back to the task dates.

Expected cashflow (v2)
----------------------
Three components per task:

A. deposit-paid comment in the month -> deposit,
B. event date in the month, status not Billing, and no Billing -> Done
   transition ever observed -> balance due,
C. Billing -> Done transition in the month -> balance due.

B and C never count the same balance twice. Comment lookups are capped
independently (``LookupBudgets.expected_cashflow``).

Expected expenses
-----------------
Sum of the Expenses list amounts whose expense date falls in the month.

Lead-based revenue
------------------
Fallback used when the Event Calendar holds no deals: Closed Won leads
(and deals moved out of the leads list by automation) whose close date
falls in the month, valued at their budget.
"""

import logging
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from typing import Optional

from .breakdowns import Contribution
from .comments import (
    extract_closed_won_move_ms,
    extract_deposit_paid_ms,
    extract_first_billing_to_done_ms,
    extract_first_done_status_change_ms,
)
from .config import StatusVocabulary
from .errors import CommentFetchError
from .metrics import SOURCE_CLICKUP, CurrencyMetric, FinancialMetrics, currency_metric
from .months import MonthRange
from .normalize import (
    NormalizedEvent,
    NormalizedExpense,
    NormalizedLead,
    status_equals,
    status_in,
)
from .sources import Comment, CommentLookups
from .vat import NetGross, ensure_net_gross

logger = logging.getLogger(__name__)

CLOSED_WON_MOVE_NOTE = "Close date from ClickBot move-to-Event-Calendar comment"


def _fmt(amount: float) -> str:
    """Render an amount for provenance notes (no trailing .0)."""
    return str(int(amount)) if float(amount).is_integer() else f"{amount:.2f}"


def _add_once(notes: list[str], note: str) -> None:
    if note not in notes:
        notes.append(note)


@dataclass(frozen=True)
class MoneyPassResult:
    """Outcome of one money computation pass."""

    amounts: NetGross
    notes: tuple[str, ...] = ()
    items: tuple[Contribution, ...] = ()

    @property
    def gross_ils(self) -> Optional[float]:
        return self.amounts.gross_ils

    @property
    def net_ils(self) -> Optional[float]:
        return self.amounts.net_ils

    def to_metric(self, source: str = SOURCE_CLICKUP) -> CurrencyMetric:
        return currency_metric(source, self.amounts, self.notes)


@dataclass(frozen=True)
class ClosedWonDeal:
    """A deal closed outside of the leads list (moved by automation)."""

    id: str
    name: str
    close_ms: Optional[int]
    budget_gross_ils: Optional[float]
    notes: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ClosedWonMoves:
    deals: tuple[ClosedWonDeal, ...] = ()
    notes: tuple[str, ...] = ()


async def _lookup_comments(
    lookups: CommentLookups,
    task_id: str,
    notes: list[str],
    what: str,
) -> tuple[Optional[list[Comment]], bool]:
    """
    Fetch comments through the pass budget.

    Returns ``(comments, failed)``. ``comments`` is None when the budget is
    exhausted or the fetch failed; ``failed`` tells the two apart.
    """
    try:
        return await lookups.get(task_id), False
    except CommentFetchError as exc:
        notes.append(f"{what} comment fetch failed for task {task_id}: {exc}")
        logger.warning("%s (pass=%s)", exc, lookups.pass_name)
        return None, True


def _note_budget_exhausted(lookups: CommentLookups, notes: list[str], note: str) -> None:
    if note not in notes:
        notes.append(note)
        logger.warning(
            "Comment lookup budget of %d exhausted in pass %s",
            lookups.budget,
            lookups.pass_name,
        )


# ---------------------------------------------------------------------------
# Monthly revenue
# ---------------------------------------------------------------------------


async def compute_monthly_revenue(
    rng: MonthRange,
    events: Iterable[NormalizedEvent],
    lookups: CommentLookups,
    vocabulary: Optional[StatusVocabulary] = None,
) -> MoneyPassResult:
    """
    Recognized revenue of the month from the Event Calendar.

    See the module docstring for the recognition rules.
    """
    vocab = vocabulary or StatusVocabulary()
    done_labels = (vocab.done, *vocab.done_aliases)
    notes: list[str] = []
    items: list[Contribution] = []
    budget_note = (
        f"Deposit comment lookups capped at {lookups.budget}; results may be incomplete"
    )

    deposits_gross = 0.0
    balances_gross = 0.0
    deposit_count = 0
    balance_count = 0

    for ev in events:
        if status_equals(ev.status, vocab.cancelled):
            continue

        comments, failed = await _lookup_comments(lookups, ev.id, notes, "DONE status")
        if comments is None and not failed:
            _note_budget_exhausted(lookups, notes, budget_note)

        task_amount = 0.0
        recognized = False
        recognized_ms: Optional[int] = None

        done_ms = (
            extract_first_done_status_change_ms(comments, vocab)
            if comments is not None
            else None
        )
        if done_ms is None:
            if ev.closed_ms is not None:
                done_ms = ev.closed_ms
            elif status_in(ev.status, done_labels):
                done_ms = ev.updated_ms

        if rng.contains(done_ms):
            if ev.balance_due_gross_ils is None:
                notes.append(
                    f"Balance Due missing for DONE task {ev.id} => treated as 0"
                )
            else:
                balances_gross += ev.balance_due_gross_ils
                task_amount += ev.balance_due_gross_ils
            balance_count += 1
            recognized = True
            recognized_ms = done_ms

        should_check_deposit = (
            ev.deposit_gross_ils is not None and ev.deposit_gross_ils != 0
        ) or rng.contains(ev.updated_ms)

        if should_check_deposit and comments is not None:
            deposit_ms = extract_deposit_paid_ms(comments, vocab)
            if rng.contains(deposit_ms):
                if ev.deposit_gross_ils is None:
                    notes.append(
                        "Deposit comment found but Deposit field missing "
                        f"for task {ev.id} => treated as 0"
                    )
                else:
                    deposits_gross += ev.deposit_gross_ils
                    task_amount += ev.deposit_gross_ils
                deposit_count += 1
                recognized = True
                recognized_ms = max(recognized_ms or 0, deposit_ms or 0)

        if recognized:
            items.append(
                Contribution(
                    id=ev.id,
                    name=ev.name,
                    status=ev.status,
                    date_ms=recognized_ms,
                    amount_gross_ils=task_amount,
                )
            )

    notes.append(
        "Monthly revenue from Event Calendar: "
        f"deposits={_fmt(deposits_gross)} ({deposit_count} tasks), "
        f"balances={_fmt(balances_gross)} ({balance_count} tasks)"
    )
    notes.append(
        'DONE attribution uses first ClickBot "Status has changed to : DONE" '
        "comment timestamp (fallback: task.date_closed)"
    )
    notes.append("Amounts treated as gross ILS")

    total = ensure_net_gross(gross_ils=deposits_gross + balances_gross)
    logger.debug(
        "Monthly revenue %s: gross=%s (%d line items)", rng.month, total.gross_ils, len(items)
    )
    return MoneyPassResult(total, tuple(notes), tuple(items))


# ---------------------------------------------------------------------------
# Expected cashflow
# ---------------------------------------------------------------------------


async def compute_expected_cashflow(
    rng: MonthRange,
    events: Iterable[NormalizedEvent],
    lookups: CommentLookups,
    vocabulary: Optional[StatusVocabulary] = None,
) -> MoneyPassResult:
    """
    Expected cashflow of the month: deposits (A) + scheduled balances (B)
    + Billing -> Done releases (C).
    """
    vocab = vocabulary or StatusVocabulary()
    notes: list[str] = []
    items: list[Contribution] = []
    budget_note = (
        f"Comment lookups capped at {lookups.budget}; expected cashflow may be incomplete"
    )

    deposits_gross = 0.0
    scheduled_gross = 0.0
    releases_gross = 0.0
    deposit_count = 0
    scheduled_count = 0
    release_count = 0

    for ev in events:
        comments, failed = await _lookup_comments(lookups, ev.id, notes, "Status history")
        if comments is None and not failed:
            # No status history means no B/C dedup guard: stop the pass.
            _note_budget_exhausted(lookups, notes, budget_note)
            break

        task_amount = 0.0
        counted = False
        date_ms: Optional[int] = None

        billing_to_done_ms = (
            extract_first_billing_to_done_ms(comments, vocab)
            if comments is not None
            else None
        )

        # C) Billing -> Done release in the month.
        if rng.contains(billing_to_done_ms):
            if ev.balance_due_gross_ils is None:
                notes.append(
                    "Billing->Done transition found but Balance Due missing "
                    f"for task {ev.id} => treated as 0"
                )
            else:
                releases_gross += ev.balance_due_gross_ils
                task_amount += ev.balance_due_gross_ils
            release_count += 1
            counted = True
            date_ms = billing_to_done_ms

        # A) Deposit paid in the month.
        deposit_ms = (
            extract_deposit_paid_ms(comments, vocab) if comments is not None else None
        )
        if rng.contains(deposit_ms):
            if ev.deposit_gross_ils is None:
                notes.append(
                    "Deposit comment found but Deposit field missing "
                    f"for task {ev.id} => treated as 0"
                )
            else:
                deposits_gross += ev.deposit_gross_ils
                task_amount += ev.deposit_gross_ils
            deposit_count += 1
            counted = True
            date_ms = date_ms or deposit_ms

        # B) Scheduled balance: event in the month, not in Billing, and not
        # already released through a Billing -> Done transition.
        in_event_month = rng.contains(ev.requested_date_ms)
        is_billing = status_equals(ev.status, vocab.billing)
        if in_event_month and not is_billing and comments is None:
            notes.append(
                f"Scheduled balance skipped for task {ev.id}: status history unavailable"
            )
        elif in_event_month and not is_billing and billing_to_done_ms is None:
            if ev.balance_due_gross_ils is None:
                notes.append(
                    "Scheduled event in month but Balance Due missing "
                    f"for task {ev.id} => treated as 0"
                )
            else:
                scheduled_gross += ev.balance_due_gross_ils
                task_amount += ev.balance_due_gross_ils
            scheduled_count += 1
            counted = True
            date_ms = date_ms or ev.requested_date_ms

        if counted:
            items.append(
                Contribution(
                    id=ev.id,
                    name=ev.name,
                    status=ev.status,
                    date_ms=date_ms,
                    amount_gross_ils=task_amount,
                )
            )

    notes.append(
        "Expected Revenue v2.0: A=Deposits (comment month) + B=Scheduled Balances "
        "(event month, status!=Billing) + C=Billing->Done releases (transition month)"
    )
    notes.append(
        "Expected Revenue breakdown: "
        f"deposits={_fmt(deposits_gross)} ({deposit_count} tasks), "
        f"scheduledBalances={_fmt(scheduled_gross)} ({scheduled_count} tasks), "
        f"billingReleases={_fmt(releases_gross)} ({release_count} tasks)"
    )
    notes.append("Amounts treated as gross ILS")

    total = ensure_net_gross(gross_ils=deposits_gross + scheduled_gross + releases_gross)
    logger.debug(
        "Expected cashflow %s: gross=%s (%d line items)", rng.month, total.gross_ils, len(items)
    )
    return MoneyPassResult(total, tuple(notes), tuple(items))


# ---------------------------------------------------------------------------
# Expected expenses
# ---------------------------------------------------------------------------


def compute_expected_expenses(
    rng: MonthRange, expenses: Iterable[NormalizedExpense]
) -> MoneyPassResult:
    """Sum of the expense amounts dated in the month (null if none)."""
    notes: list[str] = ["Expense Amount treated as gross ILS"]
    items: list[Contribution] = []
    total_gross = 0.0

    for exp in expenses:
        if not rng.contains(exp.expense_date_ms):
            continue
        if exp.amount_gross_ils is None:
            notes.append(f"Expense Amount missing for task {exp.id} => skipped")
            continue
        total_gross += exp.amount_gross_ils
        items.append(
            Contribution(
                id=exp.id,
                name=exp.name,
                status=exp.status,
                date_ms=exp.expense_date_ms,
                amount_gross_ils=exp.amount_gross_ils,
            )
        )

    if not items:
        notes.append("No expenses dated in month")
        return MoneyPassResult(ensure_net_gross(), tuple(notes), ())

    return MoneyPassResult(ensure_net_gross(gross_ils=total_gross), tuple(notes), tuple(items))


# ---------------------------------------------------------------------------
# Closed-won deals moved by automation, lead-based revenue
# ---------------------------------------------------------------------------


async def find_closed_won_moves(
    rng: MonthRange,
    events: Iterable[NormalizedEvent],
    lead_ids: Collection[str],
    lookups: CommentLookups,
    vocabulary: Optional[StatusVocabulary] = None,
) -> ClosedWonMoves:
    """
    Find deals the automation moved from the leads list to the Event Calendar.

    Such tasks are no longer in the leads list when the refresh runs, so
    their Closed Won status is invisible there. Only Event Calendar tasks
    that are absent from the leads list and were updated in the month are
    inspected; the latest "moved to Event Calendar / Closed Won" comment
    becomes the effective close date.
    """
    notes: list[str] = []
    deals: list[ClosedWonDeal] = []

    for ev in events:
        if ev.id in lead_ids or not rng.contains(ev.updated_ms):
            continue

        if not lookups.can_lookup(ev.id):
            _note_budget_exhausted(
                lookups,
                notes,
                f"Closed-won move lookups capped at {lookups.budget}; closures may be incomplete",
            )
            break

        comments, _ = await _lookup_comments(lookups, ev.id, notes, "Closed-won move")
        if comments is None:
            continue

        move_ms = extract_closed_won_move_ms(comments, vocabulary)
        if move_ms is None:
            continue

        deals.append(
            ClosedWonDeal(
                id=ev.id,
                name=ev.name,
                close_ms=move_ms,
                budget_gross_ils=ev.budget_gross_ils,
                notes=(CLOSED_WON_MOVE_NOTE,),
            )
        )

    if deals:
        logger.info("Found %d closed-won deals moved by automation in %s", len(deals), rng.month)
    return ClosedWonMoves(tuple(deals), tuple(notes))


def compute_lead_based_revenue(
    rng: MonthRange,
    leads: Iterable[NormalizedLead],
    extra_closed_won: Iterable[ClosedWonDeal] = (),
    vocabulary: Optional[StatusVocabulary] = None,
) -> MoneyPassResult:
    """
    Revenue from Closed Won leads (and moved deals) closed in the month.

    The close date is ``date_closed``, else ``date_updated`` (noted).
    Returns null amounts, with a note, when no deal closed in the month.
    """
    vocab = vocabulary or StatusVocabulary()
    notes: list[str] = ["Budget treated as gross ILS"]
    items: list[Contribution] = []
    total_gross = 0.0

    for lead in leads:
        if not status_equals(lead.status, vocab.closed_won):
            continue
        if lead.closed_ms is None and lead.updated_ms is not None:
            _add_once(notes, "Close date missing; used date_updated as closeDate proxy")
        close_ms = lead.close_ms
        if not rng.contains(close_ms):
            continue
        if lead.budget_gross_ils is None:
            notes.append(f"Budget missing for Closed Won lead {lead.id} => skipped")
            continue
        total_gross += lead.budget_gross_ils
        items.append(
            Contribution(
                id=lead.id,
                name=lead.name,
                status=lead.status,
                date_ms=close_ms,
                amount_gross_ils=lead.budget_gross_ils,
            )
        )

    for deal in extra_closed_won:
        if not rng.contains(deal.close_ms):
            continue
        for note in deal.notes:
            _add_once(notes, note)
        if deal.budget_gross_ils is None:
            notes.append(f"Budget missing for Closed Won deal {deal.id} => skipped")
            continue
        total_gross += deal.budget_gross_ils
        items.append(
            Contribution(
                id=deal.id,
                name=deal.name,
                status=vocab.closed_won,
                date_ms=deal.close_ms,
                amount_gross_ils=deal.budget_gross_ils,
            )
        )

    if not items:
        notes.append("No Closed Won deals with close date in month")
        return MoneyPassResult(ensure_net_gross(), tuple(notes), ())

    notes.append("Lead-based revenue: Event Calendar holds no deals")
    return MoneyPassResult(ensure_net_gross(gross_ils=total_gross), tuple(notes), tuple(items))


def compute_financial_metrics(
    monthly_revenue: MoneyPassResult,
    expected_cashflow: MoneyPassResult,
    expected_expenses: MoneyPassResult,
) -> FinancialMetrics:
    """Assemble the financial group from the three money passes."""
    return FinancialMetrics(
        monthly_revenue=monthly_revenue.to_metric(),
        expected_cashflow=expected_cashflow.to_metric(),
        expected_expenses=expected_expenses.to_metric(),
        contributions={
            "monthlyRevenue": monthly_revenue.items,
            "expectedCashflow": expected_cashflow.items,
            "expectedExpenses": expected_expenses.items,
        },
    )

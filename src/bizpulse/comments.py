# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Comment event extraction for BizPulse.

Several business facts are never stored in ClickUp fields. They only show
up as free-text comments on a task, most of them posted by the ClickUp
automation bot ("ClickBot"):

- "Status has changed to : Billing"            -> status transition
- "Moved to Event Calendar ... Closed Won"     -> deal closed by automation
- "מקדמה שולמה" / "Deposit paid"              -> deposit received (may be manual)

This module turns a task's comment list into typed :class:`CommentEvent`
objects, using an ordered list of named :class:`CommentRule` objects (one
per phrasing / language). New phrasings are added by appending a rule;
the extraction functions never change.

Selection policies
------------------
- Deposit paid: earliest matching comment wins (first payment is
  authoritative; repeated confirmations are ignored).
- Status changed to X: earliest comment per target status wins.
- Closed-won move: latest matching comment wins (the final move is
  authoritative over duplicate automation firings).
- Billing -> Done: first "Done" after a "Billing" has been seen, scanning
  the status changes in timestamp order.

All status and author comparisons are case-insensitive and trimmed.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from .config import StatusVocabulary
from .normalize import parse_task_ms, status_equals, status_in

DEPOSIT_PAID = "depositPaid"
STATUS_CHANGED_TO = "statusChangedTo"
CLOSED_WON_MOVE = "closedWonMove"


@dataclass(frozen=True)
class TaskComment:
    """The parts of a ClickUp comment the extractor looks at."""

    text: str
    author_id: Optional[str]
    author_name: str
    timestamp_ms: Optional[int]

    @classmethod
    def from_clickup(cls, raw: Mapping[str, Any]) -> "TaskComment":
        """
        Build a comment from a ClickUp payload.

        ``comment_text`` is used when present, otherwise the ``text`` of
        the rich-text ``comment`` segments is concatenated.
        """
        text = raw.get("comment_text")
        if not isinstance(text, str):
            segments = raw.get("comment") or []
            text = "".join(
                str(s.get("text", "")) for s in segments if isinstance(s, Mapping)
            )

        user = raw.get("user") or {}
        author_id = user.get("id") if isinstance(user, Mapping) else None
        author_name = user.get("username") if isinstance(user, Mapping) else None

        return cls(
            text=text,
            author_id=None if author_id is None else str(author_id),
            author_name=str(author_name or ""),
            timestamp_ms=parse_task_ms(raw.get("date")),
        )


@dataclass(frozen=True)
class CommentEvent:
    """A typed business event found in a comment."""

    kind: str
    timestamp_ms: int
    status: Optional[str] = None


@dataclass(frozen=True)
class CommentRule:
    """
    A named comment-matching rule.

    Attributes
    ----------
    name:
        Identifier used in logs and tests.
    kind:
        Event kind produced when the rule matches.
    all_of:
        Regular expressions that must all be found in the comment text.
    automation_only:
        If True, only comments posted by the automation actor match.
    status_group:
        For status rules, name of the regex group (in the first pattern)
        holding the target status.
    fixed_status:
        For status rules without a capture group, the implied target.
    """

    name: str
    kind: str
    all_of: tuple[str, ...]
    automation_only: bool = False
    status_group: Optional[str] = None
    fixed_status: Optional[str] = None
    _compiled: tuple[re.Pattern, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        compiled = tuple(re.compile(p, re.IGNORECASE) for p in self.all_of)
        object.__setattr__(self, "_compiled", compiled)

    def match(self, text: str) -> Optional[dict[str, Optional[str]]]:
        """Return the captured values if every pattern matches, else None."""
        captured: dict[str, Optional[str]] = {}
        for idx, rx in enumerate(self._compiled):
            m = rx.search(text)
            if m is None:
                return None
            if idx == 0 and self.status_group:
                captured["status"] = m.group(self.status_group)
        if self.fixed_status is not None:
            captured["status"] = self.fixed_status
        return captured


DEFAULT_RULES: tuple[CommentRule, ...] = (
    CommentRule(
        name="deposit_paid_he",
        kind=DEPOSIT_PAID,
        all_of=(r"מקדמ", r"שול[מםה]|שיל[מם]|התקבל"),
    ),
    CommentRule(
        name="deposit_paid_en",
        kind=DEPOSIT_PAID,
        all_of=(r"\b(?:deposit|advance)", r"\b(?:paid|received)\b"),
    ),
    CommentRule(
        name="status_changed_to",
        kind=STATUS_CHANGED_TO,
        # The status ends at the first bracket or sentence punctuation.
        all_of=(r"status\s+has\s+changed\s+to\s*:?\s*(?P<status>[^\n\r()\[\]{}.,;!?|]+)",),
        automation_only=True,
        status_group="status",
    ),
    # Some automations only post "status changed ... DONE".
    CommentRule(
        name="status_changed_to_done",
        kind=STATUS_CHANGED_TO,
        all_of=(r"status", r"changed", r"done"),
        automation_only=True,
        fixed_status="done",
    ),
    CommentRule(
        name="closed_won_move",
        kind=CLOSED_WON_MOVE,
        all_of=(r"moved\s+to\s+event\s+calendar", r"closed\s+won"),
        automation_only=True,
    ),
)


def _as_comment(raw: Any) -> TaskComment:
    if isinstance(raw, TaskComment):
        return raw
    return TaskComment.from_clickup(raw)


def is_automation_comment(
    comment: TaskComment, vocabulary: Optional[StatusVocabulary] = None
) -> bool:
    """True if the comment was posted by the automation actor."""
    vocab = vocabulary or StatusVocabulary()
    if comment.author_id is not None and comment.author_id.strip() == str(
        vocab.automation_user_id
    ):
        return True
    return status_equals(comment.author_name, vocab.automation_username)


def _clean_status(raw: Optional[str]) -> Optional[str]:
    if raw is None:
        return None
    cleaned = raw.strip().strip("\"'*").strip()
    return cleaned or None


def extract_comment_events(
    comments: Iterable[Any],
    vocabulary: Optional[StatusVocabulary] = None,
    rules: Iterable[CommentRule] = DEFAULT_RULES,
) -> list[CommentEvent]:
    """
    Run the rules over every comment and return the events found.

    A comment yields at most one event per kind; within a kind, the first
    matching rule wins. Comments without a timestamp are ignored. Events
    are returned in ascending timestamp order (ties keep input order).
    """
    rule_list = list(rules)
    events: list[CommentEvent] = []

    for raw in comments:
        comment = _as_comment(raw)
        if comment.timestamp_ms is None:
            continue
        automation = is_automation_comment(comment, vocabulary)

        seen_kinds: set[str] = set()
        for rule in rule_list:
            if rule.kind in seen_kinds:
                continue
            if rule.automation_only and not automation:
                continue
            captured = rule.match(comment.text)
            if captured is None:
                continue

            status = None
            if rule.kind == STATUS_CHANGED_TO:
                status = _clean_status(captured.get("status"))
                if status is None:
                    continue

            events.append(CommentEvent(rule.kind, comment.timestamp_ms, status))
            seen_kinds.add(rule.kind)

    events.sort(key=lambda e: e.timestamp_ms)
    return events


def extract_deposit_paid_ms(
    comments: Iterable[Any], vocabulary: Optional[StatusVocabulary] = None
) -> Optional[int]:
    """Timestamp of the earliest deposit-paid comment, or None."""
    stamps = [
        e.timestamp_ms
        for e in extract_comment_events(comments, vocabulary)
        if e.kind == DEPOSIT_PAID
    ]
    return min(stamps) if stamps else None


def extract_status_changes(
    comments: Iterable[Any], vocabulary: Optional[StatusVocabulary] = None
) -> list[CommentEvent]:
    """All automation status changes, sorted by timestamp."""
    return [
        e
        for e in extract_comment_events(comments, vocabulary)
        if e.kind == STATUS_CHANGED_TO
    ]


def _done_labels(vocab: StatusVocabulary) -> tuple[str, ...]:
    return (vocab.done, *vocab.done_aliases)


def extract_first_status_change_ms(
    comments: Iterable[Any],
    targets: Iterable[str],
    vocabulary: Optional[StatusVocabulary] = None,
) -> Optional[int]:
    """Earliest automation change to any of ``targets``, or None."""
    target_list = list(targets)
    for event in extract_status_changes(comments, vocabulary):
        if status_in(event.status, target_list):
            return event.timestamp_ms
    return None


def extract_first_done_status_change_ms(
    comments: Iterable[Any], vocabulary: Optional[StatusVocabulary] = None
) -> Optional[int]:
    """Earliest time the task was moved to Done by the automation."""
    vocab = vocabulary or StatusVocabulary()
    return extract_first_status_change_ms(comments, _done_labels(vocab), vocab)


def extract_first_billing_to_done_ms(
    comments: Iterable[Any], vocabulary: Optional[StatusVocabulary] = None
) -> Optional[int]:
    """
    Timestamp of the first Done reached after Billing, or None.

    Status changes are scanned in timestamp order. Once Billing has been
    seen, other targets are ignored until the first Done.
    """
    vocab = vocabulary or StatusVocabulary()
    done_labels = _done_labels(vocab)

    billing_seen = False
    for event in extract_status_changes(comments, vocab):
        if status_equals(event.status, vocab.billing):
            billing_seen = True
        elif billing_seen and status_in(event.status, done_labels):
            return event.timestamp_ms
    return None


def extract_closed_won_move_ms(
    comments: Iterable[Any], vocabulary: Optional[StatusVocabulary] = None
) -> Optional[int]:
    """Timestamp of the latest "moved to Event Calendar / Closed Won" comment."""
    stamps = [
        e.timestamp_ms
        for e in extract_comment_events(comments, vocabulary)
        if e.kind == CLOSED_WON_MOVE
    ]
    return max(stamps) if stamps else None

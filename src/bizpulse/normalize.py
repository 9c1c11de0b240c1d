# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Normalization of raw ClickUp tasks for BizPulse.

ClickUp returns tasks as loosely-typed JSON objects:

- timestamps (``date_created``, ``date_updated``, ``date_closed``) are epoch
  milliseconds serialized as strings,
- custom fields are a list of ``{id, name, type, value, type_config}``
  objects whose ``value`` may be a number, a numeric string, a currency
  string with symbols and thousand separators, a ``{"value": ...}`` object
  or, for drop-down fields, an option index / option id.

This module turns those tasks into immutable, typed records
(:class:`NormalizedLead`, :class:`NormalizedEvent`,
:class:`NormalizedExpense`) once per run. Every aggregator works on these
records; only the comment extractor ever looks at raw ClickUp payloads
again.

The custom field ids and the bilingual name patterns used to locate the
"Deposit" and "Balance Due" fields come from :class:`bizpulse.config.FieldMap`.
"""

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Optional

from .config import FieldMap

_NOT_NUMERIC_RE = re.compile(r"[^0-9+\-.,]")
_NOT_DIGIT_RE = re.compile(r"[^0-9]")


# ---------------------------------------------------------------------------
# Scalar parsing helpers
# ---------------------------------------------------------------------------


def parse_task_ms(raw: Any) -> Optional[int]:
    """Parse a ClickUp epoch-ms timestamp (usually a string) into an int."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return int(value)


def parse_number_loose(value: Any) -> Optional[float]:
    """
    Parse a number from the many shapes ClickUp uses for numeric fields.

    Accepted inputs:
    - int / float (non-finite values give None),
    - strings such as ``"₪ 12,500.00"`` (every character except digits,
      sign, dot and comma is dropped, then commas are removed),
    - mappings carrying a ``"value"`` key, parsed recursively.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    if isinstance(value, str):
        cleaned = _NOT_NUMERIC_RE.sub("", value).replace(",", "")
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return number if math.isfinite(number) else None

    if isinstance(value, Mapping):
        if "value" in value:
            return parse_number_loose(value["value"])
        return None

    return None


def normalize_phone(raw: Any) -> Optional[str]:
    """
    Normalize an Israeli phone number to its local ``0XXXXXXXXX`` form.

    - non-digits are stripped; nothing left -> None,
    - ``972XXXXXXXXX`` -> ``0XXXXXXXXX``,
    - numbers already starting with ``0`` are kept,
    - a 9-digit number gets a leading ``0``,
    - anything else is returned as its digits.

    Examples
    --------
    >>> normalize_phone("+972-50-123-4567")
    '0501234567'
    >>> normalize_phone("501234567")
    '0501234567'
    """
    if raw is None:
        return None

    text = str(raw).strip()
    if not text:
        return None

    digits = _NOT_DIGIT_RE.sub("", text)
    if not digits:
        return None

    if digits.startswith("972"):
        local = digits[3:]
        return local if local.startswith("0") else f"0{local}"

    if digits.startswith("0"):
        return digits

    if len(digits) == 9:
        return f"0{digits}"

    return digits


# ---------------------------------------------------------------------------
# Custom field access
# ---------------------------------------------------------------------------


def _custom_fields(task: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    fields = task.get("custom_fields") or []
    return [f for f in fields if isinstance(f, Mapping)]


def find_custom_field(
    task: Mapping[str, Any],
    field_id: Optional[str] = None,
    name_patterns: Iterable[str] = (),
) -> Optional[Mapping[str, Any]]:
    """
    Return the first custom field matching ``field_id`` or any name pattern.

    Name patterns are regular expressions matched case-insensitively
    anywhere in the field name.
    """
    compiled = [re.compile(p, re.IGNORECASE) for p in name_patterns]
    for field in _custom_fields(task):
        if field_id is not None and field.get("id") == field_id:
            return field
        name = str(field.get("name") or "")
        if any(rx.search(name) for rx in compiled):
            return field
    return None


def _drop_down_option_by_index(
    options: list[Mapping[str, Any]], idx: int
) -> Optional[Mapping[str, Any]]:
    if 0 <= idx < len(options):
        return options[idx]
    for opt in options:
        if parse_task_ms(opt.get("orderindex")) == idx:
            return opt
    return None


def _resolve_drop_down(field: Mapping[str, Any], value: Any) -> str:
    """
    Resolve a drop-down value (index, option id or option name) to a name.

    Falls back to the raw value as a string when the options cannot resolve
    it (e.g. when ``type_config`` is missing from the payload).
    """
    type_config = field.get("type_config") or {}
    options = [o for o in (type_config.get("options") or []) if isinstance(o, Mapping)]

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return str(value)
        opt = _drop_down_option_by_index(options, int(value))
        return str(opt["name"]) if opt and opt.get("name") else str(value)

    if isinstance(value, str):
        for opt in options:
            if opt.get("id") == value and opt.get("name"):
                return str(opt["name"])

        lowered = value.lower()
        for opt in options:
            if str(opt.get("name") or "").lower() == lowered and opt.get("name"):
                return str(opt["name"])

        idx = parse_task_ms(value)
        if idx is not None:
            opt = _drop_down_option_by_index(options, idx)
            return str(opt["name"]) if opt and opt.get("name") else value

        return value

    return str(value)


def custom_field_string(task: Mapping[str, Any], field_id: str) -> Optional[str]:
    """Read a custom field as text, resolving drop-down options to names."""
    field = find_custom_field(task, field_id=field_id)
    if field is None:
        return None
    value = field.get("value")
    if value is None:
        return None
    if field.get("type") == "drop_down":
        return _resolve_drop_down(field, value)
    return value if isinstance(value, str) else str(value)


def custom_field_number(
    task: Mapping[str, Any],
    field_id: Optional[str] = None,
    name_patterns: Iterable[str] = (),
) -> Optional[float]:
    """Read a numeric custom field located by id or by name pattern."""
    field = find_custom_field(task, field_id=field_id, name_patterns=name_patterns)
    if field is None:
        return None
    return parse_number_loose(field.get("value"))


def custom_field_ms(task: Mapping[str, Any], field_id: str) -> Optional[int]:
    """Read a date custom field as epoch milliseconds."""
    number = custom_field_number(task, field_id=field_id)
    return None if number is None else int(number)


def task_status(task: Mapping[str, Any]) -> Optional[str]:
    """Return the current status label of a task (``status.status``)."""
    status = task.get("status")
    if isinstance(status, Mapping):
        label = status.get("status")
        return str(label) if label is not None else None
    if isinstance(status, str):
        return status
    return None


def task_name(task: Mapping[str, Any]) -> str:
    name = task.get("name")
    return str(name) if name else str(task.get("id", ""))


def status_equals(status: Optional[str], expected: str) -> bool:
    """Case-insensitive, whitespace-trimmed status comparison."""
    if status is None:
        return False
    return status.strip().lower() == expected.strip().lower()


def status_in(status: Optional[str], candidates: Iterable[str]) -> bool:
    return any(status_equals(status, c) for c in candidates)


# ---------------------------------------------------------------------------
# Normalized records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NormalizedLead:
    """An "Incoming Leads" task."""

    id: str
    name: str
    status: Optional[str]
    created_ms: Optional[int]
    updated_ms: Optional[int]
    closed_ms: Optional[int]
    phone_normalized: Optional[str]
    source: Optional[str]
    loss_reason: Optional[str]
    budget_gross_ils: Optional[float]
    paid_amount_gross_ils: Optional[float]
    requested_date_ms: Optional[int]

    @property
    def close_ms(self) -> Optional[int]:
        """Explicit close timestamp, else the update timestamp."""
        return self.closed_ms if self.closed_ms is not None else self.updated_ms


@dataclass(frozen=True)
class NormalizedEvent:
    """An "Event Calendar" task (a booked deal)."""

    id: str
    name: str
    status: Optional[str]
    created_ms: Optional[int]
    updated_ms: Optional[int]
    closed_ms: Optional[int]
    requested_date_ms: Optional[int]
    phone_normalized: Optional[str]
    budget_gross_ils: Optional[float]
    deposit_gross_ils: Optional[float]
    balance_due_gross_ils: Optional[float]


@dataclass(frozen=True)
class NormalizedExpense:
    """An "Expenses" task."""

    id: str
    name: str
    status: Optional[str]
    expense_date_ms: Optional[int]
    amount_gross_ils: Optional[float]
    category: Optional[str]
    supplier: Optional[str]


def normalize_lead(task: Mapping[str, Any], fields: FieldMap) -> NormalizedLead:
    return NormalizedLead(
        id=str(task.get("id", "")),
        name=task_name(task),
        status=task_status(task),
        created_ms=parse_task_ms(task.get("date_created")),
        updated_ms=parse_task_ms(task.get("date_updated")),
        closed_ms=parse_task_ms(task.get("date_closed")),
        phone_normalized=normalize_phone(custom_field_string(task, fields.phone)),
        source=custom_field_string(task, fields.source),
        loss_reason=custom_field_string(task, fields.loss_reason),
        budget_gross_ils=custom_field_number(task, field_id=fields.budget),
        paid_amount_gross_ils=custom_field_number(task, field_id=fields.paid_amount),
        requested_date_ms=custom_field_ms(task, fields.requested_date),
    )


def normalize_event(task: Mapping[str, Any], fields: FieldMap) -> NormalizedEvent:
    """
    Normalize an Event Calendar task.

    The deposit is read from the paid-amount field id or, failing that, the
    first field whose name matches ``fields.deposit_name_patterns``. The
    balance due is located by name only.
    """
    return NormalizedEvent(
        id=str(task.get("id", "")),
        name=task_name(task),
        status=task_status(task),
        created_ms=parse_task_ms(task.get("date_created")),
        updated_ms=parse_task_ms(task.get("date_updated")),
        closed_ms=parse_task_ms(task.get("date_closed")),
        requested_date_ms=custom_field_ms(task, fields.requested_date),
        phone_normalized=normalize_phone(custom_field_string(task, fields.phone)),
        budget_gross_ils=custom_field_number(task, field_id=fields.budget),
        deposit_gross_ils=custom_field_number(
            task,
            field_id=fields.paid_amount,
            name_patterns=fields.deposit_name_patterns,
        ),
        balance_due_gross_ils=custom_field_number(
            task, name_patterns=fields.balance_name_patterns
        ),
    )


def normalize_expense(task: Mapping[str, Any], fields: FieldMap) -> NormalizedExpense:
    return NormalizedExpense(
        id=str(task.get("id", "")),
        name=task_name(task),
        status=task_status(task),
        expense_date_ms=custom_field_ms(task, fields.expense_date),
        amount_gross_ils=custom_field_number(task, field_id=fields.expense_amount),
        category=custom_field_string(task, fields.expense_category),
        supplier=custom_field_string(task, fields.expense_supplier),
    )

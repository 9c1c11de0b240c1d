# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for BizPulse.

This module is responsible for:
- describing the ClickUp workspace vocabulary (list ids, custom field ids,
  status labels, lead sources, automation actor) as typed dataclasses,
- holding the comment-lookup budgets of the different computation passes,
- loading overrides for all of the above from a TOML file.

The vocabulary is passed explicitly into every computation instead of
being read from module-level constants, so tests (and other workspaces)
can swap it freely. ``default_app_config()`` returns the vocabulary of
the production workspace.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import tomllib  # Python 3.11+

from .store import StoreConfig


@dataclass(frozen=True)
class ListIds:
    """Ids of the three ClickUp lists the engine reads."""

    incoming_leads: str = "901214362127"
    event_calendar: str = "901214362128"
    expenses: str = "901214544874"


@dataclass(frozen=True)
class FieldMap:
    """
    ClickUp custom field ids, plus name patterns for fields located by name.

    The "Deposit" and "Balance Due" fields of the Event Calendar are matched
    by (case-insensitive) regular expressions on the field name, because
    their ids differ between list templates. ``paid_amount`` is also
    accepted as the deposit field when present.
    """

    phone: str = "b9781217-a9fc-44e1-b152-c11f193c8839"
    email: str = "28a795ba-0ee5-4abf-86f6-142a965cd1f7"
    event_type: str = "4be9eb02-cdd2-41cd-9d8e-252cf488785d"
    budget: str = "09a72b8e-b74a-4034-8aff-f1b683c51650"
    requested_date: str = "1660701a-1263-41cf-bb7a-79e3c3638aa3"
    source: str = "c49330f0-35a0-4177-92ff-854655a7fc55"
    loss_reason: str = "c4c93671-a537-471b-80ae-0790d1fc2e84"
    participants: str = "b31123ca-8aef-48b6-8f52-2bec892c70e8"
    paid_amount: str = "05c2f19f-8a46-41ab-8720-0ce2481c29cc"

    expense_amount: str = "0d357de4-bb80-4a61-a83d-3b373e102904"
    expense_date: str = "278accbb-c4a3-430f-ae3b-6076f96222b3"
    expense_category: str = "f2d2746b-ed1a-4ef9-9321-80a9c8544e0a"
    expense_supplier: str = "ad3de6e9-c4a6-433a-ac9d-84ef0ad3e80d"

    deposit_name_patterns: tuple[str, ...] = ("deposit", "advance", "מקדמה")
    balance_name_patterns: tuple[str, ...] = ("balance", "due", "יתרה", "השלמה")


@dataclass(frozen=True)
class StatusVocabulary:
    """Status labels, lead sources and automation actor of the workspace."""

    new_lead: str = "New Lead"
    closed_won: str = "Closed Won"
    closed_lost: str = "Closed Lost"
    billing: str = "Billing"
    done: str = "Done"
    cancelled: str = "Cancelled"

    # Event Calendar statuses counted as "active customers".
    open_statuses: tuple[str, ...] = ("booked", "staffing", "logistics", "ready")
    # Current-status labels that mean a task is completed.
    done_aliases: tuple[str, ...] = ("done", "complete", "completed")

    landing_page_source: str = "Landing Page"
    word_of_mouth_source: str = "Word of Mouth"
    not_relevant_reason: str = "Not Relevant"

    automation_username: str = "ClickBot"
    automation_user_id: int = -1


@dataclass(frozen=True)
class LookupBudgets:
    """Maximum number of per-task comment lookups for each pass."""

    monthly_revenue: int = 200
    expected_cashflow: int = 250
    closed_won_moves: int = 100


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for BizPulse.

    This aggregates:
    - the ClickUp list ids and custom field map,
    - the status / source / automation vocabulary,
    - the comment lookup budgets,
    - the snapshot store configuration.
    """

    lists: ListIds = field(default_factory=ListIds)
    fields: FieldMap = field(default_factory=FieldMap)
    vocabulary: StatusVocabulary = field(default_factory=StatusVocabulary)
    budgets: LookupBudgets = field(default_factory=LookupBudgets)
    store: StoreConfig = field(
        default_factory=lambda: StoreConfig(path=Path("data/bizpulse.sqlite"))
    )


def default_app_config() -> AppConfig:
    """Return the built-in configuration of the production workspace."""
    return AppConfig()


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:  # noqa: BLE001
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(raw: Mapping[str, Any], *names: str) -> Mapping[str, Any]:
    """
    Return a nested table, or an empty mapping when it is absent.

    Raises:
        ValueError: if the key exists but is not a table.
    """
    current: Any = raw
    for name in names:
        current = current.get(name) if isinstance(current, Mapping) else None
        if current is None:
            return {}
        if not isinstance(current, Mapping):
            dotted = ".".join(names)
            raise ValueError(f"Config section [{dotted}] must be a table.")
    return current


def _overlay(base: Any, section: Mapping[str, Any]) -> Any:
    """
    Return ``base`` with the fields present in ``section`` replaced.

    Unknown keys are ignored. Tuple-typed fields accept TOML arrays;
    integer fields are converted with ``int()``.
    """
    changes: dict[str, Any] = {}
    for key, current in vars(base).items():
        if key not in section:
            continue
        value = section[key]
        if isinstance(current, tuple):
            if not isinstance(value, list):
                raise ValueError(f"Config key '{key}' must be an array of strings.")
            changes[key] = tuple(str(v) for v in value)
        elif isinstance(current, int):
            try:
                changes[key] = int(value)
            except (TypeError, ValueError) as exc:
                raise ValueError(
                    f"Invalid value for '{key}' in the configuration. "
                    "Expected an integer."
                ) from exc
        else:
            changes[key] = str(value)
    return replace(base, **changes) if changes else base


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the BizPulse configuration from a TOML file.

    Every section is optional; missing keys keep the defaults of
    :func:`default_app_config`.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [clickup.lists]
        incoming_leads, event_calendar, expenses list ids.

    [clickup.fields]
        Custom field ids, plus ``deposit_name_patterns`` and
        ``balance_name_patterns`` arrays.

    [vocabulary]
        Status labels, ``open_statuses``, ``done_aliases``, lead sources,
        ``automation_username`` and ``automation_user_id``.

    [budgets]
        ``monthly_revenue``, ``expected_cashflow``, ``closed_won_moves``.

    [store]
        ``path`` of the SQLite snapshot store, resolved relative to the
        directory of the TOML file.

    Parameters
    ----------
    config_path :
        Path to the TOML file. Defaults to ``bizpulse_config.toml`` in the
        current directory.

    Returns
    -------
    AppConfig
        Parsed and validated configuration.
    """
    if config_path is None:
        config_file = Path("bizpulse_config.toml").resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent
    defaults = default_app_config()

    lists = _overlay(defaults.lists, _section(raw, "clickup", "lists"))
    fields = _overlay(defaults.fields, _section(raw, "clickup", "fields"))
    vocabulary = _overlay(defaults.vocabulary, _section(raw, "vocabulary"))
    budgets = _overlay(defaults.budgets, _section(raw, "budgets"))

    for name, value in vars(budgets).items():
        if value < 0:
            raise ValueError(f"Budget '{name}' cannot be negative.")

    store_section = _section(raw, "store")
    store_path_raw = store_section.get("path") or "data/bizpulse.sqlite"
    store = StoreConfig(path=(base_dir / str(store_path_raw)).resolve())

    return AppConfig(
        lists=lists,
        fields=fields,
        vocabulary=vocabulary,
        budgets=budgets,
        store=store,
    )

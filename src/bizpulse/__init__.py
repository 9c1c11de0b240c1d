# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
BizPulse
--------

A Python engine that derives monthly business KPIs (financial, marketing,
sales, operations) for a small events business from the raw tasks and
comments of a ClickUp workspace, and persists them as an append-only,
diffable chain of monthly snapshots.

Main capabilities:
- bilingual (Hebrew/English) extraction of business events from automation
  and manual task comments,
- revenue recognition and expected-cashflow computation with at-most-once
  counting and bounded comment lookups,
- per-category metric aggregators with provenance notes,
- "calculation breakdown" documents explaining each metric,
- a month-over-month snapshot/diff chain with backfill of missing months,
- a SQLite snapshot store and a command-line interface.

BizPulse separates computation (engine), configuration (TOML), storage
(SQLite) and presentation (CLI), so the engine can be driven from scripts,
scheduled jobs or a web backend.

Version: 0.2.0

Usage:
    bizpulse --help
"""

__all__ = ["dashboard", "snapshots", "financial", "comments", "months", "vat"]

__version__ = "0.2.0"

# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Snapshot history as pandas DataFrames.

Snapshot records are nested JSON documents. For analysis, exports and the
CLI, this module flattens them into a long-format DataFrame with one row
per (month, metric, field):

    month | group | metric_key | field | value | diff_pct

where ``field`` is ``grossILS`` / ``netILS`` for money metrics and
``value`` for counts and percentages, and ``diff_pct`` is the matching
month-over-month percentage from ``diffFromPreviousPct``.

:func:`pivot_history` turns the long frame into a wide table with one
column per month, which is what the ``bizpulse history`` command prints.
"""

from collections.abc import Iterable, Mapping
from typing import Any

import pandas as pd

from .metrics import METRIC_GROUPS

HISTORY_COLUMNS = ["month", "group", "metric_key", "field", "value", "diff_pct"]

_FIELD_TO_DIFF = {"grossILS": "grossPct", "netILS": "netPct", "value": "valuePct"}


def history_frame(records: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    """
    Flatten snapshot records into the long history frame.

    Parameters
    ----------
    records:
        Snapshot record documents (``month``, ``metrics``,
        ``diffFromPreviousPct``), as returned by the snapshot store.

    Returns
    -------
    pandas.DataFrame
        Columns: month, group, metric_key, field, value, diff_pct. Sorted
        by month, then in metric-document order.
    """
    rows: list[dict[str, Any]] = []
    for record in records:
        month = record["month"]
        metrics = record.get("metrics") or {}
        diff = record.get("diffFromPreviousPct") or {}

        for group in METRIC_GROUPS:
            group_metrics = metrics.get(group) or {}
            group_diff = diff.get(group) or {}
            for metric_key, leaf in group_metrics.items():
                if not isinstance(leaf, Mapping):
                    continue
                leaf_diff = group_diff.get(metric_key) or {}
                for field, diff_field in _FIELD_TO_DIFF.items():
                    if field not in leaf:
                        continue
                    rows.append(
                        {
                            "month": month,
                            "group": group,
                            "metric_key": metric_key,
                            "field": field,
                            "value": leaf.get(field),
                            "diff_pct": leaf_diff.get(diff_field),
                        }
                    )

    df = pd.DataFrame(rows, columns=HISTORY_COLUMNS)
    if df.empty:
        return df

    df["value"] = pd.to_numeric(df["value"], errors="coerce")
    df["diff_pct"] = pd.to_numeric(df["diff_pct"], errors="coerce")
    return df.sort_values("month", kind="stable").reset_index(drop=True)


def pivot_history(df: pd.DataFrame, field: str = "value") -> pd.DataFrame:
    """
    Wide view of a history frame: one row per metric, one column per month.

    Parameters
    ----------
    df:
        Long history frame from :func:`history_frame`.
    field:
        ``"value"`` to pivot the metric values, ``"diff_pct"`` to pivot the
        month-over-month changes.
    """
    if field not in ("value", "diff_pct"):
        raise ValueError(f"Unsupported pivot field: {field!r}")

    if df.empty:
        return pd.DataFrame(columns=["group", "metric_key", "field"])

    keys = ["group", "metric_key", "field"]
    order = df[keys].drop_duplicates()
    deduped = df.drop_duplicates(subset=[*keys, "month"], keep="last")
    wide = deduped.set_index([*keys, "month"])[field].unstack("month")
    wide = wide.reindex(pd.MultiIndex.from_frame(order))
    wide.columns.name = None
    return wide.reset_index()


def breakdown_frame(doc: Mapping[str, Any]) -> pd.DataFrame:
    """
    Tabular view of one breakdown document.

    ``line_items`` documents get an ``amount_ils`` column converted back
    from agorot. ``none`` documents give an empty frame.
    """
    items = list(doc.get("items") or [])
    df = pd.DataFrame(items)
    if df.empty:
        return df

    if "amountAgorot" in df.columns:
        df["amount_ils"] = df["amountAgorot"].astype("int64") / 100
    return df

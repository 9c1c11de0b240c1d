import pandas as pd
import pytest

from bizpulse.history import HISTORY_COLUMNS, breakdown_frame, history_frame, pivot_history


def _record(month, revenue, leads, revenue_pct=None, leads_pct=None):
    return {
        "month": month,
        "metrics": {
            "financial": {
                "monthlyRevenue": {"grossILS": revenue, "netILS": revenue / 1.18, "meta": {"source": "clickup"}},
            },
            "marketing": {
                "totalLeads": {"value": leads, "meta": {"source": "clickup"}},
            },
        },
        "diffFromPreviousPct": {
            "financial": {"monthlyRevenue": {"grossPct": revenue_pct, "netPct": revenue_pct}},
            "marketing": {"totalLeads": {"valuePct": leads_pct}},
        },
    }


def test_history_frame_is_long_format_sorted_by_month():
    df = history_frame([_record("2025-12", 2000.0, 6, 100.0, 50.0), _record("2025-11", 1000.0, 4)])

    assert list(df.columns) == HISTORY_COLUMNS
    assert len(df) == 6
    assert df["month"].tolist() == ["2025-11"] * 3 + ["2025-12"] * 3

    dec_gross = df[(df["month"] == "2025-12") & (df["field"] == "grossILS")].iloc[0]
    assert dec_gross["group"] == "financial"
    assert dec_gross["metric_key"] == "monthlyRevenue"
    assert dec_gross["value"] == 2000.0
    assert dec_gross["diff_pct"] == 100.0

    nov_leads = df[(df["month"] == "2025-11") & (df["metric_key"] == "totalLeads")].iloc[0]
    assert nov_leads["value"] == 4
    assert pd.isna(nov_leads["diff_pct"])


def test_history_frame_empty():
    df = history_frame([])

    assert df.empty
    assert list(df.columns) == HISTORY_COLUMNS


def test_pivot_history_one_column_per_month():
    df = history_frame([_record("2025-11", 1000.0, 4), _record("2025-12", 2000.0, 6, 100.0, 50.0)])

    wide = pivot_history(df)

    assert list(wide.columns) == ["group", "metric_key", "field", "2025-11", "2025-12"]
    assert wide["metric_key"].tolist() == ["monthlyRevenue", "monthlyRevenue", "totalLeads"]
    assert wide.iloc[2]["2025-12"] == 6

    diffs = pivot_history(df, field="diff_pct")
    assert diffs.iloc[0]["2025-12"] == 100.0
    assert pd.isna(diffs.iloc[0]["2025-11"])


def test_pivot_history_rejects_unknown_field():
    with pytest.raises(ValueError, match="Unsupported pivot field"):
        pivot_history(history_frame([]), field="notes")


def test_breakdown_frame_converts_agorot():
    doc = {
        "kind": "line_items",
        "items": [
            {"id": "E1", "name": "Wedding", "amountAgorot": 700000},
            {"id": "E2", "name": "Bar Mitzvah", "amountAgorot": 200050},
        ],
    }

    df = breakdown_frame(doc)

    assert df["amount_ils"].tolist() == [7000.0, 2000.5]
    assert breakdown_frame({"kind": "none"}).empty

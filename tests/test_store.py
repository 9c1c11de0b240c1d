import sqlite3

import pytest

from bizpulse.store import (
    StoreConfig,
    create_snapshot,
    get_last_snapshot_month,
    init_store,
    list_snapshots,
    put_dashboard_latest,
    put_metric_breakdowns,
    put_snapshot,
    read_dashboard_latest,
    read_metric_breakdown,
    read_snapshot,
    read_snapshot_metrics,
)


def _record(month, revenue=1000.0, computed_at="2025-12-16T12:00:00.000Z"):
    return {
        "version": "v1",
        "month": month,
        "computedAt": computed_at,
        "metrics": {
            "month": month,
            "financial": {"monthlyRevenue": {"grossILS": revenue, "netILS": revenue / 1.18}},
            "notes": ["מקדמה שולמה"],
        },
        "diffFromPreviousPct": {"financial": {"monthlyRevenue": {"grossPct": None, "netPct": None}}},
    }


@pytest.fixture
def cfg(tmp_path):
    return StoreConfig(path=tmp_path / "nested" / "bizpulse.sqlite")


def test_init_store_creates_file_and_tables(cfg):
    init_store(cfg)
    init_store(cfg)

    assert cfg.path.exists()
    conn = sqlite3.connect(cfg.path)
    try:
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table';")
        }
    finally:
        conn.close()
    assert {"snapshots", "metric_breakdowns", "dashboard_latest"} <= tables


def test_unsupported_engine_is_rejected(tmp_path):
    with pytest.raises(ValueError, match="Unsupported store engine"):
        init_store(StoreConfig(path=tmp_path / "x.db", engine="postgres"))


def test_empty_store(cfg):
    assert get_last_snapshot_month(cfg) is None
    assert read_snapshot(cfg, "2025-12") is None
    assert list_snapshots(cfg) == []
    assert read_dashboard_latest(cfg) is None


def test_create_snapshot_is_create_if_absent(cfg):
    assert create_snapshot(cfg, _record("2025-11", 1000.0)) is True
    assert create_snapshot(cfg, _record("2025-11", 5000.0)) is False

    stored = read_snapshot(cfg, "2025-11")
    assert stored["metrics"]["financial"]["monthlyRevenue"]["grossILS"] == 1000.0
    assert stored["metrics"]["notes"] == ["מקדמה שולמה"]
    assert stored["diffFromPreviousPct"]["financial"]["monthlyRevenue"]["grossPct"] is None
    assert stored["computedAt"] == "2025-12-16T12:00:00.000Z"
    assert stored["version"] == "v1"


def test_put_snapshot_overwrites(cfg):
    put_snapshot(cfg, _record("2025-12", 1000.0))
    put_snapshot(cfg, _record("2025-12", 2000.0))

    assert read_snapshot_metrics(cfg, "2025-12")["financial"]["monthlyRevenue"]["grossILS"] == 2000.0
    assert len(list_snapshots(cfg)) == 1


def test_last_month_and_listing_are_ordered(cfg):
    for month in ("2025-12", "2025-10", "2025-11"):
        create_snapshot(cfg, _record(month))

    assert get_last_snapshot_month(cfg) == "2025-12"
    assert [r["month"] for r in list_snapshots(cfg)] == ["2025-10", "2025-11", "2025-12"]


def test_snapshot_missing_field_is_rejected(cfg):
    record = _record("2025-12")
    del record["diffFromPreviousPct"]

    with pytest.raises(ValueError, match="diffFromPreviousPct"):
        create_snapshot(cfg, record)


def test_metric_breakdowns_round_trip(cfg):
    docs = {
        "monthlyRevenue": {
            "schemaVersion": 1,
            "metricKey": "monthlyRevenue",
            "kind": "line_items",
            "items": [{"id": "E1", "name": "Wedding", "amountAgorot": 700000}],
        },
        "closeRatePct": {"schemaVersion": 1, "metricKey": "closeRatePct", "kind": "none"},
    }

    assert put_metric_breakdowns(cfg, "2025-12", docs) == 2
    assert read_metric_breakdown(cfg, "2025-12", "monthlyRevenue") == docs["monthlyRevenue"]
    assert read_metric_breakdown(cfg, "2025-12", "closeRatePct")["kind"] == "none"
    assert read_metric_breakdown(cfg, "2025-11", "monthlyRevenue") is None

    docs["monthlyRevenue"]["items"] = []
    put_metric_breakdowns(cfg, "2025-12", docs)
    assert read_metric_breakdown(cfg, "2025-12", "monthlyRevenue")["items"] == []


def test_dashboard_latest_is_overwritten(cfg):
    put_dashboard_latest(cfg, {"version": "v1", "month": "2025-11", "computedAt": "a", "metrics": {"x": 1}})
    put_dashboard_latest(cfg, {"version": "v1", "month": "2025-12", "computedAt": "b", "metrics": {"x": 2}})

    assert read_dashboard_latest(cfg) == {
        "version": "v1",
        "month": "2025-12",
        "computedAt": "b",
        "metrics": {"x": 2},
    }


def test_dashboard_latest_requires_metrics(cfg):
    with pytest.raises(ValueError, match="metrics"):
        put_dashboard_latest(cfg, {"month": "2025-12", "computedAt": "b"})

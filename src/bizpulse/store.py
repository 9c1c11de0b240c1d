# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Snapshot store for BizPulse.

This module persists the documents produced by the engine in a local
SQLite database. The layout mirrors the document paths consumed by the
dashboard UI:

    snapshots/{month}                              -> table ``snapshots``
    snapshots/{month}/metricBreakdowns/{metricKey} -> table ``metric_breakdowns``
    dashboard/latest                               -> table ``dashboard_latest``

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) snapshots
   One row per month, keyed by ``YYYY-MM``.

   - month          TEXT PRIMARY KEY
   - version        TEXT NOT NULL            -- "v1"
   - computed_at    TEXT NOT NULL            -- ISO datetime, UTC
   - metrics_json   TEXT NOT NULL            -- DashboardMetrics document
   - diff_json      TEXT NOT NULL            -- diffFromPreviousPct document
   - written_at     TEXT NOT NULL            -- when the row was (re)written

2) metric_breakdowns
   One row per (month, metric key).

   - month          TEXT NOT NULL
   - metric_key     TEXT NOT NULL
   - kind           TEXT NOT NULL            -- "none" | "names" | "line_items"
   - doc_json       TEXT NOT NULL
   PRIMARY KEY (month, metric_key)

3) dashboard_latest
   A single row (id = 'latest') overwritten on every refresh.

------------------------------------------------------------------------------
Write semantics
------------------------------------------------------------------------------

- ``create_snapshot`` inserts a snapshot only if the month is absent and
  reports whether it wrote anything. Past months are append-only.
- ``put_snapshot`` overwrites a snapshot; it is used for the current month,
  which is recomputed on every refresh.
- Documents are stored as JSON text and returned as plain dictionaries.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreConfig:
    """
    Snapshot store configuration.

    Attributes
    ----------
    path:
        Path to the SQLite database file.
    engine:
        Database engine identifier. Only "sqlite" is supported.
    """

    path: Path
    engine: str = "sqlite"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: StoreConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported store engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: StoreConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    return sqlite3.connect(cfg.path)


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """Create tables if they do not exist yet. Idempotent."""
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS snapshots (
            month         TEXT PRIMARY KEY,   -- 'YYYY-MM'
            version       TEXT NOT NULL,
            computed_at   TEXT NOT NULL,
            metrics_json  TEXT NOT NULL,
            diff_json     TEXT NOT NULL,
            written_at    TEXT NOT NULL
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS metric_breakdowns (
            month       TEXT NOT NULL,
            metric_key  TEXT NOT NULL,
            kind        TEXT NOT NULL,
            doc_json    TEXT NOT NULL,

            PRIMARY KEY (month, metric_key)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS dashboard_latest (
            id            TEXT PRIMARY KEY,
            version       TEXT NOT NULL,
            month         TEXT NOT NULL,
            computed_at   TEXT NOT NULL,
            metrics_json  TEXT NOT NULL
        );
        """
    )

    conn.commit()


def _now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _dumps(doc: Any) -> str:
    return json.dumps(doc, ensure_ascii=False, sort_keys=True)


def _snapshot_row_values(record: Mapping[str, Any]) -> tuple:
    try:
        return (
            str(record["month"]),
            str(record.get("version", "v1")),
            str(record["computedAt"]),
            _dumps(record["metrics"]),
            _dumps(record["diffFromPreviousPct"]),
            _now_utc_iso(),
        )
    except KeyError as exc:
        raise ValueError(f"Snapshot record is missing field {exc}.") from exc


def _row_to_snapshot(row: tuple) -> dict[str, Any]:
    month, version, computed_at, metrics_json, diff_json = row
    return {
        "version": version,
        "month": month,
        "computedAt": computed_at,
        "metrics": json.loads(metrics_json),
        "diffFromPreviousPct": json.loads(diff_json),
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def init_store(cfg: StoreConfig) -> None:
    """
    Initialize the store schema if needed.

    - Creates the SQLite file (and its parent directory) if missing.
    - Creates the tables if they are missing.
    - Idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


def get_last_snapshot_month(cfg: StoreConfig) -> str | None:
    """Return the most recent month with a stored snapshot, or None."""
    init_store(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute("SELECT MAX(month) FROM snapshots;")
        row = cur.fetchone()
    finally:
        conn.close()

    return row[0] if row and row[0] else None


def read_snapshot(cfg: StoreConfig, month: str) -> dict[str, Any] | None:
    """Load the snapshot record of a month, or None if absent."""
    init_store(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT month, version, computed_at, metrics_json, diff_json
              FROM snapshots
             WHERE month = ?;
            """,
            (month,),
        )
        row = cur.fetchone()
    finally:
        conn.close()

    if row is None:
        return None
    return _row_to_snapshot(row)


def read_snapshot_metrics(cfg: StoreConfig, month: str) -> dict[str, Any] | None:
    """Return only the ``metrics`` document of a stored snapshot."""
    record = read_snapshot(cfg, month)
    return None if record is None else record["metrics"]


def list_snapshots(cfg: StoreConfig) -> list[dict[str, Any]]:
    """Return every stored snapshot record, oldest month first."""
    init_store(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT month, version, computed_at, metrics_json, diff_json
              FROM snapshots
             ORDER BY month ASC;
            """
        )
        rows = cur.fetchall()
    finally:
        conn.close()

    return [_row_to_snapshot(row) for row in rows]


def create_snapshot(cfg: StoreConfig, record: Mapping[str, Any]) -> bool:
    """
    Insert a snapshot record unless one already exists for its month.

    Returns
    -------
    bool
        True if the record was written, False if the month already existed.
    """
    init_store(cfg)
    values = _snapshot_row_values(record)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            INSERT OR IGNORE INTO snapshots (
                month, version, computed_at, metrics_json, diff_json, written_at
            ) VALUES (?, ?, ?, ?, ?, ?);
            """,
            values,
        )
        conn.commit()
        written = cur.rowcount == 1
    finally:
        conn.close()

    if written:
        logger.info("Wrote snapshots/%s", values[0])
    else:
        logger.info("Skip snapshots/%s (already exists)", values[0])
    return written


def put_snapshot(cfg: StoreConfig, record: Mapping[str, Any]) -> None:
    """Insert or overwrite the snapshot record of a month."""
    init_store(cfg)
    values = _snapshot_row_values(record)

    conn = _connect(cfg)
    try:
        conn.execute(
            """
            INSERT OR REPLACE INTO snapshots (
                month, version, computed_at, metrics_json, diff_json, written_at
            ) VALUES (?, ?, ?, ?, ?, ?);
            """,
            values,
        )
        conn.commit()
    finally:
        conn.close()

    logger.info("Overwrote snapshots/%s", values[0])


def put_metric_breakdowns(
    cfg: StoreConfig,
    month: str,
    breakdowns: Mapping[str, Mapping[str, Any]],
) -> int:
    """
    Store (overwrite) the breakdown documents of a month.

    Returns
    -------
    int
        Number of breakdown documents written.
    """
    init_store(cfg)

    rows = [
        (month, str(key), str(doc.get("kind", "none")), _dumps(doc))
        for key, doc in breakdowns.items()
    ]

    conn = _connect(cfg)
    try:
        conn.executemany(
            """
            INSERT OR REPLACE INTO metric_breakdowns (month, metric_key, kind, doc_json)
            VALUES (?, ?, ?, ?);
            """,
            rows,
        )
        conn.commit()
    finally:
        conn.close()

    logger.debug("Wrote %d metric breakdowns for %s", len(rows), month)
    return len(rows)


def read_metric_breakdown(
    cfg: StoreConfig, month: str, metric_key: str
) -> dict[str, Any] | None:
    """Load one breakdown document, or None if absent."""
    init_store(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT doc_json
              FROM metric_breakdowns
             WHERE month = ? AND metric_key = ?;
            """,
            (month, metric_key),
        )
        row = cur.fetchone()
    finally:
        conn.close()

    return None if row is None else json.loads(row[0])


def put_dashboard_latest(cfg: StoreConfig, doc: Mapping[str, Any]) -> None:
    """Overwrite the ``dashboard/latest`` document."""
    init_store(cfg)

    try:
        values = (
            "latest",
            str(doc.get("version", "v1")),
            str(doc["month"]),
            str(doc["computedAt"]),
            _dumps(doc["metrics"]),
        )
    except KeyError as exc:
        raise ValueError(f"Dashboard document is missing field {exc}.") from exc

    conn = _connect(cfg)
    try:
        conn.execute(
            """
            INSERT OR REPLACE INTO dashboard_latest (
                id, version, month, computed_at, metrics_json
            ) VALUES (?, ?, ?, ?, ?);
            """,
            values,
        )
        conn.commit()
    finally:
        conn.close()

    logger.info("Wrote dashboard/latest for %s", values[2])


def read_dashboard_latest(cfg: StoreConfig) -> dict[str, Any] | None:
    """Load the ``dashboard/latest`` document, or None if never written."""
    init_store(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.execute(
            """
            SELECT version, month, computed_at, metrics_json
              FROM dashboard_latest
             WHERE id = 'latest';
            """
        )
        row = cur.fetchone()
    finally:
        conn.close()

    if row is None:
        return None
    version, month, computed_at, metrics_json = row
    return {
        "version": version,
        "month": month,
        "computedAt": computed_at,
        "metrics": json.loads(metrics_json),
    }

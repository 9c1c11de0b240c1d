# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Refresh driver for BizPulse.

A refresh brings the snapshot store up to date with a target month
(the current UTC month unless given):

1. look up the last stored snapshot month,
2. list the months missing between it and the target,
3. compute them in ascending order, diffing each against the month before
   (the first one against the last stored snapshot),
4. write past months create-if-absent (they are append-only), and the
   target month with overwrite (it is recomputed on every refresh),
5. store the breakdown documents of every written month,
6. overwrite ``dashboard/latest`` with the target month's metrics.

If the target month is not among the missing months (the store is already
at or beyond it), the target month alone is recomputed and overwritten,
diffed against the stored snapshot of the month before it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .config import AppConfig, default_app_config
from .dashboard import compute_dashboard_with_breakdowns
from .metrics import DashboardMetrics
from .months import previous_month, validate_month
from .snapshots import (
    SNAPSHOT_VERSION,
    SnapshotRecord,
    generate_snapshot_records,
    list_missing_snapshot_months,
    target_snapshot_month,
)
from .sources import InsightsSource, TaskSource
from .store import (
    create_snapshot,
    get_last_snapshot_month,
    init_store,
    put_dashboard_latest,
    put_metric_breakdowns,
    put_snapshot,
    read_snapshot,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshResult:
    target_month: str
    written_snapshots: list[str] = field(default_factory=list)
    skipped_snapshots: list[str] = field(default_factory=list)


async def run_refresh(
    task_source: TaskSource,
    insights_source: Optional[InsightsSource] = None,
    target_month: Optional[str] = None,
    now: Optional[datetime] = None,
    config: Optional[AppConfig] = None,
) -> RefreshResult:
    """
    Bring the snapshot store up to ``target_month``.

    Raises
    ------
    InvalidMonthError
        If ``target_month`` is malformed.
    RangeTooLargeError
        If the backfill would span more than 240 months.
    """
    cfg = config or default_app_config()
    moment = now or datetime.now(timezone.utc)

    if target_month:
        target = validate_month(target_month, "targetMonth")
    else:
        target = target_snapshot_month(moment)
    logger.info("Resolved targetMonth=%s", target)

    init_store(cfg.store)
    last_month = get_last_snapshot_month(cfg.store)
    logger.info("Last snapshot month in store: %s", last_month or "(none)")

    missing = list_missing_snapshot_months(last_month, target)
    logger.info("Missing months to generate: %s", ", ".join(missing) or "(none)")

    breakdowns_by_month: dict[str, dict[str, Any]] = {}

    async def compute(month: str) -> DashboardMetrics:
        result = await compute_dashboard_with_breakdowns(
            month, task_source, insights_source, moment, cfg
        )
        breakdowns_by_month[month] = result.breakdowns
        return result.metrics

    previous = read_snapshot(cfg.store, last_month) if last_month else None
    records: list[SnapshotRecord] = await generate_snapshot_records(
        missing, compute, previous, moment
    )

    if target not in missing:
        before_target = read_snapshot(cfg.store, previous_month(target))
        records += await generate_snapshot_records([target], compute, before_target, moment)

    written: list[str] = []
    skipped: list[str] = []
    for record in records:
        if record.month == target:
            put_snapshot(cfg.store, record.to_dict())
            written.append(record.month)
        elif create_snapshot(cfg.store, record.to_dict()):
            written.append(record.month)
        else:
            skipped.append(record.month)
            continue

        put_metric_breakdowns(
            cfg.store, record.month, breakdowns_by_month.get(record.month, {})
        )

    target_record = next(r for r in records if r.month == target)
    put_dashboard_latest(
        cfg.store,
        {
            "version": SNAPSHOT_VERSION,
            "month": target,
            "computedAt": target_record.metrics["computedAt"],
            "metrics": target_record.metrics,
        },
    )

    return RefreshResult(target_month=target, written_snapshots=written, skipped_snapshots=skipped)

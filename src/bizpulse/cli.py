# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-line interface for BizPulse.

Commands
--------
compute MONTH
    Compute the metrics document of one month from a ClickUp export
    directory and print it as JSON (optionally with breakdowns, optionally
    written to a file).

refresh
    Bring the snapshot store up to date with the target month (current UTC
    month by default): backfill missing months, overwrite the target month
    and ``dashboard/latest``.

history
    Print the stored snapshot history as a table, one column per month.

breakdown MONTH METRIC_KEY
    Print one stored breakdown document as a table.

Global options: ``--version``, ``--config`` (TOML file, defaults to
``bizpulse_config.toml`` when present) and ``--log-level``.

Task data is read with :class:`~bizpulse.sources.FixtureTaskSource` from a
directory of ClickUp JSON exports (``--fixtures``); follower samples can
be provided with ``--insights``.
"""

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from . import __version__
from .config import AppConfig, default_app_config, load_app_config
from .dashboard import compute_dashboard, compute_dashboard_with_breakdowns
from .errors import BizPulseError
from .history import breakdown_frame, history_frame, pivot_history
from .months import parse_iso_ms, validate_month
from .refresh import run_refresh
from .sources import FixtureTaskSource, StaticInsightsSource
from .store import list_snapshots, read_metric_breakdown

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DEFAULT_CONFIG_FILE = "bizpulse_config.toml"


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="bizpulse",
        description=(
            "BizPulse - Monthly KPI snapshots for small businesses. "
            "Derives financial, marketing, sales and operations metrics from "
            "ClickUp tasks and keeps a diffable monthly snapshot history."
        ),
    )

    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of bizpulse and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the TOML configuration file. If omitted, "
            f"'{DEFAULT_CONFIG_FILE}' in the current directory is used when present."
        ),
    )
    ap.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING).",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    # compute
    compute = subparsers.add_parser(
        "compute", help="Compute the metrics of one month and print them as JSON."
    )
    compute.add_argument("month", help="Target month, YYYY-MM.")
    _add_source_arguments(compute)
    compute.add_argument(
        "--computed-at",
        dest="computed_at",
        help="Computation time (ISO-8601, UTC). Defaults to now.",
    )
    compute.add_argument(
        "--breakdowns",
        action="store_true",
        help="Include the breakdown documents in the output.",
    )
    compute.add_argument(
        "--output",
        dest="output_path",
        help="Write the JSON document to this file instead of stdout.",
    )

    # refresh
    refresh = subparsers.add_parser(
        "refresh", help="Backfill missing snapshots and overwrite the target month."
    )
    _add_source_arguments(refresh)
    refresh.add_argument(
        "--target-month",
        dest="target_month",
        help="Target month, YYYY-MM. Defaults to the current UTC month.",
    )
    refresh.add_argument(
        "--now",
        dest="now",
        help="Override the current time (ISO-8601, UTC).",
    )

    # history
    history = subparsers.add_parser("history", help="Print the stored snapshot history.")
    history.add_argument(
        "--diff",
        action="store_true",
        help="Show month-over-month percentage changes instead of values.",
    )
    history.add_argument(
        "--group",
        choices=["financial", "marketing", "sales", "operations"],
        help="Only show one metric group.",
    )

    # breakdown
    breakdown = subparsers.add_parser("breakdown", help="Print one stored breakdown.")
    breakdown.add_argument("month", help="Snapshot month, YYYY-MM.")
    breakdown.add_argument("metric_key", help="Breakdown key, e.g. monthlyRevenue.")

    return ap


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--fixtures",
        dest="fixtures_dir",
        required=True,
        help="Directory holding the ClickUp JSON exports.",
    )
    parser.add_argument(
        "--insights",
        dest="insights_path",
        help="JSON file with follower-count samples ({'series': [...]}).",
    )


def _load_config(config_path: Optional[str]) -> AppConfig:
    if config_path:
        return load_app_config(config_path)
    if Path(DEFAULT_CONFIG_FILE).is_file():
        return load_app_config()
    return default_app_config()


def _parse_moment(value: Optional[str], option: str) -> Optional[datetime]:
    if value is None:
        return None
    ms = parse_iso_ms(value)
    if ms is None:
        raise ValueError(f"Invalid {option}: {value!r}. Expected an ISO-8601 datetime.")
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def _sources(args: argparse.Namespace, config: AppConfig):
    task_source = FixtureTaskSource.from_directory(Path(args.fixtures_dir), config.lists)
    insights = (
        StaticInsightsSource.from_file(Path(args.insights_path))
        if args.insights_path
        else None
    )
    return task_source, insights


def _handle_compute(args: argparse.Namespace, config: AppConfig) -> None:
    month = validate_month(args.month)
    computed_at = _parse_moment(args.computed_at, "--computed-at")
    task_source, insights = _sources(args, config)

    if args.breakdowns:
        result = asyncio.run(
            compute_dashboard_with_breakdowns(month, task_source, insights, computed_at, config)
        )
        doc = {"metrics": result.metrics.to_dict(), "breakdowns": result.breakdowns}
    else:
        metrics = asyncio.run(
            compute_dashboard(month, task_source, insights, computed_at, config)
        )
        doc = metrics.to_dict()

    text = json.dumps(doc, indent=2, ensure_ascii=False)
    if args.output_path:
        out = Path(args.output_path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text + "\n", encoding="utf-8")
        print(f"Wrote {out}")
    else:
        print(text)


def _handle_refresh(args: argparse.Namespace, config: AppConfig) -> None:
    now = _parse_moment(args.now, "--now")
    task_source, insights = _sources(args, config)

    result = asyncio.run(
        run_refresh(task_source, insights, args.target_month, now, config)
    )

    print(f"Target month: {result.target_month}")
    print(f"Written:      {', '.join(result.written_snapshots) or '(none)'}")
    print(f"Skipped:      {', '.join(result.skipped_snapshots) or '(none)'}")


def _handle_history(args: argparse.Namespace, config: AppConfig) -> None:
    df = history_frame(list_snapshots(config.store))
    if df.empty:
        print("No snapshots stored yet. Run 'bizpulse refresh' first.")
        return

    if args.group:
        df = df[df["group"] == args.group]

    wide = pivot_history(df, field="diff_pct" if args.diff else "value")
    print(wide.to_string(index=False))


def _handle_breakdown(args: argparse.Namespace, config: AppConfig) -> None:
    month = validate_month(args.month)
    doc = read_metric_breakdown(config.store, month, args.metric_key)
    if doc is None:
        print(f"No breakdown '{args.metric_key}' stored for {month}.")
        return

    print(f"{doc.get('metricKey')} ({doc.get('kind')}) - {month}")
    df = breakdown_frame(doc)
    if df.empty:
        print("No items.")
        return

    print()
    print(df.to_string(index=False))
    if "amount_ils" in df.columns:
        print()
        print(f"Total: {df['amount_ils'].sum():.2f} ILS")


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the BizPulse CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"bizpulse version {__version__}")
        return

    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    if not args.command:
        parser.print_help()
        return

    try:
        config = _load_config(args.config_path)
        handlers = {
            "compute": _handle_compute,
            "refresh": _handle_refresh,
            "history": _handle_history,
            "breakdown": _handle_breakdown,
        }
        handlers[args.command](args, config)
    except (BizPulseError, FileNotFoundError, ValueError) as exc:
        parser.error(str(exc))


if __name__ == "__main__":
    main()

# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Data sources consumed by the BizPulse engine.

The engine never talks to ClickUp or Instagram directly. It depends on two
small asynchronous protocols:

- :class:`TaskSource`      : lists the tasks of a ClickUp list and fetches
                             the comments of a task,
- :class:`InsightsSource`  : returns the Instagram follower-count series
                             for a time window.

Pagination, retries and authentication belong to the implementations, not
to the engine. This module ships offline implementations
(:class:`FixtureTaskSource`, :class:`StaticInsightsSource`) that read
ClickUp-shaped JSON exports, used by the CLI and the tests.

It also provides the per-run comment cache (:class:`CommentCache`) and the
budgeted view over it used by each computation pass
(:class:`CommentLookups`).
"""

import json
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Optional, Protocol

from .config import ListIds
from .errors import CommentFetchError
from .months import parse_iso_ms
from .normalize import parse_task_ms

logger = logging.getLogger(__name__)

Task = dict[str, Any]
Comment = dict[str, Any]

LEADS_FIXTURE = "clickup-incoming-leads.json"
EVENTS_FIXTURE = "clickup-event-calendar.json"
EXPENSES_FIXTURE = "clickup-expenses.json"
COMMENTS_DIR = "comments"


class TaskSource(Protocol):
    async def list_tasks(
        self,
        list_id: str,
        include_closed: bool = True,
        page_size: Optional[int] = None,
    ) -> list[Task]: ...

    async def get_task_comments(self, task_id: str) -> list[Comment]: ...


class InsightsSource(Protocol):
    async def get_follower_count_series(
        self, since_ms: int, until_ms: int
    ) -> list[dict[str, Any]]: ...


# ---------------------------------------------------------------------------
# Offline sources
# ---------------------------------------------------------------------------


def _load_json(path: Path) -> Any:
    if not path.is_file():
        raise FileNotFoundError(f"Fixture file not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in fixture file: {path}") from exc


def _items(payload: Any, key: str, path: Path) -> list[dict[str, Any]]:
    """Accept either ``{key: [...]}`` or a bare list."""
    items = payload.get(key) if isinstance(payload, Mapping) else payload
    if not isinstance(items, list):
        raise ValueError(f"Fixture {path} must contain a '{key}' array.")
    return [dict(item) for item in items if isinstance(item, Mapping)]


class FixtureTaskSource:
    """
    Task source backed by in-memory ClickUp payloads.

    ``page_size`` is accepted for protocol compatibility and ignored.
    When ``include_closed`` is False, tasks with a ``date_closed`` are left
    out, like the ClickUp API does.
    """

    def __init__(
        self,
        tasks_by_list: Mapping[str, Iterable[Task]],
        comments_by_task: Optional[Mapping[str, Iterable[Comment]]] = None,
    ):
        self._tasks = {k: [dict(t) for t in v] for k, v in tasks_by_list.items()}
        self._comments = {
            k: [dict(c) for c in v] for k, v in (comments_by_task or {}).items()
        }

    @classmethod
    def from_directory(cls, directory: Path, lists: ListIds) -> "FixtureTaskSource":
        """
        Load an exported workspace from ``directory``.

        Expected layout::

            clickup-incoming-leads.json    {"tasks": [...]}
            clickup-event-calendar.json    {"tasks": [...]}
            clickup-expenses.json          {"tasks": [...]}
            comments/<task_id>.json        {"comments": [...]}   (optional)
        """
        directory = Path(directory)
        tasks_by_list: dict[str, list[Task]] = {}
        for list_id, file_name in (
            (lists.incoming_leads, LEADS_FIXTURE),
            (lists.event_calendar, EVENTS_FIXTURE),
            (lists.expenses, EXPENSES_FIXTURE),
        ):
            path = directory / file_name
            tasks_by_list[list_id] = _items(_load_json(path), "tasks", path)

        comments_by_task: dict[str, list[Comment]] = {}
        comments_dir = directory / COMMENTS_DIR
        if comments_dir.is_dir():
            for path in sorted(comments_dir.glob("*.json")):
                comments_by_task[path.stem] = _items(_load_json(path), "comments", path)

        logger.debug(
            "Loaded fixtures from %s: %d lists, %d comment files",
            directory,
            len(tasks_by_list),
            len(comments_by_task),
        )
        return cls(tasks_by_list, comments_by_task)

    async def list_tasks(
        self,
        list_id: str,
        include_closed: bool = True,
        page_size: Optional[int] = None,
    ) -> list[Task]:
        tasks = self._tasks.get(list_id, [])
        if not include_closed:
            tasks = [t for t in tasks if parse_task_ms(t.get("date_closed")) is None]
        return [dict(t) for t in tasks]

    async def get_task_comments(self, task_id: str) -> list[Comment]:
        return [dict(c) for c in self._comments.get(task_id, [])]


class StaticInsightsSource:
    """Insights source returning a fixed follower-count series."""

    def __init__(self, series: Iterable[Mapping[str, Any]]):
        self._series = [
            {"endTimeIso": str(s["endTimeIso"]), "value": s["value"]} for s in series
        ]

    @classmethod
    def from_file(cls, path: Path) -> "StaticInsightsSource":
        path = Path(path)
        return cls(_items(_load_json(path), "series", path))

    async def get_follower_count_series(
        self, since_ms: int, until_ms: int
    ) -> list[dict[str, Any]]:
        out = []
        for sample in self._series:
            ms = parse_iso_ms(sample["endTimeIso"])
            if ms is not None and since_ms <= ms < until_ms:
                out.append(dict(sample))
        return out


# ---------------------------------------------------------------------------
# Comment cache
# ---------------------------------------------------------------------------


class CommentCache:
    """
    Per-run memo of task comments.

    A task's comments are fetched at most once per computation, whatever
    the number of passes that need them. Failed fetches are not cached and
    surface as :class:`CommentFetchError`.
    """

    def __init__(self, source: TaskSource):
        self._source = source
        self._comments: dict[str, list[Comment]] = {}
        self.fetch_count = 0

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._comments

    async def get(self, task_id: str) -> list[Comment]:
        cached = self._comments.get(task_id)
        if cached is not None:
            return cached

        try:
            comments = await self._source.get_task_comments(task_id)
        except Exception as exc:
            raise CommentFetchError(task_id, exc) from exc

        self.fetch_count += 1
        self._comments[task_id] = list(comments or [])
        logger.debug("Fetched %d comments for task %s", len(self._comments[task_id]), task_id)
        return self._comments[task_id]


class CommentLookups:
    """
    Budgeted view of a :class:`CommentCache` for one computation pass.

    Each distinct task looked up in the pass consumes one unit of budget
    (whether or not the cache already holds it). Once the budget is spent,
    :meth:`get` returns None for tasks not yet looked up in this pass.
    """

    def __init__(self, cache: CommentCache, budget: int, pass_name: str = ""):
        self._cache = cache
        self.budget = budget
        self.pass_name = pass_name
        self._seen: set[str] = set()

    @property
    def used(self) -> int:
        return len(self._seen)

    @property
    def exhausted(self) -> bool:
        return self.used >= self.budget

    def can_lookup(self, task_id: str) -> bool:
        return task_id in self._seen or not self.exhausted

    async def get(self, task_id: str) -> Optional[list[Comment]]:
        if task_id not in self._seen:
            if self.exhausted:
                return None
            self._seen.add(task_id)
        return await self._cache.get(task_id)

# BizPulse - Monthly KPI snapshots for small businesses
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Error types raised by the BizPulse engine.

Hierarchy:
    BizPulseError
    ├── InvalidMonthError    (also a ValueError)
    ├── RangeTooLargeError   (also a ValueError)
    ├── CommentFetchError
    └── InsightsFetchError

Only the two ValueError subclasses ever reach a caller of the engine.
Comment and insights failures are caught inside the computation and
recorded as provenance notes on the affected metrics.
"""

from typing import Optional


class BizPulseError(Exception):
    """Base exception for all BizPulse errors."""

    code = "BIZPULSE_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        if code is not None:
            self.code = code
        super().__init__(message)


class InvalidMonthError(BizPulseError, ValueError):
    """A month string is not of the form YYYY-MM with MM in 01..12."""

    code = "INVALID_MONTH"

    def __init__(self, value: object, field_name: str = "month"):
        self.value = value
        super().__init__(
            f'Invalid {field_name}: "{value}". Expected YYYY-MM where MM is 01-12.'
        )


class RangeTooLargeError(BizPulseError, ValueError):
    """A month range exceeds the backfill safety bound."""

    code = "RANGE_TOO_LARGE"

    def __init__(self, start: str, end: str, limit: int):
        self.start = start
        self.end = end
        self.limit = limit
        super().__init__(
            f"Month range {start} -> {end} exceeds the safety limit of {limit} months."
        )


class CommentFetchError(BizPulseError):
    """Comments of a single task could not be fetched from the task source."""

    code = "COMMENT_FETCH_FAILED"

    def __init__(self, task_id: str, cause: Optional[BaseException] = None):
        self.task_id = task_id
        msg = f"Comment fetch failed for task {task_id}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class InsightsFetchError(BizPulseError):
    """The social-insights source failed to return a follower series."""

    code = "INSIGHTS_FETCH_FAILED"

    def __init__(self, cause: Optional[BaseException] = None):
        msg = "Instagram fetch failed"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)

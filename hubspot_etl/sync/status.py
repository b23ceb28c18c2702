"""Derived status for activity records."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from .properties import as_utc, get_datetime, get_str

UPCOMING = "upcoming"
DUE = "due"
OVERDUE = "overdue"
COMPLETED = "completed"

_TASK_DONE = {"COMPLETE", "COMPLETED", "END"}
_TASK_PENDING = {"WAITING", "NOT_STARTED", "DEFERRED"}
_DUE_WINDOW = timedelta(hours=24)


def _upper(props: dict[str, Any], name: str) -> str | None:
    value = get_str(props, name)
    return value.strip().upper() if value else None


def _future(moment: datetime | None, now: datetime) -> bool:
    return moment is not None and moment > now


def _task_status(props: dict[str, Any], activity_date: datetime | None, now: datetime) -> str:
    status = _upper(props, "hs_task_status")
    if get_datetime(props, "hs_task_completion_timestamp") is not None or status in _TASK_DONE:
        return COMPLETED

    due = get_datetime(props, "hs_task_due_date")
    if due is not None:
        flagged = (get_str(props, "hs_task_is_overdue") or "").strip().lower()
        if flagged in {"true", "1"} or due < now:
            return OVERDUE
        if due - now <= _DUE_WINDOW:
            return DUE
        return UPCOMING

    if _future(get_datetime(props, "hs_task_start_date"), now):
        return UPCOMING

    if status in _TASK_PENDING:
        return UPCOMING if _future(activity_date, now) else DUE
    if status == "IN_PROGRESS":
        return DUE

    if activity_date is not None:
        return COMPLETED if activity_date <= now else UPCOMING
    return DUE


def _meeting_status(props: dict[str, Any], activity_date: datetime | None, now: datetime) -> str:
    start = get_datetime(props, "hs_meeting_start_time")
    moment = start if start is not None else activity_date
    if moment is None:
        return COMPLETED
    return UPCOMING if moment > now else COMPLETED


def _call_status(props: dict[str, Any], activity_date: datetime | None, now: datetime) -> str:
    status = _upper(props, "hs_call_status")
    if status == "SCHEDULED":
        return UPCOMING if _future(activity_date, now) else DUE
    if status:
        return COMPLETED
    return UPCOMING if _future(activity_date, now) else COMPLETED


def determine_activity_status(
    activity_type: str,
    props: dict[str, Any],
    activity_date: datetime | None,
    now: datetime,
) -> str:
    """Infer upcoming/due/overdue/completed for one activity.

    ``now`` is passed in so the result depends only on the arguments.
    """
    now = as_utc(now)
    activity_date = as_utc(activity_date)
    kind = (activity_type or "").upper()

    if kind == "TASK":
        return _task_status(props, activity_date, now)
    if kind == "MEETING":
        return _meeting_status(props, activity_date, now)
    if kind == "CALL":
        return _call_status(props, activity_date, now)
    if kind in {"EMAIL", "NOTE", "SMS"}:
        return COMPLETED
    return UPCOMING if _future(activity_date, now) else COMPLETED

"""
Progress and status derivation for tasks and their day buckets.

Everything here is a pure function over plain attributes: a day bucket is
anything with ``date`` and ``subtasks``; a subtask is anything with a
``status``. Nothing touches the session, so the same rules serve the
mutation path and the read-only report path.
"""
from collections import namedtuple
from datetime import date, datetime

PENDING = "pending"
IN_PROGRESS = "in-progress"
COMPLETED = "completed"

ProgressResult = namedtuple("ProgressResult", ["progress", "status"])


def normalize_date(value):
    """Drops the time of day, so two timestamps on one calendar date compare equal."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"Expected a date, got {type(value).__name__}")


def percent(part, whole):
    """Integer percentage rounded half up; 0 when there is nothing to count."""
    if not whole:
        return 0
    return (200 * part + whole) // (2 * whole)


def flatten(days):
    """All subtasks in bucket order, then creation order within each bucket."""
    return [sub for day in days for sub in day.subtasks]


def compute_progress(days, end_date) -> ProgressResult:
    subtasks = flatten(days)
    total = len(subtasks)
    if total == 0:
        return ProgressResult(0, PENDING)

    completed = sum(1 for sub in subtasks if sub.status == COMPLETED)
    progress = percent(completed, total)

    # Completion waits until work for the final day has been recorded
    final_day = normalize_date(end_date)
    has_final_day = any(normalize_date(day.date) == final_day for day in days)

    if progress == 100 and has_final_day:
        return ProgressResult(progress, COMPLETED)
    if progress > 0:
        return ProgressResult(progress, IN_PROGRESS)
    return ProgressResult(progress, PENDING)


def derive_day_status(subtasks):
    if subtasks and all(sub.status == COMPLETED for sub in subtasks):
        return COMPLETED
    if subtasks:
        return IN_PROGRESS
    return PENDING


def apply_progress(task):
    """Recomputes and stores progress/status on the task. Returns the result."""
    result = compute_progress(task.days, task.end_date)
    task.progress = result.progress
    task.status = result.status
    return result

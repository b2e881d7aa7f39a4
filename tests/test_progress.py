"""Progress calculator rules, exercised on plain objects without a database."""
from datetime import date, datetime
from types import SimpleNamespace

import pytest

from tasks.progress import (
    compute_progress, derive_day_status, flatten, normalize_date, percent,
    PENDING, IN_PROGRESS, COMPLETED,
)


def sub(status="pending"):
    return SimpleNamespace(status=status)


def day(d, *statuses):
    return SimpleNamespace(date=d, subtasks=[sub(s) for s in statuses])


def test_zero_subtasks_is_pending():
    assert compute_progress([], date(2024, 1, 11)) == (0, PENDING)
    # empty buckets do not count as work
    assert compute_progress([day(date(2024, 1, 11))], date(2024, 1, 11)) == (0, PENDING)


def test_half_done_is_in_progress():
    days = [day(date(2024, 1, 10), "completed"), day(date(2024, 1, 11), "pending")]
    assert compute_progress(days, date(2024, 1, 11)) == (50, IN_PROGRESS)


def test_all_done_with_final_day_is_completed():
    days = [day(date(2024, 1, 10), "completed"), day(date(2024, 1, 11), "completed")]
    assert compute_progress(days, date(2024, 1, 11)) == (100, COMPLETED)


def test_all_done_without_final_day_is_not_completed():
    days = [day(date(2024, 1, 10), "completed", "completed")]
    result = compute_progress(days, date(2024, 1, 20))
    assert result.progress == 100
    assert result.status == IN_PROGRESS


def test_end_date_time_of_day_is_ignored():
    days = [day(date(2024, 1, 11), "completed")]
    assert compute_progress(days, datetime(2024, 1, 11, 17, 30)).status == COMPLETED


def test_in_progress_subtasks_do_not_count_as_completed():
    days = [day(date(2024, 1, 10), "in-progress", "in-progress")]
    assert compute_progress(days, date(2024, 1, 10)) == (0, PENDING)


def test_rounding_is_half_up():
    # 1 of 8 is 12.5%
    days = [day(date(2024, 1, 10), "completed", *["pending"] * 7)]
    assert compute_progress(days, date(2024, 1, 10)).progress == 13
    assert percent(2, 3) == 67
    assert percent(1, 3) == 33
    assert percent(0, 0) == 0


def test_marking_more_completed_never_decreases_progress():
    statuses = ["pending"] * 7
    days = [SimpleNamespace(date=date(2024, 3, i + 1), subtasks=[sub(s)]) for i, s in enumerate(statuses)]
    last = compute_progress(days, date(2024, 3, 7)).progress
    for bucket in days:
        bucket.subtasks[0].status = COMPLETED
        current = compute_progress(days, date(2024, 3, 7)).progress
        assert current >= last
        last = current
    assert last == 100


def test_recompute_is_idempotent():
    days = [day(date(2024, 1, 10), "completed", "pending"), day(date(2024, 1, 11), "in-progress")]
    first = compute_progress(days, date(2024, 1, 11))
    assert compute_progress(days, date(2024, 1, 11)) == first


def test_flatten_keeps_bucket_then_insertion_order():
    a, b, c = sub("completed"), sub("pending"), sub("in-progress")
    days = [SimpleNamespace(date=date(2024, 1, 1), subtasks=[a, b]),
            SimpleNamespace(date=date(2024, 1, 2), subtasks=[c])]
    assert flatten(days) == [a, b, c]


@pytest.mark.parametrize("statuses, expected", [
    ([], PENDING),
    (["pending"], IN_PROGRESS),
    (["completed", "pending"], IN_PROGRESS),
    (["completed", "completed"], COMPLETED),
])
def test_day_status(statuses, expected):
    assert derive_day_status([sub(s) for s in statuses]) == expected


def test_day_status_ignores_siblings():
    done = day(date(2024, 1, 10), "completed")
    open_day = day(date(2024, 1, 11), "pending")
    before = derive_day_status(done.subtasks)
    open_day.subtasks[0].status = "in-progress"
    assert derive_day_status(done.subtasks) == before == COMPLETED


def test_normalize_date():
    assert normalize_date(datetime(2024, 5, 1, 23, 59)) == date(2024, 5, 1)
    assert normalize_date(date(2024, 5, 1)) == date(2024, 5, 1)
    with pytest.raises(TypeError):
        normalize_date("2024-05-01")

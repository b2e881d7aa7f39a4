"""
Read-only reporting over tasks.

Live reports never write: they load the in-scope tasks once and recompute
every figure from the subtasks, so they may run alongside mutations and
observe a slightly stale snapshot. Saving a monthly staff snapshot is the
only write in this module.
"""
import calendar
from collections import namedtuple, OrderedDict
from datetime import date, datetime, timedelta

from sqlalchemy.orm import selectinload

from models import db
from tasks.models import Task, TaskDay, Report
from tasks.progress import derive_day_status, percent, COMPLETED, IN_PROGRESS, PENDING
from tasks.services import daterange, get_user
from utils.audit_logger import log_action
from utils.errors import InvalidState, ValidationError
from utils.scoping import ensure, is_admin, can_assign, scope_tasks
from utils.transaction import atomic
from utils.validators import parse_date, parse_int

REPORT_TYPES = ("monthly", "quarterly", "yearly", "custom")

ReportWindow = namedtuple("ReportWindow", ["report_type", "start", "end", "month", "year", "quarter"])


def month_bounds(year, month):
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def resolve_window(args, today=None) -> ReportWindow:
    """
    Works out the reporting window from query args.

    An explicit start_date/end_date pair wins. Otherwise report_type picks a
    month (default), the quarter containing ``month`` (or ``quarter``), or
    the whole ``year``.
    """
    today = today or date.today()
    month = parse_int(args.get("month"), "month", default=today.month, minimum=1, maximum=12)
    year = parse_int(args.get("year"), "year", default=today.year, minimum=1, maximum=9999)

    start = parse_date(args.get("start_date"), "start_date")
    end = parse_date(args.get("end_date"), "end_date")
    if start or end:
        if not (start and end):
            raise ValidationError("Validation failed", errors={"missing_fields": ["start_date" if not start else "end_date"]})
        if end < start:
            raise ValidationError("Validation failed", errors={"end_date": "must not be before start_date"})
        return ReportWindow("custom", start, end, month, year, None)

    report_type = args.get("report_type") or "monthly"
    if report_type not in REPORT_TYPES or report_type == "custom":
        raise ValidationError("Validation failed", errors={"report_type": "must be one of: monthly, quarterly, yearly"})

    if report_type == "quarterly":
        quarter = parse_int(args.get("quarter"), "quarter", default=(month - 1) // 3 + 1, minimum=1, maximum=4)
        start, _ = month_bounds(year, 3 * (quarter - 1) + 1)
        _, end = month_bounds(year, 3 * quarter)
        return ReportWindow(report_type, start, end, month, year, quarter)

    if report_type == "yearly":
        return ReportWindow(report_type, date(year, 1, 1), date(year, 12, 31), month, year, None)

    start, end = month_bounds(year, month)
    return ReportWindow(report_type, start, end, month, year, None)


def load_tasks(caller, args, window):
    query = scope_tasks(Task.query, caller, Task).filter(
        Task.start_date <= window.end,
        Task.end_date >= window.start,
    )

    # explicit filters only ever narrow the role scope
    user_id = parse_int(args.get("user_id"), "user_id")
    if user_id is not None:
        query = query.filter(Task.assigned_to_id == user_id)
    task_id = parse_int(args.get("task_id"), "task_id")
    if task_id is not None:
        query = query.filter(Task.id == task_id)
    company_id = parse_int(args.get("company_id"), "company_id")
    if company_id is not None:
        query = query.filter(Task.company_id == company_id)

    return query.options(
        selectinload(Task.days).selectinload(TaskDay.subtasks),
        selectinload(Task.assigned_to),
        selectinload(Task.assigned_by),
        selectinload(Task.company),
    ).order_by(Task.created_at.desc(), Task.id.desc()).all()


def build_day_tree(task, window):
    """
    One entry for every calendar day in the window that falls inside the
    task's own range, whether or not work was recorded that day.
    """
    first = max(window.start, task.start_date)
    last = min(window.end, task.end_date)
    buckets = {day.date: day for day in task.days}

    tree = []
    for current in daterange(first, last):
        bucket = buckets.get(current)
        subtasks = list(bucket.subtasks) if bucket else []
        tree.append({
            "date": current.isoformat(),
            "status": derive_day_status(subtasks),
            "total_subtasks": len(subtasks),
            "completed_subtasks": sum(1 for s in subtasks if s.status == COMPLETED),
            "hours": round(sum(s.hours_spent or 0 for s in subtasks), 2),
            "subtasks": [s.to_dict() for s in subtasks],
        })
    return tree


def task_detail(task, window):
    """
    Report row for one task. Totals cover the same days as the day tree:
    the window clipped to the task's own range. ``progress`` and ``status``
    stay the task's cached, all-time values.
    """
    first = max(window.start, task.start_date)
    last = min(window.end, task.end_date)
    in_window = [
        sub for day in task.days
        if first <= day.date <= last
        for sub in day.subtasks
    ]
    completed = sum(1 for s in in_window if s.status == COMPLETED)

    detail = task.to_dict()
    detail.update({
        "total_hours": round(sum(s.hours_spent or 0 for s in in_window), 2),
        "completed_subtasks": completed,
        "total_subtasks": len(in_window),
        "window_progress": percent(completed, len(in_window)),
        "days": build_day_tree(task, window),
    })
    return detail


def summarize(details):
    total_tasks = len(details)
    by_status = {PENDING: 0, IN_PROGRESS: 0, COMPLETED: 0}
    for d in details:
        by_status[d["status"]] = by_status.get(d["status"], 0) + 1

    total_subtasks = sum(d["total_subtasks"] for d in details)
    completed_subtasks = sum(d["completed_subtasks"] for d in details)

    return {
        "total_tasks": total_tasks,
        "completed_tasks": by_status[COMPLETED],
        "in_progress_tasks": by_status[IN_PROGRESS],
        "pending_tasks": by_status[PENDING],
        "total_hours": round(sum(d["total_hours"] for d in details), 2),
        "total_subtasks": total_subtasks,
        "completed_subtasks": completed_subtasks,
        "completion_rate": percent(completed_subtasks, total_subtasks),
        "avg_progress": percent(sum(d["progress"] or 0 for d in details), 100 * total_tasks),
    }


def rollup_by_user(details):
    users = OrderedDict()
    for d in details:
        assignee = d["assigned_to"] or {}
        key = assignee.get("id")
        row = users.get(key)
        if row is None:
            row = users[key] = {
                "user_id": key,
                "name": assignee.get("name"),
                "email": assignee.get("email"),
                "total_tasks": 0,
                "completed_tasks": 0,
                "total_hours": 0.0,
                "_progress": 0,
            }
        row["total_tasks"] += 1
        row["total_hours"] = round(row["total_hours"] + d["total_hours"], 2)
        row["_progress"] += d["progress"] or 0
        if d["status"] == COMPLETED:
            row["completed_tasks"] += 1

    result = []
    for row in users.values():
        row["avg_progress"] = percent(row.pop("_progress"), 100 * row["total_tasks"])
        result.append(row)
    return result


def build_report(caller, args, today=None):
    window = resolve_window(args, today=today)
    details = [task_detail(task, window) for task in load_tasks(caller, args, window)]
    summary = summarize(details)

    return {
        "period": {
            "report_type": window.report_type,
            "month": window.month,
            "year": window.year,
            "quarter": window.quarter,
            "start_date": window.start.isoformat(),
            "end_date": window.end.isoformat(),
        },
        "summary": summary,
        "details": details,
        "user_reports": rollup_by_user(details),
        "chart_data": [
            {"name": "Completed", "value": summary["completed_tasks"]},
            {"name": "In Progress", "value": summary["in_progress_tasks"]},
            {"name": "Pending", "value": summary["pending_tasks"]},
        ],
    }


def dashboard_stats(caller, today=None):
    today = today or date.today()
    tasks = scope_tasks(Task.query, caller, Task) \
        .options(selectinload(Task.assigned_to)) \
        .order_by(Task.created_at.desc(), Task.id.desc()).all()

    counts = {PENDING: 0, IN_PROGRESS: 0, COMPLETED: 0}
    for t in tasks:
        counts[t.status] = counts.get(t.status, 0) + 1

    week_start = today - timedelta(days=6)
    since = datetime.combine(week_start, datetime.min.time())
    recent = [t for t in tasks if t.created_at and t.created_at >= since][:5]

    weekly = []
    for day in daterange(week_start, today):
        created = [t for t in tasks if t.created_at and t.created_at.date() == day]
        done = sum(1 for t in created if t.status == COMPLETED)
        weekly.append({
            "name": day.strftime("%a"),
            "date": day.strftime("%b %d"),
            "tasks": len(created),
            "completed": done,
            "pending": len(created) - done,
        })

    return {
        "total_tasks": len(tasks),
        "completed_tasks": counts[COMPLETED],
        "in_progress_tasks": counts[IN_PROGRESS],
        "pending_tasks": counts[PENDING],
        "completion_rate": percent(counts[COMPLETED], len(tasks)),
        "recent_tasks": [{
            "id": t.id,
            "title": t.title,
            "assigned_to": t.assigned_to.name if t.assigned_to else None,
            "status": t.status,
            "progress": t.progress,
            "created_at": t.created_at.isoformat() if t.created_at else None,
        } for t in recent],
        "weekly_data": weekly,
    }


# -----------------------------
# Saved monthly staff reports
# -----------------------------
def generate_staff_report(caller, staff_id, args, today=None) -> Report:
    staff = get_user(staff_id, "Staff user")
    ensure(can_assign(caller, staff), "Not authorized to report on this user")
    if staff.company_id is None:
        raise InvalidState("Cannot save a report for a user without a company")

    today = today or date.today()
    month = parse_int(args.get("month"), "month", default=today.month, minimum=1, maximum=12)
    year = parse_int(args.get("year"), "year", default=today.year, minimum=1, maximum=9999)
    live = build_report(caller, {"month": month, "year": year, "user_id": staff.id}, today=today)

    with atomic("save report"):
        report = Report(
            company_id=staff.company_id,
            staff=staff,
            month=month,
            year=year,
            stats=live["summary"],
            generated_at=datetime.utcnow(),
        )
        db.session.add(report)
        db.session.flush()
        log_action(caller, "REPORT_CREATE", "report", report.id, meta={
            "staff_id": staff.id, "month": month, "year": year,
        })

    return report


def list_saved_reports(caller, args):
    query = Report.query
    if not is_admin(caller):
        query = query.filter(Report.company_id == caller.company_id)

    staff_id = parse_int(args.get("staff_id"), "staff_id")
    if staff_id is not None:
        query = query.filter(Report.staff_id == staff_id)
    month = parse_int(args.get("month"), "month", minimum=1, maximum=12)
    if month is not None:
        query = query.filter(Report.month == month)
    year = parse_int(args.get("year"), "year")
    if year is not None:
        query = query.filter(Report.year == year)

    return query.order_by(Report.created_at.desc(), Report.id.desc()).all()

from datetime import datetime, timedelta, date
from typing import Optional

from flask import current_app
from sqlalchemy import or_

from models import db
from models.company import Company
from models.user import User
from tasks.models import Task, TaskDay, SubTask, TASK_STATUSES, PRIORITIES
from tasks.progress import apply_progress, flatten, COMPLETED
from utils.audit_logger import log_action
from utils.errors import Forbidden, NotFound, InvalidState, ValidationError
from utils.scoping import (
    ensure, is_admin, same_company, scope_tasks,
    can_view_task, can_assign, can_manage_task, can_edit_subtasks,
)
from utils.transaction import atomic
from utils.validators import require_fields, require_choice, parse_date, parse_hours, parse_int, parse_text

SEED_MODES = ("explicit", "autofill")
DERIVED_FIELDS = ("status", "progress")


def daterange(d1: date, d2: date):
    cur = d1
    while cur <= d2:
        yield cur
        cur += timedelta(days=1)


# -----------------------------
# Loading
# -----------------------------
def get_user(user_id, label="Assigned user") -> User:
    user = db.session.get(User, user_id) if user_id is not None else None
    if not user:
        raise NotFound(f"{label} not found")
    return user


def get_company(company_id) -> Company:
    company = db.session.get(Company, company_id) if company_id is not None else None
    if not company:
        raise NotFound("Company not found")
    return company


def get_task(task_id) -> Task:
    task = db.session.get(Task, task_id)
    if not task:
        raise NotFound("Task not found")
    return task


def get_visible_task(caller, task_id) -> Task:
    task = get_task(task_id)
    ensure(can_view_task(caller, task), "Not authorized to view this task")
    return task


def find_subtask(task, subtask_id) -> Optional[SubTask]:
    """First match across the task's buckets; ids are unique within a task."""
    for day in task.days:
        for sub in day.subtasks:
            if sub.id == subtask_id:
                return sub
    return None


# -----------------------------
# Company resolution
# -----------------------------
def resolve_company(caller, assignee, requested_company_id=None) -> Company:
    """
    Admins always file the task under the assignee's company. Everyone else
    uses the requested company, falling back to their own.
    """
    if is_admin(caller):
        if assignee.company_id is None:
            raise InvalidState("Cannot assign a task to a user without a company")
        return get_company(assignee.company_id)

    company_id = requested_company_id or caller.company_id
    if company_id is not None and not same_company(caller, company_id):
        raise Forbidden("Cannot create tasks for another company")
    return get_company(company_id)


# -----------------------------
# Day buckets & subtasks
# -----------------------------
def get_or_create_day(task, day) -> TaskDay:
    bucket = task.find_day(day)
    if bucket is None:
        bucket = TaskDay(date=day, subtasks=[])
        task.days.append(bucket)
        # keep in-memory buckets in date order, as they load from the db
        task.days.sort(key=lambda d: d.date)
    return bucket


def _subtask_entry(data, default_date=None, default_description=None):
    entry_date = parse_date(data.get("date"), "date") or default_date
    description = parse_text(data.get("description"), "description") or default_description
    missing = []
    if entry_date is None:
        missing.append("date")
    if not description:
        missing.append("description")
    if missing:
        raise ValidationError("Validation failed", errors={"missing_fields": missing})

    hours = parse_hours(data.get("hours_spent"))
    return {
        "date": entry_date,
        "description": description,
        "status": require_choice(data, "status", TASK_STATUSES, default="pending"),
        "hours_spent": hours if hours is not None else 0.0,
        "remarks": parse_text(data.get("remarks"), "remarks", default=""),
    }


def append_subtask(task, entry) -> SubTask:
    now = datetime.utcnow()
    sub = SubTask(
        description=entry["description"],
        status=entry["status"],
        hours_spent=entry["hours_spent"],
        remarks=entry["remarks"],
        completed_at=now if entry["status"] == COMPLETED else None,
        created_at=now,
        updated_at=now,
    )
    get_or_create_day(task, entry["date"]).subtasks.append(sub)
    return sub


def remove_subtask(task, subtask_id) -> SubTask:
    """Splices the subtask out of its bucket. The bucket stays, even if emptied."""
    for day in task.days:
        for sub in day.subtasks:
            if sub.id == subtask_id:
                day.subtasks.remove(sub)
                return sub
    raise NotFound("Subtask not found")


def apply_subtask_changes(sub, changes):
    previous = sub.status
    if "status" in changes:
        sub.status = changes["status"]
    if "hours_spent" in changes:
        sub.hours_spent = changes["hours_spent"]
    if "remarks" in changes:
        sub.remarks = changes["remarks"]
    if "description" in changes:
        sub.description = changes["description"]

    if sub.status == COMPLETED and previous != COMPLETED:
        sub.completed_at = datetime.utcnow()
    elif sub.status != COMPLETED and previous == COMPLETED:
        sub.completed_at = None
    sub.updated_at = datetime.utcnow()


def _touch(task):
    apply_progress(task)
    task.version = (task.version or 0) + 1
    task.updated_at = datetime.utcnow()


def _seed_entries(data, title, start, end, mode):
    seeds = data.get("subtasks")
    if seeds:
        if not isinstance(seeds, list):
            raise ValidationError("Validation failed", errors={"subtasks": "must be a list"})
        if not all(seed is None or isinstance(seed, dict) for seed in seeds):
            raise ValidationError("Validation failed", errors={"subtasks": "each entry must be an object"})
        return [
            _subtask_entry(seed or {}, default_date=start, default_description=f"{title} - Day {i + 1}")
            for i, seed in enumerate(seeds)
        ]

    if mode != "autofill":
        return []

    entries = []
    counter = 1
    for day in daterange(start, end):
        if day.weekday() == 6:  # Sunday
            continue
        entries.append({
            "date": day,
            "description": f"{title} - Day {counter}",
            "status": "pending",
            "hours_spent": 0.0,
            "remarks": "",
        })
        counter += 1
    return entries


def _validate_range(start, end):
    if start and end and end < start:
        raise ValidationError("Validation failed", errors={"end_date": "must not be before start_date"})


# -----------------------------
# Task operations
# -----------------------------
def create_task(caller, data) -> Task:
    ensure(caller.role in ("admin", "manager"), "Only managers and admins can create tasks")
    require_fields(data, ["title", "assigned_to", "start_date", "end_date"])

    title = parse_text(data["title"], "title")
    if not title:
        raise ValidationError("Validation failed", errors={"missing_fields": ["title"]})
    description = parse_text(data.get("description"), "description", default="")
    start = parse_date(data.get("start_date"), "start_date")
    end = parse_date(data.get("end_date"), "end_date")
    _validate_range(start, end)
    priority = require_choice(data, "priority", PRIORITIES, default="medium")
    mode = require_choice(data, "seed_mode", SEED_MODES, default=current_app.config.get("TASK_SEED_MODE", "explicit"))

    assignee = get_user(parse_int(data.get("assigned_to"), "assigned_to"))
    ensure(can_assign(caller, assignee), "Not authorized to assign tasks to this user")
    company = resolve_company(caller, assignee, parse_int(data.get("company_id"), "company_id"))

    entries = _seed_entries(data, title, start, end, mode)

    with atomic("create task"):
        task = Task(
            title=title,
            description=description,
            company=company,
            assigned_to=assignee,
            assigned_by_id=caller.id,
            start_date=start,
            end_date=end,
            priority=priority,
            status="pending",
            progress=0,
            version=1,
        )
        for entry in entries:
            append_subtask(task, entry)
        apply_progress(task)
        db.session.add(task)
        db.session.flush()
        log_action(caller, "TASK_CREATE", "task", task.id, meta={"subtasks": len(entries), "seed_mode": mode})

    current_app.logger.info("Task %s created by user %s with %d subtasks", task.id, caller.id, len(entries))
    return task


def update_task(caller, task_id, data) -> Task:
    task = get_task(task_id)
    ensure(can_manage_task(caller, task), "Not authorized to update this task")

    override = bool(data.get("override"))
    derived = [f for f in DERIVED_FIELDS if f in data]
    if derived and not (override and is_admin(caller)):
        raise ValidationError(
            "Status and progress are derived from subtasks",
            errors={f: "read-only" for f in derived}
        )

    changes = {}
    if "title" in data:
        title = parse_text(data.get("title"), "title")
        if not title:
            raise ValidationError("Validation failed", errors={"missing_fields": ["title"]})
        changes["title"] = title
    if "description" in data:
        changes["description"] = parse_text(data.get("description"), "description", default="")
    if "priority" in data:
        changes["priority"] = require_choice(data, "priority", PRIORITIES) or task.priority
    if "start_date" in data:
        changes["start_date"] = parse_date(data.get("start_date"), "start_date") or task.start_date
    if "end_date" in data:
        changes["end_date"] = parse_date(data.get("end_date"), "end_date") or task.end_date
    _validate_range(changes.get("start_date", task.start_date), changes.get("end_date", task.end_date))

    assignee = None
    company = None
    new_assignee_id = parse_int(data.get("assigned_to"), "assigned_to")
    if new_assignee_id is not None and new_assignee_id != task.assigned_to_id:
        assignee = get_user(new_assignee_id)
        ensure(can_assign(caller, assignee), "Not authorized to assign tasks to this user")
        if is_admin(caller):
            company = resolve_company(caller, assignee)

    forced = {}
    if derived:
        if "status" in data:
            forced["status"] = require_choice(data, "status", TASK_STATUSES)
        if "progress" in data:
            forced["progress"] = parse_int(data.get("progress"), "progress", minimum=0, maximum=100)

    with atomic("update task"):
        for field, value in changes.items():
            setattr(task, field, value)
        if assignee is not None:
            task.assigned_to = assignee
        if company is not None:
            task.company = company
        _touch(task)
        for field, value in forced.items():
            setattr(task, field, value)
        log_action(caller, "TASK_UPDATE", "task", task.id, meta={
            "fields": sorted(list(changes) + (["assigned_to"] if assignee else [])),
            "override": forced or None,
        })

    return task


def delete_task(caller, task_id) -> int:
    task = get_task(task_id)
    ensure(can_manage_task(caller, task), "Not authorized to delete this task")

    removed = len(flatten(task.days))
    with atomic("delete task"):
        log_action(caller, "TASK_DELETE", "task", task.id, meta={"title": task.title, "subtasks": removed})
        db.session.delete(task)

    current_app.logger.info("Task %s deleted by user %s (%d subtasks removed)", task_id, caller.id, removed)
    return removed


def add_subtask(caller, task_id, data):
    task = get_task(task_id)
    ensure(can_edit_subtasks(caller, task), "Not authorized to add subtasks to this task")
    entry = _subtask_entry(data)

    with atomic("add subtask"):
        sub = append_subtask(task, entry)
        _touch(task)
        db.session.flush()
        log_action(caller, "SUBTASK_CREATE", "subtask", sub.id, meta={"task_id": task.id, "date": entry["date"].isoformat()})

    return task, sub


def update_subtask(caller, task_id, subtask_id, data):
    task = get_task(task_id)
    ensure(can_edit_subtasks(caller, task), "Not authorized to update this task")
    sub = find_subtask(task, subtask_id)
    if sub is None:
        raise NotFound("Subtask not found")

    changes = {}
    if "status" in data:
        changes["status"] = require_choice(data, "status", TASK_STATUSES)
    if "hours_spent" in data:
        hours = parse_hours(data.get("hours_spent"))
        changes["hours_spent"] = hours if hours is not None else 0.0
    if "remarks" in data:
        changes["remarks"] = parse_text(data.get("remarks"), "remarks", default="")
    if "description" in data:
        description = parse_text(data.get("description"), "description")
        if not description:
            raise ValidationError("Validation failed", errors={"missing_fields": ["description"]})
        changes["description"] = description

    with atomic("update subtask"):
        previous = sub.status
        apply_subtask_changes(sub, changes)
        _touch(task)
        log_action(caller, "SUBTASK_UPDATE", "subtask", sub.id, meta={
            "task_id": task.id, "from": previous, "to": sub.status,
        })

    return task, sub


def delete_subtask(caller, task_id, subtask_id) -> Task:
    task = get_task(task_id)
    ensure(can_edit_subtasks(caller, task), "Not authorized to delete subtasks from this task")
    if find_subtask(task, subtask_id) is None:
        raise NotFound("Subtask not found")

    with atomic("delete subtask"):
        remove_subtask(task, subtask_id)
        _touch(task)
        log_action(caller, "SUBTASK_DELETE", "subtask", subtask_id, meta={"task_id": task.id})

    return task


def list_tasks(caller, args):
    query = scope_tasks(Task.query, caller, Task)

    status = args.get("status")
    if status:
        require_choice({"status": status}, "status", TASK_STATUSES)
        query = query.filter(Task.status == status)
    priority = args.get("priority")
    if priority:
        require_choice({"priority": priority}, "priority", PRIORITIES)
        query = query.filter(Task.priority == priority)
    assigned_to = parse_int(args.get("assigned_to"), "assigned_to")
    if assigned_to is not None:
        query = query.filter(Task.assigned_to_id == assigned_to)
    company_id = parse_int(args.get("company_id"), "company_id")
    if company_id is not None:
        query = query.filter(Task.company_id == company_id)

    start = parse_date(args.get("start_date"), "start_date")
    end = parse_date(args.get("end_date"), "end_date")
    if start and end:
        query = query.filter(Task.start_date >= start, Task.end_date <= end)

    search = parse_text(args.get("search"), "search", default="")
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

    page = parse_int(args.get("page"), "page", default=1, minimum=1)
    limit = parse_int(args.get("limit"), "limit", default=10, minimum=1,
                      maximum=current_app.config.get("MAX_PAGE_SIZE", 100))

    return query.order_by(Task.created_at.desc(), Task.id.desc()) \
                .paginate(page=page, per_page=limit, error_out=False)


def list_subtasks(caller, task_id):
    """Every subtask of a visible task, by date then creation order."""
    return flatten(get_visible_task(caller, task_id).days)

from flask import request, g, send_file

from . import tasks_bp
from .export import export_report, report_filename, XLSX_MIMETYPE
from .reports import build_report, dashboard_stats, generate_staff_report, list_saved_reports
from .services import (
    create_task, update_task, delete_task, get_visible_task, list_tasks,
    add_subtask, update_subtask, delete_subtask, list_subtasks,
)
from utils.decorators import token_required, role_required
from utils.responses import ok
from utils.validators import json_body


# ==============================================================================
# Reports & Dashboard
# ==============================================================================

@tasks_bp.route('/reports', methods=['GET'])
@token_required
def get_report():
    return ok(report=build_report(g.user, request.args))


@tasks_bp.route('/reports/export', methods=['GET'])
@token_required
def export_report_xlsx():
    report = build_report(g.user, request.args)
    return send_file(
        export_report(report["details"]),
        download_name=report_filename(report["period"]),
        as_attachment=True,
        mimetype=XLSX_MIMETYPE,
    )


@tasks_bp.route('/reports/saved', methods=['GET'])
@token_required
@role_required(['admin', 'manager'])
def list_saved_reports_route():
    reports = list_saved_reports(g.user, request.args)
    return ok(reports=[r.to_dict() for r in reports], total=len(reports))


@tasks_bp.route('/reports/saved/<int:staff_id>', methods=['POST'])
@token_required
@role_required(['admin', 'manager'])
def save_staff_report_route(staff_id):
    report = generate_staff_report(g.user, staff_id, request.args)
    return ok(code=201, message='Report saved', report=report.to_dict())


@tasks_bp.route('/dashboard/stats', methods=['GET'])
@token_required
def get_dashboard_stats():
    return ok(stats=dashboard_stats(g.user))


# ==============================================================================
# Tasks
# ==============================================================================

@tasks_bp.route('', methods=['POST'])
@token_required
@role_required(['admin', 'manager'])
def create_task_route():
    task = create_task(g.user, json_body())
    return ok(code=201, task=task.to_dict(include_days=True))


@tasks_bp.route('', methods=['GET'])
@token_required
def list_tasks_route():
    page = list_tasks(g.user, request.args)
    return ok(
        tasks=[t.to_dict() for t in page.items],
        total=page.total,
        pages=page.pages,
        page=page.page,
    )


@tasks_bp.route('/<int:task_id>', methods=['GET'])
@token_required
def get_task_route(task_id):
    task = get_visible_task(g.user, task_id)
    return ok(task=task.to_dict(include_days=True))


@tasks_bp.route('/<int:task_id>', methods=['PUT', 'PATCH'])
@token_required
@role_required(['admin', 'manager'])
def update_task_route(task_id):
    task = update_task(g.user, task_id, json_body())
    return ok(task=task.to_dict(include_days=True))


@tasks_bp.route('/<int:task_id>', methods=['DELETE'])
@token_required
@role_required(['admin', 'manager'])
def delete_task_route(task_id):
    removed = delete_task(g.user, task_id)
    return ok(message='Task deleted successfully', deleted_subtasks=removed)


# ==============================================================================
# Subtasks
# ==============================================================================

@tasks_bp.route('/<int:task_id>/subtasks', methods=['GET'])
@token_required
def list_subtasks_route(task_id):
    subtasks = list_subtasks(g.user, task_id)
    return ok(subtasks=[s.to_dict() for s in subtasks], total=len(subtasks))


@tasks_bp.route('/<int:task_id>/subtasks', methods=['POST'])
@tasks_bp.route('/<int:task_id>/subtaskDays', methods=['POST'])
@token_required
def add_subtask_route(task_id):
    task, sub = add_subtask(g.user, task_id, json_body())
    return ok(
        code=201,
        message='Subtask added successfully',
        subtask=sub.to_dict(),
        task=task.to_dict(include_days=True),
    )


@tasks_bp.route('/<int:task_id>/subtasks/<int:subtask_id>', methods=['PUT', 'PATCH'])
@token_required
def update_subtask_route(task_id, subtask_id):
    task, sub = update_subtask(g.user, task_id, subtask_id, json_body())
    return ok(subtask=sub.to_dict(), task=task.to_dict(include_days=True))


@tasks_bp.route('/<int:task_id>/subtasks/<int:subtask_id>', methods=['DELETE'])
@token_required
def delete_subtask_route(task_id, subtask_id):
    task = delete_subtask(g.user, task_id, subtask_id)
    return ok(message='Subtask deleted successfully', task=task.to_dict(include_days=True))

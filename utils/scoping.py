"""
Role based access rules.

Every rule is a pure predicate over (caller, target) so it can run to
completion before any write is issued. ``caller`` is anything carrying
``id``, ``role`` and ``company_id``.
"""
from utils.errors import Forbidden


def is_admin(caller):
    return getattr(caller, "role", None) == "admin"


def same_company(caller, company_id):
    my_company_id = getattr(caller, "company_id", None)
    return my_company_id is not None and my_company_id == company_id


def scope_tasks(query, caller, model):
    """Staff see their own tasks, managers their company's, admins everything."""
    role = getattr(caller, "role", None)
    if role == "admin":
        return query
    if role == "manager":
        return query.filter(model.company_id == caller.company_id)
    return query.filter(model.assigned_to_id == caller.id)


def can_view_task(caller, task):
    if is_admin(caller):
        return True
    if caller.role == "manager":
        return same_company(caller, task.company_id)
    return task.assigned_to_id == caller.id


def can_assign(caller, assignee):
    if is_admin(caller):
        return True
    if caller.role == "manager":
        return same_company(caller, assignee.company_id) and assignee.role == "staff"
    return False


def can_manage_task(caller, task):
    if is_admin(caller):
        return True
    if caller.role == "manager":
        return same_company(caller, task.company_id) and can_assign(caller, task.assigned_to)
    return False


def can_edit_subtasks(caller, task):
    if caller.role == "staff":
        return task.assigned_to_id == caller.id
    return can_manage_task(caller, task)


def can_manage_user(caller, user):
    if is_admin(caller):
        return True
    if caller.role == "manager":
        return same_company(caller, user.company_id) and user.role == "staff"
    return False


def ensure(allowed, message="Permission denied"):
    if not allowed:
        raise Forbidden(message)

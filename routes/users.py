from flask import Blueprint, request, g, current_app

from models import db
from models.company import Company, adjust_user_count
from models.user import User, ROLES
from tasks.models import Task, Report
from utils.audit_logger import log_action
from utils.auth_utils import hash_password
from utils.decorators import token_required, role_required
from utils.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from utils.responses import ok
from utils.scoping import ensure, is_admin, can_manage_user
from utils.transaction import atomic
from utils.validators import require_fields, require_choice, parse_int, parse_text, json_body

users_bp = Blueprint("users", __name__)


def _load_user(user_id) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def _check_company(company_id):
    if company_id is not None and not db.session.get(Company, company_id):
        raise NotFound("Company not found")


def _check_email_free(email, exclude_id=None):
    existing = User.query.filter_by(email=email).first()
    if existing and existing.id != exclude_id:
        raise Conflict("Email already in use")


# -----------------------------
# Service functions
# -----------------------------
def create_user(caller, data) -> User:
    require_fields(data, ["name", "email", "password"])
    name = parse_text(data["name"], "name")
    email = parse_text(data["email"], "email").lower()
    password = parse_text(data["password"], "password", strip=False)
    blank = [field for field, value in (("name", name), ("email", email)) if not value]
    if blank:
        raise ValidationError("Validation failed", errors={"missing_fields": blank})
    role = require_choice(data, "role", ROLES, default="staff")
    company_id = parse_int(data.get("company_id"), "company_id")
    manager_id = parse_int(data.get("manager_id"), "manager_id")

    if not is_admin(caller):
        # managers only onboard staff into their own company
        if role != "staff":
            raise Forbidden("Managers can only create staff users")
        company_id = caller.company_id
        manager_id = manager_id or caller.id

    _check_email_free(email)
    _check_company(company_id)
    if manager_id is not None:
        _load_user(manager_id)

    with atomic("create user"):
        user = User(
            name=name,
            email=email,
            password=hash_password(password),
            role=role,
            company_id=company_id,
            manager_id=manager_id,
            is_active=data.get("is_active", True),
        )
        db.session.add(user)
        adjust_user_count(company_id, +1)
        db.session.flush()
        log_action(caller, "USER_CREATE", "user", user.id, meta={"role": role, "company_id": company_id})

    return user


def update_user(caller, user_id, data) -> User:
    user = _load_user(user_id)
    if caller.id != user.id:
        ensure(can_manage_user(caller, user), "Not authorized to update this user")

    changes = {}
    if "name" in data and data.get("name"):
        changes["name"] = parse_text(data["name"], "name")
    if "email" in data and data.get("email"):
        email = parse_text(data["email"], "email").lower()
        if email != user.email:
            _check_email_free(email, exclude_id=user.id)
        changes["email"] = email
    if "password" in data and data.get("password"):
        changes["password"] = hash_password(parse_text(data["password"], "password", strip=False))

    # role, company, manager and activation are administrative fields
    admin_fields = [f for f in ("role", "company_id", "manager_id", "is_active") if f in data]
    if admin_fields and not is_admin(caller):
        raise Forbidden("Only admins can change role, company, manager or activation")
    if "role" in data:
        changes["role"] = require_choice(data, "role", ROLES) or user.role
    if "company_id" in data:
        changes["company_id"] = parse_int(data.get("company_id"), "company_id")
        _check_company(changes["company_id"])
    if "manager_id" in data:
        changes["manager_id"] = parse_int(data.get("manager_id"), "manager_id")
        if changes["manager_id"] is not None:
            _load_user(changes["manager_id"])
    if "is_active" in data:
        changes["is_active"] = bool(data.get("is_active"))

    old_company_id = user.company_id
    new_company_id = changes.get("company_id", old_company_id)

    with atomic("update user"):
        for field, value in changes.items():
            setattr(user, field, value)
        if new_company_id != old_company_id:
            adjust_user_count(old_company_id, -1)
            adjust_user_count(new_company_id, +1)
        log_action(caller, "USER_UPDATE", "user", user.id, meta={
            "fields": sorted(f for f in changes if f != "password"),
        })

    return user


def delete_user(caller, user_id):
    user = _load_user(user_id)
    ensure(caller.role != "staff" and can_manage_user(caller, user), "Not authorized to delete this user")

    # a task references both its assignee and its creator
    linked = {
        "assigned_tasks": Task.query.filter_by(assigned_to_id=user.id).count(),
        "created_tasks": Task.query.filter_by(assigned_by_id=user.id).count(),
    }
    linked = {k: v for k, v in linked.items() if v}
    if linked:
        raise InvalidState(
            f"Cannot delete user with {sum(linked.values())} linked task(s). Reassign tasks first.",
            errors=linked
        )

    with atomic("delete user"):
        released = User.query.filter_by(manager_id=user.id).update({"manager_id": None}, synchronize_session="fetch")
        dropped = Report.query.filter_by(staff_id=user.id).delete(synchronize_session="fetch")
        adjust_user_count(user.company_id, -1)
        log_action(caller, "USER_DELETE", "user", user.id, meta={
            "email": user.email, "released_staff": released, "saved_reports": dropped,
        })
        db.session.delete(user)

    current_app.logger.info("User %s deleted by %s", user_id, caller.id)


# -----------------------------
# Routes
# -----------------------------
@users_bp.route("", methods=["GET"])
@token_required
def list_users():
    query = User.query
    if g.user.role == "manager":
        query = query.filter(User.company_id == g.user.company_id)
    elif g.user.role == "staff":
        query = query.filter(User.id == g.user.id)

    role = request.args.get("role")
    if role:
        query = query.filter(User.role == require_choice({"role": role}, "role", ROLES))
    company_id = parse_int(request.args.get("company_id"), "company_id")
    if company_id is not None:
        query = query.filter(User.company_id == company_id)

    users = query.order_by(User.created_at.desc(), User.id.desc()).all()
    return ok(users=[u.to_dict() for u in users], total=len(users))


@users_bp.route("", methods=["POST"])
@token_required
@role_required(["admin", "manager"])
def create_user_route():
    user = create_user(g.user, json_body())
    return ok(code=201, user=user.to_dict())


@users_bp.route("/<int:user_id>", methods=["PUT", "PATCH"])
@token_required
def update_user_route(user_id):
    user = update_user(g.user, user_id, json_body())
    return ok(user=user.to_dict())


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@token_required
@role_required(["admin", "manager"])
def delete_user_route(user_id):
    delete_user(g.user, user_id)
    return ok(message="User deleted successfully")

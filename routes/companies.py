from flask import Blueprint, g, current_app

from models import db
from models.company import Company
from models.user import User
from tasks.models import Task, Report
from utils.audit_logger import log_action
from utils.decorators import token_required, role_required
from utils.errors import Conflict, InvalidState, NotFound, ValidationError
from utils.responses import ok
from utils.scoping import ensure, is_admin, same_company
from utils.transaction import atomic
from utils.validators import require_fields, require_choice, parse_text, json_body

companies_bp = Blueprint("companies", __name__)

COMPANY_STATUSES = ("active", "inactive")


def _slugify(name: str) -> str:
    s = (name or "").strip().lower()
    s = "".join(ch if (ch.isalnum() or ch in ["-", " "]) else "" for ch in s)
    s = "-".join([p for p in s.split() if p])
    return (s[:100] or "company")


def _load_company(company_id) -> Company:
    company = db.session.get(Company, company_id)
    if not company:
        raise NotFound("Company not found")
    return company


def _check_slug_free(slug, exclude_id=None):
    existing = Company.query.filter_by(slug=slug).first()
    if existing and existing.id != exclude_id:
        raise Conflict(f"Company slug '{slug}' already exists")


@companies_bp.route("", methods=["GET"])
@token_required
def list_companies():
    query = Company.query
    if not is_admin(g.user):
        query = query.filter(Company.id == g.user.company_id)
    items = query.order_by(Company.id.desc()).all()
    return ok(companies=[c.to_dict() for c in items])


@companies_bp.route("/<int:company_id>", methods=["GET"])
@token_required
def get_company(company_id):
    company = _load_company(company_id)
    ensure(is_admin(g.user) or same_company(g.user, company.id), "Not authorized to view this company")
    return ok(company=company.to_dict())


@companies_bp.route("", methods=["POST"])
@token_required
@role_required(["admin"])
def create_company():
    data = json_body()
    require_fields(data, ["name"])

    name = parse_text(data["name"], "name")
    slug = _slugify(parse_text(data.get("slug"), "slug") or name)
    _check_slug_free(slug)

    with atomic("create company"):
        company = Company(name=name, slug=slug, status="active", user_count=0)
        db.session.add(company)
        db.session.flush()
        log_action(g.user, "COMPANY_CREATE", "company", company.id, meta={"slug": slug})

    return ok(code=201, message="Company created", company=company.to_dict())


@companies_bp.route("/<int:company_id>", methods=["PUT", "PATCH"])
@token_required
@role_required(["admin"])
def update_company(company_id):
    company = _load_company(company_id)
    data = json_body()

    changes = {}
    if "name" in data:
        name = parse_text(data.get("name"), "name")
        if not name:
            raise ValidationError("Validation failed", errors={"missing_fields": ["name"]})
        changes["name"] = name
    if "slug" in data:
        slug = _slugify(parse_text(data.get("slug"), "slug"))
        _check_slug_free(slug, exclude_id=company.id)
        changes["slug"] = slug
    if "status" in data:
        changes["status"] = require_choice(data, "status", COMPANY_STATUSES) or company.status

    with atomic("update company"):
        for field, value in changes.items():
            setattr(company, field, value)
        log_action(g.user, "COMPANY_UPDATE", "company", company.id, meta={"fields": sorted(changes)})

    return ok(company=company.to_dict())


@companies_bp.route("/<int:company_id>", methods=["DELETE"])
@token_required
@role_required(["admin"])
def delete_company(company_id):
    """
    Removes a company that owns no tasks. Its members are detached (they keep
    their accounts, without a company) and its saved reports go with it.
    """
    company = _load_company(company_id)

    tasks = Task.query.filter_by(company_id=company.id).count()
    if tasks:
        raise InvalidState(
            f"Cannot delete company with {tasks} task(s). Delete or move them first.",
            errors={"tasks": tasks}
        )

    with atomic("delete company"):
        detached = User.query.filter_by(company_id=company.id).update({"company_id": None}, synchronize_session="fetch")
        reports = Report.query.filter_by(company_id=company.id).delete(synchronize_session="fetch")
        log_action(g.user, "COMPANY_DELETE", "company", company.id, meta={
            "slug": company.slug, "detached_users": detached, "saved_reports": reports,
        })
        db.session.delete(company)

    current_app.logger.info("Company %s deleted by %s (%d users detached)", company_id, g.user.id, detached)
    return ok(message="Company deleted", detached_users=detached)

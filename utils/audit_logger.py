from flask import request, has_request_context
from models import db
from models.audit_log import AuditLog


def log_action(actor, action, entity, entity_id=None, meta=None):
    """
    Adds an audit row to the current session.

    The row is committed (or rolled back) together with the write it
    describes, so callers invoke this inside their transaction scope.
    Never store passwords in meta.
    """
    user = actor
    in_request = has_request_context()

    log = AuditLog(
        company_id=getattr(user, "company_id", None),
        user_id=getattr(user, "id", None),
        role=getattr(user, "role", "system") if user else "system",

        action=action,
        entity=entity,
        entity_id=entity_id,

        method=request.method if in_request else None,
        path=request.path if in_request else None,

        ip_address=request.remote_addr if in_request else None,
        user_agent=request.headers.get("User-Agent") if in_request else None,
        meta=meta
    )
    db.session.add(log)
    return log

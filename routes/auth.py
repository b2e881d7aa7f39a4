from flask import Blueprint, g, current_app

from models.user import User
from utils.auth_utils import verify_password, generate_token
from utils.decorators import token_required
from utils.responses import ok, fail
from utils.validators import require_fields, parse_text, json_body

auth_bp = Blueprint("auth", __name__)


# -----------------------------
# LOGIN
# -----------------------------
@auth_bp.route("/login", methods=["POST"])
def login():
    data = json_body()
    require_fields(data, ["email", "password"])

    email = parse_text(data["email"], "email").lower()
    password = parse_text(data["password"], "password", strip=False)
    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(user.password, password):
        current_app.logger.info("Failed login for %s", email)
        return fail("Invalid email or password", 401)
    if not user.is_active:
        return fail("Account is inactive", 403)

    return ok(token=generate_token(user), user=user.to_dict())


# -----------------------------
# PROFILE
# -----------------------------
@auth_bp.route("/profile", methods=["GET"])
@token_required
def profile():
    return ok(user=g.user.to_dict())

import jwt
import datetime
from flask import current_app
from werkzeug.security import generate_password_hash, check_password_hash


def hash_password(password):
    return generate_password_hash(password)


def verify_password(hash, password):
    return check_password_hash(hash, password)


def generate_token(user):
    payload = {
        "user_id": user.id,
        "email": user.email,
        "role": user.role,
        "company_id": user.company_id,
        "exp": datetime.datetime.now(datetime.timezone.utc)
        + datetime.timedelta(hours=current_app.config.get("JWT_EXPIRY_HOURS", 24))
    }
    return jwt.encode(payload, current_app.config['SECRET_KEY'], algorithm="HS256")

from flask import request, g, current_app
import jwt
from functools import wraps

from models import db
from models.user import User
from utils.responses import fail


def token_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        token = None
        auth_header = request.headers.get('Authorization')

        if auth_header and auth_header.startswith('Bearer '):
            token = auth_header.split(' ', 1)[1].strip()

        if not token or token.lower() in ['null', 'undefined']:
            return fail('Token is missing', 401)
        try:
            data = jwt.decode(token, current_app.config['SECRET_KEY'], algorithms=["HS256"])
        except jwt.ExpiredSignatureError:
            return fail('Token expired', 401)
        except jwt.InvalidTokenError as e:
            current_app.logger.info("Auth failed: %s", e)
            return fail('Token is invalid', 401)

        g.user = db.session.get(User, data.get('user_id'))
        if not g.user or not g.user.is_active:
            return fail('User not found or inactive', 401)
        return f(*args, **kwargs)
    return decorated


def role_required(allowed_roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if g.user.role not in allowed_roles:
                return fail('Permission denied', 403)
            return f(*args, **kwargs)
        return decorated_function
    return decorator

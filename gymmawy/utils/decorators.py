# ------- gymmawy/utils/decorators.py -------
from functools import wraps

from flask import g
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ..errors import Forbidden, Unauthorized
from ..extensions import db
from ..model.user import User

ROLE_LEVEL = {"user": 1, "admin": 2}


def _current_user(optional=False):
    verify_jwt_in_request(optional=optional)
    uid = get_jwt_identity()
    try:
        uid = int(uid)
    except (TypeError, ValueError):
        uid = None
    cached = g.get("current_user")
    if cached is not None and uid is not None and cached.id == uid:
        return cached
    user = db.session.get(User, uid) if uid else None
    if user is not None:
        g.current_user = user
    return user


def current_user():
    u = _current_user()
    if not u:
        raise Unauthorized("Unauthorized")
    return u


def auth_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        current_user()
        return fn(*args, **kwargs)
    return wrapper


def role_required(*roles, message: str | None = None):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            u = current_user()
            if u.role not in roles:
                raise Forbidden(message or "Forbidden")
            return fn(*args, **kwargs)
        return wrapper
    return decorator


admin_required = role_required("admin", message="Admin access required")


def is_admin(user) -> bool:
    return bool(user) and ROLE_LEVEL.get(user.role, 0) >= ROLE_LEVEL["admin"]

from functools import wraps
from flask import g, jsonify

def has_role(user, *role_names: str) -> bool:
    if user is None:
        return False
    return user.role == "ADMIN" or user.role in role_names

def require_roles(*role_names: str):
    """
    Usage: @require_roles("MENTOR")
    ADMIN passes every check.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                return jsonify(error="Authentication required"), 401

            if not has_role(user, *role_names):
                return jsonify(error="Forbidden"), 403

            return fn(*args, **kwargs)
        return wrapper
    return decorator

from functools import wraps
from flask import g

from utils.errors import Forbidden, Unauthorized

PLAYER = "PLAYER"
OWNER = "OWNER"
ADMIN = "ADMIN"

ALL_ROLES = (PLAYER, OWNER, ADMIN)


def has_any_role(user, role_names) -> bool:
    """ADMIN passes every role check."""
    if user is None:
        return False
    held = {r.name for r in user.roles}
    return ADMIN in held or bool(held.intersection(role_names))


def require_roles(*role_names: str):
    """
    Usage: @require_roles(OWNER)
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                raise Unauthorized()
            if not has_any_role(user, role_names):
                raise Forbidden(f"Requires role: {', '.join(role_names)}")
            return fn(*args, **kwargs)
        return wrapper
    return decorator

from functools import wraps
from flask import g
from security.session import get_session_from_request
from models import db
from models.user import User
from utils.errors import Unauthorized


def load_current_user():
    """Resolve g.user from the session cookie; deactivated users count as anonymous."""
    sess = get_session_from_request()
    g.session = sess
    g.user = None
    if sess is None:
        return
    user = db.session.get(User, sess.user_id)
    if user is not None and user.is_active:
        g.user = user


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            raise Unauthorized()
        return fn(*args, **kwargs)
    return wrapper

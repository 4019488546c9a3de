"""
Server-side sessions for identities verified by the external auth service.

The cookie carries a random token; only its hash is stored.
"""
import hashlib
import secrets
from datetime import datetime, timedelta
from flask import request, current_app

from models import db
from models.session import Session


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find(raw_token: str):
    return Session.query.filter_by(token_hash=_hash_token(raw_token)).first()


def create_session(user_id: int) -> str:
    """Store a new session and return the raw token for the cookie."""
    raw_token = secrets.token_urlsafe(32)
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 28800)
    db.session.add(Session(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=datetime.utcnow() + timedelta(seconds=lifetime),
    ))
    db.session.commit()
    return raw_token


def get_session_from_request():
    raw_token = request.cookies.get(current_app.config.get("AUTH_COOKIE_NAME", "turfslot_session"))
    if not raw_token:
        return None

    sess = _find(raw_token)
    now = datetime.utcnow()
    if sess is None or not sess.is_live(now, current_app.config.get("IDLE_TIMEOUT_SECONDS", 1200)):
        return None

    sess.last_seen_at = now
    db.session.commit()
    return sess


def revoke_session(raw_token: str) -> bool:
    sess = _find(raw_token) if raw_token else None
    if sess is None:
        return False
    sess.revoked = True
    db.session.commit()
    return True

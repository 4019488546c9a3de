from datetime import datetime, timedelta

from models import db
from models.session import Session
from security.session import create_session, revoke_session


def _session_for(token):
    from security.session import _hash_token
    return Session.query.filter_by(token_hash=_hash_token(token)).first()


def test_is_live_respects_idle_timeout_and_expiry(player):
    now = datetime(2026, 3, 2, 9, 0)
    sess = Session(user_id=player.id, token_hash="x" * 64, created_at=now,
                   last_seen_at=now, expires_at=now + timedelta(hours=8))

    assert sess.is_live(now + timedelta(minutes=10), idle_seconds=1200)
    assert not sess.is_live(now + timedelta(minutes=21), idle_seconds=1200)
    assert not sess.is_live(now + timedelta(hours=9), idle_seconds=10 ** 6)

    sess.revoked = True
    assert not sess.is_live(now, idle_seconds=1200)


def test_missing_cookie_is_401(client):
    resp = client.get("/bookings/me")
    assert resp.status_code == 401
    assert resp.get_json()["code"] == "AUTH_REQUIRED"


def test_session_cookie_authenticates(client, login, player):
    login(player)
    resp = client.get("/bookings/me")
    assert resp.status_code == 200


def test_revoked_session_no_longer_authenticates(client, login, player):
    token = login(player)
    assert revoke_session(token) is True
    assert _session_for(token).revoked

    resp = client.get("/bookings/me")
    assert resp.status_code == 401


def test_revoke_unknown_token(app):
    assert revoke_session("not-a-token") is False
    assert revoke_session("") is False


def test_idle_session_is_rejected(client, app, player):
    token = create_session(player.id)
    sess = _session_for(token)
    sess.last_seen_at = datetime.utcnow() - timedelta(seconds=app.config["IDLE_TIMEOUT_SECONDS"] + 60)
    db.session.commit()

    client.set_cookie(app.config["AUTH_COOKIE_NAME"], token)
    assert client.get("/bookings/me").status_code == 401


def test_deactivated_user_is_anonymous(client, login, player):
    login(player)
    player.is_active = False
    db.session.commit()
    assert client.get("/bookings/me").status_code == 401


def test_display_name_falls_back_to_email(app):
    from models.user import User

    assert User(email="walkin@example.com").display_name == "walkin"
    assert User(email="a@b.c", full_name=" Asha ").display_name == "Asha"

"""
Pytest configuration and shared fixtures.
"""

import hashlib
import hmac
import json
import threading
import time
from datetime import datetime

import pytest

from app import create_app
from models import db
from models.user import Role, User
from security.session import create_session
from services.payment_provider import PaymentProvider
from services.templates import create_turf

# Monday 2 March 2026, 09:00 local
FIXED_NOW = datetime(2026, 3, 2, 9, 0)

KEY_SECRET = "test_key_secret"
WEBHOOK_SECRET = "whsec_test_secret"


class RecordingNotifier:
    """Stands in for the SMTP-backed sender."""

    def __init__(self):
        self.confirmations = []
        self.reviews = []

    def send_booking_confirmation(self, booking, recipient):
        self.confirmations.append((booking.id, recipient))
        return True

    def send_post_stay_review(self, booking, recipient):
        self.reviews.append((booking.id, recipient))
        return True


class FakePaymentProvider(PaymentProvider):
    """Real signature checks, no network for order creation."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.orders = []

    def create_order(self, amount, currency, metadata=None):
        order_id = f"pi_test_{len(self.orders) + 1}"
        self.orders.append((order_id, amount, currency, metadata))
        return order_id


def sign_webhook(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    timestamp = int(timestamp or time.time())
    signed = f"{timestamp}.{payload}".encode()
    v1 = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={v1}"


def webhook_payload(event_type, obj, event_id="evt_test_1") -> str:
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}})


@pytest.fixture()
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "SCHEDULER_ENABLED": False,
        "PAYMENT_KEY_SECRET": KEY_SECRET,
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "STRIPE_SECRET_KEY": "sk_test_123",
    })
    app.extensions["notifier"] = RecordingNotifier()
    app.extensions["payment_provider"] = FakePaymentProvider(
        secret_key="sk_test_123",
        webhook_secret=WEBHOOK_SECRET,
        key_secret=KEY_SECRET,
    )
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def notifier(app):
    return app.extensions["notifier"]


@pytest.fixture()
def provider(app):
    return app.extensions["payment_provider"]


def _make_user(email, role_name, full_name=None, phone=None):
    user = User(email=email, full_name=full_name, phone_number=phone)
    user.roles.append(Role.query.filter_by(name=role_name).first())
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture()
def owner(app):
    return _make_user("owner@example.com", "OWNER", "Turf Owner", "9000000001")


@pytest.fixture()
def other_owner(app):
    return _make_user("rival@example.com", "OWNER", "Rival Owner", "9000000002")


@pytest.fixture()
def player(app):
    return _make_user("player@example.com", "PLAYER", "Asha Player", "9000000003")


@pytest.fixture()
def turf(owner):
    turf = create_turf(owner, "Greenfield Arena", "Pune", 1200)
    turf.status = "VERIFIED"
    db.session.commit()
    return turf


@pytest.fixture()
def login(client, app):
    def _login(user):
        token = create_session(user.id)
        client.set_cookie(app.config["AUTH_COOKIE_NAME"], token)
        return token
    return _login


def run_concurrently(app, *calls, timeout=10):
    """
    Run each ``call(barrier)`` in its own thread and app context, so every
    call gets its own database session. Calls wait on the barrier right
    before the step that should overlap. Returns one ("ok", value) or
    ("error", exc) per call, in order.
    """
    db.session.commit()
    barrier = threading.Barrier(len(calls), timeout=timeout)
    outcomes = [None] * len(calls)

    def worker(index, call):
        with app.app_context():
            try:
                outcomes[index] = ("ok", call(barrier))
            except Exception as exc:
                outcomes[index] = ("error", exc)

    threads = [threading.Thread(target=worker, args=(i, c)) for i, c in enumerate(calls)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout)
    db.session.expire_all()
    return outcomes

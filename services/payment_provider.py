"""
Payment provider client (Stripe).

The rest of the app only sees provider-neutral events:
``payment.captured``, ``payment.failed`` and ``order.paid``.
"""
import hashlib
import hmac
import json
import logging
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

import stripe
from flask import current_app

from utils.errors import InfrastructureError, InvalidSignature

logger = logging.getLogger(__name__)

PaymentEvent = namedtuple("PaymentEvent", ["kind", "order_id", "payment_id", "provider_event_id"])

PAYMENT_CAPTURED = "payment.captured"
PAYMENT_FAILED = "payment.failed"
ORDER_PAID = "order.paid"


def to_minor_units(amount) -> int:
    """Rupees (Decimal or number) to paise."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def sign_payment(secret: str, order_id: str, payment_id: str) -> str:
    message = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class PaymentProvider:
    # seconds a signed webhook stays valid
    tolerance = 300

    def __init__(self, secret_key=None, webhook_secret=None, key_secret=None):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.key_secret = key_secret

    @classmethod
    def from_config(cls, config):
        return cls(
            secret_key=config.get("STRIPE_SECRET_KEY"),
            webhook_secret=config.get("STRIPE_WEBHOOK_SECRET"),
            key_secret=config.get("PAYMENT_KEY_SECRET"),
        )

    def create_order(self, amount, currency, metadata=None) -> str:
        if not self.secret_key:
            raise InfrastructureError("Payment provider not configured (STRIPE_SECRET_KEY)")
        stripe.api_key = self.secret_key
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency.lower(),
                metadata={k: str(v) for k, v in (metadata or {}).items()},
            )
        except stripe.StripeError:
            logger.exception("payment order creation failed")
            raise InfrastructureError("Payment provider unavailable, please retry")
        return intent["id"]

    def verify_payment_signature(self, order_id, payment_id, signature) -> bool:
        if not self.key_secret or not signature:
            return False
        expected = sign_payment(self.key_secret, order_id, payment_id)
        return hmac.compare_digest(expected, str(signature))

    def parse_webhook(self, body: bytes, sig_header):
        """
        Verify the signature over the raw body and translate the event.
        Returns None for event types we don't act on.
        """
        if not self.webhook_secret:
            raise InvalidSignature("Webhook secret not configured")
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        try:
            stripe.WebhookSignature.verify_header(body, sig_header or "", self.webhook_secret, self.tolerance)
            event = json.loads(body)
        except (stripe.SignatureVerificationError, ValueError):
            raise InvalidSignature("Invalid webhook signature")

        event_type = event["type"]
        obj = event["data"]["object"]

        if event_type == "payment_intent.succeeded":
            return PaymentEvent(PAYMENT_CAPTURED, obj["id"], obj.get("latest_charge") or obj["id"], event.get("id"))
        if event_type == "payment_intent.payment_failed":
            return PaymentEvent(PAYMENT_FAILED, obj["id"], None, event.get("id"))
        if event_type == "checkout.session.completed":
            order_id = obj.get("payment_intent") or obj["id"]
            return PaymentEvent(ORDER_PAID, order_id, order_id, event.get("id"))

        logger.info("ignoring payment webhook %s", event_type)
        return None


def get_payment_provider() -> PaymentProvider:
    return current_app.extensions["payment_provider"]

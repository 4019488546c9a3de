"""
Payment reconciliation against the booking ledger.

Client-side verification and provider webhooks both end up in
``apply_payment_event``, which is idempotent: whichever arrives second is a
no-op and the customer gets exactly one confirmation.
"""
import logging
from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from models import db
from models.booking import Booking, BookingStatus, PaymentMethod, PaymentStatus
from services.identity import owns_turf
from services.notifications import get_notifier, recipient_for
from services.payment_provider import (
    ORDER_PAID,
    PAYMENT_CAPTURED,
    PAYMENT_FAILED,
    PaymentEvent,
    get_payment_provider,
)
from utils.audit import log_event
from utils.errors import Forbidden, InfrastructureError, InvalidSignature, NotFound, PolicyViolation, ValidationError

logger = logging.getLogger(__name__)


def _booking_for_order(order_id) -> Booking:
    booking = Booking.query.filter_by(payment_order_id=order_id).first() if order_id else None
    if booking is None:
        raise NotFound("Booking not found for this order")
    return booking


def _commit(what):
    try:
        db.session.commit()
    except OperationalError:
        db.session.rollback()
        logger.exception("data store failure while saving %s", what)
        raise InfrastructureError("Payment state could not be saved, please retry")
    except Exception:
        db.session.rollback()
        raise


def create_payment_order(booking, actor):
    if booking is None:
        raise NotFound("Booking not found")
    if actor is None or booking.customer_id != actor.id:
        raise Forbidden("Not authorized to pay for this booking")
    if booking.payment_status == PaymentStatus.PAID.value:
        raise PolicyViolation("Booking already paid")
    if booking.status != BookingStatus.CONFIRMED.value:
        raise PolicyViolation("Only confirmed bookings can be paid online")

    currency = current_app.config.get("PAYMENT_CURRENCY", "inr")
    order_id = get_payment_provider().create_order(
        booking.total_amount,
        currency,
        metadata={"booking_id": booking.id, "turf_id": booking.turf_id, "user_id": actor.id},
    )
    booking.payment_order_id = order_id
    booking.payment_amount = booking.total_amount
    log_event("PAYMENT_ORDER_CREATED", user_id=actor.id, entity="booking", entity_id=booking.id,
              metadata={"order_id": order_id}, commit=False)
    _commit("payment order")

    return {
        "order_id": order_id,
        "amount": float(booking.total_amount),
        "currency": currency.upper(),
        "booking_id": booking.id,
    }


def verify_payment(order_id, payment_id, signature, actor=None) -> Booking:
    """Client callback after checkout. A bad signature changes nothing."""
    if not order_id or not payment_id or not signature:
        raise ValidationError("order_id, payment_id and signature are required")

    if not get_payment_provider().verify_payment_signature(order_id, payment_id, signature):
        log_event(
            "PAYMENT_INVALID_SIGNATURE",
            user_id=actor.id if actor else None,
            entity="payment",
            metadata={"order_id": order_id, "payment_id": payment_id},
        )
        logger.warning("invalid payment signature for order %s", order_id)
        raise InvalidSignature("Invalid payment signature")

    booking = _booking_for_order(order_id)
    if actor is None or booking.customer_id != actor.id:
        raise Forbidden("Not authorized to verify this payment")
    apply_payment_event(
        PaymentEvent(PAYMENT_CAPTURED, order_id, payment_id, None),
        signature=signature,
        booking=booking,
    )
    return booking


def _claim_payment_state(booking, values) -> bool:
    """
    Compare-and-swap on ``payment_status``: the UPDATE only matches while the
    booking is not yet paid, so of two concurrent captures exactly one wins.
    """
    stmt = (
        update(Booking)
        .where(Booking.id == booking.id, Booking.payment_status != PaymentStatus.PAID.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.session.execute(stmt)
    except OperationalError:
        db.session.rollback()
        logger.exception("data store failure while settling booking %s", booking.id)
        raise InfrastructureError("Payment state could not be saved, please retry")
    return result.rowcount == 1


def apply_payment_event(event, signature=None, booking=None, now=None):
    """
    Fold one provider-neutral payment event into the ledger.

    Returns the booking, or None when the order is unknown (webhooks for
    orders we never created are acknowledged and dropped).
    """
    now = now or datetime.now()
    if booking is None:
        booking = Booking.query.filter_by(payment_order_id=event.order_id).first()
    if booking is None:
        logger.info("payment event %s for unknown order %s", event.kind, event.order_id)
        return None

    if booking.payment_status == PaymentStatus.PAID.value:
        return booking

    if event.kind in (PAYMENT_CAPTURED, ORDER_PAID):
        values = {
            "payment_status": PaymentStatus.PAID.value,
            "payment_method": PaymentMethod.ONLINE.value,
            "payment_id": event.payment_id or booking.payment_id,
            "payment_amount": booking.total_amount,
            "paid_at": now,
            "updated_at": datetime.utcnow(),
        }
        if signature:
            values["payment_signature"] = signature
        if not _claim_payment_state(booking, values):
            db.session.rollback()
            logger.info("order %s already settled by a concurrent event", event.order_id)
            return booking
        log_event("PAYMENT_PAID", user_id=booking.customer_id, entity="booking", entity_id=booking.id,
                  metadata={"order_id": event.order_id, "payment_id": values["payment_id"], "via": event.kind},
                  commit=False)
        _commit("payment capture")
        get_notifier().send_booking_confirmation(booking, recipient_for(booking))
        return booking

    if event.kind == PAYMENT_FAILED:
        if not _claim_payment_state(booking, {"payment_status": PaymentStatus.FAILED.value,
                                              "updated_at": datetime.utcnow()}):
            db.session.rollback()
            return booking
        log_event("PAYMENT_FAILED", user_id=booking.customer_id, entity="booking", entity_id=booking.id,
                  metadata={"order_id": event.order_id}, commit=False)
        _commit("payment failure")
        return booking

    logger.info("unhandled payment event kind %s", event.kind)
    return booking


def handle_webhook(body: bytes, sig_header):
    """
    Verify and apply a provider webhook. Signature failures propagate as
    InvalidSignature; anything after verification is logged and swallowed so
    the provider doesn't retry forever.
    """
    event = get_payment_provider().parse_webhook(body, sig_header)
    if event is None:
        return None
    try:
        return apply_payment_event(event)
    except Exception:
        db.session.rollback()
        logger.exception("payment webhook processing failed for order %s", event.order_id)
        return None


def payment_status(order_id, actor):
    booking = _booking_for_order(order_id)
    if actor is None or (booking.customer_id != actor.id and not owns_turf(actor, booking.turf)):
        raise Forbidden("Not authorized to view this payment")
    return {
        "order_id": order_id,
        "booking_id": booking.id,
        "payment_status": booking.payment_status,
        "status": booking.status,
        "payment_id": booking.payment_id,
        "paid_at": booking.paid_at.isoformat() if booking.paid_at else None,
    }

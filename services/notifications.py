"""
Customer notifications. Fire-and-forget: failures are logged and reported
as False, never raised into a booking operation.
"""
import logging

from flask import current_app

from models import db
from models.user import User
from utils.emailer import send_email

logger = logging.getLogger(__name__)


def render_receipt(booking) -> str:
    """Plain-text receipt attached to the confirmation mail."""
    turf = booking.turf
    paid = booking.payment_status == "paid"
    lines = [
        "BOOKING RECEIPT",
        "",
        f"Booking #{booking.id}    Code {booking.booking_code}",
        f"Turf:      {turf.name if turf else booking.turf_id}",
        f"Location:  {turf.location if turf else '-'}",
        f"Date:      {booking.booking_date.isoformat()}",
        f"Time:      {booking.time_slot}",
        f"Duration:  {booking.duration_minutes} min",
        f"Rate:      {booking.price_per_hour} / hour",
        f"Total:     {booking.total_amount}",
        "",
        f"Payment:   {booking.payment_status.upper()} ({(booking.payment_method or 'online').upper()})",
    ]
    if paid:
        lines.append(f"Reference: {booking.payment_id or '-'}")
        if booking.paid_at:
            lines.append(f"Paid at:   {booking.paid_at.isoformat(timespec='minutes')}")
    lines += ["", f"Customer:  {booking.customer_name} ({booking.customer_phone})"]
    return "\n".join(lines) + "\n"


class NotificationSender:
    def send_booking_confirmation(self, booking, recipient) -> bool:
        subject = "Your booking is confirmed"
        body = (
            f"Hi {booking.customer_name or 'Player'},\n\n"
            f"Your booking on {booking.booking_date.isoformat()} "
            f"({booking.time_slot}) is confirmed.\n"
            f"Check-in code: {booking.booking_code}\n"
            f"Amount: {booking.total_amount}\n"
            f"Payment method: {(booking.payment_method or 'online').upper()}\n"
        )
        receipt = (f"receipt-{booking.booking_code or booking.id}.txt", render_receipt(booking))
        return self._deliver("confirmation", booking, recipient, subject, body, attachments=[receipt])

    def send_post_stay_review(self, booking, recipient) -> bool:
        base_url = current_app.config.get("FRONTEND_BASE_URL", "").rstrip("/")
        review_url = f"{base_url}/turfs/{booking.turf_id}?review=1"
        subject = "Thanks for playing! Rate your turf"
        body = (
            "We hope you enjoyed your session.\n"
            f"Please rate the turf and share your feedback: {review_url}\n"
        )
        return self._deliver("review", booking, recipient, subject, body)

    def _deliver(self, kind, booking, recipient, subject, body, attachments=None) -> bool:
        if not recipient:
            logger.info("%s email skipped for booking %s: no recipient", kind, booking.id)
            return False
        try:
            sent, error = send_email(recipient, subject, body, attachments=attachments)
        except Exception:
            logger.exception("%s email crashed for booking %s", kind, booking.id)
            return False
        if not sent:
            logger.warning("%s email failed for booking %s: %s", kind, booking.id, error)
        return sent


def get_notifier() -> NotificationSender:
    return current_app.extensions["notifier"]


def recipient_for(booking):
    if booking.customer_email:
        return booking.customer_email
    if booking.customer_id:
        user = db.session.get(User, booking.customer_id)
        return user.email if user else None
    return None

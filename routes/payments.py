from flask import Blueprint, request, jsonify, g

from services import payments as payment_service
from services.bookings import get_booking
from utils.auth_context import login_required
from utils.errors import InvalidSignature, ValidationError

payments_bp = Blueprint("payments", __name__, url_prefix="/payment")


@payments_bp.post("/create-order")
@login_required
def create_order():
    data = request.get_json(silent=True) or {}
    if not data.get("booking_id"):
        raise ValidationError("booking_id is required")
    order = payment_service.create_payment_order(get_booking(data["booking_id"]), g.user)
    return jsonify(order), 201


@payments_bp.post("/verify")
@login_required
def verify():
    data = request.get_json(silent=True) or {}
    booking = payment_service.verify_payment(
        data.get("order_id"),
        data.get("payment_id"),
        data.get("signature"),
        actor=g.user,
    )
    return jsonify(message="Payment verified", booking=booking.to_dict()), 200


@payments_bp.get("/status/<order_id>")
@login_required
def status(order_id):
    return jsonify(payment_service.payment_status(order_id, g.user)), 200


@payments_bp.post("/webhook")
def webhook():
    sig_header = request.headers.get("Stripe-Signature")
    try:
        payment_service.handle_webhook(request.get_data(), sig_header)
    except InvalidSignature as exc:
        return jsonify(error=exc.message), 400
    return jsonify(received=True), 200

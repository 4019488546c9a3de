from flask import Blueprint, request, jsonify, g

from security.rbac import require_roles
from services import bookings as booking_service
from services.templates import get_turf
from utils.auth_context import login_required
from utils.errors import ValidationError

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


# ---------- CUSTOMER ----------
@booking_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    turf_id = data.get("turf_id")
    if not turf_id or not data.get("date"):
        raise ValidationError("turf_id, date, start_time and end_time are required")

    booking = booking_service.create_booking(
        get_turf(turf_id),
        data.get("date"),
        data.get("start_time"),
        data.get("end_time"),
        actor=g.user,
        payment_method=data.get("payment_method"),
        notes=data.get("notes"),
    )
    return jsonify(message="Booking created", booking=booking.to_dict()), 201


@booking_bp.get("/me")
@login_required
def my_bookings():
    rows = booking_service.list_customer_bookings(g.user, status=request.args.get("status"))
    return jsonify([b.to_dict() for b in rows]), 200


# ---------- OWNER: across all turfs ----------
@booking_bp.get("/owner")
@require_roles("OWNER")
def owner_bookings():
    args = request.args
    rows, total = booking_service.list_owner_bookings(
        g.user,
        day=args.get("date"),
        status=args.get("status"),
        turf_id=args.get("turf_id", type=int),
        page=args.get("page"),
        limit=args.get("limit"),
    )
    return jsonify(count=len(rows), total=total, bookings=[b.to_dict() for b in rows]), 200


@booking_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id):
    booking = booking_service.get_booking_for(g.user, booking_id)
    return jsonify(booking.to_dict()), 200


@booking_bp.post("/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id):
    data = request.get_json(silent=True) or {}
    booking = booking_service.get_booking(booking_id)
    booking = booking_service.cancel_booking(booking, g.user, data.get("reason"))
    return jsonify(message="Booking cancelled", booking=booking.to_dict()), 200


# ---------- OWNER ----------
@booking_bp.post("/checkin")
@login_required
def check_in():
    data = request.get_json(silent=True) or {}
    booking = booking_service.check_in(
        data.get("booking_code"),
        g.user,
        turf_id=data.get("turf_id"),
        day=data.get("date"),
    )
    return jsonify(message="Checked in", booking=booking.to_dict()), 200


@booking_bp.post("/<int:booking_id>/no-show")
@login_required
def no_show(booking_id):
    booking = booking_service.mark_no_show(booking_service.get_booking(booking_id), g.user)
    return jsonify(booking.to_dict()), 200

from flask import Blueprint, request, jsonify, g

from models import db
from security.rbac import require_roles
from services import bookings as booking_service
from services import templates
from services.availability import check_slot_availability, describe_day, get_available_slots
from services.identity import require_owner
from services.reconciler import rebuild_bindings
from utils.auth_context import login_required
from utils.audit import log_event
from utils.errors import ValidationError
from utils.slot_time import parse_date

turf_bp = Blueprint("turf", __name__, url_prefix="/turfs")


def _required_date(value):
    if not value:
        raise ValidationError("date is required")
    return parse_date(value)


# ---------- PUBLIC: catalogue ----------
@turf_bp.get("")
def list_turfs():
    page, limit = templates.page_window(request.args.get("page"), request.args.get("limit"))
    rows, total = templates.list_turfs(request.args.get("location"), page=page, limit=limit)
    return jsonify(
        count=len(rows),
        total=total,
        page=page,
        pages=-(-total // limit),
        turfs=[t.to_dict() for t in rows],
    ), 200


@turf_bp.get("/mine")
@require_roles("OWNER")
def my_turfs():
    rows = templates.list_owner_turfs(g.user)
    return jsonify(count=len(rows), turfs=[t.to_dict() for t in rows]), 200


# ---------- OWNER: turf + weekly template ----------
@turf_bp.post("")
@require_roles("OWNER")
def create_turf():
    data = request.get_json(silent=True) or {}
    turf = templates.create_turf(
        g.user,
        data.get("name"),
        data.get("location"),
        data.get("price_per_hour"),
        description=(data.get("description") or "").strip() or None,
        advance_booking_days=data.get("advance_booking_days"),
    )
    return jsonify(turf.to_dict()), 201


@turf_bp.get("/<int:turf_id>")
def get_turf(turf_id):
    turf = templates.get_turf(turf_id)
    return jsonify(turf.to_dict()), 200


@turf_bp.patch("/<int:turf_id>")
@login_required
def update_turf(turf_id):
    data = request.get_json(silent=True) or {}
    turf = templates.update_turf(templates.get_turf(turf_id), g.user, data)
    return jsonify(message="Turf updated", turf=turf.to_dict()), 200


@turf_bp.get("/<int:turf_id>/schedule")
def get_schedule(turf_id):
    turf = templates.get_turf(turf_id)
    return jsonify([s.to_dict() for s in turf.schedules]), 200


@turf_bp.put("/<int:turf_id>/schedule/<weekday>")
@login_required
def put_day_schedule(turf_id, weekday):
    data = request.get_json(silent=True) or {}
    turf = templates.get_turf(turf_id)
    schedule = templates.set_day_schedule(
        turf, g.user, weekday,
        is_open=data.get("is_open", True),
        slots=data.get("slots"),
    )
    return jsonify(schedule.to_dict()), 200


@turf_bp.put("/<int:turf_id>/schedule/<weekday>/price")
@login_required
def put_slot_price(turf_id, weekday):
    data = request.get_json(silent=True) or {}
    if not data.get("start_time") or not data.get("end_time"):
        raise ValidationError("start_time and end_time are required")
    turf = templates.get_turf(turf_id)
    slot = templates.update_slot_price(
        turf, g.user, weekday, data["start_time"], data["end_time"], data.get("price"),
    )
    return jsonify(slot.to_dict()), 200


@turf_bp.post("/<int:turf_id>/slots/allocate")
@login_required
def allocate_slots(turf_id):
    data = request.get_json(silent=True) or {}
    turf = templates.get_turf(turf_id)
    added = templates.allocate_slots_for_day(turf, g.user, _required_date(data.get("date")), data.get("slots"))
    return jsonify(message="Slots allocated", slots=[s.to_dict() for s in added]), 201


# ---------- PUBLIC: availability ----------
@turf_bp.get("/<int:turf_id>/slots/available")
def available_slots(turf_id):
    turf = templates.get_turf(turf_id)
    day = _required_date(request.args.get("date"))
    return jsonify(date=day.isoformat(), slots=get_available_slots(turf, day)), 200


@turf_bp.get("/<int:turf_id>/slots/check")
def check_slot(turf_id):
    turf = templates.get_turf(turf_id)
    day = _required_date(request.args.get("date"))
    start_time = request.args.get("start_time")
    end_time = request.args.get("end_time")
    if not start_time or not end_time:
        raise ValidationError("start_time and end_time are required")
    available = check_slot_availability(turf, day, start_time, end_time)
    return jsonify(available=available), 200


# ---------- OWNER: walk-ins, slot cancel, day view ----------
@turf_bp.post("/<int:turf_id>/slots/book")
@login_required
def book_walk_in(turf_id):
    data = request.get_json(silent=True) or {}
    turf = templates.get_turf(turf_id)
    booking = booking_service.create_booking(
        turf,
        _required_date(data.get("date")),
        data.get("start_time"),
        data.get("end_time"),
        actor=g.user,
        walk_in={
            "name": data.get("customer_name"),
            "phone": data.get("customer_phone"),
            "email": data.get("customer_email"),
            "price": data.get("price"),
        },
        payment_method=data.get("payment_method"),
        notes=data.get("notes"),
    )
    return jsonify(booking.to_dict()), 201


@turf_bp.post("/<int:turf_id>/slots/cancel")
@login_required
def cancel_slot(turf_id):
    data = request.get_json(silent=True) or {}
    turf = templates.get_turf(turf_id)
    booking = booking_service.cancel_slot_booking(
        turf, g.user,
        _required_date(data.get("date")),
        data.get("start_time"),
        data.get("end_time"),
        reason=data.get("reason"),
    )
    return jsonify(booking.to_dict()), 200


@turf_bp.get("/<int:turf_id>/bookings")
@login_required
def turf_bookings(turf_id):
    turf = templates.get_turf(turf_id)
    day = request.args.get("date")
    rows = booking_service.list_turf_bookings(turf, g.user, day=day, status=request.args.get("status"))
    payload = {"bookings": [b.to_dict() for b in rows]}
    if day:
        payload["slots"] = describe_day(turf, parse_date(day))
    return jsonify(payload), 200


@turf_bp.post("/<int:turf_id>/bindings/rebuild")
@login_required
def rebuild(turf_id):
    turf = templates.get_turf(turf_id)
    require_owner(g.user, turf)
    try:
        bound = rebuild_bindings(turf)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    log_event("BINDINGS_REBUILD", user_id=g.user.id, entity="turf", entity_id=turf.id, metadata={"bound": bound})
    return jsonify(bound=bound), 200

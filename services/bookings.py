"""
Booking ledger operations: reserve, walk-in, cancel, check-in, no-show.

A reservation writes the booking row and claims the template binding in one
transaction. The partial unique index on the bookings table and the binding
compare-and-swap both turn a lost race into ``SlotConflict``; either way the
whole unit is rolled back.
"""
import logging
import secrets
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError

from models import db
from models.booking import (
    ACTIVE_STATUSES,
    Booking,
    BookingStatus,
    BookingType,
    PaymentMethod,
    PaymentStatus,
)
from models.slot import WEEKDAYS
from services import reconciler
from services.availability import is_slot_taken
from services.identity import is_bookable, owns_turf, require_owner
from services.lifecycle import transition
from services.templates import find_slot, page_window, resolve_price
from utils.audit import log_event
from utils.errors import (
    AlreadyBound,
    CancellationWindowClosed,
    Forbidden,
    InfrastructureError,
    NotFound,
    PolicyViolation,
    SlotConflict,
    SlotUnavailable,
    ValidationError,
)
from utils.slot_time import canonical_range, minutes_of, parse_date, parse_time_to_minutes, slot_bounds, slot_instants

logger = logging.getLogger(__name__)

PAYMENT_METHODS = {m.value for m in PaymentMethod}


def _sample_code() -> str:
    return str(1000 + secrets.randbelow(9000))


def generate_booking_code() -> str:
    """
    Four digits so staff can read it out at check-in. Retries a few times
    against live bookings, then settles for an unchecked sample; the code is a
    lookup aid, not the booking's key.
    """
    attempts = current_app.config.get("BOOKING_CODE_ATTEMPTS", 5)
    for _ in range(attempts):
        code = _sample_code()
        taken = (
            Booking.query
            .filter(Booking.booking_code == code, Booking.status.in_(ACTIVE_STATUSES))
            .first()
        )
        if taken is None:
            return code
    return _sample_code()


def _normalize_method(raw, default) -> str:
    method = (raw or default or "").strip().lower()
    if method not in PAYMENT_METHODS:
        return default
    return method


def _persist_reservation(turf, booking, slot):
    """Insert the booking and bind the slot as one unit."""
    db.session.add(booking)
    try:
        db.session.flush()
        reconciler.bind(turf, booking.booking_date, slot.start_time, slot.end_time, booking.id)
        log_event(
            "BOOKING_CREATE",
            user_id=booking.customer_id or booking.owner_id,
            entity="booking",
            entity_id=booking.id,
            metadata={"turf_id": turf.id, "date": booking.booking_date, "slot": booking.time_slot,
                      "type": booking.booking_type},
            commit=False,
        )
        db.session.commit()
    except (IntegrityError, AlreadyBound):
        db.session.rollback()
        logger.info("slot conflict turf=%s date=%s %s", turf.id, booking.booking_date, booking.time_slot)
        raise SlotConflict("Slot already booked")
    except OperationalError:
        db.session.rollback()
        logger.exception("data store failure while reserving turf=%s", turf.id)
        raise InfrastructureError("Booking could not be saved, please retry")
    except Exception:
        db.session.rollback()
        raise


def create_booking(turf, day, start_time, end_time, actor=None, walk_in=None,
                   payment_method=None, notes=None, now=None) -> Booking:
    """
    Reserve one slot instance.

    Online bookings (``walk_in`` is None) come from a signed-in customer and
    may target any date inside the turf's advance window. Walk-in bookings are
    entered by the turf owner and are for today only.
    """
    now = now or datetime.now()
    if turf is None:
        raise NotFound("Turf not found")
    if not start_time or not end_time:
        raise ValidationError("date, start_time and end_time are required")
    day = parse_date(day)
    slot_bounds(start_time, end_time)
    today = now.date()

    if walk_in is not None:
        require_owner(actor, turf)
        name = (walk_in.get("name") or "").strip()
        phone = (walk_in.get("phone") or "").strip()
        if not name or not phone:
            raise ValidationError("customer name and phone are required")
        if day != today:
            raise PolicyViolation("Offline bookings are allowed only for today")
        booking_type = BookingType.OFFLINE.value
        method = _normalize_method(payment_method, PaymentMethod.CASH.value)
        customer_id = None
        email = (walk_in.get("email") or "").strip().lower() or None
        price_override = walk_in.get("price")
    else:
        if actor is None:
            raise Forbidden("Authentication required")
        if day < today:
            raise PolicyViolation("Cannot book a date in the past")
        if day > today + timedelta(days=turf.advance_booking_days):
            raise PolicyViolation(f"Bookings open {turf.advance_booking_days} days in advance")
        booking_type = BookingType.ONLINE.value
        method = _normalize_method(payment_method, PaymentMethod.ONLINE.value)
        customer_id = actor.id
        name = actor.display_name
        phone = actor.phone_number or "N/A"
        email = actor.email
        price_override = None

    if not is_bookable(turf):
        raise SlotUnavailable("Turf is not accepting bookings")

    schedule = turf.schedule_for(day.weekday())
    if schedule is None or not schedule.is_open:
        raise PolicyViolation(f"No slots available on {WEEKDAYS[day.weekday()]}")

    slot = find_slot(turf, day, start_time, end_time)
    if slot is None:
        raise SlotUnavailable("Selected slot is not available")
    if day == today and parse_time_to_minutes(slot.start_time) <= minutes_of(now):
        raise PolicyViolation("Cannot book slots that have already passed")
    start_key, end_key = canonical_range(slot.start_time, slot.end_time)
    if is_slot_taken(turf, day, start_key, end_key):
        raise SlotUnavailable("Slot is not available for booking")

    if price_override not in (None, ""):
        try:
            price = int(price_override)
        except (TypeError, ValueError):
            raise ValidationError("price must be a whole number")
        if price < 0:
            raise ValidationError("price cannot be negative")
    else:
        price = resolve_price(turf, slot)

    booking = Booking(
        turf_id=turf.id,
        owner_id=turf.owner_user_id,
        customer_id=customer_id,
        customer_name=name,
        customer_phone=phone,
        customer_email=email,
        booking_date=day,
        # one spelling per range so the unique index sees "6:00 PM" and "18:00" as the same slot
        start_time=start_key,
        end_time=end_key,
        price_per_hour=price,
        status=BookingStatus.CONFIRMED.value,
        payment_status=PaymentStatus.PENDING.value,
        payment_method=method,
        booking_type=booking_type,
        notes=(notes or "").strip()[:500] or None,
    )
    booking.recompute_amount()
    booking.booking_code = generate_booking_code()

    _persist_reservation(turf, booking, slot)
    return booking


def _can_act_on(actor, booking) -> bool:
    if actor is None:
        return False
    return booking.customer_id == actor.id or owns_turf(actor, booking.turf)


def cancel_booking(booking, actor, reason=None, now=None) -> Booking:
    now = now or datetime.now()
    if booking is None:
        raise NotFound("Booking not found")
    if not _can_act_on(actor, booking):
        raise Forbidden("Not authorized to cancel this booking")

    if booking.status == BookingStatus.IN_PROGRESS.value:
        raise CancellationWindowClosed("Booking is already checked in")
    if booking.status != BookingStatus.CONFIRMED.value:
        raise CancellationWindowClosed("Booking cannot be cancelled")

    cutoff_hours = current_app.config.get("CANCEL_CUTOFF_HOURS", 2)
    start, _ = slot_instants(booking.booking_date, booking.start_time, booking.end_time)
    if (start - now).total_seconds() < cutoff_hours * 3600:
        raise CancellationWindowClosed(f"Cancellation not allowed within {cutoff_hours} hours of start")

    default_reason = "Cancelled by customer" if booking.customer_id == actor.id else "Cancelled by owner"
    try:
        transition(booking, BookingStatus.CANCELLED)
        booking.cancelled_at = now
        booking.cancelled_by = actor.id
        booking.cancellation_reason = (reason or "").strip()[:255] or default_reason
        reconciler.release(booking.turf, booking.booking_date, booking.start_time, booking.end_time,
                           booking_id=booking.id)
        log_event("BOOKING_CANCEL", user_id=actor.id, entity="booking", entity_id=booking.id,
                  metadata={"reason": booking.cancellation_reason}, commit=False)
        db.session.commit()
    except OperationalError:
        db.session.rollback()
        logger.exception("data store failure while cancelling booking %s", booking.id)
        raise InfrastructureError("Cancellation could not be saved, please retry")
    except Exception:
        db.session.rollback()
        raise
    return booking


def cancel_slot_booking(turf, actor, day, start_time, end_time, reason=None, now=None) -> Booking:
    """Owner-side cancel addressed by slot instead of booking id."""
    require_owner(actor, turf)
    day = parse_date(day)
    start_time, end_time = canonical_range(start_time, end_time)
    booking = (
        Booking.query
        .filter(
            Booking.turf_id == turf.id,
            Booking.booking_date == day,
            Booking.start_time == start_time,
            Booking.end_time == end_time,
            Booking.status != BookingStatus.CANCELLED.value,
        )
        .first()
    )
    if booking is None:
        raise NotFound("No booking for that slot")
    return cancel_booking(booking, actor, reason or "Cancelled by owner", now=now)


def find_by_code(code):
    live = (
        Booking.query
        .filter(Booking.booking_code == code, Booking.status.in_(ACTIVE_STATUSES))
        .order_by(Booking.booking_date.asc(), Booking.id.desc())
        .first()
    )
    if live is not None:
        return live
    return (
        Booking.query
        .filter(Booking.booking_code == code)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .first()
    )


def check_in(code, actor, turf_id=None, day=None, now=None) -> Booking:
    now = now or datetime.now()
    code = (str(code) if code is not None else "").strip()
    if not code:
        raise ValidationError("bookingCode is required")

    booking = find_by_code(code)
    if booking is None:
        raise NotFound("Booking not found")
    if not owns_turf(actor, booking.turf):
        raise Forbidden("Not authorized to check in this booking")

    if turf_id is not None and str(booking.turf_id) != str(turf_id):
        raise ValidationError("Booking does not belong to this turf")
    if day:
        if parse_date(day) != booking.booking_date:
            raise ValidationError("Booking is not for the selected date")

    try:
        transition(booking, BookingStatus.IN_PROGRESS)
        if booking.checked_in_at is None:
            booking.checked_in_at = now
        log_event("BOOKING_CHECKIN", user_id=actor.id, entity="booking", entity_id=booking.id, commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return booking


def mark_no_show(booking, actor) -> Booking:
    if booking is None:
        raise NotFound("Booking not found")
    require_owner(actor, booking.turf)
    try:
        transition(booking, BookingStatus.NO_SHOW)
        log_event("BOOKING_NO_SHOW", user_id=actor.id, entity="booking", entity_id=booking.id, commit=False)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return booking


def get_booking(booking_id) -> Booking:
    booking = db.session.get(Booking, booking_id) if booking_id else None
    if booking is None:
        raise NotFound("Booking not found")
    return booking


def get_booking_for(actor, booking_id) -> Booking:
    booking = get_booking(booking_id)
    if not _can_act_on(actor, booking):
        raise Forbidden("Not authorized to view this booking")
    return booking


def list_customer_bookings(actor, status=None):
    q = Booking.query.filter_by(customer_id=actor.id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(Booking.booking_date.desc(), Booking.start_time.asc()).all()


def list_turf_bookings(turf, actor, day=None, status=None):
    require_owner(actor, turf)
    q = Booking.query.filter_by(turf_id=turf.id)
    if day:
        q = q.filter(Booking.booking_date == parse_date(day))
    if status:
        q = q.filter_by(status=status)
    return q.order_by(Booking.booking_date.asc(), Booking.start_time.asc()).limit(200).all()


def list_owner_bookings(actor, day=None, status=None, turf_id=None, page=1, limit=50):
    """Every booking across the owner's turfs, soonest first. Returns (rows, total)."""
    page, limit = page_window(page, limit, default_limit=50, max_limit=200)
    q = Booking.query.filter(Booking.owner_id == actor.id)
    if day:
        q = q.filter(Booking.booking_date == parse_date(day))
    if status:
        q = q.filter(Booking.status == status)
    if turf_id:
        q = q.filter(Booking.turf_id == turf_id)
    total = q.count()
    rows = (
        q.order_by(Booking.booking_date.asc(), Booking.start_time.asc(), Booking.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total

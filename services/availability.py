"""
Availability engine: projects a weekday template onto a calendar date.

Pure reads. The answer is a snapshot; ``create_booking`` re-checks before it
claims anything.
"""
from datetime import datetime

from models.booking import Booking, BookingStatus
from services.identity import is_bookable
from services.templates import find_slot, resolve_price, slots_for_date
from utils.slot_time import canonical_range, minutes_of, parse_time_to_minutes


def _booked_ranges(turf, day):
    rows = (
        Booking.query
        .with_entities(Booking.id, Booking.start_time, Booking.end_time)
        .filter(
            Booking.turf_id == turf.id,
            Booking.booking_date == day,
            Booking.status != BookingStatus.CANCELLED.value,
        )
        .all()
    )
    return {canonical_range(r.start_time, r.end_time): r.id for r in rows}


def _already_started(slot_start: str, day, now) -> bool:
    return day == now.date() and parse_time_to_minutes(slot_start) <= minutes_of(now)


def get_available_slots(turf, day, now=None):
    """Ordered list of {start_time, end_time, price} still bookable on ``day``."""
    now = now or datetime.now()
    if not is_bookable(turf):
        return []

    booked = _booked_ranges(turf, day)
    out = []
    for slot in slots_for_date(turf, day):
        if canonical_range(slot.start_time, slot.end_time) in booked:
            continue
        if _already_started(slot.start_time, day, now):
            continue
        out.append({
            "start_time": slot.start_time,
            "end_time": slot.end_time,
            "price": resolve_price(turf, slot),
        })
    return out


def check_slot_availability(turf, day, start_time, end_time, now=None) -> bool:
    now = now or datetime.now()
    if not is_bookable(turf):
        return False

    slot = find_slot(turf, day, start_time, end_time)
    if slot is None:
        return False
    if _already_started(slot.start_time, day, now):
        return False
    return not is_slot_taken(turf, day, slot.start_time, slot.end_time)


def is_slot_taken(turf, day, start_time, end_time) -> bool:
    start_time, end_time = canonical_range(start_time, end_time)
    return (
        Booking.query
        .filter(
            Booking.turf_id == turf.id,
            Booking.booking_date == day,
            Booking.start_time == start_time,
            Booking.end_time == end_time,
            Booking.status != BookingStatus.CANCELLED.value,
        )
        .first()
        is not None
    )


def describe_day(turf, day, now=None):
    """Owner view: every slot on ``day`` with its booking, if any."""
    now = now or datetime.now()
    booked = _booked_ranges(turf, day)
    out = []
    for slot in slots_for_date(turf, day):
        booking_id = booked.get(canonical_range(slot.start_time, slot.end_time))
        out.append({
            "start_time": slot.start_time,
            "end_time": slot.end_time,
            "price": resolve_price(turf, slot),
            "allocated_for": slot.allocated_for.isoformat() if slot.allocated_for else None,
            "booking_id": booking_id,
            "available": booking_id is None and not _already_started(slot.start_time, day, now),
        })
    return out

"""
Slot-binding reconciler.

Keeps the per-date binding columns on ``SlotDefinition`` in step with the
booking ledger. ``bind`` and ``release`` never commit: they run inside the
caller's transaction so the booking row and the binding persist together or
not at all.
"""
import logging
from datetime import datetime

from sqlalchemy import and_, or_, select, update

from models import db
from models.booking import Booking, BookingStatus
from models.slot import DaySchedule, SlotDefinition
from services.templates import find_slot
from utils.errors import AlreadyBound, NotFound

logger = logging.getLogger(__name__)


def _released_booking_ids():
    return select(Booking.id).where(Booking.status == BookingStatus.CANCELLED.value)


def bind(turf, day, start_time, end_time, booking_id) -> SlotDefinition:
    """
    Claim the template slot for ``day``.

    Compare-and-swap: the UPDATE only matches when the slot is free, bound to
    another date, or bound to a cancelled booking. Zero matched rows means a
    concurrent writer holds the slot for this date.
    """
    slot = find_slot(turf, day, start_time, end_time)
    if slot is None:
        raise NotFound("Slot not found")

    stmt = (
        update(SlotDefinition)
        .where(SlotDefinition.id == slot.id)
        .where(
            or_(
                SlotDefinition.is_booked.is_(False),
                SlotDefinition.bound_date.is_(None),
                SlotDefinition.bound_date != day,
                SlotDefinition.bound_booking_id.in_(_released_booking_ids()),
            )
        )
        .values(is_booked=True, bound_booking_id=booking_id, bound_date=day)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    db.session.expire(slot)
    if result.rowcount != 1:
        logger.info("bind refused turf=%s date=%s %s-%s", turf.id, day, start_time, end_time)
        raise AlreadyBound()
    return slot


def release(turf, day, start_time, end_time, booking_id=None) -> bool:
    """
    Clear the binding only when it is for ``day`` (and ``booking_id`` when
    given), so a stale cancellation can't free a newer claim.
    """
    slot = find_slot(turf, day, start_time, end_time)
    if slot is None:
        return False

    conditions = [SlotDefinition.id == slot.id, SlotDefinition.bound_date == day]
    if booking_id is not None:
        conditions.append(SlotDefinition.bound_booking_id == booking_id)

    stmt = (
        update(SlotDefinition)
        .where(and_(*conditions))
        .values(is_booked=False, bound_booking_id=None, bound_date=None)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    db.session.expire(slot)
    return result.rowcount == 1


def rebuild_bindings(turf, today=None) -> int:
    """
    Recovery: recompute every binding column of ``turf`` from the ledger.

    Each template slot gets the most recently created live booking dated
    today or later that matches its weekday and time range. Returns the number
    of slots left bound. Does not commit.
    """
    today = today or datetime.now().date()

    slots = (
        SlotDefinition.query
        .join(DaySchedule, SlotDefinition.schedule_id == DaySchedule.id)
        .filter(DaySchedule.turf_id == turf.id)
        .all()
    )
    for slot in slots:
        slot.is_booked = False
        slot.bound_booking_id = None
        slot.bound_date = None
    db.session.flush()

    live = (
        Booking.query
        .filter(
            Booking.turf_id == turf.id,
            Booking.booking_date >= today,
            Booking.status != BookingStatus.CANCELLED.value,
        )
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .all()
    )

    bound = 0
    claimed = set()
    for booking in live:
        slot = find_slot(turf, booking.booking_date, booking.start_time, booking.end_time)
        if slot is None or slot.id in claimed:
            continue
        claimed.add(slot.id)
        slot.is_booked = True
        slot.bound_booking_id = booking.id
        slot.bound_date = booking.booking_date
        bound += 1
    db.session.flush()

    logger.info("rebuilt bindings turf=%s bound=%s", turf.id, bound)
    return bound


def binding_for(turf, day, start_time, end_time):
    """(is_bound_for_day, booking_id) as the cache currently says."""
    slot = find_slot(turf, day, start_time, end_time)
    if slot is None:
        return False, None
    db.session.refresh(slot)
    if slot.is_booked and slot.bound_date == day:
        return True, slot.bound_booking_id
    return False, None

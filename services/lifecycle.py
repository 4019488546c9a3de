"""
Booking status state machine and the time-driven lifecycle sweep.

Every status change in the codebase goes through ``transition`` so the table
below is the only place that decides what is legal.
"""
import logging
from collections import namedtuple
from datetime import datetime

from models import db
from models.booking import ACTIVE_STATUSES, Booking, BookingStatus
from services.notifications import get_notifier, recipient_for
from utils.errors import IllegalTransition
from utils.slot_time import slot_instants

logger = logging.getLogger(__name__)

S = BookingStatus

TRANSITIONS = {
    S.CONFIRMED: {S.IN_PROGRESS, S.COMPLETED, S.CANCELLED, S.NO_SHOW},
    S.IN_PROGRESS: {S.COMPLETED, S.NO_SHOW},
    S.COMPLETED: set(),
    S.CANCELLED: set(),
    S.NO_SHOW: set(),
}

TERMINAL = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

SweepResult = namedtuple("SweepResult", ["checked", "started", "completed", "failed"])


def can_transition(current, target) -> bool:
    return S(target) in TRANSITIONS[S(current)]


def transition(booking, target) -> bool:
    """
    Move ``booking`` to ``target``. Returns False when it is already there,
    raises IllegalTransition when the table forbids the move.
    """
    current = S(booking.status)
    target = S(target)
    if current == target:
        return False
    if target not in TRANSITIONS[current]:
        raise IllegalTransition(
            f"Cannot move booking from {current.value} to {target.value}",
            booking_id=booking.id,
        )
    booking.status = target.value
    return True


def is_terminal(status) -> bool:
    return S(status) in TERMINAL


def _advance(booking, now, notifier) -> str:
    start, end = slot_instants(booking.booking_date, booking.start_time, booking.end_time)

    if end <= now:
        transition(booking, S.COMPLETED)
        db.session.commit()
        if not booking.review_email_sent:
            # flag first so an overlapping sweep can't send twice
            booking.review_email_sent = True
            db.session.commit()
            notifier.send_post_stay_review(booking, recipient_for(booking))
        return "completed"

    if start <= now < end and booking.status != S.IN_PROGRESS.value:
        transition(booking, S.IN_PROGRESS)
        db.session.commit()
        return "started"

    return "unchanged"


def sweep_bookings(now=None, notifier=None) -> SweepResult:
    """
    Advance confirmed/in-progress bookings by wall-clock time. A failure on
    one booking is logged and the sweep carries on with the rest.
    """
    now = now or datetime.now()
    notifier = notifier or get_notifier()

    candidates = (
        Booking.query
        .filter(Booking.status.in_(ACTIVE_STATUSES), Booking.booking_date <= now.date())
        .order_by(Booking.booking_date, Booking.id)
        .all()
    )

    started = completed = failed = 0
    for booking in candidates:
        booking_id = booking.id
        try:
            outcome = _advance(booking, now, notifier)
        except Exception:
            db.session.rollback()
            failed += 1
            logger.exception("lifecycle sweep failed for booking %s", booking_id)
            continue
        if outcome == "started":
            started += 1
        elif outcome == "completed":
            completed += 1

    if started or completed or failed:
        logger.info(
            "lifecycle sweep: %s started, %s completed, %s failed (of %s)",
            started, completed, failed, len(candidates),
        )
    return SweepResult(len(candidates), started, completed, failed)

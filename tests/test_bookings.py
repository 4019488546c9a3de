from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

import services.bookings as booking_service
from conftest import FIXED_NOW, run_concurrently
from models import db
from models.audit_log import AuditLog
from models.booking import Booking, BookingType
from models.turf import Turf
from models.user import User
from services import templates
from services.bookings import cancel_booking, check_in, create_booking, mark_no_show
from services.reconciler import binding_for
from utils.errors import (
    CancellationWindowClosed,
    Forbidden,
    IllegalTransition,
    NotFound,
    PolicyViolation,
    SlotConflict,
    SlotUnavailable,
    ValidationError,
)

MONDAY = date(2026, 3, 2)
TUESDAY = MONDAY + timedelta(days=1)


def test_online_booking_is_confirmed_pending_and_bound(turf, player):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)

    assert booking.id is not None
    assert booking.status == "confirmed"
    assert booking.payment_status == "pending"
    assert booking.booking_type == "online"
    assert booking.customer_id == player.id
    assert booking.owner_id == turf.owner_user_id
    assert booking.total_amount == Decimal("1200.00")
    assert len(booking.booking_code) == 4 and booking.booking_code.isdigit()
    assert binding_for(turf, TUESDAY, "18:00", "19:00") == (True, booking.id)
    assert AuditLog.query.filter_by(action="BOOKING_CREATE", entity_id=str(booking.id)).count() == 1


def test_amount_follows_duration_and_rate(turf, owner, player):
    templates.set_day_schedule(turf, owner, "tuesday", slots=[
        {"start_time": "18:00", "end_time": "19:30", "price": 1000},
    ])
    booking = create_booking(turf, TUESDAY, "18:00", "19:30", actor=player, now=FIXED_NOW)
    assert booking.duration_minutes == 90
    assert booking.total_amount == Decimal("1500.00")


def test_ampm_request_is_stored_as_24h_clock(turf, player):
    booking = create_booking(turf, TUESDAY, "6:00 PM", "7:00 PM", actor=player, now=FIXED_NOW)
    assert (booking.start_time, booking.end_time) == ("18:00", "19:00")


def test_second_booking_for_same_slot_is_unavailable(turf, player, other_owner):
    create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    with pytest.raises(SlotUnavailable):
        create_booking(turf, TUESDAY, "18:00", "19:00", actor=other_owner, now=FIXED_NOW)


def test_losing_a_race_is_a_conflict_and_leaves_no_orphan(turf, player, other_owner, monkeypatch):
    first = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)

    # both requests passed the pre-flight check before either committed
    monkeypatch.setattr(booking_service, "is_slot_taken", lambda *args: False)
    with pytest.raises(SlotConflict):
        create_booking(turf, TUESDAY, "18:00", "19:00", actor=other_owner, now=FIXED_NOW)

    live = Booking.query.filter(Booking.turf_id == turf.id, Booking.status != "cancelled").all()
    assert [b.id for b in live] == [first.id]
    assert binding_for(turf, TUESDAY, "18:00", "19:00") == (True, first.id)


def test_concurrent_requests_for_one_slot_book_it_once(app, turf, player, other_owner):
    turf_id = turf.id

    def reserve(user_id):
        def call(barrier):
            mine = db.session.get(Turf, turf_id)
            actor = db.session.get(User, user_id)
            barrier.wait()
            return create_booking(mine, TUESDAY, "18:00", "19:00", actor=actor, now=FIXED_NOW).id
        return call

    outcomes = run_concurrently(app, reserve(player.id), reserve(other_owner.id))

    winners = [value for kind, value in outcomes if kind == "ok"]
    losers = [value for kind, value in outcomes if kind == "error"]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], (SlotConflict, SlotUnavailable))

    live = Booking.query.filter(Booking.turf_id == turf_id, Booking.status != "cancelled").all()
    assert [b.id for b in live] == winners
    assert binding_for(turf, TUESDAY, "18:00", "19:00") == (True, winners[0])


def test_respelled_template_does_not_reopen_a_booked_slot(turf, owner, player, other_owner):
    first = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    templates.set_day_schedule(turf, owner, "tuesday", slots=[
        {"start_time": "6:00 PM", "end_time": "7:00 PM", "price": 1200},
    ])

    with pytest.raises(SlotUnavailable):
        create_booking(turf, TUESDAY, "18:00", "19:00", actor=other_owner, now=FIXED_NOW)
    with pytest.raises(SlotUnavailable):
        create_booking(turf, TUESDAY, "6 pm", "7 pm", actor=other_owner, now=FIXED_NOW)

    live = Booking.query.filter(Booking.turf_id == turf.id, Booking.status != "cancelled").all()
    assert [(b.id, b.start_time, b.end_time) for b in live] == [(first.id, "18:00", "19:00")]


def test_midnight_slot_is_stored_as_end_of_day(turf, owner, player):
    templates.set_day_schedule(turf, owner, "tuesday", slots=[
        {"start_time": "11:00 PM", "end_time": "12:00 AM", "price": 1000},
    ])
    booking = create_booking(turf, TUESDAY, "23:00", "00:00", actor=player, now=FIXED_NOW)
    assert (booking.start_time, booking.end_time) == ("23:00", "24:00")
    assert booking.duration_minutes == 60


def test_ledger_rejects_a_respelled_duplicate_row(turf, player):
    first = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    twin = Booking(
        turf_id=turf.id, owner_id=turf.owner_user_id, customer_name="Twin", customer_phone="1",
        booking_date=TUESDAY, start_time="6:00 PM", end_time="7:00 PM", price_per_hour=1200,
    )
    db.session.add(twin)
    with pytest.raises(IntegrityError):
        db.session.flush()
    db.session.rollback()
    assert Booking.query.filter_by(turf_id=turf.id).count() == 1
    assert first.start_time == "18:00"


def test_rebooking_after_cancel(turf, player, other_owner):
    first = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    cancel_booking(first, player, now=FIXED_NOW)

    second = create_booking(turf, TUESDAY, "18:00", "19:00", actor=other_owner, now=FIXED_NOW)
    assert second.id != first.id
    assert binding_for(turf, TUESDAY, "18:00", "19:00") == (True, second.id)


def test_past_date_and_started_slot_are_rejected(turf, player):
    with pytest.raises(PolicyViolation):
        create_booking(turf, MONDAY - timedelta(days=1), "18:00", "19:00", actor=player, now=FIXED_NOW)
    with pytest.raises(PolicyViolation):
        create_booking(turf, MONDAY, "09:00", "10:00", actor=player, now=FIXED_NOW)


def test_booking_beyond_advance_window(turf, player):
    too_far = MONDAY + timedelta(days=turf.advance_booking_days + 1)
    with pytest.raises(PolicyViolation):
        create_booking(turf, too_far, "18:00", "19:00", actor=player, now=FIXED_NOW)


def test_closed_day_and_unknown_slot(turf, owner, player):
    templates.set_day_schedule(turf, owner, "tuesday", is_open=False)
    with pytest.raises(PolicyViolation):
        create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    with pytest.raises(SlotUnavailable):
        create_booking(turf, MONDAY + timedelta(days=2), "05:00", "06:00", actor=player, now=FIXED_NOW)


def test_unverified_turf_cannot_be_booked(turf, player):
    turf.status = "REJECTED"
    db.session.commit()
    with pytest.raises(SlotUnavailable):
        create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)


def test_missing_times_are_a_validation_error(turf, player):
    with pytest.raises(ValidationError):
        create_booking(turf, TUESDAY, None, "19:00", actor=player, now=FIXED_NOW)


# ---------- walk-ins ----------
def test_walk_in_today_defaults_to_cash(turf, owner):
    booking = create_booking(
        turf, MONDAY, "10:00", "11:00", actor=owner,
        walk_in={"name": "Ravi", "phone": "9876543210"}, now=FIXED_NOW,
    )
    assert booking.booking_type == "offline"
    assert booking.payment_method == "cash"
    assert booking.customer_id is None
    assert booking.customer_name == "Ravi"
    assert {t.value for t in BookingType} == {"online", "offline"}


def test_walk_in_tomorrow_is_refused(turf, owner):
    with pytest.raises(PolicyViolation) as exc:
        create_booking(
            turf, TUESDAY, "10:00", "11:00", actor=owner,
            walk_in={"name": "Ravi", "phone": "9876543210"}, now=FIXED_NOW,
        )
    assert exc.value.message == "Offline bookings are allowed only for today"
    assert Booking.query.count() == 0


def test_walk_in_needs_owner_and_contact(turf, player, owner):
    with pytest.raises(Forbidden):
        create_booking(turf, MONDAY, "10:00", "11:00", actor=player,
                       walk_in={"name": "Ravi", "phone": "1"}, now=FIXED_NOW)
    with pytest.raises(ValidationError):
        create_booking(turf, MONDAY, "10:00", "11:00", actor=owner, walk_in={"name": "Ravi"}, now=FIXED_NOW)


def test_walk_in_price_override(turf, owner):
    booking = create_booking(
        turf, MONDAY, "10:00", "11:00", actor=owner,
        walk_in={"name": "Ravi", "phone": "9876543210", "price": 800}, payment_method="upi", now=FIXED_NOW,
    )
    assert booking.total_amount == Decimal("800.00")
    assert booking.payment_method == "upi"


# ---------- identity + amount hooks ----------
def test_slot_identity_cannot_change_after_creation(turf, player):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    with pytest.raises(ValueError):
        booking.start_time = "17:00"
    with pytest.raises(ValueError):
        booking.booking_date = MONDAY
    assert booking.start_time == "18:00"


def test_amount_is_recomputed_on_update(turf, player):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    booking.price_per_hour = Decimal("1500")
    booking.total_amount = Decimal("1")
    db.session.commit()
    db.session.refresh(booking)
    assert booking.total_amount == Decimal("1500.00")


# ---------- cancellation ----------
def test_cancel_releases_binding_and_records_metadata(turf, player):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    cancel_booking(booking, player, "Rain", now=FIXED_NOW)

    assert booking.status == "cancelled"
    assert booking.cancellation_reason == "Rain"
    assert booking.cancelled_by == player.id
    assert booking.cancelled_at == FIXED_NOW
    assert binding_for(turf, TUESDAY, "18:00", "19:00") == (False, None)


def test_cancel_inside_two_hours_is_refused(turf, player):
    booking = create_booking(turf, MONDAY, "11:00", "12:00", actor=player, now=FIXED_NOW)

    with pytest.raises(CancellationWindowClosed):
        cancel_booking(booking, player, now=datetime(2026, 3, 2, 9, 1))

    # exactly two hours ahead is still allowed
    cancel_booking(booking, player, now=datetime(2026, 3, 2, 9, 0))
    assert booking.status == "cancelled"


def test_cancel_by_stranger_is_forbidden(turf, player, other_owner):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    with pytest.raises(Forbidden):
        cancel_booking(booking, other_owner, now=FIXED_NOW)


def test_owner_can_cancel_by_slot(turf, owner, player):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    cancelled = booking_service.cancel_slot_booking(turf, owner, TUESDAY, "6:00 PM", "7:00 PM", now=FIXED_NOW)
    assert cancelled.id == booking.id
    assert cancelled.cancellation_reason == "Cancelled by owner"

    with pytest.raises(NotFound):
        booking_service.cancel_slot_booking(turf, owner, TUESDAY, "18:00", "19:00", now=FIXED_NOW)


def test_checked_in_booking_cannot_be_cancelled(turf, owner, player):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    check_in(booking.booking_code, owner, now=FIXED_NOW)
    with pytest.raises(CancellationWindowClosed):
        cancel_booking(booking, player, now=FIXED_NOW)


# ---------- check-in / no-show ----------
def test_check_in_moves_to_in_progress(turf, owner, player):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    checked = check_in(booking.booking_code, owner, turf_id=turf.id, day="2026-03-03", now=FIXED_NOW)

    assert checked.id == booking.id
    assert checked.status == "in_progress"
    assert checked.checked_in_at == FIXED_NOW


def test_check_in_cross_checks(turf, owner, other_owner, player):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    with pytest.raises(NotFound):
        check_in("0000", owner, now=FIXED_NOW)
    with pytest.raises(Forbidden):
        check_in(booking.booking_code, other_owner, now=FIXED_NOW)
    with pytest.raises(ValidationError):
        check_in(booking.booking_code, owner, turf_id=turf.id + 1, now=FIXED_NOW)
    with pytest.raises(ValidationError):
        check_in(booking.booking_code, owner, day="2026-03-04", now=FIXED_NOW)
    with pytest.raises(ValidationError):
        check_in("", owner, now=FIXED_NOW)


def test_check_in_of_cancelled_booking_is_illegal(turf, owner, player):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    cancel_booking(booking, player, now=FIXED_NOW)
    with pytest.raises(IllegalTransition):
        check_in(booking.booking_code, owner, now=FIXED_NOW)


def test_no_show(turf, owner, player):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    with pytest.raises(Forbidden):
        mark_no_show(booking, player)
    mark_no_show(booking, owner)
    assert booking.status == "no-show"


def test_booking_code_falls_back_after_retries(app, monkeypatch, turf, player):
    first = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    monkeypatch.setattr(booking_service, "_sample_code", lambda: first.booking_code)

    second = create_booking(turf, TUESDAY, "19:00", "20:00", actor=player, now=FIXED_NOW)
    assert second.booking_code == first.booking_code

from datetime import date, datetime, timedelta

from conftest import FIXED_NOW
from models import db
from services import templates
from services.availability import check_slot_availability, describe_day, get_available_slots
from services.bookings import cancel_booking, create_booking

MONDAY = date(2026, 3, 2)
TUESDAY = MONDAY + timedelta(days=1)


def _ranges(slots):
    return [(s["start_time"], s["end_time"]) for s in slots]


def test_future_day_lists_every_template_slot_in_order(turf):
    slots = get_available_slots(turf, TUESDAY, now=FIXED_NOW)
    assert len(slots) == 16
    assert slots[0] == {"start_time": "06:00", "end_time": "07:00", "price": 1200}
    assert _ranges(slots) == sorted(_ranges(slots))


def test_today_hides_slots_that_already_started(turf):
    now = datetime(2026, 3, 2, 9, 30)
    slots = _ranges(get_available_slots(turf, MONDAY, now=now))
    assert ("09:00", "10:00") not in slots
    assert ("08:00", "09:00") not in slots
    assert slots[0] == ("10:00", "11:00")


def test_ampm_template_compares_against_clock_minutes(turf, owner):
    templates.set_day_schedule(turf, owner, "monday", slots=[
        {"start_time": "9:00 AM", "end_time": "10:00 AM", "price": 1000},
        {"start_time": "6:00 PM", "end_time": "7:00 PM", "price": 1500},
    ])
    slots = get_available_slots(turf, MONDAY, now=datetime(2026, 3, 2, 17, 59))
    assert slots == [{"start_time": "18:00", "end_time": "19:00", "price": 1500}]


def test_booked_slot_drops_out_and_returns_on_cancel(turf, player):
    booking = create_booking(turf, TUESDAY, "18:00", "19:00", actor=player, now=FIXED_NOW)
    assert ("18:00", "19:00") not in _ranges(get_available_slots(turf, TUESDAY, now=FIXED_NOW))
    assert not check_slot_availability(turf, TUESDAY, "18:00", "19:00", now=FIXED_NOW)

    # same weekday template, different date: still free
    assert check_slot_availability(turf, TUESDAY + timedelta(days=7), "18:00", "19:00", now=FIXED_NOW)

    cancel_booking(booking, player, now=FIXED_NOW)
    assert ("18:00", "19:00") in _ranges(get_available_slots(turf, TUESDAY, now=FIXED_NOW))


def test_unapproved_or_inactive_owner_sees_nothing(turf, owner):
    turf.status = "PENDING"
    db.session.commit()
    assert get_available_slots(turf, TUESDAY, now=FIXED_NOW) == []
    assert not check_slot_availability(turf, TUESDAY, "18:00", "19:00", now=FIXED_NOW)

    turf.status = "VERIFIED"
    owner.is_active = False
    db.session.commit()
    assert get_available_slots(turf, TUESDAY, now=FIXED_NOW) == []


def test_closed_weekday_is_empty(turf, owner):
    templates.set_day_schedule(turf, owner, "tuesday", is_open=False)
    assert get_available_slots(turf, TUESDAY, now=FIXED_NOW) == []


def test_unknown_slot_is_unavailable(turf):
    assert not check_slot_availability(turf, TUESDAY, "05:00", "06:00", now=FIXED_NOW)


def test_allocated_slot_shows_up_with_its_price(turf, owner):
    templates.allocate_slots_for_day(
        turf, owner, TUESDAY, [{"start_time": "22:00", "end_time": "23:00", "price": 1800}], now=FIXED_NOW,
    )
    slots = get_available_slots(turf, TUESDAY, now=FIXED_NOW)
    assert slots[-1] == {"start_time": "22:00", "end_time": "23:00", "price": 1800}


def test_describe_day_marks_bookings(turf, player):
    booking = create_booking(turf, TUESDAY, "07:00", "08:00", actor=player, now=FIXED_NOW)
    rows = {(r["start_time"], r["end_time"]): r for r in describe_day(turf, TUESDAY, now=FIXED_NOW)}
    assert rows[("07:00", "08:00")]["booking_id"] == booking.id
    assert rows[("07:00", "08:00")]["available"] is False
    assert rows[("08:00", "09:00")]["available"] is True

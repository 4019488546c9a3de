"""
Template store: per-turf weekly slot schedules, edited only by the owner.
"""
import logging
from datetime import datetime, timedelta

from flask import current_app

from models import db
from models.slot import WEEKDAYS, DaySchedule, SlotDefinition
from models.turf import Turf
from models.user import User
from services.identity import APPROVED_STATUS, require_owner
from utils.audit import log_event
from utils.errors import NotFound, PolicyViolation, ValidationError
from utils.slot_time import canonical_range, format_minutes, parse_date, slot_bounds

logger = logging.getLogger(__name__)

DEFAULT_OPEN_HOUR = 6
DEFAULT_CLOSE_HOUR = 22


def default_day_slots(price: int, open_minute=DEFAULT_OPEN_HOUR * 60, close_minute=DEFAULT_CLOSE_HOUR * 60,
                      step=60):
    return [
        {"start_time": format_minutes(m), "end_time": format_minutes(m + step), "price": price}
        for m in range(open_minute, close_minute - step + 1, step)
    ]


def resolve_weekday(value) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 6:
        return value
    if isinstance(value, str):
        name = value.strip().lower()
        if name in WEEKDAYS:
            return WEEKDAYS.index(name)
        if name.isdigit() and 0 <= int(name) <= 6:
            return int(name)
    raise ValidationError("weekday must be monday..sunday or 0..6")


def _normalize_price(raw) -> int:
    try:
        price = int(raw if raw is not None else 0)
    except (TypeError, ValueError):
        raise ValidationError("price must be a whole number")
    if price < 0:
        raise ValidationError("price cannot be negative")
    return price


def _clean_slot_specs(slots, require_price=False):
    if not isinstance(slots, list):
        raise ValidationError("slots must be a list")

    cleaned = []
    seen = set()
    for entry in slots:
        if not isinstance(entry, dict):
            raise ValidationError("each slot must be an object")
        start = (entry.get("start_time") or "").strip()
        end = (entry.get("end_time") or "").strip()
        if not start or not end:
            raise ValidationError("each slot needs start_time and end_time")
        bounds = slot_bounds(start, end)
        price = _normalize_price(entry.get("price"))
        if require_price and price <= 0:
            raise ValidationError("price must be greater than 0")
        if bounds in seen:
            raise ValidationError(f"duplicate slot {start}-{end}")
        seen.add(bounds)
        cleaned.append((bounds, *canonical_range(start, end), price))

    cleaned.sort(key=lambda c: c[0])
    return cleaned


def get_turf(turf_id) -> Turf:
    turf = db.session.get(Turf, turf_id) if turf_id else None
    if turf is None:
        raise NotFound("Turf not found")
    return turf


def create_turf(owner, name, location, price_per_hour, description=None,
                advance_booking_days=None, slot_duration=60) -> Turf:
    name = (name or "").strip()
    location = (location or "").strip()
    if not name or not location:
        raise ValidationError("name and location are required")
    price = _normalize_price(price_per_hour)
    if advance_booking_days is None:
        advance_booking_days = current_app.config.get("DEFAULT_ADVANCE_BOOKING_DAYS", 30)

    turf = Turf(
        name=name,
        location=location,
        description=description,
        owner_user_id=owner.id,
        price_per_hour=price,
        slot_duration=int(slot_duration),
        advance_booking_days=int(advance_booking_days),
        status="PENDING",
    )
    for weekday in range(7):
        schedule = DaySchedule(weekday=weekday, is_open=True)
        for pos, entry in enumerate(default_day_slots(price)):
            schedule.slots.append(SlotDefinition(position=pos, **entry))
        turf.schedules.append(schedule)

    db.session.add(turf)
    db.session.commit()

    log_event("TURF_CREATE", user_id=owner.id, entity="turf", entity_id=turf.id)
    return turf


def page_window(page, limit, default_limit=25, max_limit=100):
    """(page, limit) from query-string values, clamped to sane bounds."""
    try:
        page = max(int(page or 1), 1)
        limit = min(max(int(limit or default_limit), 1), max_limit)
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be whole numbers")
    return page, limit


def list_turfs(location=None, page=1, limit=25):
    """
    Public catalogue, newest first. Only turfs that can take bookings right
    now are listed: verified, active, and run by an active owner.

    Returns (turfs, total).
    """
    page, limit = page_window(page, limit)
    q = (
        Turf.query
        .join(User, Turf.owner_user_id == User.id)
        .filter(Turf.status == APPROVED_STATUS, Turf.is_active.is_(True), User.is_active.is_(True))
    )
    location = (location or "").strip()
    if location:
        q = q.filter(Turf.location.ilike(f"%{location}%"))
    total = q.count()
    rows = q.order_by(Turf.created_at.desc(), Turf.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return rows, total


def list_owner_turfs(owner):
    return Turf.query.filter_by(owner_user_id=owner.id).order_by(Turf.created_at.desc(), Turf.id.desc()).all()


def _opening_window(hours, step):
    if not isinstance(hours, dict) or not hours.get("open") or not hours.get("close"):
        raise ValidationError("opening_hours needs open and close times")
    open_minute, close_minute = slot_bounds(hours["open"], hours["close"])
    if close_minute - open_minute < step:
        raise ValidationError(f"opening hours must fit at least one {step}-minute slot")
    return open_minute, close_minute


def update_turf(turf, actor, changes, now=None) -> Turf:
    """
    Owner edits that apply at once: base price, booking window, description
    and opening hours. Name and location are what customers know the turf by,
    so changing them goes through the approval workflow instead.

    A new base price carries over to recurring slots still priced at the old
    base. New opening hours regenerate every weekday's recurring slots; slots
    allocated for one date are kept.
    """
    from services.reconciler import rebuild_bindings

    require_owner(actor, turf)
    if not isinstance(changes, dict) or not changes:
        raise ValidationError("nothing to update")

    blocked = [
        field for field in ("name", "location")
        if field in changes and str(changes[field] or "").strip() != getattr(turf, field)
    ]
    if blocked:
        raise PolicyViolation(f"Changing {' and '.join(blocked)} needs admin approval")

    applied = []
    try:
        if "price_per_hour" in changes:
            price = _normalize_price(changes["price_per_hour"])
            old_price = turf.price_per_hour
            for schedule in turf.schedules:
                for slot in schedule.slots:
                    if slot.allocated_for is None and slot.price == old_price:
                        slot.price = price
            turf.price_per_hour = price
            applied.append("price_per_hour")

        if "advance_booking_days" in changes:
            try:
                days = int(changes["advance_booking_days"])
            except (TypeError, ValueError):
                raise ValidationError("advance_booking_days must be a whole number")
            if days < 0:
                raise ValidationError("advance_booking_days cannot be negative")
            turf.advance_booking_days = days
            applied.append("advance_booking_days")

        if "description" in changes:
            turf.description = (changes["description"] or "").strip() or None
            applied.append("description")

        if "opening_hours" in changes:
            open_minute, close_minute = _opening_window(changes["opening_hours"], turf.slot_duration)
            for schedule in turf.schedules:
                for existing in [s for s in schedule.slots if s.allocated_for is None]:
                    schedule.slots.remove(existing)
            db.session.flush()
            fresh = default_day_slots(turf.price_per_hour, open_minute, close_minute, turf.slot_duration)
            for schedule in turf.schedules:
                base = len(schedule.slots)
                for pos, entry in enumerate(fresh):
                    schedule.slots.append(SlotDefinition(position=base + pos, **entry))
            db.session.flush()
            rebuild_bindings(turf, today=(now or datetime.now()).date())
            applied.append("opening_hours")

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    log_event("TURF_UPDATE", user_id=actor.id, entity="turf", entity_id=turf.id, metadata={"fields": applied})
    return turf


def set_day_schedule(turf, actor, weekday, is_open=True, slots=None) -> DaySchedule:
    """
    Replace the recurring template for one weekday. Date-scoped allocations
    are kept. Binding cache rows are rebuilt from the ledger afterwards.
    """
    from services.reconciler import rebuild_bindings

    require_owner(actor, turf)
    weekday = resolve_weekday(weekday)
    schedule = turf.schedule_for(weekday)
    if schedule is None:
        schedule = DaySchedule(weekday=weekday)
        turf.schedules.append(schedule)
    schedule.is_open = bool(is_open)

    if slots is not None:
        cleaned = _clean_slot_specs(slots)
        for existing in [s for s in schedule.slots if s.allocated_for is None]:
            schedule.slots.remove(existing)
        db.session.flush()
        base = len(schedule.slots)
        for pos, (_, start, end, price) in enumerate(cleaned):
            schedule.slots.append(
                SlotDefinition(position=base + pos, start_time=start, end_time=end, price=price)
            )

    db.session.flush()
    rebuild_bindings(turf)
    db.session.commit()

    log_event("TEMPLATE_UPDATE", user_id=actor.id, entity="turf", entity_id=turf.id,
              metadata={"weekday": WEEKDAYS[weekday], "is_open": schedule.is_open})
    return schedule


def update_slot_price(turf, actor, weekday, start_time, end_time, price) -> SlotDefinition:
    require_owner(actor, turf)
    weekday = resolve_weekday(weekday)
    price = _normalize_price(price)
    target = slot_bounds(start_time, end_time)

    schedule = turf.schedule_for(weekday)
    matches = [
        s for s in (schedule.slots if schedule else [])
        if s.allocated_for is None and slot_bounds(s.start_time, s.end_time) == target
    ]
    if not matches:
        raise NotFound("Slot not found")
    for slot in matches:
        slot.price = price
    db.session.commit()

    log_event("SLOT_PRICE_UPDATE", user_id=actor.id, entity="turf", entity_id=turf.id,
              metadata={"weekday": WEEKDAYS[weekday], "slot": f"{start_time}-{end_time}", "price": price})
    return matches[0]


def allocate_slots_for_day(turf, actor, day, slots, now=None):
    """
    Append extra slot definitions that exist only on one date.
    """
    require_owner(actor, turf)
    day = parse_date(day)
    now = now or datetime.now()
    window = current_app.config.get("ALLOCATION_WINDOW_DAYS", 5)
    if day < now.date() or day > now.date() + timedelta(days=window):
        raise PolicyViolation(f"You can only allocate slots for the next {window} days from today")
    if not slots:
        raise ValidationError("Date and slots array are required")

    cleaned = _clean_slot_specs(slots, require_price=True)
    schedule = turf.schedule_for(day.weekday())
    if schedule is None or not schedule.is_open:
        raise PolicyViolation(f"Turf is closed on {WEEKDAYS[day.weekday()]}")

    base = len(schedule.slots)
    added = []
    for pos, (_, start, end, price) in enumerate(cleaned):
        slot = SlotDefinition(position=base + pos, start_time=start, end_time=end,
                              price=price, allocated_for=day)
        schedule.slots.append(slot)
        added.append(slot)
    db.session.commit()

    log_event("SLOT_ALLOCATE", user_id=actor.id, entity="turf", entity_id=turf.id,
              metadata={"date": day.isoformat(), "count": len(added)})
    return added


def slots_for_date(turf, day):
    """
    Definitions that apply on ``day``, ordered by start time. Definitions that
    repeat the same time range collapse into the first one: the ledger allows
    one live booking per time range whatever the template says.
    """
    schedule = turf.schedule_for(day.weekday())
    if schedule is None or not schedule.is_open:
        return []

    picked = {}
    for slot in schedule.slots:
        if not slot.applies_to(day):
            continue
        bounds = slot_bounds(slot.start_time, slot.end_time)
        picked.setdefault(bounds, slot)
    return [picked[k] for k in sorted(picked)]


def find_slot(turf, day, start_time, end_time):
    target = slot_bounds(start_time, end_time)
    for slot in slots_for_date(turf, day):
        if slot_bounds(slot.start_time, slot.end_time) == target:
            return slot
    return None


def resolve_price(turf, slot) -> int:
    return slot.price if slot is not None and slot.price else turf.price_per_hour

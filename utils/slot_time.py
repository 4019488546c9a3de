import re
from datetime import date, datetime, timedelta

from utils.errors import ValidationError

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(
    r"^\s*(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?(?::(?P<second>\d{2}))?\s*(?P<suffix>[aApP]\.?[mM]\.?)?\s*$"
)


def parse_time_to_minutes(value: str) -> int:
    """
    Minutes since midnight for a wall-clock string.

    Accepts 24-hour ("18:00", "06:30:00") and 12-hour forms with an AM/PM
    suffix ("6 PM", "6:30pm", "12:00 a.m."). "24:00" is end of day (1440).
    """
    if not isinstance(value, str):
        raise ValidationError("Time must be a string like 18:00 or 6:00 PM")
    m = _TIME_RE.match(value)
    if not m:
        raise ValidationError(f"Invalid time: {value!r}")

    hour = int(m.group("hour"))
    minute = int(m.group("minute") or 0)
    suffix = m.group("suffix")

    if minute > 59:
        raise ValidationError(f"Invalid time: {value!r}")

    if suffix:
        if hour < 1 or hour > 12:
            raise ValidationError(f"Invalid time: {value!r}")
        pm = suffix.lower().startswith("p")
        if hour == 12:
            hour = 0
        if pm:
            hour += 12
    elif hour == 24 and minute == 0:
        return MINUTES_PER_DAY
    elif hour > 23:
        raise ValidationError(f"Invalid time: {value!r}")

    return hour * 60 + minute


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def slot_bounds(start_time: str, end_time: str) -> tuple[int, int]:
    """
    (start, end) in minutes; a slot ending at midnight ends at 1440.
    """
    start = parse_time_to_minutes(start_time)
    end = parse_time_to_minutes(end_time)
    if end == 0 and start > 0:
        end = MINUTES_PER_DAY
    if end <= start:
        raise ValidationError("end_time must be after start_time")
    return start, end


def canonical_range(start_time: str, end_time: str) -> tuple[str, str]:
    """
    The one stored spelling of a slot: zero-padded 24-hour "HH:MM", with a
    midnight end written as "24:00". ("6:00 PM", "7 pm") -> ("18:00", "19:00").
    """
    start, end = slot_bounds(start_time, end_time)
    return format_minutes(start), format_minutes(end)


def duration_minutes(start_time: str, end_time: str) -> int:
    start, end = slot_bounds(start_time, end_time)
    return end - start


def slot_instants(day: date, start_time: str, end_time: str) -> tuple[datetime, datetime]:
    start, end = slot_bounds(start_time, end_time)
    midnight = datetime(day.year, day.month, day.day)
    return midnight + timedelta(minutes=start), midnight + timedelta(minutes=end)


def minutes_of(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def parse_date(value) -> date:
    # Expect ISO format like "2026-01-20"; a full timestamp is cut to its date
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError("date is required (YYYY-MM-DD)")
    try:
        return datetime.fromisoformat(value.strip()).date()
    except ValueError:
        raise ValidationError("Invalid date. Use YYYY-MM-DD")

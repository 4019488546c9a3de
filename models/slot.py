from datetime import datetime
from models.db import db

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

class DaySchedule(db.Model):
    __tablename__ = "day_schedules"

    id = db.Column(db.Integer, primary_key=True)
    turf_id = db.Column(db.Integer, db.ForeignKey("turfs.id"), nullable=False, index=True)
    weekday = db.Column(db.Integer, nullable=False)  # Monday=0 .. Sunday=6
    is_open = db.Column(db.Boolean, default=True, nullable=False)

    turf = db.relationship("Turf", back_populates="schedules")
    slots = db.relationship(
        "SlotDefinition",
        back_populates="schedule",
        order_by="SlotDefinition.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.UniqueConstraint("turf_id", "weekday", name="uq_day_schedule_turf_weekday"),
    )

    @property
    def weekday_name(self) -> str:
        return WEEKDAYS[self.weekday]

    def to_dict(self):
        return {
            "weekday": self.weekday_name,
            "is_open": self.is_open,
            "slots": [s.to_dict() for s in self.slots],
        }


class SlotDefinition(db.Model):
    __tablename__ = "slot_definitions"

    id = db.Column(db.Integer, primary_key=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey("day_schedules.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    start_time = db.Column(db.String(16), nullable=False)  # wall clock, e.g. "18:00" or "6:00 PM"
    end_time = db.Column(db.String(16), nullable=False)
    price = db.Column(db.Integer, nullable=False, default=0)  # per hour; 0 means turf base price

    # set when the owner appends extra slots for one specific date
    allocated_for = db.Column(db.Date, nullable=True)

    # Binding cache. The bookings table is the source of truth; these columns
    # only mirror whichever date last claimed the slot.
    is_booked = db.Column(db.Boolean, default=False, nullable=False)
    bound_booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=True)
    bound_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    schedule = db.relationship("DaySchedule", back_populates="slots")

    def applies_to(self, day) -> bool:
        return self.allocated_for is None or self.allocated_for == day

    def to_dict(self):
        return {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "price": self.price,
            "allocated_for": self.allocated_for.isoformat() if self.allocated_for else None,
            "is_booked": self.is_booked,
            "bound_booking_id": self.bound_booking_id,
            "bound_date": self.bound_date.isoformat() if self.bound_date else None,
        }

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from sqlalchemy import event, inspect, text
from sqlalchemy.orm.base import NO_VALUE

from models.db import db
from utils.slot_time import canonical_range, duration_minutes


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"
    ONLINE = "online"


class BookingType(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


ACTIVE_STATUSES = (BookingStatus.CONFIRMED.value, BookingStatus.IN_PROGRESS.value)

# columns that identify the slot instance; fixed once the row exists
IDENTITY_FIELDS = ("turf_id", "booking_date", "start_time", "end_time")

_CENT = Decimal("0.01")


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    turf_id = db.Column(db.Integer, db.ForeignKey("turfs.id"), nullable=False, index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)  # null for walk-ins

    customer_name = db.Column(db.String(120), nullable=False)
    customer_phone = db.Column(db.String(30), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)

    booking_date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.String(16), nullable=False)
    end_time = db.Column(db.String(16), nullable=False)

    # derived from start/end/price, see recompute_amount
    duration_minutes = db.Column(db.Integer, nullable=False, default=0)
    price_per_hour = db.Column(db.Numeric(10, 2), nullable=False)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default=BookingStatus.CONFIRMED.value, index=True)
    payment_status = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    payment_method = db.Column(db.String(20), nullable=False, default=PaymentMethod.CASH.value)
    payment_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    booking_type = db.Column(db.String(20), nullable=False, default=BookingType.OFFLINE.value)

    # payment provider correlation
    payment_order_id = db.Column(db.String(255), nullable=True, unique=True, index=True)
    payment_id = db.Column(db.String(255), nullable=True)
    payment_signature = db.Column(db.String(255), nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)

    # operator-facing check-in code; short on purpose, not unique
    booking_code = db.Column(db.String(8), nullable=True, index=True)
    checked_in_at = db.Column(db.DateTime, nullable=True)

    notes = db.Column(db.String(500), nullable=True)

    cancellation_reason = db.Column(db.String(255), nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    review_email_sent = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    turf = db.relationship("Turf")

    __table_args__ = (
        # Hard business rule: one live booking per slot instance (prevents double booking)
        db.Index(
            "uq_booking_active_slot",
            "turf_id", "booking_date", "start_time", "end_time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
        db.Index("ix_bookings_turf_date", "turf_id", "booking_date"),
    )

    @property
    def time_slot(self) -> str:
        return f"{self.start_time} - {self.end_time}"

    def recompute_amount(self):
        if not (self.start_time and self.end_time) or self.price_per_hour is None:
            return
        minutes = duration_minutes(self.start_time, self.end_time)
        self.duration_minutes = minutes
        amount = Decimal(minutes) / Decimal(60) * Decimal(str(self.price_per_hour))
        self.total_amount = amount.quantize(_CENT, rounding=ROUND_HALF_UP)

    def to_dict(self):
        return {
            "id": self.id,
            "turf_id": self.turf_id,
            "owner_id": self.owner_id,
            "customer_id": self.customer_id,
            "customer": {
                "name": self.customer_name,
                "phone": self.customer_phone,
                "email": self.customer_email,
            },
            "date": self.booking_date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_minutes": self.duration_minutes,
            "price_per_hour": float(self.price_per_hour),
            "total_amount": float(self.total_amount),
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "payment_amount": float(self.payment_amount or 0),
            "booking_type": self.booking_type,
            "booking_code": self.booking_code,
            "payment_order_id": self.payment_order_id,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "checked_in_at": self.checked_in_at.isoformat() if self.checked_in_at else None,
            "cancelled_at": self.cancelled_at.isoformat() if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@event.listens_for(Booking, "before_insert")
def _derive_amount_on_insert(mapper, connection, target):
    target.start_time, target.end_time = canonical_range(target.start_time, target.end_time)
    target.recompute_amount()


def _reject_identity_change(target, value, oldvalue, initiator):
    state = inspect(target)
    if state.persistent and oldvalue is not NO_VALUE and oldvalue != value:
        raise ValueError(f"Booking {initiator.key} cannot change; cancel and book again")
    return value


for _field in IDENTITY_FIELDS:
    # active_history loads the stored value even when the attribute was expired
    event.listen(getattr(Booking, _field), "set", _reject_identity_change, active_history=True, retval=True)


@event.listens_for(Booking, "before_update")
def _derive_amount_on_update(mapper, connection, target):
    state = inspect(target)
    for field in IDENTITY_FIELDS:
        if state.attrs[field].history.deleted:
            raise ValueError(f"Booking {field} cannot change; cancel and book again")
    target.recompute_amount()

from datetime import datetime
from models.db import db

class Turf(db.Model):
    __tablename__ = "turfs"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    location = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text, nullable=True)

    owner_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # base hourly rate, used when a slot definition carries no price of its own
    price_per_hour = db.Column(db.Integer, nullable=False, default=0)
    slot_duration = db.Column(db.Integer, nullable=False, default=60)  # minutes
    advance_booking_days = db.Column(db.Integer, nullable=False, default=30)

    # PENDING, VERIFIED, REJECTED (set by the external approval workflow)
    status = db.Column(db.String(20), nullable=False, default="PENDING")
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    owner = db.relationship("User", foreign_keys=[owner_user_id])
    schedules = db.relationship(
        "DaySchedule",
        back_populates="turf",
        order_by="DaySchedule.weekday",
        cascade="all, delete-orphan",
    )

    def schedule_for(self, weekday: int):
        for s in self.schedules:
            if s.weekday == weekday:
                return s
        return None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "description": self.description,
            "owner_id": self.owner_user_id,
            "price_per_hour": self.price_per_hour,
            "slot_duration": self.slot_duration,
            "advance_booking_days": self.advance_booking_days,
            "status": self.status,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

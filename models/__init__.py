from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .turf import Turf
from .slot import DaySchedule, SlotDefinition
from .booking import Booking, BookingStatus, PaymentStatus, PaymentMethod, BookingType

"""
Narrow seam to the identity/owner service.

Owner registration and approval live elsewhere; the booking core only asks
whether a turf's owner may currently take bookings.
"""
from collections import namedtuple

from models import db
from models.user import User
from security.rbac import ADMIN
from utils.errors import Forbidden

OwnerStatus = namedtuple("OwnerStatus", ["owner_id", "is_approved", "is_active"])

APPROVED_STATUS = "VERIFIED"


def resolve_owner_status(turf) -> OwnerStatus:
    owner = db.session.get(User, turf.owner_user_id)
    return OwnerStatus(
        owner_id=turf.owner_user_id,
        is_approved=turf.status == APPROVED_STATUS,
        is_active=bool(owner and owner.is_active and turf.is_active),
    )


def is_bookable(turf) -> bool:
    """A turf whose owner is unapproved or inactive is fully unavailable."""
    if turf is None:
        return False
    status = resolve_owner_status(turf)
    return status.is_approved and status.is_active


def owns_turf(user, turf) -> bool:
    if user is None or turf is None:
        return False
    return turf.owner_user_id == user.id or user.has_role(ADMIN)


def require_owner(user, turf):
    if not owns_turf(user, turf):
        raise Forbidden("Not authorized for this turf")

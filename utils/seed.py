from models import db
from models.user import Role
from security.rbac import ALL_ROLES


def ensure_role(name: str):
    """Fetch a known role row, creating it if the seed hasn't run yet."""
    name = name.strip().upper()
    if name not in ALL_ROLES:
        return None
    role = Role.query.filter_by(name=name).first()
    if role is None:
        role = Role(name=name)
        db.session.add(role)
        db.session.flush()
    return role


def seed_roles():
    existing = {r.name for r in Role.query.all()}
    for name in ALL_ROLES:
        if name not in existing:
            db.session.add(Role(name=name))
    db.session.commit()

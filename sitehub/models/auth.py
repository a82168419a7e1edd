"""
SiteHub
Account model.

Models:
    - User: login identity with a single global role.

Roles (ordered by reach):
    admin        — bypasses every group check
    group_owner  — may create groups and fully manage the ones it owns
    contributor  — may edit inside groups it belongs to
    reader       — read-only (default for self-registered accounts)
"""

from datetime import datetime, timezone

from sitehub.models import db


USER_ROLES = ("admin", "group_owner", "contributor", "reader")

DEFAULT_ROLE = "reader"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(200), default="")
    role = db.Column(
        db.String(20), nullable=False, default=DEFAULT_ROLE,
        comment="admin | group_owner | contributor | reader",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "role IN ('admin','group_owner','contributor','reader')",
            name="ck_user_role",
        ),
    )

    @property
    def is_admin(self):
        return self.role == "admin"

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} [{self.role}]>"

"""
SiteScopedModel — Abstract base class for records owned by a Site.

Documents, external tools, WiFi deployments and WAN links all hang off a
site and share the same bookkeeping columns. This adds:
  - site_id FK column with index (SET NULL — deleting a site orphans its records)
  - created_by FK + creator relationship
  - created_at / updated_at stamps
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declared_attr

from sitehub.models import db


def iso(value):
    """Serialize a date/datetime to ISO-8601, passing None through."""
    return value.isoformat() if value else None


def user_ref(user):
    """Compact author payload embedded in API responses."""
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


class SiteScopedModel(db.Model):
    """Abstract base for site-owned tables."""
    __abstract__ = True

    @declared_attr
    def site_id(cls):
        return db.Column(
            db.Integer,
            db.ForeignKey("sites.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        )

    @declared_attr
    def created_by(cls):
        return db.Column(
            db.Integer,
            db.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        )

    @declared_attr
    def creator(cls):
        return db.relationship("User", foreign_keys=f"{cls.__name__}.created_by")

    @declared_attr
    def site(cls):
        return db.relationship("Site", foreign_keys=f"{cls.__name__}.site_id")

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

"""
SiteHub
Group domain models.

Models:
    - Group:        a customer/organisation grouping sites
    - GroupMember:  user ↔ group relation driving access control
    - GroupEvent:   append-only audit trail of group changes

Architecture:
    Group ──1:N──▶ GroupMember ──N:1──▶ User
    Group ──1:N──▶ GroupEvent
    Group ──1:N──▶ Site  (SET NULL on delete, sites are orphaned not removed)
"""

from datetime import datetime, timezone

from sitehub.models import db
from sitehub.models.base import iso, user_ref


# ── Constants ────────────────────────────────────────────────────────────────

GROUP_EVENT_ACTIONS = {"created", "updated", "user_added", "user_removed"}

MEMBER_RELATIONS = ("owner", "contributor", "reader")


class Group(db.Model):
    __tablename__ = "groups"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)

    # Primary contact
    contact_name = db.Column(db.String(200), default="")
    contact_email = db.Column(db.String(200), default="")
    contact_phone = db.Column(db.String(50), default="")

    notes = db.Column(db.Text, default="")

    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # ── Relationships ────────────────────────────────────────────────────
    creator = db.relationship("User", foreign_keys=[created_by])
    members = db.relationship(
        "GroupMember", backref="group", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    events = db.relationship(
        "GroupEvent", backref="group", lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="GroupEvent.id.desc()",
    )

    @property
    def primary_contact(self):
        return {
            "name": self.contact_name or "",
            "email": self.contact_email or "",
            "phone": self.contact_phone or "",
        }

    def to_dict(self, include_events=False):
        result = {
            "id": self.id,
            "name": self.name,
            "primary_contact": self.primary_contact,
            "notes": self.notes,
            "created_by": user_ref(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "member_count": self.members.count(),
        }
        if include_events:
            result["events"] = [e.to_dict() for e in self.events]
        return result

    def __repr__(self):
        return f"<Group {self.id}: {self.name}>"


class GroupMember(db.Model):
    """Grants a user a relation to a group.

    The relation is intersected with the user's global role to obtain the
    operations the user may perform on the group and everything under it.
    """

    __tablename__ = "group_members"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(
        db.Integer, db.ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    relation = db.Column(
        db.String(20), nullable=False, default="reader",
        comment="owner | contributor | reader",
    )
    added_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    added_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("group_id", "user_id", name="uq_group_member"),
        db.CheckConstraint(
            "relation IN ('owner','contributor','reader')",
            name="ck_group_member_relation",
        ),
    )

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "group_id": self.group_id,
            "user": user_ref(self.user),
            "relation": self.relation,
            "added_by": self.added_by,
            "added_at": iso(self.added_at),
        }

    def __repr__(self):
        return f"<GroupMember group={self.group_id} user={self.user_id} [{self.relation}]>"


class GroupEvent(db.Model):
    __tablename__ = "group_events"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(
        db.Integer, db.ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    action = db.Column(db.String(30), nullable=False)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    details = db.Column(db.Text, default="")
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "user": user_ref(self.user),
            "details": self.details,
            "timestamp": iso(self.timestamp),
        }

    def __repr__(self):
        return f"<GroupEvent {self.id} group={self.group_id} {self.action}>"

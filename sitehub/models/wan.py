"""
SiteHub
WAN connectivity domain models.

Models:
    - WanDeployment:    an internet/WAN link subscribed for a site
    - WanHistoryEntry:  append-only change log of the tracked scalar fields

Only ``provider``, ``link_type``, ``bandwidth`` and ``status`` are tracked;
dates and contract details are overwritten without a history row.

Lifecycle states:
    WanDeployment:  ordered → active → inactive | canceled  (no guard, any move allowed)
"""

from datetime import datetime, timezone

from sitehub.models import db
from sitehub.models.base import SiteScopedModel, iso, user_ref


# ── Constants ────────────────────────────────────────────────────────────────

LINK_TYPES = ("FTTO", "FTTH", "Starlink", "ADSL", "VDSL", "OTHER")

WAN_STATUSES = ("ordered", "active", "canceled", "inactive")

RENEWAL_TYPES = ("automatic", "manual", "none")

TRACKED_FIELDS = ("provider", "link_type", "bandwidth", "status")

DEFAULT_CONTRACT = {
    "reference": "",
    "start_date": None,
    "end_date": None,
    "renewal_type": "automatic",
    "monthly_cost": None,
    "currency": "EUR",
    "notes": "",
}


class WanDeployment(SiteScopedModel):
    __tablename__ = "wan_deployments"

    id = db.Column(db.Integer, primary_key=True)
    provider = db.Column(db.String(200), nullable=False)
    link_type = db.Column(
        db.String(20), nullable=False, default="OTHER",
        comment="FTTO | FTTH | Starlink | ADSL | VDSL | OTHER",
    )
    bandwidth = db.Column(db.String(100), default="")
    status = db.Column(
        db.String(20), nullable=False, default="ordered",
        comment="ordered | active | canceled | inactive",
    )
    subscribed_by_site = db.Column(db.Boolean, nullable=False, default=False)

    order_date = db.Column(db.Date, nullable=True)
    activation_date = db.Column(db.Date, nullable=True, comment="Auto-set on first move to active")
    cancellation_date = db.Column(db.Date, nullable=True, comment="Auto-set on first move to canceled")

    contract_details = db.Column(db.JSON, nullable=False, default=lambda: dict(DEFAULT_CONTRACT))

    __table_args__ = (
        db.CheckConstraint(
            "link_type IN ('FTTO','FTTH','Starlink','ADSL','VDSL','OTHER')",
            name="ck_wan_link_type",
        ),
        db.CheckConstraint(
            "status IN ('ordered','active','canceled','inactive')",
            name="ck_wan_status",
        ),
        {"sqlite_autoincrement": True},
    )

    history = db.relationship(
        "WanHistoryEntry", backref="wan", lazy="dynamic",
        cascade="all, delete-orphan", order_by="WanHistoryEntry.id",
    )

    def to_dict(self, include_history=True):
        result = {
            "id": self.id,
            "site_id": self.site_id,
            "provider": self.provider,
            "link_type": self.link_type,
            "bandwidth": self.bandwidth,
            "status": self.status,
            "subscribed_by_site": bool(self.subscribed_by_site),
            "order_date": iso(self.order_date),
            "activation_date": iso(self.activation_date),
            "cancellation_date": iso(self.cancellation_date),
            "contract_details": {**DEFAULT_CONTRACT, **(self.contract_details or {})},
            "created_by": user_ref(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_history:
            result["history"] = [h.to_dict() for h in self.history]
        return result

    def __repr__(self):
        return f"<WanDeployment {self.id}: {self.provider} {self.link_type} [{self.status}]>"


class WanHistoryEntry(db.Model):
    __tablename__ = "wan_history"

    id = db.Column(db.Integer, primary_key=True)
    wan_id = db.Column(
        db.Integer, db.ForeignKey("wan_deployments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    field = db.Column(db.String(30), nullable=False)
    old_value = db.Column(db.String(200), nullable=True)
    new_value = db.Column(db.String(200), nullable=True)
    changed_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", foreign_keys=[changed_by])

    def to_dict(self):
        return {
            "id": self.id,
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "changed_by": user_ref(self.user),
            "timestamp": iso(self.timestamp),
        }

    def __repr__(self):
        return f"<WanHistoryEntry {self.id} wan={self.wan_id} {self.field}>"

"""
SiteHub
Site domain models.

Models:
    - Site:              a physical client location inside a group
    - SiteExternalLink:  free-form bookmarks shown on the site page
    - SiteEvent:         append-only audit trail covering the site and every
                         record hanging off it (documents, tools, WAN, WiFi)

Architecture:
    Group ──1:N──▶ Site ──1:N──▶ SiteEvent
                   Site ──1:N──▶ SiteExternalLink
                   Site ──1:N──▶ Document | ExternalTool | WanDeployment | WifiDeployment
"""

from datetime import datetime, timezone

from sitehub.models import db
from sitehub.models.base import iso, user_ref


# ── Constants ────────────────────────────────────────────────────────────────

SITE_EVENT_ACTIONS = {
    "created", "updated",
    "document_added", "document_updated", "document_commented", "document_deleted",
    "wan_added", "wan_updated", "wan_deleted",
    "external_tool_added", "external_tool_updated", "external_tool_deleted",
    "wifi_deployment_created", "wifi_deployment_updated",
    "wifi_deployment_archived", "wifi_deployment_deleted",
}

DEFAULT_COUNTRY = "France"

ADDRESS_FIELDS = ("street", "city", "state", "postal_code", "country")
CONTACT_FIELDS = ("name", "email", "phone")


class Site(db.Model):
    __tablename__ = "sites"

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(
        db.Integer, db.ForeignKey("groups.id", ondelete="SET NULL"),
        nullable=True, index=True,
        comment="NULL once the owning group is deleted (orphaned site)",
    )
    name = db.Column(db.String(200), nullable=False)

    # Address
    street = db.Column(db.String(300), default="")
    city = db.Column(db.String(100), default="")
    state = db.Column(db.String(100), default="")
    postal_code = db.Column(db.String(20), default="")
    country = db.Column(db.String(100), default=DEFAULT_COUNTRY)

    # GPS
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    # On-site contact
    contact_name = db.Column(db.String(200), default="")
    contact_email = db.Column(db.String(200), default="")
    contact_phone = db.Column(db.String(50), default="")

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
    group = db.relationship("Group", foreign_keys=[group_id])
    creator = db.relationship("User", foreign_keys=[created_by])
    events = db.relationship(
        "SiteEvent", backref="site", lazy="dynamic",
        cascade="all, delete-orphan", order_by="SiteEvent.id.desc()",
    )
    external_links = db.relationship(
        "SiteExternalLink", backref="site",
        cascade="all, delete-orphan", order_by="SiteExternalLink.id",
    )

    @property
    def address(self):
        return {f: getattr(self, f) or "" for f in ADDRESS_FIELDS}

    @property
    def gps_coordinates(self):
        return {"latitude": self.latitude, "longitude": self.longitude}

    @property
    def onsite_contact(self):
        return {f: getattr(self, f"contact_{f}") or "" for f in CONTACT_FIELDS}

    def to_dict(self, include_events=False):
        result = {
            "id": self.id,
            "group_id": self.group_id,
            "group_name": self.group.name if self.group else None,
            "name": self.name,
            "address": self.address,
            "gps_coordinates": self.gps_coordinates,
            "onsite_contact": self.onsite_contact,
            "external_links": [link.to_dict() for link in self.external_links],
            "created_by": user_ref(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_events:
            result["events"] = [e.to_dict() for e in self.events]
        return result

    def __repr__(self):
        return f"<Site {self.id}: {self.name}>"


class SiteExternalLink(db.Model):
    __tablename__ = "site_external_links"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(
        db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    url = db.Column(db.String(1000), nullable=False)
    description = db.Column(db.Text, default="")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "description": self.description,
        }

    def __repr__(self):
        return f"<SiteExternalLink {self.id}: {self.name}>"


class SiteEvent(db.Model):
    """One entry of a site's audit trail.

    ``subject_id`` carries the id of the sub-record the event is about
    (document, WAN link, deployment ...) so feeds such as the document
    activity list can be derived without a separate table.
    """

    __tablename__ = "site_events"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(
        db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    action = db.Column(db.String(40), nullable=False, index=True)
    subject_id = db.Column(db.Integer, nullable=True)
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
            "site_id": self.site_id,
            "action": self.action,
            "subject_id": self.subject_id,
            "user": user_ref(self.user),
            "details": self.details,
            "timestamp": iso(self.timestamp),
        }

    def __repr__(self):
        return f"<SiteEvent {self.id} site={self.site_id} {self.action}>"

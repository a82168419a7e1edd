"""
SiteHub
External tool links attached to a site (monitoring consoles, controllers,
ticketing queues ...). No sub-entities.
"""

from sitehub.models import db
from sitehub.models.base import SiteScopedModel, iso, user_ref


class ExternalTool(SiteScopedModel):
    __tablename__ = "external_tools"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    url = db.Column(db.String(2000), nullable=False)
    icon = db.Column(db.String(100), default="")
    description = db.Column(db.Text, default="")
    updated_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    # Ids are referenced by site events after the row is gone
    __table_args__ = {"sqlite_autoincrement": True}

    editor = db.relationship("User", foreign_keys=[updated_by])

    def to_dict(self):
        return {
            "id": self.id,
            "site_id": self.site_id,
            "name": self.name,
            "url": self.url,
            "icon": self.icon,
            "description": self.description,
            "created_by": user_ref(self.creator),
            "updated_by": user_ref(self.editor),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<ExternalTool {self.id}: {self.name}>"

"""
SiteHub
Document domain models.

Models:
    - Document:         a site document, either an external link or a stored file
    - DocumentComment:  append-only discussion thread on a document

A document's source is a tagged union, never two loose optional fields:

    ExternalLink(url)                                   is_external = True
    StoredFile(filename, file_id, mime_type, size)      is_external = False

The ``ck_document_source`` constraint rejects rows that carry both or
neither, so the invariant holds even for writes that bypass the service.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from sitehub.models import db
from sitehub.models.base import SiteScopedModel, iso, user_ref


# ── Constants ────────────────────────────────────────────────────────────────

DOCUMENT_MODULES = ("wifi", "wan", "particularities")

DEFAULT_MODULE = "wifi"


# ── Source variants ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExternalLink:
    url: str

    is_external = True

    def to_dict(self):
        return {"url": self.url}


@dataclass(frozen=True)
class StoredFile:
    filename: str
    file_id: str
    mime_type: str = "application/octet-stream"
    size: int = 0

    is_external = False

    def to_dict(self):
        return asdict(self)


class Document(SiteScopedModel):
    __tablename__ = "documents"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(300), nullable=False)
    type = db.Column(db.String(50), default="")
    description = db.Column(db.Text, default="")
    module = db.Column(
        db.String(30), nullable=False, default=DEFAULT_MODULE,
        comment="wifi | wan | particularities",
    )
    tags = db.Column(db.JSON, default=list)

    # Source (exactly one variant populated)
    is_external = db.Column(db.Boolean, nullable=False, default=False)
    url = db.Column(db.String(2000), nullable=True)
    file_id = db.Column(db.String(100), nullable=True, comment="Blob store key")
    filename = db.Column(db.String(300), nullable=True)
    mime_type = db.Column(db.String(200), nullable=True)
    size = db.Column(db.Integer, nullable=True)

    updated_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    __table_args__ = (
        db.CheckConstraint(
            "(is_external = true AND url IS NOT NULL AND file_id IS NULL) OR "
            "(is_external = false AND file_id IS NOT NULL AND url IS NULL)",
            name="ck_document_source",
        ),
        db.CheckConstraint(
            "module IN ('wifi','wan','particularities')",
            name="ck_document_module",
        ),
        {"sqlite_autoincrement": True},
    )

    # ── Relationships ────────────────────────────────────────────────────
    editor = db.relationship("User", foreign_keys=[updated_by])
    comments = db.relationship(
        "DocumentComment", backref="document", lazy="dynamic",
        cascade="all, delete-orphan", order_by="DocumentComment.id",
    )

    @property
    def source(self):
        """Return the populated source variant."""
        if self.is_external:
            return ExternalLink(url=self.url)
        return StoredFile(
            filename=self.filename,
            file_id=self.file_id,
            mime_type=self.mime_type or "application/octet-stream",
            size=self.size or 0,
        )

    @source.setter
    def source(self, value):
        """Replace the source, clearing every column of the other variant."""
        if isinstance(value, ExternalLink):
            self.is_external = True
            self.url = value.url
            self.file_id = self.filename = self.mime_type = None
            self.size = None
        elif isinstance(value, StoredFile):
            self.is_external = False
            self.url = None
            self.file_id = value.file_id
            self.filename = value.filename
            self.mime_type = value.mime_type
            self.size = value.size
        else:
            raise TypeError(f"Unsupported document source: {value!r}")

    def to_dict(self, include_comments=True):
        result = {
            "id": self.id,
            "site_id": self.site_id,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "module": self.module,
            "tags": list(self.tags or []),
            "is_external": bool(self.is_external),
            "url": self.url if self.is_external else None,
            "file_info": None if self.is_external else self.source.to_dict(),
            "created_by": user_ref(self.creator),
            "updated_by": user_ref(self.editor),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_comments:
            result["comments"] = [c.to_dict() for c in self.comments]
        return result

    def __repr__(self):
        kind = "link" if self.is_external else "file"
        return f"<Document {self.id}: {self.name} [{kind}]>"


class DocumentComment(db.Model):
    __tablename__ = "document_comments"

    id = db.Column(db.Integer, primary_key=True)
    document_id = db.Column(
        db.Integer, db.ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    text = db.Column(db.Text, nullable=False)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "text": self.text,
            "user": user_ref(self.user),
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<DocumentComment {self.id} on document={self.document_id}>"

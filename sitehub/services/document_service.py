"""
Document service — site documents, uploads, comments and the activity feed.

Rules:
  - A document's source is resolved into exactly one variant
    (ExternalLink | StoredFile) before anything is written; payloads that
    carry both or neither are rejected with ValidationError.
  - Blob writes happen before the DB transaction and blob deletes after it,
    so a failed commit never leaves a row pointing at a missing file.
  - A stored blob belongs to one document. A file_info payload may only
    reference a blob that exists and is unclaimed, and a blob is removed
    only once no row references it.
  - Every mutation appends its SiteEvent in the same transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from sitehub.core.exceptions import NotFoundError, ValidationError
from sitehub.models import db
from sitehub.models.document import (
    DEFAULT_MODULE,
    DOCUMENT_MODULES,
    Document,
    DocumentComment,
    ExternalLink,
    StoredFile,
)
from sitehub.models.site import Site, SiteEvent
from sitehub.services import access_policy as policy
from sitehub.services.access_policy import Identity
from sitehub.services.audit_service import write_site_event
from sitehub.services.blob_store import BlobNotFound, get_blob_store
from sitehub.utils.helpers import (
    as_int,
    clean_str,
    commit_or_rollback,
    get_or_raise,
    require_choice,
    require_fields,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "type", "description")

# SiteEvent action → activity feed verb
ACTIVITY_ACTIONS = {
    "document_added": "created",
    "document_updated": "updated",
    "document_deleted": "deleted",
    "document_commented": "commented",
}


# ── Payload parsing ───────────────────────────────────────────────────────────


def _truthy(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def parse_tags(raw) -> list[str]:
    """Accept a list or a comma-separated string; drop blanks."""
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("tags must be a list or comma-separated string", details={"tags": raw})
    return [str(t).strip() for t in raw if str(t).strip()]


def parse_source(data: dict):
    """Resolve a payload into an ExternalLink or a StoredFile."""
    url = clean_str(data.get("url"), "url")
    file_info = data.get("file_info")
    is_external = _truthy(data["is_external"]) if "is_external" in data else bool(url)

    if is_external:
        if file_info:
            raise ValidationError(
                "External documents cannot carry file_info",
                details={"file_info": "not_allowed"},
            )
        if not url:
            raise ValidationError("url is required for external documents", details={"url": "required"})
        return ExternalLink(url=url)

    if url:
        raise ValidationError("Stored documents cannot carry a url", details={"url": "not_allowed"})
    if not isinstance(file_info, dict) or not file_info.get("file_id") or not file_info.get("filename"):
        raise ValidationError(
            "file_info with filename and file_id is required for stored documents",
            details={"file_info": "required"},
        )
    try:
        size = int(file_info.get("size") or 0)
    except (TypeError, ValueError) as exc:
        raise ValidationError("file_info.size must be an integer", details={"size": file_info.get("size")}) from exc
    return StoredFile(
        filename=clean_str(file_info["filename"], "filename"),
        file_id=clean_str(file_info["file_id"], "file_id"),
        mime_type=clean_str(file_info.get("mime_type"), "mime_type") or "application/octet-stream",
        size=size,
    )


# ── Queries ───────────────────────────────────────────────────────────────────


def get_document(identity: Identity, document_id: int, operation: str = "read") -> Document:
    doc = get_or_raise(Document, document_id, "Document")
    policy.require_record_access(identity, doc, operation)
    return doc


def _blob_referenced(file_id: str) -> bool:
    return db.session.execute(
        select(Document.id).where(Document.file_id == file_id).limit(1)
    ).first() is not None


def _check_blob_claimable(file_id: str) -> None:
    """A client-supplied file_id must name a stored blob no document owns yet."""
    if not get_blob_store().exists(file_id):
        raise ValidationError("file_info.file_id does not name a stored file", details={"file_id": "unknown"})
    if _blob_referenced(file_id):
        raise ValidationError("file_info.file_id is already attached to a document", details={"file_id": "in_use"})


def list_documents(identity: Identity, site_id: int | None = None, module: str | None = None) -> list[Document]:
    """Newest-first documents the caller may read."""
    stmt = select(Document).order_by(Document.created_at.desc(), Document.id.desc())
    if site_id is not None:
        site = get_or_raise(Site, site_id, "Site")
        policy.require_site_access(identity, site, "read")
        stmt = stmt.where(Document.site_id == site.id)
    else:
        readable = policy.readable_group_ids(identity)
        if readable is not None:
            stmt = stmt.join(Site, Document.site_id == Site.id).where(Site.group_id.in_(readable))
    if module:
        require_choice(module, DOCUMENT_MODULES, "module")
        stmt = stmt.where(Document.module == module)
    return db.session.execute(stmt).scalars().all()


def list_activities(identity: Identity, site_id: int, limit: int = 50) -> list[dict]:
    """Document activity feed for a site, derived from its audit trail."""
    site = get_or_raise(Site, site_id, "Site")
    policy.require_site_access(identity, site, "read")
    events = (
        site.events
        .filter(SiteEvent.action.in_(tuple(ACTIVITY_ACTIONS)))
        .limit(limit)
        .all()
    )
    feed = []
    for ev in events:
        payload = ev.to_dict()
        feed.append({
            "id": ev.id,
            "document_id": ev.subject_id,
            "action": ACTIVITY_ACTIONS[ev.action],
            "user": payload["user"],
            "timestamp": payload["timestamp"],
            "details": ev.details,
        })
    return feed


# ── Mutations ─────────────────────────────────────────────────────────────────


def create_document(
    identity: Identity,
    data: dict,
    *,
    site_id: int | None = None,
    default_module: str = DEFAULT_MODULE,
    source=None,
) -> Document:
    """Create a document on a site the caller can ``write``.

    ``source`` may be passed pre-built (upload path); otherwise it is parsed
    from the payload.
    """
    require_fields(data, "name")
    site_id = site_id if site_id is not None else as_int(data.get("site_id"), "site_id")
    if site_id is None:
        raise ValidationError("site_id is required", details={"site_id": "required"})
    site = get_or_raise(Site, site_id, "Site")
    policy.require_site_access(identity, site, "write")

    module = data.get("module") or default_module
    require_choice(module, DOCUMENT_MODULES, "module")
    if source is None:
        source = parse_source(data)
        if isinstance(source, StoredFile):
            _check_blob_claimable(source.file_id)

    doc = Document(
        site_id=site.id,
        name=clean_str(data["name"], "name"),
        type=clean_str(data.get("type"), "type"),
        description=clean_str(data.get("description"), "description"),
        module=module,
        tags=parse_tags(data.get("tags")),
        created_by=identity.id,
        updated_by=identity.id,
    )
    doc.source = source
    db.session.add(doc)
    db.session.flush()
    write_site_event(site_id=site.id, action="document_added", user_id=identity.id,
                     details=f"Document '{doc.name}' added ({module})", subject_id=doc.id)
    commit_or_rollback()
    logger.info("Document created id=%s site=%s external=%s", doc.id, site.id, doc.is_external)
    return doc


def upload_document(identity: Identity, file_storage, form: dict, *, site_id: int | None = None) -> Document:
    """Store an uploaded file, then create its document row."""
    if file_storage is None or not file_storage.filename:
        raise ValidationError("file is required", details={"file": "required"})

    data = dict(form)
    data.setdefault("name", file_storage.filename)
    if not clean_str(data.get("name"), "name"):
        data["name"] = file_storage.filename

    # Resolve the site and permission before touching the blob store
    target_site_id = site_id if site_id is not None else as_int(data.get("site_id"), "site_id")
    if target_site_id is None:
        raise ValidationError("site_id is required", details={"site_id": "required"})
    site = get_or_raise(Site, target_site_id, "Site")
    policy.require_site_access(identity, site, "write")

    store = get_blob_store()
    file_id, size = store.save(file_storage.stream, file_storage.filename)
    source = StoredFile(
        filename=file_storage.filename,
        file_id=file_id,
        mime_type=file_storage.mimetype or "application/octet-stream",
        size=size,
    )
    try:
        return create_document(identity, data, site_id=site.id, source=source)
    except Exception:
        store.delete(file_id)
        raise


def update_document(identity: Identity, document_id: int, data: dict) -> Document:
    doc = get_document(identity, document_id, "write")

    changed = []
    for f in UPDATABLE_FIELDS:
        if f in data:
            if f == "name":
                require_fields(data, "name")
            setattr(doc, f, clean_str(data[f], f))
            changed.append(f)
    if "tags" in data:
        doc.tags = parse_tags(data["tags"])
        changed.append("tags")
    if "module" in data:
        doc.module = require_choice(data["module"], DOCUMENT_MODULES, "module")
        changed.append("module")
    if "url" in data:
        if not doc.is_external:
            raise ValidationError("Stored documents cannot carry a url", details={"url": "not_allowed"})
        doc.source = parse_source({"is_external": True, "url": data["url"]})
        changed.append("url")

    doc.updated_by = identity.id
    write_site_event(site_id=doc.site_id, action="document_updated", user_id=identity.id,
                     details=f"Document '{doc.name}' updated: {', '.join(changed) or 'nothing'}",
                     subject_id=doc.id)
    commit_or_rollback()
    return doc


def delete_document(identity: Identity, document_id: int, *, site_id: int | None = None) -> None:
    doc = get_document(identity, document_id, "delete")
    if site_id is not None and doc.site_id != site_id:
        raise NotFoundError("Document", document_id)

    file_id = None if doc.is_external else doc.file_id
    write_site_event(site_id=doc.site_id, action="document_deleted", user_id=identity.id,
                     details=f"Document '{doc.name}' deleted", subject_id=doc.id)
    db.session.delete(doc)
    commit_or_rollback()
    if file_id and not _blob_referenced(file_id):
        get_blob_store().delete(file_id)
    logger.info("Document deleted id=%s by user=%s", document_id, identity.id)


def add_comment(identity: Identity, document_id: int, text: str | None) -> list[DocumentComment]:
    """Append a comment; returns the full thread oldest-first."""
    doc = get_document(identity, document_id, "write")
    text = clean_str(text, "text")
    if not text:
        raise ValidationError("text is required", details={"text": "required"})

    db.session.add(DocumentComment(document_id=doc.id, text=text, user_id=identity.id))
    write_site_event(site_id=doc.site_id, action="document_commented", user_id=identity.id,
                     details=f"Comment on '{doc.name}'", subject_id=doc.id)
    commit_or_rollback()
    return doc.comments.all()


def open_download(identity: Identity, document_id: int) -> tuple[str, StoredFile]:
    """Return (blob_path, source) for a stored document."""
    doc = get_document(identity, document_id, "read")
    source = doc.source
    if isinstance(source, ExternalLink):
        raise ValidationError("External documents have no stored file", details={"url": source.url})
    try:
        return get_blob_store().path_for(source.file_id), source
    except BlobNotFound as exc:
        logger.warning("Blob %s missing for document id=%s", source.file_id, doc.id)
        raise NotFoundError("File", source.file_id) from exc

"""
Admin service — super-admin maintenance operations.

The database reset is gated by identity, not by role: only the account
whose email equals ``SUPER_ADMIN_EMAIL`` may run it, and an empty setting
disables the endpoint for everyone.
"""

from __future__ import annotations

import logging

from flask import current_app

from sitehub.core.exceptions import ForbiddenError
from sitehub.models import db
from sitehub.services.access_policy import Identity
from sitehub.services.blob_store import get_blob_store

logger = logging.getLogger(__name__)

PRESERVED_TABLES = frozenset({"users"})


def is_super_admin(identity: Identity) -> bool:
    expected = (current_app.config.get("SUPER_ADMIN_EMAIL") or "").strip()
    return bool(expected) and identity.email == expected


def reset_database(identity: Identity) -> dict:
    """Delete every row outside ``users`` and clear the blob store.

    Returns ``{"tables": {name: deleted_rows}, "files": deleted_blobs}``.
    """
    if not is_super_admin(identity):
        logger.warning("Database reset refused for user=%s", identity.id)
        raise ForbiddenError("Only the super admin can reset the database", operation="reset")

    counts = {}
    try:
        # Children before parents
        for table in reversed(db.metadata.sorted_tables):
            if table.name in PRESERVED_TABLES:
                continue
            counts[table.name] = db.session.execute(table.delete()).rowcount
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Database reset failed, transaction rolled back")
        raise

    files = get_blob_store().clear()
    logger.warning(
        "Database reset by user=%s: %d row(s), %d file(s) removed",
        identity.id, sum(counts.values()), files,
    )
    return {"tables": counts, "files": files}

"""
Blob store — binary storage for uploaded documents.

The store is an explicit object built by the app factory from
``BLOB_STORE_DIR`` and registered as ``app.extensions["blob_store"]``;
services fetch it through ``get_blob_store()`` so tests can point it at a
temporary directory.

Keys are ``token_hex(16)`` plus the original file extension
(e.g. ``9f1c…e2.pdf``). Keys are validated on every call, which rules out
path traversal through a forged ``file_id``.
"""

from __future__ import annotations

import logging
import os
import re
import secrets
import shutil

from flask import current_app

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[0-9a-f]{32}(\.[A-Za-z0-9]{1,10})?$")


class BlobNotFound(LookupError):
    """Raised when a key has no stored blob."""


class LocalBlobStore:
    """Filesystem-backed blob store rooted at one directory."""

    def __init__(self, root: str) -> None:
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    # ── Keys ──────────────────────────────────────────────────────────

    @staticmethod
    def new_key(original_filename: str | None) -> str:
        ext = os.path.splitext(original_filename or "")[1].lower()
        if not re.fullmatch(r"\.[a-z0-9]{1,10}", ext or ""):
            ext = ""
        return secrets.token_hex(16) + ext

    def _path(self, key: str) -> str:
        if not key or not _KEY_RE.match(key):
            raise BlobNotFound(key)
        return os.path.join(self.root, key)

    # ── Operations ────────────────────────────────────────────────────

    def save(self, stream, original_filename: str | None) -> tuple[str, int]:
        """Copy ``stream`` into the store. Returns (key, size_in_bytes)."""
        key = self.new_key(original_filename)
        path = self._path(key)
        with open(path, "wb") as fh:
            shutil.copyfileobj(stream, fh)
        size = os.path.getsize(path)
        logger.debug("Stored blob %s (%d bytes)", key, size)
        return key, size

    def exists(self, key: str) -> bool:
        try:
            return os.path.isfile(self._path(key))
        except BlobNotFound:
            return False

    def path_for(self, key: str) -> str:
        """Absolute path of an existing blob (used for send_file)."""
        path = self._path(key)
        if not os.path.isfile(path):
            raise BlobNotFound(key)
        return path

    def delete(self, key: str) -> bool:
        """Remove a blob; returns False when it was already gone."""
        try:
            os.remove(self._path(key))
            return True
        except (BlobNotFound, FileNotFoundError):
            return False

    def clear(self) -> int:
        """Remove every blob. Returns the number of files deleted."""
        removed = 0
        for name in os.listdir(self.root):
            if _KEY_RE.match(name):
                os.remove(os.path.join(self.root, name))
                removed += 1
        return removed


def init_blob_store(app) -> LocalBlobStore:
    """Build the store from config and register it on the app."""
    root = app.config.get("BLOB_STORE_DIR") or os.path.join(app.instance_path, "uploads")
    store = LocalBlobStore(root)
    app.extensions["blob_store"] = store
    return store


def get_blob_store() -> LocalBlobStore:
    return current_app.extensions["blob_store"]

"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — simple 200 for load balancers
    GET /api/v1/health/ready  — readiness with dependency status (DB, blob store)
"""

import logging
import os
import time

from flask import Blueprint, current_app, jsonify

from sitehub.models import db
from sitehub.services.blob_store import get_blob_store

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    """Liveness probe — always 200 if the app is running."""
    return jsonify({"status": "ok", "app": "SiteHub"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Blob store ───────────────────────────────────────────────────
    root = get_blob_store().root
    if os.path.isdir(root) and os.access(root, os.W_OK):
        checks["blob_store"] = {"status": "ok"}
    else:
        checks["blob_store"] = {"status": "error", "detail": "upload directory not writable"}
        overall = False

    checks["app"] = {
        "name": "SiteHub",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code

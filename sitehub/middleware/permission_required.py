"""
Permission Decorators — route guards on top of the JWT identity.

The JWT middleware has already rejected unauthenticated /api/v1 requests;
these decorators read ``g.identity`` and add the role-level checks.
Group-scoped checks live in the service layer (``access_policy``) because
they need the loaded record.

Usage:
    @admin_bp.route("/users", methods=["GET"])
    @require_admin
    def list_users():
        ...
"""

import functools
import logging

from flask import g

from sitehub.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def current_identity():
    """The Identity set by the JWT middleware, or None."""
    return getattr(g, "identity", None)


def login_required(f):
    """Decorator: 401 unless the request carries a valid identity."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_identity() is None:
            return api_error(E.UNAUTHORIZED, "No token, authorization denied")
        return f(*args, **kwargs)
    return decorated


def require_admin(f):
    """Decorator: 403 unless the identity's role is ``admin``."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        identity = current_identity()
        if identity is None:
            return api_error(E.UNAUTHORIZED, "No token, authorization denied")
        if not identity.is_admin:
            logger.warning("User %d denied: admin role required on %s", identity.id, f.__name__)
            return api_error(E.FORBIDDEN, "Admin access required")
        return f(*args, **kwargs)
    return decorated

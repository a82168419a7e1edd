"""
JWT Auth Middleware — authenticates every API request and sets g.identity.

The token is read from, in order:
  1. ``x-auth-token: <token>``
  2. ``Authorization: Bearer <token>``

Missing, malformed, expired or orphaned tokens (user deleted since issue)
stop the request with 401. On success:

  g.identity      → Identity(id, role, email), role as currently stored
  g.current_user  → the User row
"""

import logging

import jwt as pyjwt
from flask import g, request

from sitehub.models import db
from sitehub.models.auth import User
from sitehub.services.access_policy import Identity
from sitehub.services.jwt_service import decode_access_token
from sitehub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

TOKEN_HEADER = "x-auth-token"

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/auth/register",
    "/api/v1/health",
)


def extract_token(req) -> str | None:
    """Return the raw token from the custom header or a Bearer header."""
    token = req.headers.get(TOKEN_HEADER, "").strip()
    if token:
        return token
    auth_header = req.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.identity = None
        g.current_user = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        token = extract_token(request)
        if not token:
            return api_error(E.UNAUTHORIZED, "No token, authorization denied")

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            return api_error(E.UNAUTHORIZED, "Token has expired")
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected token on %s: %s", path, exc)
            return api_error(E.UNAUTHORIZED, "Token is not valid")

        user = db.session.get(User, payload["user_id"])
        if user is None:
            return api_error(E.UNAUTHORIZED, "Token is not valid")

        g.current_user = user
        g.identity = Identity(id=user.id, role=user.role, email=user.email)
        return None

"""
Auth Blueprint — JWT authentication endpoints.

Endpoints:
  POST /api/v1/auth/register         — Email + password → reader account + token
  POST /api/v1/auth/login            — Email + password → token
  GET  /api/v1/auth/me               — Current user profile
  PUT  /api/v1/auth/change-password  — Re-verify current password, set a new one
"""

from flask import Blueprint, g, jsonify

from sitehub.blueprints import json_body
from sitehub.middleware.permission_required import login_required
from sitehub.services.jwt_service import token_response
from sitehub.services.user_service import authenticate, change_password, register_user
from sitehub.utils.helpers import require_fields

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Create a ``reader`` account and log it in.

    Body: { "email": "...", "password": "...", "name": "..." }
    """
    user = register_user(json_body())
    return jsonify(token_response(user)), 201


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate with email + password.

    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    require_fields(data, "email", "password")
    user = authenticate(data["email"], data["password"])
    return jsonify(token_response(user)), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(g.current_user.to_dict()), 200


# ═══════════════════════════════════════════════════════════════
# PUT /api/v1/auth/change-password
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/change-password", methods=["PUT"])
@login_required
def update_password():
    """
    Body: { "currentPassword": "...", "newPassword": "..." }
    (snake_case ``current_password`` / ``new_password`` also accepted)
    """
    data = json_body()
    current = data.get("currentPassword", data.get("current_password"))
    new = data.get("newPassword", data.get("new_password"))
    require_fields({"currentPassword": current, "newPassword": new}, "currentPassword", "newPassword")
    change_password(g.current_user, current, new)
    return jsonify({"message": "Password updated"}), 200

"""
Admin Blueprint — user administration and the super-admin reset.

Endpoints:
  POST /api/v1/admin/reset-database     — super admin (SUPER_ADMIN_EMAIL) only
  GET  /api/v1/admin/users              — admin role
  PUT  /api/v1/admin/users/<id>/role    — admin role
"""

from flask import Blueprint, g, jsonify

from sitehub.blueprints import json_body
from sitehub.middleware.permission_required import login_required, require_admin
from sitehub.services import admin_service, user_service
from sitehub.utils.helpers import require_fields

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")


@admin_bp.route("/reset-database", methods=["POST"])
@login_required
def reset_database():
    result = admin_service.reset_database(g.identity)
    return jsonify({"message": "Database reset", **result}), 200


@admin_bp.route("/users", methods=["GET"])
@require_admin
def list_users():
    return jsonify([u.to_dict() for u in user_service.list_users()]), 200


@admin_bp.route("/users/<int:user_id>/role", methods=["PUT"])
@require_admin
def set_role(user_id):
    """Body: { "role": "admin" | "group_owner" | "contributor" | "reader" }"""
    data = json_body()
    require_fields(data, "role")
    user = user_service.set_role(user_id, data["role"], actor_id=g.identity.id)
    return jsonify(user.to_dict()), 200

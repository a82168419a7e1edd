"""
Archive Blueprint — read-only access to archived WiFi deployments.

Endpoints:
  GET /api/v1/archived-deployments        (?site_id=&original_id=)
  GET /api/v1/archived-deployments/<id>
"""

from flask import Blueprint, g, jsonify, request

from sitehub.services import wifi_deployment_service as wds

archive_bp = Blueprint("archive", __name__, url_prefix="/api/v1/archived-deployments")


@archive_bp.route("", methods=["GET"])
def list_archived():
    archived = wds.list_archived(
        g.identity,
        site_id=request.args.get("site_id", type=int),
        original_id=request.args.get("original_id", type=int),
    )
    return jsonify([a.to_dict() for a in archived]), 200


@archive_bp.route("/<int:archived_id>", methods=["GET"])
def get_archived(archived_id):
    return jsonify(wds.get_archived(g.identity, archived_id).to_dict()), 200

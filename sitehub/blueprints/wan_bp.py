"""
WAN Blueprint — WAN links and their change history.

Endpoints:
  GET/POST        /api/v1/wan               (?site_id=)
  GET/PUT/DELETE  /api/v1/wan/<id>
  GET             /api/v1/wan/<id>/history  — oldest first
"""

from flask import Blueprint, g, jsonify, request

from sitehub.blueprints import json_body
from sitehub.services import wan_service

wan_bp = Blueprint("wan", __name__, url_prefix="/api/v1/wan")


@wan_bp.route("", methods=["GET"])
def list_wan():
    links = wan_service.list_wan(g.identity, site_id=request.args.get("site_id", type=int))
    return jsonify([w.to_dict(include_history=False) for w in links]), 200


@wan_bp.route("", methods=["POST"])
def create_wan():
    wan = wan_service.create_wan(g.identity, json_body())
    return jsonify(wan.to_dict()), 201


@wan_bp.route("/<int:wan_id>", methods=["GET"])
def get_wan(wan_id):
    return jsonify(wan_service.get_wan(g.identity, wan_id).to_dict()), 200


@wan_bp.route("/<int:wan_id>", methods=["PUT"])
def update_wan(wan_id):
    wan = wan_service.update_wan(g.identity, wan_id, json_body())
    return jsonify(wan.to_dict()), 200


@wan_bp.route("/<int:wan_id>", methods=["DELETE"])
def delete_wan(wan_id):
    wan_service.delete_wan(g.identity, wan_id)
    return jsonify({"message": "WAN connection deleted"}), 200


@wan_bp.route("/<int:wan_id>/history", methods=["GET"])
def list_history(wan_id):
    entries = wan_service.list_history(g.identity, wan_id)
    return jsonify([h.to_dict() for h in entries]), 200

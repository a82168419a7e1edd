"""
Group Blueprint — groups, membership and the group audit trail.

Endpoints:
  GET/POST          /api/v1/groups
  GET/PUT/DELETE    /api/v1/groups/<id>
  GET               /api/v1/groups/<id>/events         (paginated, newest first)
  GET/POST          /api/v1/groups/<id>/members
  DELETE            /api/v1/groups/<id>/members/<user_id>
"""

from flask import Blueprint, g, jsonify

from sitehub.blueprints import json_body, paginate_query
from sitehub.services import group_service

group_bp = Blueprint("groups", __name__, url_prefix="/api/v1/groups")


@group_bp.route("", methods=["GET"])
def list_groups():
    groups = group_service.list_groups(g.identity)
    return jsonify([grp.to_dict() for grp in groups]), 200


@group_bp.route("", methods=["POST"])
def create_group():
    group = group_service.create_group(g.identity, json_body())
    return jsonify(group.to_dict()), 201


@group_bp.route("/<int:group_id>", methods=["GET"])
def get_group(group_id):
    group = group_service.get_group(g.identity, group_id)
    return jsonify(group.to_dict(include_events=True)), 200


@group_bp.route("/<int:group_id>", methods=["PUT"])
def update_group(group_id):
    group = group_service.update_group(g.identity, group_id, json_body())
    return jsonify(group.to_dict()), 200


@group_bp.route("/<int:group_id>", methods=["DELETE"])
def delete_group(group_id):
    group_service.delete_group(g.identity, group_id)
    return jsonify({"message": "Group deleted"}), 200


@group_bp.route("/<int:group_id>/events", methods=["GET"])
def list_events(group_id):
    items, total = paginate_query(group_service.list_events(g.identity, group_id))
    return jsonify({"items": [ev.to_dict() for ev in items], "total": total}), 200


# ── Membership ────────────────────────────────────────────────────────────────


@group_bp.route("/<int:group_id>/members", methods=["GET"])
def list_members(group_id):
    members = group_service.list_members(g.identity, group_id)
    return jsonify([m.to_dict() for m in members]), 200


@group_bp.route("/<int:group_id>/members", methods=["POST"])
def add_member(group_id):
    """Body: { "user_id": 7, "relation": "owner" | "contributor" | "reader" }"""
    member = group_service.add_member(g.identity, group_id, json_body())
    return jsonify(member.to_dict()), 201


@group_bp.route("/<int:group_id>/members/<int:user_id>", methods=["DELETE"])
def remove_member(group_id, user_id):
    group_service.remove_member(g.identity, group_id, user_id)
    return jsonify({"message": "Member removed"}), 200

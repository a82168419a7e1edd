"""
External Tool Blueprint.

Endpoints:
  GET/POST        /api/v1/external-tools       (?site_id=)
  GET/PUT/DELETE  /api/v1/external-tools/<id>
"""

from flask import Blueprint, g, jsonify, request

from sitehub.blueprints import json_body
from sitehub.services import external_tool_service

external_tool_bp = Blueprint("external_tools", __name__, url_prefix="/api/v1/external-tools")


@external_tool_bp.route("", methods=["GET"])
def list_tools():
    tools = external_tool_service.list_tools(g.identity, site_id=request.args.get("site_id", type=int))
    return jsonify([t.to_dict() for t in tools]), 200


@external_tool_bp.route("", methods=["POST"])
def create_tool():
    tool = external_tool_service.create_tool(g.identity, json_body())
    return jsonify(tool.to_dict()), 201


@external_tool_bp.route("/<int:tool_id>", methods=["GET"])
def get_tool(tool_id):
    return jsonify(external_tool_service.get_tool(g.identity, tool_id).to_dict()), 200


@external_tool_bp.route("/<int:tool_id>", methods=["PUT"])
def update_tool(tool_id):
    tool = external_tool_service.update_tool(g.identity, tool_id, json_body())
    return jsonify(tool.to_dict()), 200


@external_tool_bp.route("/<int:tool_id>", methods=["DELETE"])
def delete_tool(tool_id):
    external_tool_service.delete_tool(g.identity, tool_id)
    return jsonify({"message": "External tool deleted"}), 200

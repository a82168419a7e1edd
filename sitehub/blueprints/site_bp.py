"""
Site Blueprint — sites and their nested collections.

Endpoints:
  Site:            GET/POST /sites (?group_id=), GET/PUT/DELETE /sites/<id>
                   GET /sites/<id>/events (?action=<prefix>, paginated)
  Documents:       GET/POST /sites/<id>/documents (?module=), DELETE /sites/<id>/documents/<doc_id>
  External tools:  GET/POST /sites/<id>/external-tools, PUT/DELETE /sites/<id>/external-tools/<tool_id>
  WAN links:       GET/POST /sites/<id>/wan-connections, PUT/DELETE /sites/<id>/wan-connections/<wan_id>
  WiFi:            GET/POST /sites/<id>/wifi-deployment
                   GET/PATCH /sites/<id>/wifi-deployment/<dep_id>
                   POST /sites/<id>/wifi-deployment/<dep_id>/archive

A deployment addressed through another site's URL is a 400, not a 404.
"""

from flask import Blueprint, g, jsonify, request

from sitehub.blueprints import json_body, paginate_query
from sitehub.services import (
    document_service,
    external_tool_service,
    site_service,
    wan_service,
    wifi_deployment_service,
)

site_bp = Blueprint("sites", __name__, url_prefix="/api/v1/sites")


# ═════════════════════════════════════════════════════════════════════════
# Sites
# ═════════════════════════════════════════════════════════════════════════


@site_bp.route("", methods=["GET"])
def list_sites():
    group_id = request.args.get("group_id", type=int)
    sites = site_service.list_sites(g.identity, group_id=group_id)
    return jsonify([s.to_dict() for s in sites]), 200


@site_bp.route("", methods=["POST"])
def create_site():
    site = site_service.create_site(g.identity, json_body())
    return jsonify(site.to_dict()), 201


@site_bp.route("/<int:site_id>", methods=["GET"])
def get_site(site_id):
    site = site_service.get_site(g.identity, site_id)
    return jsonify(site.to_dict(include_events=True)), 200


@site_bp.route("/<int:site_id>", methods=["PUT"])
def update_site(site_id):
    site = site_service.update_site(g.identity, site_id, json_body())
    return jsonify(site.to_dict()), 200


@site_bp.route("/<int:site_id>", methods=["DELETE"])
def delete_site(site_id):
    site_service.delete_site(g.identity, site_id)
    return jsonify({"message": "Site deleted"}), 200


@site_bp.route("/<int:site_id>/events", methods=["GET"])
def list_events(site_id):
    query = site_service.list_events(g.identity, site_id, action_prefix=request.args.get("action"))
    items, total = paginate_query(query)
    return jsonify({"items": [ev.to_dict() for ev in items], "total": total}), 200


# ═════════════════════════════════════════════════════════════════════════
# Documents
# ═════════════════════════════════════════════════════════════════════════


@site_bp.route("/<int:site_id>/documents", methods=["GET"])
def list_documents(site_id):
    docs = document_service.list_documents(g.identity, site_id=site_id, module=request.args.get("module"))
    return jsonify([d.to_dict(include_comments=False) for d in docs]), 200


@site_bp.route("/<int:site_id>/documents", methods=["POST"])
def create_document(site_id):
    """JSON body creates a link/stored document; multipart ``file`` uploads one."""
    if "file" in request.files:
        doc = document_service.upload_document(
            g.identity, request.files["file"], request.form.to_dict(), site_id=site_id,
        )
    else:
        doc = document_service.create_document(g.identity, json_body(), site_id=site_id)
    return jsonify(doc.to_dict()), 201


@site_bp.route("/<int:site_id>/documents/<int:doc_id>", methods=["DELETE"])
def delete_document(site_id, doc_id):
    document_service.delete_document(g.identity, doc_id, site_id=site_id)
    return jsonify({"message": "Document deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════
# External tools
# ═════════════════════════════════════════════════════════════════════════


@site_bp.route("/<int:site_id>/external-tools", methods=["GET"])
def list_tools(site_id):
    tools = external_tool_service.list_tools(g.identity, site_id=site_id)
    return jsonify([t.to_dict() for t in tools]), 200


@site_bp.route("/<int:site_id>/external-tools", methods=["POST"])
def create_tool(site_id):
    tool = external_tool_service.create_tool(g.identity, json_body(), site_id=site_id)
    return jsonify(tool.to_dict()), 201


@site_bp.route("/<int:site_id>/external-tools/<int:tool_id>", methods=["PUT"])
def update_tool(site_id, tool_id):
    tool = external_tool_service.update_tool(g.identity, tool_id, json_body(), site_id=site_id)
    return jsonify(tool.to_dict()), 200


@site_bp.route("/<int:site_id>/external-tools/<int:tool_id>", methods=["DELETE"])
def delete_tool(site_id, tool_id):
    external_tool_service.delete_tool(g.identity, tool_id, site_id=site_id)
    return jsonify({"message": "External tool deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════
# WAN links
# ═════════════════════════════════════════════════════════════════════════


@site_bp.route("/<int:site_id>/wan-connections", methods=["GET"])
def list_wan(site_id):
    links = wan_service.list_wan(g.identity, site_id=site_id)
    return jsonify([w.to_dict() for w in links]), 200


@site_bp.route("/<int:site_id>/wan-connections", methods=["POST"])
def create_wan(site_id):
    wan = wan_service.create_wan(g.identity, json_body(), site_id=site_id)
    return jsonify(wan.to_dict()), 201


@site_bp.route("/<int:site_id>/wan-connections/<int:wan_id>", methods=["PUT"])
def update_wan(site_id, wan_id):
    wan = wan_service.update_wan(g.identity, wan_id, json_body(), site_id=site_id)
    return jsonify(wan.to_dict()), 200


@site_bp.route("/<int:site_id>/wan-connections/<int:wan_id>", methods=["DELETE"])
def delete_wan(site_id, wan_id):
    wan_service.delete_wan(g.identity, wan_id, site_id=site_id)
    return jsonify({"message": "WAN connection deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════
# WiFi deployments
# ═════════════════════════════════════════════════════════════════════════


@site_bp.route("/<int:site_id>/wifi-deployment", methods=["GET"])
def list_deployments(site_id):
    deployments = wifi_deployment_service.list_deployments(g.identity, site_id=site_id)
    return jsonify([d.to_dict(include_children=False) for d in deployments]), 200


@site_bp.route("/<int:site_id>/wifi-deployment", methods=["POST"])
def create_deployment(site_id):
    dep = wifi_deployment_service.create_deployment(g.identity, json_body(), site_id=site_id)
    return jsonify(dep.to_dict()), 201


@site_bp.route("/<int:site_id>/wifi-deployment/<int:dep_id>", methods=["GET"])
def get_deployment(site_id, dep_id):
    dep = wifi_deployment_service.get_deployment(g.identity, dep_id, site_id=site_id)
    return jsonify(dep.to_dict()), 200


@site_bp.route("/<int:site_id>/wifi-deployment/<int:dep_id>", methods=["PATCH"])
def update_deployment(site_id, dep_id):
    dep = wifi_deployment_service.update_deployment(g.identity, dep_id, json_body(), site_id=site_id)
    return jsonify(dep.to_dict()), 200


@site_bp.route("/<int:site_id>/wifi-deployment/<int:dep_id>/archive", methods=["POST"])
def archive_deployment(site_id, dep_id):
    archived = wifi_deployment_service.archive_deployment(g.identity, dep_id, site_id=site_id)
    return jsonify(archived.to_dict()), 201

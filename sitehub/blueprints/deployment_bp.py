"""
Deployment Blueprint — WiFi deployment lifecycle, tasks and comments.

Endpoints:
  Deployment:  GET/PATCH/DELETE /deployments/<id>
               POST /deployments/<id>/archive
  Comments:    GET/POST /deployments/<id>/comments          — newest first
  Tasks:       GET/POST /deployments/<id>/tasks             (?sort=priority)
               PATCH/DELETE /deployments/<id>/tasks/<task_id>
               POST /deployments/<id>/tasks/<task_id>/cycle — one-click status toggle
"""

from flask import Blueprint, g, jsonify, request

from sitehub.blueprints import json_body
from sitehub.services import wifi_deployment_service as wds

deployment_bp = Blueprint("deployments", __name__, url_prefix="/api/v1/deployments")


# ═════════════════════════════════════════════════════════════════════════
# Deployment
# ═════════════════════════════════════════════════════════════════════════


@deployment_bp.route("/<int:dep_id>", methods=["GET"])
def get_deployment(dep_id):
    return jsonify(wds.get_deployment(g.identity, dep_id).to_dict()), 200


@deployment_bp.route("/<int:dep_id>", methods=["PATCH"])
def update_deployment(dep_id):
    """
    Body: { "status?": "...", "notes?": "...", "completion_date?": "ISO", "name?": "..." }
    Invalid transitions → 400 with the allowed targets in ``details``.
    """
    dep = wds.update_deployment(g.identity, dep_id, json_body())
    return jsonify(dep.to_dict()), 200


@deployment_bp.route("/<int:dep_id>", methods=["DELETE"])
def delete_deployment(dep_id):
    wds.delete_deployment(g.identity, dep_id)
    return jsonify({"message": "Deployment deleted"}), 200


@deployment_bp.route("/<int:dep_id>/archive", methods=["POST"])
def archive_deployment(dep_id):
    archived = wds.archive_deployment(g.identity, dep_id)
    return jsonify(archived.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════


@deployment_bp.route("/<int:dep_id>/comments", methods=["GET"])
def list_comments(dep_id):
    return jsonify([c.to_dict() for c in wds.list_comments(g.identity, dep_id)]), 200


@deployment_bp.route("/<int:dep_id>/comments", methods=["POST"])
def add_comment(dep_id):
    """Body: { "text": "...", "importance?": "info" | "warning" | "critical" }"""
    comment = wds.add_comment(g.identity, dep_id, json_body())
    return jsonify(comment.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════


@deployment_bp.route("/<int:dep_id>/tasks", methods=["GET"])
def list_tasks(dep_id):
    tasks = wds.list_tasks(g.identity, dep_id, sort=request.args.get("sort"))
    return jsonify([t.to_dict() for t in tasks]), 200


@deployment_bp.route("/<int:dep_id>/tasks", methods=["POST"])
def add_task(dep_id):
    task = wds.add_task(g.identity, dep_id, json_body())
    return jsonify(task.to_dict()), 201


@deployment_bp.route("/<int:dep_id>/tasks/<int:task_id>", methods=["PATCH"])
def update_task(dep_id, task_id):
    task = wds.update_task(g.identity, dep_id, task_id, json_body())
    return jsonify(task.to_dict()), 200


@deployment_bp.route("/<int:dep_id>/tasks/<int:task_id>", methods=["DELETE"])
def delete_task(dep_id, task_id):
    wds.delete_task(g.identity, dep_id, task_id)
    return jsonify({"message": "Task deleted"}), 200


@deployment_bp.route("/<int:dep_id>/tasks/<int:task_id>/cycle", methods=["POST"])
def cycle_task(dep_id, task_id):
    task = wds.cycle_task_status(g.identity, dep_id, task_id)
    return jsonify(task.to_dict()), 200

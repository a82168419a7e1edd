"""
Document Blueprint — site documents, uploads and comments.

Endpoints:
  GET/POST        /api/v1/documents                 (?site_id=&module=)
  POST            /api/v1/documents/external        — link document (url)
  POST            /api/v1/documents/upload          — multipart ``file`` + form fields
  GET             /api/v1/documents/activities      (?site_id= required, ?limit=)
  GET/PUT/DELETE  /api/v1/documents/<id>
  POST            /api/v1/documents/<id>/comment
  GET             /api/v1/documents/<id>/download
"""

from flask import Blueprint, g, jsonify, request, send_file

from sitehub.blueprints import json_body
from sitehub.core.exceptions import ValidationError
from sitehub.services import document_service

document_bp = Blueprint("documents", __name__, url_prefix="/api/v1/documents")


@document_bp.route("", methods=["GET"])
def list_documents():
    docs = document_service.list_documents(
        g.identity,
        site_id=request.args.get("site_id", type=int),
        module=request.args.get("module"),
    )
    return jsonify([d.to_dict(include_comments=False) for d in docs]), 200


@document_bp.route("", methods=["POST"])
def create_document():
    doc = document_service.create_document(g.identity, json_body())
    return jsonify(doc.to_dict()), 201


@document_bp.route("/external", methods=["POST"])
def create_external():
    """Body: { "site_id", "name", "url", "type?", "description?", "tags?", "module?" }"""
    data = json_body()
    data["is_external"] = True
    doc = document_service.create_document(g.identity, data)
    return jsonify(doc.to_dict()), 201


@document_bp.route("/upload", methods=["POST"])
def upload():
    """Multipart: file=<binary>, site_id, name?, type?, description?, tags (comma-separated), module?"""
    doc = document_service.upload_document(g.identity, request.files.get("file"), request.form.to_dict())
    return jsonify(doc.to_dict()), 201


@document_bp.route("/activities", methods=["GET"])
def activities():
    site_id = request.args.get("site_id", type=int)
    if site_id is None:
        raise ValidationError("site_id is required", details={"site_id": "required"})
    limit = min(request.args.get("limit", 50, type=int), 500)
    return jsonify(document_service.list_activities(g.identity, site_id, limit=limit)), 200


@document_bp.route("/<int:doc_id>", methods=["GET"])
def get_document(doc_id):
    doc = document_service.get_document(g.identity, doc_id)
    return jsonify(doc.to_dict()), 200


@document_bp.route("/<int:doc_id>", methods=["PUT"])
def update_document(doc_id):
    doc = document_service.update_document(g.identity, doc_id, json_body())
    return jsonify(doc.to_dict()), 200


@document_bp.route("/<int:doc_id>", methods=["DELETE"])
def delete_document(doc_id):
    document_service.delete_document(g.identity, doc_id)
    return jsonify({"message": "Document deleted"}), 200


@document_bp.route("/<int:doc_id>/comment", methods=["POST"])
def add_comment(doc_id):
    """Body: { "text": "..." }. Returns the whole thread, oldest first."""
    comments = document_service.add_comment(g.identity, doc_id, json_body().get("text"))
    return jsonify([c.to_dict() for c in comments]), 201


@document_bp.route("/<int:doc_id>/download", methods=["GET"])
def download(doc_id):
    path, source = document_service.open_download(g.identity, doc_id)
    return send_file(
        path,
        mimetype=source.mime_type,
        as_attachment=True,
        download_name=source.filename,
    )

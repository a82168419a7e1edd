"""
Documents: link/stored source variants, uploads, downloads, comments and
the activity feed.

Test blocks:
  1. Source variants (exactly one of url / stored file)
  2. Upload & download through the blob store
  3. Update / delete
  4. Comments & activity feed
  5. Blob ownership (one document per stored file)
"""

import io
import re

import pytest
from sqlalchemy.exc import IntegrityError

from sitehub.core.exceptions import ForbiddenError, ValidationError
from sitehub.models import db as _db
from sitehub.models.document import Document, ExternalLink, StoredFile
from sitehub.services import document_service, group_service, site_service

UPLOAD = "/api/v1/documents/upload"


def _link(identity, site, **overrides):
    data = {"name": "Floor plan", "url": "https://cdn.example.com/plan.pdf", "is_external": True}
    data.update(overrides)
    return document_service.create_document(identity, data, site_id=site.id)


def _upload(client, headers, site, content=b"hello", filename="plan.PDF", **form):
    data = {"site_id": str(site.id), "file": (io.BytesIO(content), filename, "application/pdf")}
    data.update(form)
    return client.post(UPLOAD, data=data, content_type="multipart/form-data", headers=headers)


# ═════════════════════════════════════════════════════════════════════════════
# 1. Source variants
# ═════════════════════════════════════════════════════════════════════════════


class TestSourceVariants:
    def test_external_link(self, site, owner, identity_for):
        doc = _link(identity_for(owner), site, tags="wifi, survey ,,")
        assert doc.source == ExternalLink(url="https://cdn.example.com/plan.pdf")
        data = doc.to_dict()
        assert data["is_external"] is True
        assert data["file_info"] is None
        assert data["tags"] == ["wifi", "survey"]
        assert data["module"] == "wifi"

    def test_url_implies_external(self, site, owner, identity_for):
        doc = document_service.create_document(
            identity_for(owner), {"name": "Runbook", "url": "https://x.io/a"}, site_id=site.id,
        )
        assert doc.is_external

    def test_stored_file_from_file_info(self, site, owner, identity_for, blob_store):
        file_id, _ = blob_store.save(io.BytesIO(b"survey"), "s.pdf")
        doc = document_service.create_document(
            identity_for(owner),
            {"name": "Survey", "file_info": {"filename": "s.pdf", "file_id": file_id, "size": "12"}},
            site_id=site.id,
        )
        assert doc.source == StoredFile(filename="s.pdf", file_id=file_id,
                                        mime_type="application/octet-stream", size=12)

    @pytest.mark.parametrize("payload,detail", [
        ({"is_external": True}, {"url": "required"}),
        ({"is_external": True, "url": "https://x.io", "file_info": {"file_id": "f", "filename": "f"}},
         {"file_info": "not_allowed"}),
        ({"is_external": False, "url": "https://x.io"}, {"url": "not_allowed"}),
        ({}, {"file_info": "required"}),
    ])
    def test_invalid_source_rejected(self, site, owner, identity_for, payload, detail):
        with pytest.raises(ValidationError) as exc:
            document_service.create_document(identity_for(owner), {"name": "Bad", **payload}, site_id=site.id)
        assert exc.value.details == detail

    def test_database_rejects_both_variants(self, site):
        _db.session.add(Document(
            site_id=site.id, name="Broken", module="wifi",
            is_external=True, url="https://x.io", file_id="b" * 32,
        ))
        with pytest.raises(IntegrityError):
            _db.session.commit()
        _db.session.rollback()

    def test_non_string_url_is_400(self, client, site, owner, auth_headers):
        res = client.post("/api/v1/documents/external", json={"site_id": site.id, "name": "Portal", "url": 1},
                          headers=auth_headers(owner))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"url": "not_a_string"}

    def test_invalid_module(self, site, owner, identity_for):
        with pytest.raises(ValidationError):
            _link(identity_for(owner), site, module="lan")

    def test_external_endpoint_forces_link(self, client, site, owner, auth_headers):
        res = client.post(
            "/api/v1/documents/external",
            json={"site_id": site.id, "name": "Portal", "url": "https://portal.example.com", "module": "wan"},
            headers=auth_headers(owner),
        )
        assert res.status_code == 201
        body = res.get_json()
        assert body["is_external"] is True
        assert body["module"] == "wan"
        assert body["created_by"]["email"] == "owner@example.com"


# ═════════════════════════════════════════════════════════════════════════════
# 2. Upload & download
# ═════════════════════════════════════════════════════════════════════════════


class TestUploadDownload:
    def test_upload_stores_blob(self, client, site, owner, auth_headers, blob_store):
        res = _upload(client, auth_headers(owner), site, tags="a, b ,,c", module="particularities")
        assert res.status_code == 201
        body = res.get_json()
        info = body["file_info"]
        assert body["name"] == "plan.PDF"
        assert body["tags"] == ["a", "b", "c"]
        assert body["module"] == "particularities"
        assert info["filename"] == "plan.PDF"
        assert info["size"] == 5
        assert info["mime_type"] == "application/pdf"
        assert re.fullmatch(r"[0-9a-f]{32}\.pdf", info["file_id"])
        assert blob_store.exists(info["file_id"])

    def test_upload_without_file(self, client, site, owner, auth_headers):
        res = client.post(UPLOAD, data={"site_id": str(site.id)}, content_type="multipart/form-data",
                          headers=auth_headers(owner))
        assert res.status_code == 400
        assert res.get_json()["details"] == {"file": "required"}

    def test_forbidden_upload_writes_no_blob(self, client, site, make_user, auth_headers, blob_store):
        stranger = make_user("contributor")
        res = _upload(client, auth_headers(stranger), site)
        assert res.status_code == 403
        assert blob_store.clear() == 0

    def test_oversized_upload_is_413(self, app, client, site, owner, auth_headers, monkeypatch):
        monkeypatch.setitem(app.config, "MAX_CONTENT_LENGTH", 64)
        res = _upload(client, auth_headers(owner), site, content=b"x" * 1024)
        assert res.status_code == 413
        assert res.get_json()["code"] == "ERR_PAYLOAD_TOO_LARGE"

    def test_download(self, client, site, owner, auth_headers):
        headers = auth_headers(owner)
        doc_id = _upload(client, headers, site, content=b"%PDF-1.4").get_json()["id"]
        res = client.get(f"/api/v1/documents/{doc_id}/download", headers=headers)
        assert res.status_code == 200
        assert res.data == b"%PDF-1.4"
        assert "plan.PDF" in res.headers["Content-Disposition"]
        assert res.mimetype == "application/pdf"

    def test_download_external_is_400(self, client, site, owner, identity_for, auth_headers):
        doc = _link(identity_for(owner), site)
        res = client.get(f"/api/v1/documents/{doc.id}/download", headers=auth_headers(owner))
        assert res.status_code == 400

    def test_download_missing_blob_is_404(self, client, site, owner, auth_headers, blob_store):
        headers = auth_headers(owner)
        doc_id = _upload(client, headers, site).get_json()["id"]
        blob_store.clear()
        assert client.get(f"/api/v1/documents/{doc_id}/download", headers=headers).status_code == 404

    def test_upload_via_site_route(self, client, site, owner, auth_headers):
        res = client.post(
            f"/api/v1/sites/{site.id}/documents",
            data={"file": (io.BytesIO(b"abc"), "notes.txt", "text/plain")},
            content_type="multipart/form-data",
            headers=auth_headers(owner),
        )
        assert res.status_code == 201
        assert res.get_json()["site_id"] == site.id


# ═════════════════════════════════════════════════════════════════════════════
# 3. Update / delete
# ═════════════════════════════════════════════════════════════════════════════


class TestUpdateDelete:
    def test_update_fields(self, site, owner, identity_for):
        ident = identity_for(owner)
        doc = _link(ident, site)
        document_service.update_document(ident, doc.id, {"name": "Plan v2", "tags": ["x"], "url": "https://x.io/2"})
        assert doc.name == "Plan v2"
        assert doc.tags == ["x"]
        assert doc.url == "https://x.io/2"

    def test_stored_document_rejects_url(self, site, owner, identity_for, blob_store):
        ident = identity_for(owner)
        file_id, _ = blob_store.save(io.BytesIO(b"notes"), "s.txt")
        doc = document_service.create_document(
            ident, {"name": "S", "file_info": {"filename": "s.txt", "file_id": file_id}}, site_id=site.id,
        )
        with pytest.raises(ValidationError):
            document_service.update_document(ident, doc.id, {"url": "https://x.io"})

    def test_delete_removes_blob(self, client, site, owner, auth_headers, blob_store):
        headers = auth_headers(owner)
        body = _upload(client, headers, site).get_json()
        res = client.delete(f"/api/v1/documents/{body['id']}", headers=headers)
        assert res.status_code == 200
        assert not blob_store.exists(body["file_info"]["file_id"])
        assert _db.session.get(Document, body["id"]) is None

    def test_delete_through_other_site_is_404(self, client, site, owner, identity_for, auth_headers):
        ident = identity_for(owner)
        other = site_service.create_site(ident, {"name": "Other", "group_id": site.group_id})
        doc = _link(ident, site)
        res = client.delete(f"/api/v1/sites/{other.id}/documents/{doc.id}", headers=auth_headers(owner))
        assert res.status_code == 404

    def test_list_filters(self, site, owner, identity_for, make_user):
        ident = identity_for(owner)
        _link(ident, site, name="A")
        _link(ident, site, name="B", module="wan")
        assert [d.name for d in document_service.list_documents(ident, site_id=site.id, module="wan")] == ["B"]
        assert {d.name for d in document_service.list_documents(ident)} == {"A", "B"}
        assert document_service.list_documents(identity_for(make_user())) == []


# ═════════════════════════════════════════════════════════════════════════════
# 4. Comments & activity feed
# ═════════════════════════════════════════════════════════════════════════════


class TestCommentsAndActivity:
    def test_comment_returns_thread(self, client, site, owner, identity_for, auth_headers):
        doc = _link(identity_for(owner), site)
        headers = auth_headers(owner)
        client.post(f"/api/v1/documents/{doc.id}/comment", json={"text": "first"}, headers=headers)
        res = client.post(f"/api/v1/documents/{doc.id}/comment", json={"text": "second"}, headers=headers)
        assert res.status_code == 201
        assert [c["text"] for c in res.get_json()] == ["first", "second"]

    def test_blank_comment_rejected(self, site, owner, identity_for):
        doc = _link(identity_for(owner), site)
        with pytest.raises(ValidationError):
            document_service.add_comment(identity_for(owner), doc.id, "   ")

    def test_reader_cannot_comment(self, group, site, owner, make_user, identity_for):
        reader = make_user("reader")
        group_service.add_member(identity_for(owner), group.id, {"user_id": reader.id})
        doc = _link(identity_for(owner), site)
        with pytest.raises(ForbiddenError):
            document_service.add_comment(identity_for(reader), doc.id, "hi")

    def test_activity_feed(self, client, site, owner, identity_for, auth_headers):
        ident = identity_for(owner)
        doc_id = _link(ident, site).id
        document_service.add_comment(ident, doc_id, "looks good")
        document_service.update_document(ident, doc_id, {"description": "v2"})
        document_service.delete_document(ident, doc_id)

        res = client.get(f"/api/v1/documents/activities?site_id={site.id}", headers=auth_headers(owner))
        feed = res.get_json()
        assert [a["action"] for a in feed] == ["deleted", "updated", "commented", "created"]
        assert {a["document_id"] for a in feed} == {doc_id}

    def test_activity_feed_requires_site(self, client, owner, auth_headers):
        res = client.get("/api/v1/documents/activities", headers=auth_headers(owner))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"


# ═════════════════════════════════════════════════════════════════════════════
# 5. Blob ownership
# ═════════════════════════════════════════════════════════════════════════════


class TestBlobOwnership:
    def test_unknown_file_id_rejected(self, site, owner, identity_for):
        with pytest.raises(ValidationError) as exc:
            document_service.create_document(
                identity_for(owner),
                {"name": "Ghost", "file_info": {"filename": "g.pdf", "file_id": "d" * 32 + ".pdf"}},
                site_id=site.id,
            )
        assert exc.value.details == {"file_id": "unknown"}

    def test_copied_file_info_rejected(self, client, site, owner, auth_headers):
        headers = auth_headers(owner)
        original = _upload(client, headers, site).get_json()

        res = client.post(
            "/api/v1/documents",
            json={"site_id": site.id, "name": "Copy", "file_info": original["file_info"]},
            headers=headers,
        )
        assert res.status_code == 400
        assert res.get_json()["details"] == {"file_id": "in_use"}
        assert client.get(f"/api/v1/documents/{original['id']}/download", headers=headers).status_code == 200

    def test_other_group_cannot_claim_blob(self, client, site, owner, make_user, identity_for, auth_headers):
        original = _upload(client, auth_headers(owner), site).get_json()
        outsider = make_user("group_owner")
        ident = identity_for(outsider)
        own_group = group_service.create_group(ident, {"name": "Rival"})
        own_site = site_service.create_site(ident, {"name": "Rival Store", "group_id": own_group.id})

        with pytest.raises(ValidationError):
            document_service.create_document(
                ident, {"name": "Stolen", "file_info": original["file_info"]}, site_id=own_site.id,
            )

    def test_shared_blob_kept_until_last_reference(self, site, owner, identity_for, blob_store):
        ident = identity_for(owner)
        file_id, size = blob_store.save(io.BytesIO(b"shared"), "s.pdf")
        docs = [
            Document(site_id=site.id, name=name, module="wifi", is_external=False,
                     file_id=file_id, filename="s.pdf", size=size)
            for name in ("A", "B")
        ]
        _db.session.add_all(docs)
        _db.session.commit()
        first_id, second_id = docs[0].id, docs[1].id

        document_service.delete_document(ident, first_id)
        assert blob_store.exists(file_id)
        document_service.delete_document(ident, second_id)
        assert not blob_store.exists(file_id)

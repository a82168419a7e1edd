"""
WiFi deployment lifecycle: status machine, transition timestamps, audit
events and the site-scoped routes.

Test blocks:
  1. Transition guard (pure function)
  2. Status changes through the service (stamps, events, invalid moves)
  3. Site-scoped HTTP routes
  4. Delete permissions
"""

from datetime import datetime

import pytest

from sitehub.core.exceptions import ForbiddenError, ValidationError
from sitehub.models import db as _db
from sitehub.models.site import SiteEvent
from sitehub.models.wifi import (
    DEPLOYMENT_TRANSITIONS,
    DeploymentComment,
    DeploymentTask,
    WifiDeployment,
    validate_deployment_transition,
)
from sitehub.services import group_service, site_service
from sitehub.services import wifi_deployment_service as wds


def _deployment(identity, site, **data):
    return wds.create_deployment(identity, {"name": "Wave 1", **data}, site_id=site.id)


def _events(site_id, action):
    return SiteEvent.query.filter_by(site_id=site_id, action=action).count()


# ═════════════════════════════════════════════════════════════════════════════
# 1. Transition guard
# ═════════════════════════════════════════════════════════════════════════════


class TestTransitionGuard:
    @pytest.mark.parametrize("old,new", [
        ("planning", "in_progress"),
        ("planning", "blocked"),
        ("in_progress", "completed"),
        ("in_progress", "blocked"),
        ("blocked", "in_progress"),
    ])
    def test_allowed(self, old, new):
        assert validate_deployment_transition(old, new)

    @pytest.mark.parametrize("old,new", [
        ("planning", "completed"),
        ("blocked", "completed"),
        ("blocked", "planning"),
        ("completed", "in_progress"),
        ("completed", "planning"),
        ("in_progress", "planning"),
    ])
    def test_rejected(self, old, new):
        assert not validate_deployment_transition(old, new)

    def test_completed_is_terminal(self):
        assert DEPLOYMENT_TRANSITIONS["completed"] == []


# ═════════════════════════════════════════════════════════════════════════════
# 2. Status changes
# ═════════════════════════════════════════════════════════════════════════════


class TestStatusChanges:
    def test_create_defaults(self, site, owner, identity_for):
        dep = _deployment(identity_for(owner), site)
        assert dep.status == "planning"
        assert dep.start_date is None
        assert dep.completion_date is None
        assert dep.created_by == owner.id
        assert _events(site.id, "wifi_deployment_created") == 1

    def test_create_in_progress_stamps_start(self, site, owner, identity_for):
        dep = _deployment(identity_for(owner), site, status="in_progress")
        assert dep.start_date is not None

    def test_create_with_invalid_status(self, site, owner, identity_for):
        with pytest.raises(ValidationError):
            _deployment(identity_for(owner), site, status="done")

    def test_start_date_stamped_once(self, site, owner, identity_for):
        ident = identity_for(owner)
        dep = _deployment(ident, site)
        wds.update_status(ident, dep.id, "in_progress")
        first_start = dep.start_date
        assert first_start is not None

        wds.update_status(ident, dep.id, "blocked")
        wds.update_status(ident, dep.id, "in_progress")
        assert dep.start_date == first_start

    def test_completion_stamped(self, site, owner, identity_for):
        ident = identity_for(owner)
        dep = _deployment(ident, site, status="in_progress")
        wds.update_status(ident, dep.id, "completed")
        assert dep.status == "completed"
        assert dep.completion_date is not None

    def test_explicit_completion_date_wins(self, site, owner, identity_for):
        ident = identity_for(owner)
        dep = _deployment(ident, site, status="in_progress")
        wds.update_deployment(ident, dep.id, {"status": "completed", "completion_date": "2024-03-01T10:00:00Z"})
        assert dep.completion_date.replace(tzinfo=None) == datetime(2024, 3, 1, 10, 0)

    def test_invalid_transition(self, site, owner, identity_for):
        ident = identity_for(owner)
        dep = _deployment(ident, site)
        with pytest.raises(ValidationError) as exc:
            wds.update_status(ident, dep.id, "completed")
        assert exc.value.details == {
            "from": "planning", "to": "completed", "allowed": ["in_progress", "blocked"],
        }
        _db.session.rollback()
        assert _db.session.get(WifiDeployment, dep.id).status == "planning"
        assert _events(site.id, "wifi_deployment_updated") == 0

    def test_same_status_is_noop(self, site, owner, identity_for):
        ident = identity_for(owner)
        dep = _deployment(ident, site, status="completed")
        wds.update_deployment(ident, dep.id, {"status": "completed", "notes": "signed off"})
        assert dep.status == "completed"
        assert dep.notes == "signed off"

    def test_one_event_per_update(self, site, owner, identity_for):
        ident = identity_for(owner)
        dep = _deployment(ident, site)
        wds.update_deployment(ident, dep.id, {"status": "in_progress", "notes": "kick-off", "name": "Wave 1b"})
        wds.update_deployment(ident, dep.id, {})
        assert _events(site.id, "wifi_deployment_updated") == 2

    def test_contributor_member_can_update(self, group, site, owner, make_user, identity_for):
        contributor = make_user("contributor")
        group_service.add_member(identity_for(owner), group.id,
                                 {"user_id": contributor.id, "relation": "contributor"})
        dep = _deployment(identity_for(owner), site)
        wds.update_status(identity_for(contributor), dep.id, "in_progress")
        assert dep.status == "in_progress"


# ═════════════════════════════════════════════════════════════════════════════
# 3. Site-scoped HTTP routes
# ═════════════════════════════════════════════════════════════════════════════


class TestSiteRoutes:
    def test_create_and_list(self, client, site, owner, auth_headers):
        headers = auth_headers(owner)
        res = client.post(f"/api/v1/sites/{site.id}/wifi-deployment", json={"name": "Wave 1"}, headers=headers)
        assert res.status_code == 201
        assert res.get_json()["tasks"] == []

        res = client.get(f"/api/v1/sites/{site.id}/wifi-deployment", headers=headers)
        listed = res.get_json()
        assert [d["name"] for d in listed] == ["Wave 1"]
        assert "tasks" not in listed[0]
        assert listed[0]["task_count"] == 0

    def test_patch_invalid_transition_is_400(self, client, site, owner, identity_for, auth_headers):
        dep = _deployment(identity_for(owner), site)
        res = client.patch(f"/api/v1/sites/{site.id}/wifi-deployment/{dep.id}",
                           json={"status": "completed"}, headers=auth_headers(owner))
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert body["details"]["allowed"] == ["in_progress", "blocked"]

    def test_deployment_from_other_site_is_400(self, client, group, site, owner, identity_for, auth_headers):
        ident = identity_for(owner)
        other = site_service.create_site(ident, {"name": "Paris", "group_id": group.id})
        dep = _deployment(ident, site)
        headers = auth_headers(owner)

        assert client.get(f"/api/v1/sites/{other.id}/wifi-deployment/{dep.id}",
                          headers=headers).status_code == 400
        assert client.patch(f"/api/v1/sites/{other.id}/wifi-deployment/{dep.id}",
                            json={"notes": "x"}, headers=headers).status_code == 400
        assert client.post(f"/api/v1/sites/{other.id}/wifi-deployment/{dep.id}/archive",
                           headers=headers).status_code == 400

    def test_unknown_deployment_is_404(self, client, site, owner, auth_headers):
        res = client.get(f"/api/v1/sites/{site.id}/wifi-deployment/999", headers=auth_headers(owner))
        assert res.status_code == 404

    def test_stranger_cannot_read(self, client, site, owner, make_user, identity_for, auth_headers):
        dep = _deployment(identity_for(owner), site)
        res = client.get(f"/api/v1/deployments/{dep.id}", headers=auth_headers(make_user("contributor")))
        assert res.status_code == 403


# ═════════════════════════════════════════════════════════════════════════════
# 4. Delete permissions
# ═════════════════════════════════════════════════════════════════════════════


class TestDelete:
    @pytest.fixture()
    def contributor(self, group, owner, make_user, identity_for):
        user = make_user("contributor")
        group_service.add_member(identity_for(owner), group.id, {"user_id": user.id, "relation": "contributor"})
        return user

    def test_creator_can_delete(self, site, contributor, identity_for):
        dep = _deployment(identity_for(contributor), site)
        dep_id = dep.id
        wds.delete_deployment(identity_for(contributor), dep_id)
        assert _db.session.get(WifiDeployment, dep_id) is None
        assert _events(site.id, "wifi_deployment_deleted") == 1

    def test_non_creator_contributor_cannot_delete(self, site, owner, contributor, identity_for):
        dep = _deployment(identity_for(owner), site)
        with pytest.raises(ForbiddenError):
            wds.delete_deployment(identity_for(contributor), dep.id)

    def test_group_owner_can_delete_others(self, site, owner, contributor, identity_for):
        dep = _deployment(identity_for(contributor), site)
        dep_id = dep.id
        wds.delete_deployment(identity_for(owner), dep_id)
        assert _db.session.get(WifiDeployment, dep_id) is None

    def test_admin_can_delete_over_http(self, client, site, contributor, admin, identity_for, auth_headers):
        dep = _deployment(identity_for(contributor), site)
        res = client.delete(f"/api/v1/deployments/{dep.id}", headers=auth_headers(admin))
        assert res.status_code == 200

    def test_delete_cascades_tasks_and_comments(self, site, owner, identity_for):
        ident = identity_for(owner)
        dep = _deployment(ident, site)
        dep_id = dep.id
        wds.add_task(ident, dep_id, {"title": "Survey"})
        wds.add_comment(ident, dep_id, {"text": "hello"})
        wds.delete_deployment(ident, dep_id)
        assert DeploymentTask.query.filter_by(deployment_id=dep_id).count() == 0
        assert DeploymentComment.query.filter_by(deployment_id=dep_id).count() == 0

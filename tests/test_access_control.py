"""
Access policy: global role ceiling ∩ group relation grants.

Test blocks:
  1. Policy tables (role × relation matrix)
  2. Special cases (admin bypass, creator without membership, orphans)
  3. Enforcement through the API (401 / 403 shapes, admin-only routes)
"""

import pytest

from sitehub.models import db as _db
from sitehub.models.group import GroupMember
from sitehub.services import access_policy as policy
from sitehub.services import group_service
from sitehub.services.access_policy import Identity


def _join(group, user, relation, by):
    _db.session.add(GroupMember(group_id=group.id, user_id=user.id, relation=relation, added_by=by.id))
    _db.session.commit()


# ═════════════════════════════════════════════════════════════════════════════
# 1. Policy tables
# ═════════════════════════════════════════════════════════════════════════════


class TestPolicyMatrix:
    @pytest.mark.parametrize("role,relation,expected", [
        ("group_owner", "owner", {"read", "write", "delete", "manage_members"}),
        ("group_owner", "contributor", {"read", "write"}),
        ("group_owner", "reader", {"read"}),
        ("contributor", "owner", {"read", "write"}),
        ("contributor", "contributor", {"read", "write"}),
        ("contributor", "reader", {"read"}),
        ("reader", "owner", {"read"}),
        ("reader", "contributor", {"read"}),
        ("reader", "reader", {"read"}),
    ])
    def test_intersection(self, group, owner, make_user, identity_for, role, relation, expected):
        user = make_user(role)
        _join(group, user, relation, owner)
        assert policy.permissions_for(identity_for(user), group) == frozenset(expected)

    def test_non_member_gets_nothing(self, group, make_user, identity_for):
        user = make_user("group_owner")
        assert policy.permissions_for(identity_for(user), group) == frozenset()
        assert not policy.can(identity_for(user), group, "read")

    def test_unknown_role_gets_nothing(self, group, owner):
        ghost = Identity(id=owner.id + 100, role="superuser", email="x@example.com")
        assert policy.permissions_for(ghost, group) == frozenset()


# ═════════════════════════════════════════════════════════════════════════════
# 2. Special cases
# ═════════════════════════════════════════════════════════════════════════════


class TestSpecialCases:
    def test_admin_bypasses_membership(self, group, admin, identity_for):
        assert policy.permissions_for(identity_for(admin), group) == frozenset(policy.OPERATIONS)

    def test_creator_is_owner_without_membership_row(self, group, owner, identity_for):
        GroupMember.query.filter_by(group_id=group.id, user_id=owner.id).delete()
        _db.session.commit()
        assert policy.relation_for(identity_for(owner), group) == "owner"
        assert policy.can(identity_for(owner), group, "manage_members")

    def test_orphans_are_admin_only(self, owner, admin, identity_for):
        assert policy.permissions_for(identity_for(owner), None) == frozenset()
        assert policy.can(identity_for(admin), None, "delete")

    def test_readable_group_ids(self, group, owner, make_user, admin, identity_for):
        reader = make_user("reader")
        assert policy.readable_group_ids(identity_for(reader)) == set()
        _join(group, reader, "reader", owner)
        assert policy.readable_group_ids(identity_for(reader)) == {group.id}
        assert policy.readable_group_ids(identity_for(owner)) == {group.id}
        assert policy.readable_group_ids(identity_for(admin)) is None

    def test_membership_change_applies_immediately(self, group, owner, make_user, identity_for):
        user = make_user("contributor")
        ident = identity_for(user)
        group_service.add_member(identity_for(owner), group.id, {"user_id": user.id, "relation": "reader"})
        assert not policy.can(ident, group, "write")
        group_service.add_member(identity_for(owner), group.id, {"user_id": user.id, "relation": "contributor"})
        assert policy.can(ident, group, "write")


# ═════════════════════════════════════════════════════════════════════════════
# 3. Enforcement through the API
# ═════════════════════════════════════════════════════════════════════════════


class TestEnforcement:
    def test_forbidden_body_names_operation(self, client, site, make_user, auth_headers):
        stranger = make_user("contributor")
        res = client.put(f"/api/v1/sites/{site.id}", json={"name": "x"}, headers=auth_headers(stranger))
        assert res.status_code == 403
        body = res.get_json()
        assert body["code"] == "ERR_FORBIDDEN"
        assert body["details"] == {"operation": "write"}

    def test_reader_member_reads_but_cannot_write(self, client, group, site, owner, make_user, auth_headers):
        reader = make_user("reader")
        _join(group, reader, "reader", owner)
        headers = auth_headers(reader)
        assert client.get(f"/api/v1/sites/{site.id}", headers=headers).status_code == 200
        res = client.post(
            f"/api/v1/sites/{site.id}/external-tools",
            json={"name": "NMS", "url": "https://nms.local"},
            headers=headers,
        )
        assert res.status_code == 403

    def test_admin_routes_require_admin_role(self, client, owner, admin, auth_headers):
        res = client.get("/api/v1/admin/users", headers=auth_headers(owner))
        assert res.status_code == 403
        assert res.get_json()["error"] == "Admin access required"
        assert client.get("/api/v1/admin/users", headers=auth_headers(admin)).status_code == 200

    def test_admin_sets_role(self, client, admin, make_user, auth_headers):
        user = make_user("reader")
        res = client.put(f"/api/v1/admin/users/{user.id}/role", json={"role": "contributor"},
                         headers=auth_headers(admin))
        assert res.status_code == 200
        assert res.get_json()["role"] == "contributor"

    def test_admin_sets_invalid_role(self, client, admin, make_user, auth_headers):
        user = make_user("reader")
        res = client.put(f"/api/v1/admin/users/{user.id}/role", json={"role": "emperor"},
                         headers=auth_headers(admin))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

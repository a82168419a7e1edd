"""
WAN links: CRUD, field-level history, auto dates and contract details.

Test blocks:
  1. Create (defaults, validation, auto dates)
  2. History tracking
  3. Contract details
  4. HTTP routes (site-scoped + flat)
"""

from datetime import date

import pytest

from sitehub.core.exceptions import NotFoundError, ValidationError
from sitehub.models import db as _db
from sitehub.models.site import SiteEvent
from sitehub.models.wan import WanDeployment, WanHistoryEntry
from sitehub.services import site_service, wan_service


def _wan(identity, site, **data):
    return wan_service.create_wan(identity, {"provider": "Orange", **data}, site_id=site.id)


def _history(wan_id):
    return [
        (h.field, h.old_value, h.new_value)
        for h in WanHistoryEntry.query.filter_by(wan_id=wan_id).order_by(WanHistoryEntry.id)
    ]


# ═════════════════════════════════════════════════════════════════════════════
# 1. Create
# ═════════════════════════════════════════════════════════════════════════════


class TestCreate:
    def test_defaults(self, site, owner, identity_for):
        wan = _wan(identity_for(owner), site)
        assert wan.link_type == "OTHER"
        assert wan.status == "ordered"
        assert wan.subscribed_by_site is False
        assert wan.activation_date is None
        assert wan.to_dict()["contract_details"]["renewal_type"] == "automatic"
        assert SiteEvent.query.filter_by(site_id=site.id, action="wan_added").count() == 1

    def test_create_active_stamps_activation(self, site, owner, identity_for):
        wan = _wan(identity_for(owner), site, status="active")
        assert wan.activation_date is not None

    def test_explicit_activation_date_kept(self, site, owner, identity_for):
        wan = _wan(identity_for(owner), site, status="active", activation_date="2023-09-01")
        assert wan.activation_date == date(2023, 9, 1)

    @pytest.mark.parametrize("payload", [
        {"link_type": "Carrier pigeon"},
        {"status": "pending"},
        {"order_date": "someday"},
    ])
    def test_invalid_values(self, site, owner, identity_for, payload):
        with pytest.raises(ValidationError):
            _wan(identity_for(owner), site, **payload)

    def test_non_string_provider_rejected(self, site, owner, identity_for):
        ident = identity_for(owner)
        with pytest.raises(ValidationError) as exc:
            wan_service.create_wan(ident, {"provider": 7}, site_id=site.id)
        assert exc.value.details == {"provider": "not_a_string"}

        wan = _wan(ident, site)
        with pytest.raises(ValidationError):
            wan_service.update_wan(ident, wan.id, {"provider": 7})

    def test_provider_required(self, site, owner, identity_for):
        with pytest.raises(ValidationError) as exc:
            wan_service.create_wan(identity_for(owner), {"provider": " "}, site_id=site.id)
        assert exc.value.details == {"provider": "required"}


# ═════════════════════════════════════════════════════════════════════════════
# 2. History tracking
# ═════════════════════════════════════════════════════════════════════════════


class TestHistory:
    def test_one_entry_per_changed_field(self, site, owner, identity_for):
        ident = identity_for(owner)
        wan = _wan(ident, site, link_type="ADSL", bandwidth="20M")
        wan_service.update_wan(ident, wan.id, {"link_type": "FTTH", "bandwidth": "1G", "provider": "Orange"})
        assert _history(wan.id) == [("link_type", "ADSL", "FTTH"), ("bandwidth", "20M", "1G")]

    def test_untracked_fields_leave_no_history(self, site, owner, identity_for):
        ident = identity_for(owner)
        wan = _wan(ident, site)
        wan_service.update_wan(ident, wan.id, {"subscribed_by_site": True, "order_date": "2024-01-10"})
        assert _history(wan.id) == []
        assert wan.subscribed_by_site is True
        assert wan.order_date == date(2024, 1, 10)

    def test_history_records_author(self, site, owner, identity_for):
        ident = identity_for(owner)
        wan = _wan(ident, site)
        wan_service.update_wan(ident, wan.id, {"provider": "SFR"})
        entry = WanHistoryEntry.query.filter_by(wan_id=wan.id).one()
        assert entry.changed_by == owner.id
        assert entry.to_dict()["changed_by"]["email"] == "owner@example.com"

    def test_status_change_stamps_dates_once(self, site, owner, identity_for):
        ident = identity_for(owner)
        wan = _wan(ident, site, activation_date="2023-09-01")
        wan_service.update_wan(ident, wan.id, {"status": "active"})
        assert wan.activation_date == date(2023, 9, 1)

        wan_service.update_wan(ident, wan.id, {"status": "canceled"})
        assert wan.cancellation_date is not None
        assert [h[0] for h in _history(wan.id)] == ["status", "status"]

    def test_clearing_date_without_status_change_is_kept_empty(self, site, owner, identity_for):
        ident = identity_for(owner)
        wan = _wan(ident, site, status="active")
        wan_service.update_wan(ident, wan.id, {"activation_date": None})
        assert wan.activation_date is None

    def test_failed_update_writes_nothing(self, site, owner, identity_for):
        ident = identity_for(owner)
        wan = _wan(ident, site)
        with pytest.raises(ValidationError):
            wan_service.update_wan(ident, wan.id, {"provider": "SFR", "status": "bogus"})
        _db.session.rollback()
        assert _history(wan.id) == []
        assert _db.session.get(WanDeployment, wan.id).provider == "Orange"

    def test_history_deleted_with_link(self, site, owner, identity_for):
        ident = identity_for(owner)
        wan = _wan(ident, site)
        wan_id = wan.id
        wan_service.update_wan(ident, wan_id, {"bandwidth": "100M"})
        wan_service.delete_wan(ident, wan_id)
        assert _history(wan_id) == []
        assert SiteEvent.query.filter_by(site_id=site.id, action="wan_deleted").count() == 1


# ═════════════════════════════════════════════════════════════════════════════
# 3. Contract details
# ═════════════════════════════════════════════════════════════════════════════


class TestContract:
    def test_partial_merge(self, site, owner, identity_for):
        ident = identity_for(owner)
        wan = _wan(ident, site, contract_details={"reference": "C-1", "monthly_cost": "49.90"})
        wan_service.update_wan(ident, wan.id, {"contract_details": {"end_date": "31.12.2026"}})
        contract = wan.contract_details
        assert contract["reference"] == "C-1"
        assert contract["monthly_cost"] == 49.9
        assert contract["end_date"] == "2026-12-31"
        assert contract["currency"] == "EUR"

    def test_unknown_keys_dropped(self, site, owner, identity_for):
        wan = _wan(identity_for(owner), site, contract_details={"reference": "C-2", "colour": "red"})
        assert "colour" not in wan.contract_details

    @pytest.mark.parametrize("contract", [
        {"renewal_type": "yearly"},
        {"monthly_cost": "cheap"},
        {"start_date": "soon"},
    ])
    def test_invalid_contract(self, site, owner, identity_for, contract):
        with pytest.raises(ValidationError):
            _wan(identity_for(owner), site, contract_details=contract)


# ═════════════════════════════════════════════════════════════════════════════
# 4. HTTP routes
# ═════════════════════════════════════════════════════════════════════════════


class TestRoutes:
    def test_site_scoped_crud(self, client, site, owner, auth_headers):
        headers = auth_headers(owner)
        base = f"/api/v1/sites/{site.id}/wan-connections"
        res = client.post(base, json={"provider": "Free", "link_type": "FTTO"}, headers=headers)
        assert res.status_code == 201
        wan_id = res.get_json()["id"]

        res = client.put(f"{base}/{wan_id}", json={"status": "active"}, headers=headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["activation_date"] is not None
        assert [h["field"] for h in body["history"]] == ["status"]

        assert client.delete(f"{base}/{wan_id}", headers=headers).status_code == 200

    def test_history_endpoint_oldest_first(self, client, site, owner, identity_for, auth_headers):
        ident = identity_for(owner)
        wan = _wan(ident, site)
        wan_service.update_wan(ident, wan.id, {"bandwidth": "100M"})
        wan_service.update_wan(ident, wan.id, {"bandwidth": "1G"})
        res = client.get(f"/api/v1/wan/{wan.id}/history", headers=auth_headers(owner))
        assert [h["new_value"] for h in res.get_json()] == ["100M", "1G"]

    def test_flat_list_omits_history(self, client, site, owner, identity_for, auth_headers):
        _wan(identity_for(owner), site)
        res = client.get(f"/api/v1/wan?site_id={site.id}", headers=auth_headers(owner))
        assert "history" not in res.get_json()[0]

    def test_wan_through_other_site_is_404(self, site, group, owner, identity_for):
        ident = identity_for(owner)
        other = site_service.create_site(ident, {"name": "Paris", "group_id": group.id})
        wan = _wan(ident, site)
        with pytest.raises(NotFoundError):
            wan_service.update_wan(ident, wan.id, {"bandwidth": "1G"}, site_id=other.id)

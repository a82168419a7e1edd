"""
Site service — CRUD for sites, their external links and the site audit trail.

Rules:
  - A site is created inside a group the caller can ``write``.
  - Deleting a site removes its own events/links; documents, tools, WAN
    links and deployments survive as orphans (``site_id`` NULL).
  - Every mutation appends its SiteEvent in the same transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update

from sitehub.core.exceptions import ValidationError
from sitehub.models import db
from sitehub.models.document import Document
from sitehub.models.external_tool import ExternalTool
from sitehub.models.group import Group
from sitehub.models.site import (
    ADDRESS_FIELDS,
    CONTACT_FIELDS,
    DEFAULT_COUNTRY,
    Site,
    SiteEvent,
    SiteExternalLink,
)
from sitehub.models.wan import WanDeployment
from sitehub.models.wifi import ArchivedWifiDeployment, WifiDeployment
from sitehub.services import access_policy as policy
from sitehub.services.access_policy import Identity
from sitehub.services.audit_service import write_site_event
from sitehub.utils.helpers import as_int, clean_str, commit_or_rollback, get_or_raise, require_fields

logger = logging.getLogger(__name__)

# Site-owned tables whose rows are orphaned, not deleted, with their site
SITE_OWNED_MODELS = (Document, ExternalTool, WanDeployment, WifiDeployment, ArchivedWifiDeployment)


def _coerce_float(value, field):
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a number", details={field: value}) from exc


def _apply_nested(site: Site, data: dict) -> list[str]:
    """Copy address / gps / contact / links from a payload; return changed keys."""
    changed = []
    address = data.get("address")
    if isinstance(address, dict):
        for key in ADDRESS_FIELDS:
            if key in address:
                setattr(site, key, clean_str(address.get(key), key))
        if not site.country:
            site.country = DEFAULT_COUNTRY
        changed.append("address")

    gps = data.get("gps_coordinates")
    if isinstance(gps, dict):
        site.latitude = _coerce_float(gps.get("latitude"), "latitude")
        site.longitude = _coerce_float(gps.get("longitude"), "longitude")
        changed.append("gps_coordinates")

    contact = data.get("onsite_contact")
    if isinstance(contact, dict):
        for key in CONTACT_FIELDS:
            if key in contact:
                setattr(site, f"contact_{key}", clean_str(contact.get(key), key))
        changed.append("onsite_contact")

    links = data.get("external_links")
    if isinstance(links, list):
        new_links = []
        for i, link in enumerate(links):
            if not isinstance(link, dict) or not link.get("name") or not link.get("url"):
                raise ValidationError(
                    "external_links entries need name and url",
                    details={"external_links": i},
                )
            new_links.append(SiteExternalLink(
                name=link["name"], url=link["url"], description=link.get("description") or "",
            ))
        site.external_links = new_links
        changed.append("external_links")
    return changed


# ── Queries ───────────────────────────────────────────────────────────────────


def list_sites(identity: Identity, group_id: int | None = None) -> list[Site]:
    """Sites the caller may read, optionally within one group, ordered by name."""
    stmt = select(Site).order_by(Site.name)
    if group_id is not None:
        stmt = stmt.where(Site.group_id == group_id)
    readable = policy.readable_group_ids(identity)
    if readable is not None:
        stmt = stmt.where(Site.group_id.in_(readable))
    return db.session.execute(stmt).scalars().all()


def get_site(identity: Identity, site_id: int, operation: str = "read") -> Site:
    site = get_or_raise(Site, site_id, "Site")
    policy.require_site_access(identity, site, operation)
    return site


def list_events(identity: Identity, site_id: int, action_prefix: str | None = None):
    """Newest-first event query, optionally narrowed to one action family."""
    site = get_site(identity, site_id)
    q = site.events
    if action_prefix:
        q = q.filter(SiteEvent.action.startswith(action_prefix))
    return q


# ── Mutations ─────────────────────────────────────────────────────────────────


def create_site(identity: Identity, data: dict) -> Site:
    require_fields(data, "name", "group_id")
    group = get_or_raise(Group, as_int(data["group_id"], "group_id"), "Group")
    policy.require_group_access(identity, group, "write")

    site = Site(group_id=group.id, name=clean_str(data["name"], "name"), created_by=identity.id)
    _apply_nested(site, data)
    db.session.add(site)
    db.session.flush()
    write_site_event(site_id=site.id, action="created", user_id=identity.id,
                     details=f"Site '{site.name}' created")
    commit_or_rollback()
    logger.info("Site created id=%s group=%s by user=%s", site.id, group.id, identity.id)
    return site


def update_site(identity: Identity, site_id: int, data: dict) -> Site:
    site = get_site(identity, site_id, "write")

    changed = []
    if "name" in data:
        require_fields(data, "name")
        site.name = clean_str(data["name"], "name")
        changed.append("name")
    new_group_id = as_int(data.get("group_id"), "group_id")
    if new_group_id is not None and new_group_id != site.group_id:
        target = get_or_raise(Group, new_group_id, "Group")
        policy.require_group_access(identity, target, "write")
        site.group_id = target.id
        changed.append("group_id")
    changed.extend(_apply_nested(site, data))

    write_site_event(site_id=site.id, action="updated", user_id=identity.id,
                     details=f"Updated: {', '.join(changed) or 'nothing'}")
    commit_or_rollback()
    return site


def delete_site(identity: Identity, site_id: int) -> None:
    site = get_site(identity, site_id, "delete")
    for model in SITE_OWNED_MODELS:
        db.session.execute(update(model).where(model.site_id == site.id).values(site_id=None))
    db.session.delete(site)
    commit_or_rollback()
    logger.info("Site deleted id=%s by user=%s", site_id, identity.id)

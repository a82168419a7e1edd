"""
External tool service — bookmark-style links to third-party consoles.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from sitehub.core.exceptions import NotFoundError, ValidationError
from sitehub.models import db
from sitehub.models.external_tool import ExternalTool
from sitehub.models.site import Site
from sitehub.services import access_policy as policy
from sitehub.services.access_policy import Identity
from sitehub.services.audit_service import write_site_event
from sitehub.utils.helpers import as_int, clean_str, commit_or_rollback, get_or_raise, require_fields

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "url", "icon", "description")


def list_tools(identity: Identity, site_id: int | None = None) -> list[ExternalTool]:
    stmt = select(ExternalTool).order_by(ExternalTool.name)
    if site_id is not None:
        site = get_or_raise(Site, site_id, "Site")
        policy.require_site_access(identity, site, "read")
        stmt = stmt.where(ExternalTool.site_id == site.id)
    else:
        readable = policy.readable_group_ids(identity)
        if readable is not None:
            stmt = stmt.join(Site, ExternalTool.site_id == Site.id).where(Site.group_id.in_(readable))
    return db.session.execute(stmt).scalars().all()


def get_tool(identity: Identity, tool_id: int, operation: str = "read", *, site_id: int | None = None) -> ExternalTool:
    tool = get_or_raise(ExternalTool, tool_id, "ExternalTool")
    if site_id is not None and tool.site_id != site_id:
        raise NotFoundError("ExternalTool", tool_id)
    policy.require_record_access(identity, tool, operation)
    return tool


def create_tool(identity: Identity, data: dict, *, site_id: int | None = None) -> ExternalTool:
    require_fields(data, "name", "url")
    site_id = site_id if site_id is not None else as_int(data.get("site_id"), "site_id")
    if site_id is None:
        raise ValidationError("site_id is required", details={"site_id": "required"})
    site = get_or_raise(Site, site_id, "Site")
    policy.require_site_access(identity, site, "write")

    tool = ExternalTool(
        site_id=site.id,
        name=clean_str(data["name"], "name"),
        url=clean_str(data["url"], "url"),
        icon=data.get("icon") or "",
        description=clean_str(data.get("description"), "description"),
        created_by=identity.id,
        updated_by=identity.id,
    )
    db.session.add(tool)
    db.session.flush()
    write_site_event(site_id=site.id, action="external_tool_added", user_id=identity.id,
                     details=f"External tool '{tool.name}' added", subject_id=tool.id)
    commit_or_rollback()
    return tool


def update_tool(identity: Identity, tool_id: int, data: dict, *, site_id: int | None = None) -> ExternalTool:
    tool = get_tool(identity, tool_id, "write", site_id=site_id)
    changed = []
    for f in UPDATABLE_FIELDS:
        if f in data:
            if f in ("name", "url"):
                require_fields(data, f)
            setattr(tool, f, clean_str(data[f], f))
            changed.append(f)
    tool.updated_by = identity.id
    write_site_event(site_id=tool.site_id, action="external_tool_updated", user_id=identity.id,
                     details=f"External tool '{tool.name}' updated: {', '.join(changed) or 'nothing'}",
                     subject_id=tool.id)
    commit_or_rollback()
    return tool


def delete_tool(identity: Identity, tool_id: int, *, site_id: int | None = None) -> None:
    tool = get_tool(identity, tool_id, "delete", site_id=site_id)
    write_site_event(site_id=tool.site_id, action="external_tool_deleted", user_id=identity.id,
                     details=f"External tool '{tool.name}' deleted", subject_id=tool.id)
    db.session.delete(tool)
    commit_or_rollback()
    logger.info("External tool deleted id=%s by user=%s", tool_id, identity.id)

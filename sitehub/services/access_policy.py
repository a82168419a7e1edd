"""
Access policy — role × relation → permitted operations.

Every group-scoped action is checked against two tables:

    ROLE_CEILING[role]          the most a global role may ever do
    RELATION_GRANTS[relation]   what membership of one group grants

The effective permission set on a group is their intersection. ``admin``
bypasses the tables entirely. The group creator always holds the ``owner``
relation even without a membership row. Records whose site or group has
been deleted (orphans) are reachable by admins only.

Operations:
    read            list / view the group and everything under it
    write           create & edit sites, documents, tools, WAN, deployments
    delete          hard-delete or archive records
    manage_members  add / remove group members

The super-admin database reset is *not* part of this model; see
``admin_service.reset_database``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import or_, select

from sitehub.core.exceptions import ForbiddenError
from sitehub.models import db
from sitehub.models.group import Group, GroupMember

logger = logging.getLogger(__name__)

OPERATIONS = ("read", "write", "delete", "manage_members")

ROLE_CEILING: dict[str, frozenset[str]] = {
    "admin":       frozenset(OPERATIONS),
    "group_owner": frozenset(OPERATIONS),
    "contributor": frozenset({"read", "write"}),
    "reader":      frozenset({"read"}),
}

RELATION_GRANTS: dict[str, frozenset[str]] = {
    "owner":       frozenset(OPERATIONS),
    "contributor": frozenset({"read", "write"}),
    "reader":      frozenset({"read"}),
}

GROUP_CREATOR_ROLES = frozenset({"admin", "group_owner"})


@dataclass(frozen=True)
class Identity:
    """Authenticated caller attached to the request by the JWT middleware."""

    id: int
    role: str
    email: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


# ── Policy evaluation ─────────────────────────────────────────────────────────


def relation_for(identity: Identity, group: Group) -> str | None:
    """Return the caller's relation to ``group`` (owner/contributor/reader) or None."""
    if group.created_by == identity.id:
        return "owner"
    member = db.session.execute(
        select(GroupMember).where(
            GroupMember.group_id == group.id,
            GroupMember.user_id == identity.id,
        )
    ).scalar_one_or_none()
    return member.relation if member else None


def permissions_for(identity: Identity, group: Group | None) -> frozenset[str]:
    """Effective operations ``identity`` may perform on ``group``."""
    if identity.is_admin:
        return frozenset(OPERATIONS)
    if group is None:
        return frozenset()
    relation = relation_for(identity, group)
    if relation is None:
        return frozenset()
    return ROLE_CEILING.get(identity.role, frozenset()) & RELATION_GRANTS.get(relation, frozenset())


def can(identity: Identity, group: Group | None, operation: str) -> bool:
    return operation in permissions_for(identity, group)


def require_admin(identity: Identity) -> None:
    if not identity.is_admin:
        raise ForbiddenError("Admin access required", operation="admin")


def require_group_access(identity: Identity, group: Group | None, operation: str) -> None:
    """Raise ForbiddenError unless ``identity`` may perform ``operation`` on ``group``."""
    if not can(identity, group, operation):
        logger.warning(
            "User %s (%s) denied '%s' on group=%s",
            identity.id, identity.role, operation, group.id if group else None,
        )
        raise ForbiddenError(
            f"You do not have '{operation}' access to this group", operation=operation,
        )


def require_site_access(identity: Identity, site, operation: str) -> None:
    """Site-level check: delegates to the site's group (orphans → admin only)."""
    require_group_access(identity, site.group if site is not None else None, operation)


def require_record_access(identity: Identity, record, operation: str) -> None:
    """Check for a site-scoped record (document, tool, WAN link, deployment)."""
    require_site_access(identity, record.site if record.site_id else None, operation)


def require_group_creator(identity: Identity) -> None:
    if identity.role not in GROUP_CREATOR_ROLES:
        raise ForbiddenError("Only admins and group owners can create groups", operation="create_group")


def readable_group_ids(identity: Identity) -> set[int] | None:
    """Group ids the caller may read; ``None`` means unrestricted (admin)."""
    if identity.is_admin:
        return None
    member_group_ids = select(GroupMember.group_id).where(GroupMember.user_id == identity.id)
    rows = db.session.execute(
        select(Group.id).where(
            or_(Group.created_by == identity.id, Group.id.in_(member_group_ids))
        )
    ).scalars()
    return set(rows)

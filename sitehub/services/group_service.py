"""
Group service — CRUD, membership and the group audit trail.

Rules:
  - Every mutation appends its GroupEvent in the same transaction.
  - Deleting a group never deletes its sites; they are detached
    (``group_id`` set to NULL) and become admin-only orphans.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update

from sitehub.core.exceptions import NotFoundError
from sitehub.models import db
from sitehub.models.auth import User
from sitehub.models.group import MEMBER_RELATIONS, Group, GroupMember
from sitehub.models.site import Site
from sitehub.services import access_policy as policy
from sitehub.services.access_policy import Identity
from sitehub.services.audit_service import write_group_event
from sitehub.utils.helpers import (
    as_int,
    clean_str,
    commit_or_rollback,
    get_or_raise,
    require_choice,
    require_fields,
)

logger = logging.getLogger(__name__)

CONTACT_KEYS = ("name", "email", "phone")


def _apply_contact(group: Group, contact: dict | None) -> None:
    if not isinstance(contact, dict):
        return
    for key in CONTACT_KEYS:
        if key in contact:
            setattr(group, f"contact_{key}", clean_str(contact.get(key), key))


# ── Queries ───────────────────────────────────────────────────────────────────


def list_groups(identity: Identity) -> list[Group]:
    """Groups the caller may read, ordered by name."""
    stmt = select(Group).order_by(Group.name)
    readable = policy.readable_group_ids(identity)
    if readable is not None:
        stmt = stmt.where(Group.id.in_(readable))
    return db.session.execute(stmt).scalars().all()


def get_group(identity: Identity, group_id: int, operation: str = "read") -> Group:
    group = get_or_raise(Group, group_id, "Group")
    policy.require_group_access(identity, group, operation)
    return group


# ── Mutations ─────────────────────────────────────────────────────────────────


def create_group(identity: Identity, data: dict) -> Group:
    """Create a group; the creator is recorded as its owner member."""
    policy.require_group_creator(identity)
    require_fields(data, "name")

    group = Group(
        name=clean_str(data["name"], "name"),
        notes=clean_str(data.get("notes"), "notes"),
        created_by=identity.id,
    )
    _apply_contact(group, data.get("primary_contact"))
    db.session.add(group)
    db.session.flush()

    db.session.add(GroupMember(
        group_id=group.id, user_id=identity.id, relation="owner", added_by=identity.id,
    ))
    write_group_event(group_id=group.id, action="created", user_id=identity.id,
                      details=f"Group '{group.name}' created")
    commit_or_rollback()
    logger.info("Group created id=%s name=%s by user=%s", group.id, group.name, identity.id)
    return group


def update_group(identity: Identity, group_id: int, data: dict) -> Group:
    group = get_group(identity, group_id, "write")

    changed = []
    if "name" in data:
        require_fields(data, "name")
        group.name = clean_str(data["name"], "name")
        changed.append("name")
    if "notes" in data:
        group.notes = clean_str(data.get("notes"), "notes")
        changed.append("notes")
    if "primary_contact" in data:
        _apply_contact(group, data.get("primary_contact"))
        changed.append("primary_contact")

    write_group_event(group_id=group.id, action="updated", user_id=identity.id,
                      details=f"Updated: {', '.join(changed) or 'nothing'}")
    commit_or_rollback()
    return group


def delete_group(identity: Identity, group_id: int) -> None:
    """Hard delete; member sites are detached, not removed."""
    group = get_group(identity, group_id, "delete")
    detached = db.session.execute(
        update(Site).where(Site.group_id == group.id).values(group_id=None)
    ).rowcount
    db.session.delete(group)
    commit_or_rollback()
    logger.info("Group deleted id=%s by user=%s (%d site(s) orphaned)", group_id, identity.id, detached)


# ── Membership ────────────────────────────────────────────────────────────────


def list_members(identity: Identity, group_id: int) -> list[GroupMember]:
    group = get_group(identity, group_id, "read")
    return group.members.order_by(GroupMember.id).all()


def add_member(identity: Identity, group_id: int, data: dict) -> GroupMember:
    """Grant a user a relation to the group (or change an existing one)."""
    group = get_group(identity, group_id, "manage_members")
    require_fields(data, "user_id")
    relation = data.get("relation") or "reader"
    require_choice(relation, MEMBER_RELATIONS, "relation")

    user_id = as_int(data["user_id"], "user_id")
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    member = db.session.execute(
        select(GroupMember).where(GroupMember.group_id == group.id, GroupMember.user_id == user.id)
    ).scalar_one_or_none()
    if member is None:
        member = GroupMember(group_id=group.id, user_id=user.id, relation=relation, added_by=identity.id)
        db.session.add(member)
        write_group_event(group_id=group.id, action="user_added", user_id=identity.id,
                          details=f"{user.email} added as {relation}")
    else:
        old = member.relation
        member.relation = relation
        write_group_event(group_id=group.id, action="updated", user_id=identity.id,
                          details=f"{user.email} relation {old} → {relation}")
    commit_or_rollback()
    return member


def remove_member(identity: Identity, group_id: int, user_id: int) -> None:
    group = get_group(identity, group_id, "manage_members")
    member = db.session.execute(
        select(GroupMember).where(GroupMember.group_id == group.id, GroupMember.user_id == user_id)
    ).scalar_one_or_none()
    if member is None:
        raise NotFoundError("GroupMember", user_id)
    email = member.user.email if member.user else str(user_id)
    db.session.delete(member)
    write_group_event(group_id=group.id, action="user_removed", user_id=identity.id,
                      details=f"{email} removed")
    commit_or_rollback()


def list_events(identity: Identity, group_id: int):
    """Newest-first event query (paginated by the blueprint)."""
    group = get_group(identity, group_id, "read")
    return group.events

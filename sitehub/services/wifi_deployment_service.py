"""
WiFi deployment service — lifecycle, tasks, comments and archival.

Business logic for:
    - Status transitions (planning → in_progress → completed, blocked detour)
    - Transition timestamps: start_date / completion_date stamped once
    - Task checklist with the one-click status cycle and priority sort
    - Comment timeline (newest first)
    - Archive: write-once snapshot + removal of the live row
    - Delete: creator, admin or group ``delete`` holder only
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from sitehub.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from sitehub.models import db
from sitehub.models.site import Site
from sitehub.models.wifi import (
    COMMENT_IMPORTANCE,
    DEPLOYMENT_STATUSES,
    DEPLOYMENT_TRANSITIONS,
    TASK_PRIORITIES,
    TASK_STATUSES,
    ArchivedWifiDeployment,
    DeploymentComment,
    DeploymentTask,
    WifiDeployment,
    next_task_status,
    task_sort_key,
    validate_deployment_transition,
)
from sitehub.services import access_policy as policy
from sitehub.services.access_policy import Identity
from sitehub.services.audit_service import write_site_event
from sitehub.utils.helpers import (
    as_int,
    clean_str,
    commit_or_rollback,
    get_or_raise,
    parse_date,
    parse_datetime,
    require_choice,
    require_fields,
)

logger = logging.getLogger(__name__)

TASK_UPDATABLE_FIELDS = ("title", "description", "assigned_to")


def _now():
    return datetime.now(timezone.utc)


def _stamp_transition_dates(dep: WifiDeployment) -> None:
    """Set start/completion dates the status implies, never overwriting."""
    if dep.status == "in_progress" and dep.start_date is None:
        dep.start_date = _now()
    if dep.status == "completed" and dep.completion_date is None:
        dep.completion_date = _now()


def _require_owner_or_delete(identity: Identity, dep: WifiDeployment, action: str) -> None:
    if identity.is_admin or (dep.created_by is not None and dep.created_by == identity.id):
        return
    site = dep.site if dep.site_id else None
    if site is not None and policy.can(identity, site.group, "delete"):
        return
    logger.warning("User %s denied %s on deployment=%s", identity.id, action, dep.id)
    raise ForbiddenError(
        f"Only the creator, an admin or a group owner can {action} this deployment",
        operation="delete",
    )


# ═════════════════════════════════════════════════════════════════════════════
# Deployments
# ═════════════════════════════════════════════════════════════════════════════


def list_deployments(identity: Identity, site_id: int | None = None) -> list[WifiDeployment]:
    """Newest-first deployments the caller may read."""
    stmt = select(WifiDeployment).order_by(WifiDeployment.created_at.desc(), WifiDeployment.id.desc())
    if site_id is not None:
        site = get_or_raise(Site, site_id, "Site")
        policy.require_site_access(identity, site, "read")
        stmt = stmt.where(WifiDeployment.site_id == site.id)
    else:
        readable = policy.readable_group_ids(identity)
        if readable is not None:
            stmt = stmt.join(Site, WifiDeployment.site_id == Site.id).where(Site.group_id.in_(readable))
    return db.session.execute(stmt).scalars().all()


def get_deployment(
    identity: Identity,
    deployment_id: int,
    operation: str = "read",
    *,
    site_id: int | None = None,
) -> WifiDeployment:
    """Fetch a deployment; when reached through a site URL it must belong to that site."""
    dep = get_or_raise(WifiDeployment, deployment_id, "WifiDeployment")
    if site_id is not None and dep.site_id != site_id:
        raise ValidationError(
            "Deployment does not belong to this site",
            details={"site_id": site_id, "deployment_id": deployment_id},
        )
    policy.require_record_access(identity, dep, operation)
    return dep


def create_deployment(identity: Identity, data: dict, *, site_id: int | None = None) -> WifiDeployment:
    require_fields(data, "name")
    site_id = site_id if site_id is not None else as_int(data.get("site_id"), "site_id")
    if site_id is None:
        raise ValidationError("site_id is required", details={"site_id": "required"})
    site = get_or_raise(Site, site_id, "Site")
    policy.require_site_access(identity, site, "write")

    status = data.get("status") or "planning"
    require_choice(status, DEPLOYMENT_STATUSES, "status")

    dep = WifiDeployment(
        site_id=site.id,
        name=clean_str(data["name"], "name"),
        status=status,
        notes=clean_str(data.get("notes"), "notes"),
        created_by=identity.id,
    )
    if data.get("completion_date"):
        dep.completion_date = parse_datetime(data["completion_date"], field="completion_date")
    _stamp_transition_dates(dep)

    db.session.add(dep)
    db.session.flush()
    write_site_event(site_id=site.id, action="wifi_deployment_created", user_id=identity.id,
                     details=f"WiFi deployment '{dep.name}' created ({dep.status})", subject_id=dep.id)
    commit_or_rollback()
    logger.info("WiFi deployment created id=%s site=%s status=%s", dep.id, site.id, dep.status)
    return dep


def update_deployment(
    identity: Identity,
    deployment_id: int,
    data: dict,
    *,
    site_id: int | None = None,
) -> WifiDeployment:
    """Apply a status/notes/completion_date patch.

    Exactly one ``wifi_deployment_updated`` event is written per call,
    whatever the patch contains.

    Raises:
        ValidationError: unknown status or a transition the guard forbids.
    """
    dep = get_deployment(identity, deployment_id, "write", site_id=site_id)
    changed = []

    if "name" in data:
        require_fields(data, "name")
        dep.name = clean_str(data["name"], "name")
        changed.append("name")
    if "notes" in data:
        dep.notes = clean_str(data.get("notes"), "notes")
        changed.append("notes")
    if "completion_date" in data:
        dep.completion_date = parse_datetime(data["completion_date"], field="completion_date")
        changed.append("completion_date")

    new_status = data.get("status")
    if new_status is not None:
        require_choice(new_status, DEPLOYMENT_STATUSES, "status")
        old_status = dep.status
        if new_status != old_status:
            if not validate_deployment_transition(old_status, new_status):
                raise ValidationError(
                    f"Invalid status transition: {old_status} → {new_status}",
                    details={
                        "from": old_status,
                        "to": new_status,
                        "allowed": DEPLOYMENT_TRANSITIONS.get(old_status, []),
                    },
                )
            dep.status = new_status
            changed.append(f"status {old_status} → {new_status}")
            logger.info("WiFi deployment id=%s status %s → %s", dep.id, old_status, new_status)
    _stamp_transition_dates(dep)

    write_site_event(site_id=dep.site_id, action="wifi_deployment_updated", user_id=identity.id,
                     details=f"WiFi deployment '{dep.name}' updated: {', '.join(changed) or 'nothing'}",
                     subject_id=dep.id)
    commit_or_rollback()
    return dep


def update_status(identity: Identity, deployment_id: int, status: str, *, site_id: int | None = None):
    return update_deployment(identity, deployment_id, {"status": status}, site_id=site_id)


def delete_deployment(identity: Identity, deployment_id: int) -> None:
    dep = get_or_raise(WifiDeployment, deployment_id, "WifiDeployment")
    _require_owner_or_delete(identity, dep, "delete")

    write_site_event(site_id=dep.site_id, action="wifi_deployment_deleted", user_id=identity.id,
                     details=f"WiFi deployment '{dep.name}' deleted", subject_id=dep.id)
    db.session.delete(dep)
    commit_or_rollback()
    logger.info("WiFi deployment deleted id=%s by user=%s", deployment_id, identity.id)


# ═════════════════════════════════════════════════════════════════════════════
# Archive
# ═════════════════════════════════════════════════════════════════════════════


def archive_deployment(
    identity: Identity,
    deployment_id: int,
    *,
    site_id: int | None = None,
) -> ArchivedWifiDeployment:
    """Snapshot a deployment with its tasks and comments, then remove it."""
    dep = get_or_raise(WifiDeployment, deployment_id, "WifiDeployment")
    if site_id is not None and dep.site_id != site_id:
        raise ValidationError(
            "Deployment does not belong to this site",
            details={"site_id": site_id, "deployment_id": deployment_id},
        )
    _require_owner_or_delete(identity, dep, "archive")

    archived = ArchivedWifiDeployment(
        original_id=dep.id,
        site_id=dep.site_id,
        name=dep.name,
        status=dep.status,
        start_date=dep.start_date,
        completion_date=dep.completion_date,
        notes=dep.notes,
        tasks=[t.to_dict() for t in dep.tasks],
        comments=[c.to_dict() for c in dep.comments],
        created_by=dep.created_by,
        created_at=dep.created_at,
        updated_at=dep.updated_at,
        archived_at=_now(),
        archived_by=identity.id,
    )
    db.session.add(archived)
    write_site_event(site_id=dep.site_id, action="wifi_deployment_archived", user_id=identity.id,
                     details=f"WiFi deployment '{dep.name}' archived", subject_id=dep.id)
    db.session.delete(dep)
    commit_or_rollback()
    logger.info("WiFi deployment id=%s archived as id=%s by user=%s", deployment_id, archived.id, identity.id)
    return archived


def list_archived(
    identity: Identity,
    site_id: int | None = None,
    original_id: int | None = None,
) -> list[ArchivedWifiDeployment]:
    stmt = select(ArchivedWifiDeployment).order_by(
        ArchivedWifiDeployment.archived_at.desc(), ArchivedWifiDeployment.id.desc(),
    )
    if site_id is not None:
        site = get_or_raise(Site, site_id, "Site")
        policy.require_site_access(identity, site, "read")
        stmt = stmt.where(ArchivedWifiDeployment.site_id == site.id)
    else:
        readable = policy.readable_group_ids(identity)
        if readable is not None:
            stmt = stmt.join(Site, ArchivedWifiDeployment.site_id == Site.id).where(
                Site.group_id.in_(readable)
            )
    if original_id is not None:
        stmt = stmt.where(ArchivedWifiDeployment.original_id == original_id)
    return db.session.execute(stmt).scalars().all()


def get_archived(identity: Identity, archived_id: int) -> ArchivedWifiDeployment:
    archived = get_or_raise(ArchivedWifiDeployment, archived_id, "ArchivedWifiDeployment")
    policy.require_record_access(identity, archived, "read")
    return archived


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════


def list_comments(identity: Identity, deployment_id: int) -> list[DeploymentComment]:
    dep = get_deployment(identity, deployment_id, "read")
    return dep.comments.all()


def add_comment(identity: Identity, deployment_id: int, data: dict) -> DeploymentComment:
    dep = get_deployment(identity, deployment_id, "write")
    require_fields(data, "text")
    importance = data.get("importance") or "info"
    require_choice(importance, COMMENT_IMPORTANCE, "importance")

    comment = DeploymentComment(
        deployment_id=dep.id,
        text=clean_str(data["text"], "text"),
        importance=importance,
        user_id=identity.id,
    )
    db.session.add(comment)
    commit_or_rollback()
    return comment


# ═════════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════════


def sort_tasks(tasks, today=None) -> list[DeploymentTask]:
    today = today or _now().date()
    return sorted(tasks, key=lambda t: task_sort_key(t, today))


def _get_task(dep: WifiDeployment, task_id: int) -> DeploymentTask:
    task = db.session.get(DeploymentTask, task_id)
    if task is None or task.deployment_id != dep.id:
        raise NotFoundError("DeploymentTask", task_id)
    return task


def list_tasks(identity: Identity, deployment_id: int, sort: str | None = None) -> list[DeploymentTask]:
    """Newest-first tasks, or the priority ordering when ``sort='priority'``."""
    dep = get_deployment(identity, deployment_id, "read")
    tasks = dep.tasks.all()
    if sort == "priority":
        return sort_tasks(tasks)
    return tasks


def add_task(identity: Identity, deployment_id: int, data: dict) -> DeploymentTask:
    dep = get_deployment(identity, deployment_id, "write")
    require_fields(data, "title")
    status = data.get("status") or "not_started"
    priority = data.get("priority") or "medium"
    require_choice(status, TASK_STATUSES, "status")
    require_choice(priority, TASK_PRIORITIES, "priority")

    now = _now()
    task = DeploymentTask(
        deployment_id=dep.id,
        title=clean_str(data["title"], "title"),
        description=clean_str(data.get("description"), "description"),
        status=status,
        priority=priority,
        assigned_to=clean_str(data.get("assigned_to"), "assigned_to"),
        due_date=parse_date(data.get("due_date"), field="due_date"),
        created_by=identity.id,
        created_at=now,
        updated_at=now,
    )
    db.session.add(task)
    commit_or_rollback()
    return task


def update_task(identity: Identity, deployment_id: int, task_id: int, data: dict) -> DeploymentTask:
    """Patch one task; only the task's own ``updated_at`` moves."""
    dep = get_deployment(identity, deployment_id, "write")
    task = _get_task(dep, task_id)

    for f in TASK_UPDATABLE_FIELDS:
        if f in data:
            if f == "title":
                require_fields(data, "title")
            setattr(task, f, clean_str(data[f], f))
    if "status" in data:
        task.status = require_choice(data["status"], TASK_STATUSES, "status")
    if "priority" in data:
        task.priority = require_choice(data["priority"], TASK_PRIORITIES, "priority")
    if "due_date" in data:
        task.due_date = parse_date(data["due_date"], field="due_date")
    task.updated_at = _now()
    commit_or_rollback()
    return task


def cycle_task_status(identity: Identity, deployment_id: int, task_id: int) -> DeploymentTask:
    dep = get_deployment(identity, deployment_id, "write")
    task = _get_task(dep, task_id)
    task.status = next_task_status(task.status)
    task.updated_at = _now()
    commit_or_rollback()
    return task


def delete_task(identity: Identity, deployment_id: int, task_id: int) -> None:
    dep = get_deployment(identity, deployment_id, "write")
    task = _get_task(dep, task_id)
    db.session.delete(task)
    commit_or_rollback()

"""
SiteHub
WiFi deployment domain models.

Models:
    - WifiDeployment:          a WiFi rollout project on a site
    - DeploymentTask:          checklist item owned by a deployment
    - DeploymentComment:       timeline entry owned by a deployment
    - ArchivedWifiDeployment:  write-once snapshot taken when a deployment is archived

Architecture:
    Site ──1:N──▶ WifiDeployment ──1:N──▶ DeploymentTask
                  WifiDeployment ──1:N──▶ DeploymentComment
    Site ──1:N──▶ ArchivedWifiDeployment  (tasks/comments frozen as JSON)

Lifecycle states:
    WifiDeployment:  planning → in_progress → completed
                     planning | in_progress → blocked → in_progress
    DeploymentTask:  not_started → in_progress → completed → not_started (toggle cycle)
"""

from datetime import datetime, timezone

from sqlalchemy import event

from sitehub.core.exceptions import ValidationError
from sitehub.models import db
from sitehub.models.base import SiteScopedModel, iso, user_ref


# ── Constants ────────────────────────────────────────────────────────────────

DEPLOYMENT_STATUSES = ("planning", "in_progress", "completed", "blocked")

TASK_STATUSES = ("not_started", "in_progress", "completed", "blocked")

TASK_PRIORITIES = ("low", "medium", "high", "critical")

COMMENT_IMPORTANCE = ("info", "warning", "critical")

# Lower rank sorts first
PRIORITY_RANK = {"critical": 0, "high": 1, "medium": 2, "low": 3}


# ── Lifecycle Transition Guards ──────────────────────────────────────────────

DEPLOYMENT_TRANSITIONS = {
    "planning":    ["in_progress", "blocked"],
    "in_progress": ["completed", "blocked"],
    "blocked":     ["in_progress"],
    "completed":   [],                 # terminal: archive or delete
}

TASK_STATUS_CYCLE = {
    "not_started": "in_progress",
    "in_progress": "completed",
    "completed":   "not_started",
    "blocked":     "in_progress",
}


def validate_deployment_transition(old_status, new_status):
    """Return True if WifiDeployment status transition is valid."""
    return new_status in DEPLOYMENT_TRANSITIONS.get(old_status, [])


def next_task_status(current):
    """Status reached by one click on the task toggle."""
    return TASK_STATUS_CYCLE.get(current, "in_progress")


def task_sort_key(task, today):
    """Ordering key for a deployment's task list.

    Incomplete before completed, overdue first, then priority
    (critical < high < medium < low), then due date with undated tasks
    last, then newest first.
    """
    completed = task.status == "completed"
    overdue = (
        not completed and task.due_date is not None and task.due_date < today
    )
    created = task.created_at.timestamp() if task.created_at else 0.0
    return (
        completed,
        not overdue,
        PRIORITY_RANK.get(task.priority, len(PRIORITY_RANK)),
        task.due_date is None,
        task.due_date.toordinal() if task.due_date else 0,
        -created,
        -(task.id or 0),
    )


class WifiDeployment(SiteScopedModel):
    __tablename__ = "wifi_deployments"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="planning",
        comment="planning | in_progress | completed | blocked",
    )
    start_date = db.Column(
        db.DateTime(timezone=True), nullable=True,
        comment="Stamped on first move to in_progress",
    )
    completion_date = db.Column(
        db.DateTime(timezone=True), nullable=True,
        comment="Stamped on first move to completed unless given explicitly",
    )
    notes = db.Column(db.Text, default="")

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('planning','in_progress','completed','blocked')",
            name="ck_wifi_deployment_status",
        ),
        {"sqlite_autoincrement": True},
    )

    # ── Relationships ────────────────────────────────────────────────────
    tasks = db.relationship(
        "DeploymentTask", backref="deployment", lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="DeploymentTask.id.desc()",
    )
    comments = db.relationship(
        "DeploymentComment", backref="deployment", lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="DeploymentComment.id.desc()",
    )

    def to_dict(self, include_children=True):
        result = {
            "id": self.id,
            "site_id": self.site_id,
            "name": self.name,
            "status": self.status,
            "start_date": iso(self.start_date),
            "completion_date": iso(self.completion_date),
            "notes": self.notes,
            "created_by": user_ref(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "task_count": self.tasks.count(),
            "comment_count": self.comments.count(),
        }
        if include_children:
            result["tasks"] = [t.to_dict() for t in self.tasks]
            result["comments"] = [c.to_dict() for c in self.comments]
        return result

    def __repr__(self):
        return f"<WifiDeployment {self.id}: {self.name} [{self.status}]>"


class DeploymentTask(db.Model):
    __tablename__ = "deployment_tasks"

    id = db.Column(db.Integer, primary_key=True)
    deployment_id = db.Column(
        db.Integer, db.ForeignKey("wifi_deployments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="not_started")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    assigned_to = db.Column(db.String(200), default="")
    due_date = db.Column(db.Date, nullable=True)
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    # Stamped explicitly by the service; editing a task never touches the parent row
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('not_started','in_progress','completed','blocked')",
            name="ck_deployment_task_status",
        ),
        db.CheckConstraint(
            "priority IN ('low','medium','high','critical')",
            name="ck_deployment_task_priority",
        ),
    )

    creator = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self):
        return {
            "id": self.id,
            "deployment_id": self.deployment_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
            "due_date": iso(self.due_date),
            "created_by": user_ref(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<DeploymentTask {self.id}: {self.title} [{self.status}/{self.priority}]>"


class DeploymentComment(db.Model):
    __tablename__ = "deployment_comments"

    id = db.Column(db.Integer, primary_key=True)
    deployment_id = db.Column(
        db.Integer, db.ForeignKey("wifi_deployments.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    text = db.Column(db.Text, nullable=False)
    importance = db.Column(
        db.String(20), nullable=False, default="info",
        comment="info | warning | critical",
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "importance IN ('info','warning','critical')",
            name="ck_deployment_comment_importance",
        ),
    )

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self):
        return {
            "id": self.id,
            "deployment_id": self.deployment_id,
            "text": self.text,
            "importance": self.importance,
            "user": user_ref(self.user),
            "timestamp": iso(self.timestamp),
        }

    def __repr__(self):
        return f"<DeploymentComment {self.id} on deployment={self.deployment_id}>"


class ArchivedWifiDeployment(db.Model):
    """Frozen copy of a WifiDeployment taken at archive time.

    Tasks and comments are stored as the exact payloads they had when the
    live deployment was archived. Rows are written once; any later UPDATE
    is rejected by ``_reject_archive_update``. There is no restore path.
    """

    __tablename__ = "archived_wifi_deployments"

    id = db.Column(db.Integer, primary_key=True)
    original_id = db.Column(
        db.Integer, nullable=False, index=True,
        comment="id the deployment had while live",
    )
    site_id = db.Column(
        db.Integer, db.ForeignKey("sites.id", ondelete="SET NULL"),
        nullable=True, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), nullable=False)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    completion_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, default="")
    tasks = db.Column(db.JSON, nullable=False, default=list)
    comments = db.Column(db.JSON, nullable=False, default=list)
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    archived_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    archived_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    site = db.relationship("Site", foreign_keys=[site_id])
    creator = db.relationship("User", foreign_keys=[created_by])
    archiver = db.relationship("User", foreign_keys=[archived_by])

    def to_dict(self):
        return {
            "id": self.id,
            "original_id": self.original_id,
            "site_id": self.site_id,
            "name": self.name,
            "status": self.status,
            "start_date": iso(self.start_date),
            "completion_date": iso(self.completion_date),
            "notes": self.notes,
            "tasks": list(self.tasks or []),
            "comments": list(self.comments or []),
            "created_by": user_ref(self.creator),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
            "archived_at": iso(self.archived_at),
            "archived_by": user_ref(self.archiver),
        }

    def __repr__(self):
        return f"<ArchivedWifiDeployment {self.id} (was {self.original_id}): {self.name}>"


@event.listens_for(ArchivedWifiDeployment, "before_update")
def _reject_archive_update(mapper, connection, target):
    raise ValidationError(
        "Archived deployments are read-only",
        details={"archived_deployment_id": target.id},
    )

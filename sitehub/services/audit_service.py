"""
Audit trail writers for sites and groups.

Both helpers only ``add`` + ``flush`` so the caller keeps transaction
control: the service that mutated an entity appends its event and then
commits once, making the pair atomic.
"""

from __future__ import annotations

import logging

from sitehub.models import db
from sitehub.models.group import GROUP_EVENT_ACTIONS, GroupEvent
from sitehub.models.site import SITE_EVENT_ACTIONS, SiteEvent

logger = logging.getLogger(__name__)


def write_site_event(
    *,
    site_id: int | None,
    action: str,
    user_id: int | None,
    details: str = "",
    subject_id: int | None = None,
) -> SiteEvent | None:
    """
    Append a single site event. Orphaned records (``site_id`` None) have no
    trail to write to, so nothing is recorded for them.

    Returns the (flushed) SiteEvent instance, or None for orphans.
    """
    if action not in SITE_EVENT_ACTIONS:
        raise ValueError(f"Unknown site event action: {action}")
    if site_id is None:
        logger.debug("Skipping %s event for orphaned record %s", action, subject_id)
        return None

    ev = SiteEvent(
        site_id=site_id,
        action=action,
        user_id=user_id,
        details=details or "",
        subject_id=subject_id,
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def write_group_event(
    *,
    group_id: int,
    action: str,
    user_id: int | None,
    details: str = "",
) -> GroupEvent:
    """Append a single group event. Uses ``flush`` so callers keep transaction control."""
    if action not in GROUP_EVENT_ACTIONS:
        raise ValueError(f"Unknown group event action: {action}")
    ev = GroupEvent(
        group_id=group_id,
        action=action,
        user_id=user_id,
        details=details or "",
    )
    db.session.add(ev)
    db.session.flush()
    return ev

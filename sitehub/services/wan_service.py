"""
WAN service — site connectivity links with a field-level change history.

Business logic for:
    - CRUD on WanDeployment rows (site-scoped)
    - History tracking: provider / link_type / bandwidth / status changes
      each append one WanHistoryEntry *before* the new value is written
    - Auto dates: → active stamps activation_date, → canceled stamps
      cancellation_date, both only when still empty
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from sitehub.core.exceptions import NotFoundError, ValidationError
from sitehub.models import db
from sitehub.models.site import Site
from sitehub.models.wan import (
    DEFAULT_CONTRACT,
    LINK_TYPES,
    RENEWAL_TYPES,
    TRACKED_FIELDS,
    WAN_STATUSES,
    WanDeployment,
    WanHistoryEntry,
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
    require_choice,
    require_fields,
)

logger = logging.getLogger(__name__)

DATE_FIELDS = ("order_date", "activation_date", "cancellation_date")


def _today():
    return datetime.now(timezone.utc).date()


def _as_text(value):
    return None if value is None else str(value)


def _normalize_tracked(field, value):
    """Validate and normalise an incoming tracked value."""
    if field == "link_type":
        return require_choice(value, LINK_TYPES, "link_type")
    if field == "status":
        return require_choice(value, WAN_STATUSES, "status")
    if field == "provider":
        provider = clean_str(value, "provider")
        if not provider:
            raise ValidationError("provider is required", details={"provider": "required"})
        return provider
    return "" if value is None else str(value).strip()


def _merge_contract(current: dict | None, incoming) -> dict:
    if not isinstance(incoming, dict):
        raise ValidationError("contract_details must be an object", details={"contract_details": incoming})
    merged = {**DEFAULT_CONTRACT, **(current or {})}
    for key in DEFAULT_CONTRACT:
        if key in incoming:
            merged[key] = incoming[key]
    require_choice(merged["renewal_type"], RENEWAL_TYPES, "renewal_type")
    for key in ("start_date", "end_date"):
        parsed = parse_date(merged.get(key), field=f"contract_details.{key}")
        merged[key] = parsed.isoformat() if parsed else None
    if merged.get("monthly_cost") not in (None, ""):
        try:
            merged["monthly_cost"] = float(merged["monthly_cost"])
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                "monthly_cost must be a number", details={"monthly_cost": merged["monthly_cost"]},
            ) from exc
    else:
        merged["monthly_cost"] = None
    return merged


def _apply_untracked(wan: WanDeployment, data: dict) -> list[str]:
    changed = []
    if "subscribed_by_site" in data:
        wan.subscribed_by_site = bool(data["subscribed_by_site"])
        changed.append("subscribed_by_site")
    for f in DATE_FIELDS:
        if f in data:
            setattr(wan, f, parse_date(data[f], field=f))
            changed.append(f)
    if "contract_details" in data:
        wan.contract_details = _merge_contract(wan.contract_details, data["contract_details"] or {})
        changed.append("contract_details")
    return changed


def _stamp_status_dates(wan: WanDeployment) -> None:
    if wan.status == "active" and wan.activation_date is None:
        wan.activation_date = _today()
    if wan.status == "canceled" and wan.cancellation_date is None:
        wan.cancellation_date = _today()


# ── Queries ───────────────────────────────────────────────────────────────────


def list_wan(identity: Identity, site_id: int | None = None) -> list[WanDeployment]:
    stmt = select(WanDeployment).order_by(WanDeployment.created_at.desc(), WanDeployment.id.desc())
    if site_id is not None:
        site = get_or_raise(Site, site_id, "Site")
        policy.require_site_access(identity, site, "read")
        stmt = stmt.where(WanDeployment.site_id == site.id)
    else:
        readable = policy.readable_group_ids(identity)
        if readable is not None:
            stmt = stmt.join(Site, WanDeployment.site_id == Site.id).where(Site.group_id.in_(readable))
    return db.session.execute(stmt).scalars().all()


def get_wan(identity: Identity, wan_id: int, operation: str = "read", *, site_id: int | None = None) -> WanDeployment:
    wan = get_or_raise(WanDeployment, wan_id, "WanDeployment")
    if site_id is not None and wan.site_id != site_id:
        raise NotFoundError("WanDeployment", wan_id)
    policy.require_record_access(identity, wan, operation)
    return wan


# ── Mutations ─────────────────────────────────────────────────────────────────


def create_wan(identity: Identity, data: dict, *, site_id: int | None = None) -> WanDeployment:
    require_fields(data, "provider")
    site_id = site_id if site_id is not None else as_int(data.get("site_id"), "site_id")
    if site_id is None:
        raise ValidationError("site_id is required", details={"site_id": "required"})
    site = get_or_raise(Site, site_id, "Site")
    policy.require_site_access(identity, site, "write")

    wan = WanDeployment(site_id=site.id, created_by=identity.id)
    wan.provider = _normalize_tracked("provider", data["provider"])
    wan.link_type = _normalize_tracked("link_type", data.get("link_type") or "OTHER")
    wan.bandwidth = _normalize_tracked("bandwidth", data.get("bandwidth"))
    wan.status = _normalize_tracked("status", data.get("status") or "ordered")
    wan.contract_details = _merge_contract({}, data.get("contract_details") or {})
    _apply_untracked(wan, {k: v for k, v in data.items() if k != "contract_details"})
    _stamp_status_dates(wan)

    db.session.add(wan)
    db.session.flush()
    write_site_event(site_id=site.id, action="wan_added", user_id=identity.id,
                     details=f"WAN link {wan.provider} ({wan.link_type}) added", subject_id=wan.id)
    commit_or_rollback()
    logger.info("WAN link created id=%s site=%s status=%s", wan.id, site.id, wan.status)
    return wan


def update_wan(identity: Identity, wan_id: int, data: dict, *, site_id: int | None = None) -> WanDeployment:
    """Apply a patch, recording one history entry per changed tracked field."""
    wan = get_wan(identity, wan_id, "write", site_id=site_id)
    old_status = wan.status

    changed = []
    for field in TRACKED_FIELDS:
        if field not in data:
            continue
        new_value = _normalize_tracked(field, data[field])
        old_value = getattr(wan, field)
        if new_value == old_value:
            continue
        db.session.add(WanHistoryEntry(
            wan_id=wan.id,
            field=field,
            old_value=_as_text(old_value),
            new_value=_as_text(new_value),
            changed_by=identity.id,
        ))
        setattr(wan, field, new_value)
        changed.append(field)

    changed.extend(_apply_untracked(wan, data))
    if wan.status != old_status:
        _stamp_status_dates(wan)
        logger.info("WAN link id=%s status %s → %s", wan.id, old_status, wan.status)

    write_site_event(site_id=wan.site_id, action="wan_updated", user_id=identity.id,
                     details=f"WAN link {wan.provider} updated: {', '.join(changed) or 'nothing'}",
                     subject_id=wan.id)
    commit_or_rollback()
    return wan


def delete_wan(identity: Identity, wan_id: int, *, site_id: int | None = None) -> None:
    wan = get_wan(identity, wan_id, "delete", site_id=site_id)
    write_site_event(site_id=wan.site_id, action="wan_deleted", user_id=identity.id,
                     details=f"WAN link {wan.provider} deleted", subject_id=wan.id)
    db.session.delete(wan)
    commit_or_rollback()
    logger.info("WAN link deleted id=%s by user=%s", wan_id, identity.id)


def list_history(identity: Identity, wan_id: int) -> list[WanHistoryEntry]:
    """Oldest-first change log of one WAN link."""
    wan = get_wan(identity, wan_id, "read")
    return wan.history.all()

"""Shared helpers used by services and blueprints.

get_or_raise:        PK lookup that raises NotFoundError
parse_date:          ISO / DD.MM.YYYY → date (None on empty, ValidationError on junk)
parse_datetime:      ISO → aware datetime (None on empty, ValidationError on junk)
commit_or_rollback:  single transaction boundary for every service write
"""
import logging
from datetime import date, datetime, timezone

from sitehub.core.exceptions import NotFoundError, ValidationError
from sitehub.models import db

logger = logging.getLogger(__name__)


def get_or_raise(model, pk, label=None):
    """Fetch a model instance by primary key or raise NotFoundError."""
    label = label or model.__name__
    obj = db.session.get(model, pk) if pk is not None else None
    if obj is None:
        raise NotFoundError(label, pk)
    return obj


def parse_date(value, field="date"):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").date()
    except ValueError as exc:
        raise ValidationError(
            f"Invalid {field}. Use YYYY-MM-DD or DD.MM.YYYY.",
            details={field: value},
        ) from exc


def parse_datetime(value, field="datetime"):
    """Parse an ISO datetime (``Z`` suffix accepted) to an aware UTC datetime."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(
                f"Invalid {field}. Use ISO-8601.", details={field: value},
            ) from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def require_fields(data, *fields):
    """Raise ValidationError listing every missing or blank field."""
    missing = []
    for f in fields:
        value = data.get(f)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(f)
    if missing:
        raise ValidationError(
            f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
            details={f: "required" for f in missing},
        )


def clean_str(value, field):
    """Stripped text for a payload field; None becomes ""."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "not_a_string"})
    return value.strip()


def require_choice(value, choices, field):
    """Raise ValidationError unless ``value`` is one of ``choices``."""
    if value not in choices:
        raise ValidationError(
            f"{field} must be one of: {', '.join(choices)}",
            details={field: value},
        )
    return value


# ── Database commit helper ───────────────────────────────────────────────────

def commit_or_rollback():
    """Commit the current session; roll back and re-raise on any failure.

    Services call this once per operation, so an entity write and the audit
    event it produces either both persist or neither does.
    """
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Database error on commit, transaction rolled back")
        raise


def as_int(value, field="id"):
    """Coerce a payload id to int; None passes through."""
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be an integer", details={field: value}) from exc

"""
Platform-wide exception hierarchy.

Services raise these types; the app factory registers one handler per
type so every blueprint gets the same HTTP status and JSON body:

    NotFoundError      → 404
    ValidationError    → 400
    UnauthorizedError  → 401
    ForbiddenError     → 403
    anything else      → 500 (logged with traceback)

Usage:
    from sitehub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Site", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Malformed ids never reach a service (routes use the ``int`` converter),
    so a bad id and a missing record both surface as the same 404.

    Args:
        resource: Human-readable entity name (e.g. "Site", "Task").
        resource_id: The PK that was looked up. Included in logs and message.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is missing a required field or breaks a business rule
    (unknown enum value, invalid status transition, both document sources ...).

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(Exception):
    """Raised when the request carries no credential or an invalid/expired one."""

    def __init__(self, message: str = "Token is not valid") -> None:
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when an authenticated identity is not allowed to perform an action.

    Args:
        message: Human-readable explanation.
        operation: Optional operation name that was refused (read, write ...).
    """

    def __init__(self, message: str = "Permission denied", operation: str | None = None) -> None:
        self.operation = operation
        super().__init__(message)

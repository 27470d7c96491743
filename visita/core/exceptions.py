"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.

Usage:
    from visita.core.exceptions import NotFoundError, TransitionError

    raise NotFoundError(resource="Church", resource_id="c-42")
    raise TransitionError("pending", "approved", "parish", "Role 'parish' ...")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Church", "Notification").
        resource_id: The id that was looked up. Included in logs and messages.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value. Maps to HTTP 409."""

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class PermissionDeniedError(Exception):
    """Raised when the acting user may not perform an operation. Maps to HTTP 403."""


class TransitionError(Exception):
    """Raised when a requested church status change is not a legal move.

    The church record is left unchanged. Maps to HTTP 409.
    """

    def __init__(
        self,
        from_status: str,
        to_status: str,
        role: str,
        reason: str | None = None,
    ) -> None:
        msg = reason or (
            f"Transition from '{from_status}' to '{to_status}' "
            f"is not allowed for role '{role}'"
        )
        super().__init__(msg)
        self.from_status = from_status
        self.to_status = to_status
        self.role = role
        self.reason = msg


class AuthenticationError(Exception):
    """Raised when a request carries no known, active staff identity. Maps to HTTP 401."""

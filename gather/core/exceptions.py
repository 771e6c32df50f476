"""
Canonical exception hierarchy for the service layer.

Services raise these; blueprints never build error responses for business
rules by hand. ``gather.utils.errors.register_error_handlers`` maps each
type to an HTTP status once per blueprint, so every endpoint answers with
the same ``{"error": ..., "details"?: ...}`` body.

Usage:
    from gather.core.exceptions import NotFoundError, ForbiddenError

    raise NotFoundError(resource="Conflict", resource_id=42)
    raise ForbiddenError("Conflict does not belong to this event")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist at all.

    Cross-event access to a resource that *does* exist is a
    ``ForbiddenError``, never this.

    Args:
        resource: Human-readable entity name (e.g. "Event", "Conflict").
        resource_id: The PK that was looked up. Logged, not returned.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)

    @property
    def public_message(self) -> str:
        return f"{self.resource} not found"


class ValidationError(Exception):
    """Raised when input is malformed or breaks a business rule (HTTP 400).

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | str | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(Exception):
    """No credential, or a credential that resolves to nothing (HTTP 401)."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ForbiddenError(Exception):
    """Valid credential but wrong scope, or a cross-event reference (HTTP 403)."""

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class InvalidTransitionError(Exception):
    """Raised when a state-machine rule is violated (HTTP 400).

    Args:
        entity: "Event" or "Conflict".
        current: Status the entity is in.
        target: Status or action that was attempted.
        reason: Optional human-readable cause.
        blocks: Optional itemised gate blocks explaining the refusal.
    """

    def __init__(
        self,
        entity: str,
        current: str,
        target: str,
        reason: str | None = None,
        blocks: list[dict] | None = None,
    ) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        self.reason = reason
        self.blocks = blocks or []
        msg = f"Cannot move {entity} from {current} to {target}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class DuplicateError(Exception):
    """Raised when a write would violate a unique constraint (HTTP 409).

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")

"""
Platform-wide exception hierarchy.

Services raise these types and never return error tuples. Blueprints
register handlers against them once and get consistent HTTP status codes
everywhere.  Every exception here is raised before the unit of work
commits, so a failed operation leaves no partial mutation behind.

Usage:
    from ehub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Project", resource_id=42)
    raise ValidationError("hours_worked must be greater than 0",
                          details={"hours_worked": "must be > 0"})
"""

from decimal import Decimal


class NotFoundError(Exception):
    """Raised when a requested entity does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Project", "ProjectAssignment").
        resource_id: The id that was looked up.
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
    """Raised when input is malformed or violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names;
                 values are error descriptions.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthorizationError(Exception):
    """Raised when the acting user lacks the role or ownership for an operation.

    Maps to HTTP 403.
    """

    def __init__(self, message: str, actor_id: int | None = None) -> None:
        self.actor_id = actor_id
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate something that must be unique.

    Maps to HTTP 409.

    Args:
        resource: Entity name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
    """

    def __init__(self, resource: str, field: str, value: object = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} already exists")


class InvalidTransitionError(Exception):
    """Raised when an entity is not in the state an operation requires.

    Maps to HTTP 409. Safe to retry once the entity is in the right state.
    """

    def __init__(
        self,
        message: str,
        current_status: str | None = None,
        target_status: str | None = None,
    ) -> None:
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(message)


class AlreadyResolvedError(InvalidTransitionError):
    """Raised when responding to an invitation that already reached a terminal status.

    Repeating accept (or decline) on a resolved assignment is rejected with
    this error instead of being treated as a silent no-op.
    """

    def __init__(self, resource: str, resource_id: int, status: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} id={resource_id} is already {status}",
            current_status=status,
        )


class OverAllocationError(Exception):
    """Raised when allocations would exceed a project's monetary ceiling.

    The whole batch is rejected. Maps to HTTP 422 with the computed excess.

    Args:
        field: The ceiling being enforced ("revenue" or "budget").
        ceiling: The project's ceiling amount.
        requested: The total the batch would have produced.
    """

    def __init__(self, field: str, ceiling: Decimal, requested: Decimal) -> None:
        self.field = field
        self.ceiling = ceiling
        self.requested = requested
        self.excess = requested - ceiling
        super().__init__(
            f"Total allocated {field} ({requested:.2f}) exceeds project {field} "
            f"({ceiling:.2f}) by {self.excess:.2f}"
        )


class ConcurrencyError(Exception):
    """Raised when a concurrent request modified the same row first.

    Maps to HTTP 409. The caller may reload and retry.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            f"{resource} id={resource_id} was modified by another request; reload and retry"
        )

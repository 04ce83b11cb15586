"""
Platform-wide exception hierarchy.

Services raise these; the app-level handlers in ``gemba.utils.errors`` map
each one to a stable HTTP status and machine-readable error code. Every
exception is raised before any mutation, so a rejected call leaves no partial
state behind.

Usage:
    from gemba.core.exceptions import ForbiddenError, NotFoundError

    raise NotFoundError(resource="Finding", resource_id=42)
    raise ForbiddenError("close", roles={"leader"})
"""


class NotFoundError(Exception):
    """Raised when a referenced walk, finding, notification or user does not exist.

    Args:
        resource: Human-readable entity name (e.g. "GembaWalk", "Finding").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
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
    """Raised when input is malformed or violates a field-level rule.

    Maps to HTTP 400.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown. Keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ForbiddenError(Exception):
    """Raised when the acting user lacks the walk/finding role an action needs.

    Maps to HTTP 403.

    Args:
        action: The attempted operation (e.g. "create_finding", "close").
        roles: Roles the actor actually holds, for debug logging.
        message: Optional override of the default message.
    """

    def __init__(
        self,
        action: str,
        roles: frozenset | set | None = None,
        message: str | None = None,
    ) -> None:
        self.action = action
        self.roles = frozenset(roles or ())
        super().__init__(message or f"Not allowed to '{action}'")


class InvalidStateError(Exception):
    """Raised when the entity's current state rules out the requested transition.

    Maps to HTTP 409.

    Args:
        action: Attempted operation.
        current: Current status (or other state marker) of the entity.
        reason: Optional explanation appended to the message.
    """

    def __init__(self, action: str, current: str, reason: str | None = None) -> None:
        self.action = action
        self.current = current
        msg = f"Cannot '{action}' (state={current})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)

"""Canonical error types for the session core.

Only InvariantViolationError is allowed to cross the orchestrator's public
boundary. Persistence, not-found and dispatcher failures are logged and
absorbed by the component that observes them.
"""


class MandalaDayError(Exception):
    """Base class for all session-core errors."""


class PersistenceError(MandalaDayError):
    """Raised when a read or write against the key-value store fails.

    Attributes:
        key: Store key involved in the failed operation
        operation: "get", "set" or "remove"
    """

    def __init__(self, key: str, operation: str, cause: Exception | None = None):
        self.key = key
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Persistence {operation} failed for key '{key}'{detail}")


class InstanceNotFoundError(MandalaDayError):
    """Raised when an instance id is not part of the requested day."""

    def __init__(self, instance_id: str):
        self.instance_id = instance_id
        super().__init__(f"Instance '{instance_id}' not found")


class DispatcherError(MandalaDayError):
    """Raised when the notification dispatcher fails to schedule or cancel."""


class InvariantViolationError(MandalaDayError):
    """Raised when an internal invariant is violated.

    Attributes:
        code: Error code (e.g., "DAY_NOT_GENERATED")
        details: List of error detail strings
    """

    def __init__(self, code: str, details: list[str]):
        self.code = code
        self.details = details
        super().__init__(f"{code}: {details}")

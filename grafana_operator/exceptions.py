"""Exceptions related to grafana-operator."""

__all__ = [
    "GrafanaOperatorException",
    "InputException",
    "ObjectNotFoundError",
    "ConflictError",
    "ReconcileError",
    "ActionFailedError",
    "AdminUrlNotFoundError",
]


class GrafanaOperatorException(Exception):
    """Generic base exception used for this library."""


class InputException(GrafanaOperatorException):
    """Raised when the input files or values are not formatted as expected."""


class ObjectNotFoundError(GrafanaOperatorException):
    """Raised when an object is not found in the store."""


class ConflictError(GrafanaOperatorException):
    """Raised when a write is based on a stale read of a modified object.

    A conflict on a status write is a benign race with another writer and
    is resolved by the next reconciliation cycle.
    """

    def __init__(
        self, resource_name: str, expected_version: str | None, actual_version: str
    ) -> None:
        super().__init__(
            f"Conflict updating {resource_name}: object has been modified "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.resource_name = resource_name
        self.expected_version = expected_version
        self.actual_version = actual_version


class ReconcileError(GrafanaOperatorException):
    """Raised when a step of a reconciliation cycle fails."""


class ActionFailedError(ReconcileError):
    """Raised when an action computed from the desired state fails to run."""

    def __init__(self, action: str, message: str) -> None:
        super().__init__(f"Action '{action}' failed: {message}")
        self.action = action
        self.message = message


class AdminUrlNotFoundError(ReconcileError):
    """Raised when no reachable endpoint exists for a Grafana instance."""

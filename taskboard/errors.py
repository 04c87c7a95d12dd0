"""
Error taxonomy for board mutations.

Every error carries a machine-readable ``kind`` and, where it applies, the
offending ``field`` so the API layer can render a user-facing message without
leaking storage details.
"""
from typing import Optional


class TaskboardError(Exception):
    """Base class for errors surfaced to callers."""
    kind = "error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind, "field": self.field}


class NotFoundError(TaskboardError):
    """Task, column or project is missing, or the caller may not see it."""
    kind = "not_found"


class ValidationError(TaskboardError):
    """Missing required field or malformed enum value."""
    kind = "validation"


class AssignmentIndeterminateError(TaskboardError):
    """Auto-assignment requested but nobody could be picked."""
    kind = "assignment_indeterminate"


class PersistenceError(TaskboardError):
    """The store rejected a read or write."""
    kind = "persistence"


class SuggestionUnavailable(TaskboardError):
    """The suggestion service failed. Never leaves the assignment resolver."""
    kind = "suggestion_unavailable"


class PermissionDeniedError(TaskboardError):
    """Caller can see the project but lacks the role for the action."""
    kind = "forbidden"

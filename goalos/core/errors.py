"""
GoalOS Errors

Exception taxonomy for the goal store. Every error carries the id of the
entity it concerns (when known) plus free-form context, formatted into the
message so CLI and hook output can name the offending record.
"""

from typing import List, Optional


class GoalOSError(Exception):
    """
    Base exception for all GoalOS errors

    Raised directly only for failures that fit no narrower category.
    """

    def __init__(self, message: str, entity_id: Optional[str] = None, **kwargs):
        """
        Initialize GoalOSError

        Args:
            message: Error message
            entity_id: Optional goal/snapshot/branch/project ID for context
            **kwargs: Additional error context
        """
        self.message = message
        self.entity_id = entity_id
        self.context = kwargs
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context"""
        parts = [self.message]
        if self.entity_id:
            parts.append(f"(id: {self.entity_id})")
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"[{context_str}]")
        return " ".join(parts)


class ValidationError(GoalOSError):
    """
    Raised when input is missing or invalid

    Validation happens at the entity model boundary, before anything is
    persisted.
    """

    def __init__(self, message: str, field: Optional[str] = None, entity_id: Optional[str] = None):
        self.field = field
        if field:
            super().__init__(message, entity_id=entity_id, field=field)
        else:
            super().__init__(message, entity_id=entity_id)


class InvalidTransitionError(ValidationError):
    """
    Raised when a status transition is not allowed

    Covers goal status changes (e.g. completed -> active) and branch
    resolution changes (e.g. merging an abandoned branch).
    """

    def __init__(
        self,
        from_state: str,
        to_state: str,
        entity_id: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        self.from_state = from_state
        self.to_state = to_state

        message = f"Invalid transition from '{from_state}' to '{to_state}'"
        if reason:
            message += f": {reason}"

        super().__init__(message, field="status", entity_id=entity_id)


class NotFoundError(GoalOSError):
    """Raised when a write path requires an entity that does not exist"""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        super().__init__(f"{kind} not found", entity_id=entity_id)


class StorageError(GoalOSError):
    """Raised when the backing file tree cannot be read or written"""


class LockTimeoutError(StorageError):
    """Raised when the store lock cannot be acquired in time"""

    def __init__(self, lock_path: str, timeout: float):
        self.lock_path = lock_path
        self.timeout = timeout
        super().__init__(
            "Store is locked by another process",
            lock=lock_path,
            timeout_seconds=timeout,
        )


class SchemaError(GoalOSError):
    """
    Raised when a stored document has an unrecognized schema_version
    or does not match the record shape

    Unknown versions fail closed: no coercion, no migration.
    """


class CycleDetectedError(GoalOSError):
    """Raised when a parent/child walk revisits a goal"""

    def __init__(self, goal_id: str, path: List[str]):
        self.path = list(path)
        super().__init__(
            "Cycle detected in goal hierarchy",
            entity_id=goal_id,
            path=" -> ".join(self.path),
        )


class BranchConflictError(GoalOSError):
    """Raised when a new branch slug collides with an existing branch"""

    def __init__(self, branch_id: str, goal_id: str):
        self.goal_id = goal_id
        super().__init__("Branch already exists", entity_id=branch_id, goal=goal_id)

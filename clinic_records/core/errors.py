"""
Exceptions raised by collaborators and by misuse of the lifecycle API.

Collaborator failures (store, sequence) are converted into typed results
by the lifecycle manager. The remaining exceptions signal programming
errors and are allowed to propagate.
"""


class StoreUnavailableError(Exception):
    """Raised when the external record store cannot be reached."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"[{operation}] record store unavailable: {message}")


class PersistenceError(Exception):
    """Raised when the record store rejects a create or update."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        self.message = message
        super().__init__(f"[{operation}] write rejected: {message}")


class SequenceUnavailableError(Exception):
    """Raised when an auto-generated identifier cannot be reserved."""


class InvalidTransitionError(Exception):
    """Raised when a draft is moved between states the lifecycle forbids."""

    def __init__(self, draft_id: str, current: str, target: str):
        self.draft_id = draft_id
        self.current = current
        self.target = target
        super().__init__(f"Draft {draft_id}: cannot move from {current} to {target}")


class DraftClosedError(Exception):
    """Raised when a persisted draft is edited."""

"""Typed errors for the coordination layer."""


class WorkhubError(Exception):
    """Base class for hub errors."""


class AuthError(WorkhubError):
    """Raised when a connection attempt is refused."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NoWorkerAvailable(WorkhubError):
    """Raised when no live worker connection can take a task."""


class WorkerTimeout(WorkhubError):
    """Raised when a worker does not answer an RPC task within its bound."""


class TaskFailure(WorkhubError):
    """Raised when a worker reports an error or failed items for a task."""


class PersistenceError(WorkhubError):
    """Raised when the durable store cannot be reached or rejects a write."""


class UnknownTaskType(WorkhubError):
    """Raised when a producer submits a task kind the hub does not know."""

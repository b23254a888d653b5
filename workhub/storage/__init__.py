"""Storage package init."""
from workhub.storage.database import Base, async_session_maker, engine, get_db, init_db, session_scope
from workhub.storage.models import (
    TERMINAL_JOB_STATUSES,
    Job,
    JobStatus,
    Node,
    NodeStatus,
)

__all__ = [
    "Base",
    "get_db",
    "init_db",
    "engine",
    "async_session_maker",
    "session_scope",
    "Job",
    "JobStatus",
    "Node",
    "NodeStatus",
    "TERMINAL_JOB_STATUSES",
]

"""SQLAlchemy models for the hub's durable state."""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from workhub.storage.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; columns are stored without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_request_id() -> str:
    return uuid4().hex


# ============================================================================
# Enums
# ============================================================================

class NodeStatus(str, PyEnum):
    online = "online"
    offline = "offline"


class JobStatus(str, PyEnum):
    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.completed, JobStatus.failed})


# ============================================================================
# Models
# ============================================================================

class Node(Base):
    """Durable identity of a worker machine."""

    __tablename__ = "nodes"

    machine_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    secret_key: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[NodeStatus] = mapped_column(Enum(NodeStatus), nullable=False, default=NodeStatus.offline, index=True)
    last_seen: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    total_success: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "machineId": self.machine_id,
            "name": self.name,
            "status": self.status.value,
            "lastSeen": self.last_seen.isoformat() if self.last_seen else None,
            "ipAddress": self.ip_address,
            "totalSuccess": self.total_success,
            "totalFailed": self.total_failed,
        }


class Job(Base):
    """Durable queue entry for a unit of dispatched work."""

    __tablename__ = "jobs"

    request_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_request_id)
    task_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    status: Mapped[JobStatus] = mapped_column(Enum(JobStatus), nullable=False, default=JobStatus.queued, index=True)
    worker_name: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    # Authenticated node the job is bound to; worker_name is display only
    machine_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    progress: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    result: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_jobs_status_created", "status", "created_at"),
    )

    def to_dict(self) -> dict:
        return {
            "requestId": self.request_id,
            "taskType": self.task_type,
            "status": self.status.value,
            "workerName": self.worker_name,
            "machineId": self.machine_id,
            "payload": self.payload,
            "progress": self.progress,
            "result": self.result,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }

"""Wire events exchanged with workers over the persistent connection.

Every frame is a JSON object ``{"event": <name>, "data": {...}}``.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from workhub.jobs.schemas import CamelModel


# ============================================================================
# Worker -> hub
# ============================================================================

class RegisterData(CamelModel):
    device_id: str | None = None


class HeartbeatData(CamelModel):
    pass


class ProgressData(CamelModel):
    request_id: str
    progress: dict[str, Any] = Field(default_factory=dict)


class CompletedData(CamelModel):
    request_id: str
    result: dict[str, Any] = Field(default_factory=dict)


class CheckVersionData(CamelModel):
    hash: str | None = None


class Register(BaseModel):
    event: Literal["register"]
    data: RegisterData = Field(default_factory=RegisterData)


class Heartbeat(BaseModel):
    event: Literal["heartbeat"]
    data: HeartbeatData = Field(default_factory=HeartbeatData)


class TaskProgress(BaseModel):
    event: Literal["task_progress"]
    data: ProgressData


class TaskCompleted(BaseModel):
    event: Literal["task_completed"]
    data: CompletedData


class CheckVersion(BaseModel):
    event: Literal["check_version"]
    data: CheckVersionData = Field(default_factory=CheckVersionData)


InboundEvent = Annotated[
    Union[Register, Heartbeat, TaskProgress, TaskCompleted, CheckVersion],
    Field(discriminator="event"),
]

_inbound_adapter: TypeAdapter[InboundEvent] = TypeAdapter(InboundEvent)


def parse_inbound(frame: dict[str, Any]) -> InboundEvent:
    """Validate a decoded frame into one of the inbound event variants."""
    return _inbound_adapter.validate_python(frame)


# ============================================================================
# Hub -> worker / observer
# ============================================================================

class OutboundEvent(BaseModel):
    event: str
    data: dict[str, Any] = Field(default_factory=dict)

    def to_frame(self) -> dict[str, Any]:
        return {"event": self.event, "data": self.data}


class ExecuteTaskData(CamelModel):
    request_id: str
    task_type: str
    payload: dict[str, Any] = Field(default_factory=dict)


class UpdateLogicData(CamelModel):
    hash: str
    content: str


def execute_task(request_id: str, task_type: str, payload: dict[str, Any]) -> OutboundEvent:
    data = ExecuteTaskData(request_id=request_id, task_type=task_type, payload=payload)
    return OutboundEvent(event="execute_task", data=data.to_wire())


def update_logic_file(content_hash: str, content: str) -> OutboundEvent:
    return OutboundEvent(event="update_logic_file", data=UpdateLogicData(hash=content_hash, content=content).to_wire())


def logic_uptodate() -> OutboundEvent:
    return OutboundEvent(event="logic_uptodate")


def registered(connection_id: str) -> OutboundEvent:
    return OutboundEvent(event="registered", data={"connectionId": connection_id})


def worker_update(active: int, busy: int) -> OutboundEvent:
    return OutboundEvent(event="worker_update", data={"active": active, "busy": busy})


def error(message: str) -> OutboundEvent:
    return OutboundEvent(event="error", data={"message": message})

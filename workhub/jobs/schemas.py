"""Task payload, progress and job envelope schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from workhub.errors import UnknownTaskType


class CamelModel(BaseModel):
    """Wire models use camelCase keys and snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TaskType(str, Enum):
    login_check = "login_check"
    meter_post = "meter_post"
    single_check = "single_check"
    inventory = "inventory"


class PortalCredentials(CamelModel):
    userid: str
    password: str


class LoginCheckPayload(PortalCredentials):
    """Verify a set of portal credentials."""


class MeterPostPayload(PortalCredentials):
    """Submit a batch of meter records."""

    meters: list[dict[str, Any]] = Field(default_factory=list)


class SingleCheckPayload(PortalCredentials):
    """Look up a single meter."""

    meter_no: str


class InventoryPayload(PortalCredentials):
    """List the inventory of registered meters."""

    limit: int = Field(default=50, ge=1)


TASK_PAYLOAD_SCHEMAS: dict[TaskType, type[PortalCredentials]] = {
    TaskType.login_check: LoginCheckPayload,
    TaskType.meter_post: MeterPostPayload,
    TaskType.single_check: SingleCheckPayload,
    TaskType.inventory: InventoryPayload,
}

# Name of the item collection in each payload that seeds progress.total
ITEM_COLLECTIONS: dict[TaskType, str] = {
    TaskType.meter_post: "meters",
}


def resolve_task_type(value: str) -> TaskType:
    try:
        return TaskType(value.replace("-", "_"))
    except ValueError as exc:
        raise UnknownTaskType(value) from exc


def validate_payload(task_type: TaskType, payload: dict[str, Any]) -> dict[str, Any]:
    """Validate a producer payload against its task schema and return the wire form."""
    schema = TASK_PAYLOAD_SCHEMAS[task_type]
    return schema.model_validate(payload).to_wire()


def count_items(task_type: str, payload: dict[str, Any] | None) -> int:
    """Length of the payload's item collection, 0 when absent."""
    if not payload:
        return 0
    try:
        key = ITEM_COLLECTIONS.get(TaskType(task_type), "meters")
    except ValueError:
        key = "meters"
    items = payload.get(key)
    return len(items) if isinstance(items, (list, tuple)) else 0


class Progress(CamelModel):
    """Progress snapshot. Keys beyond the known counters are kept as sent."""

    model_config = ConfigDict(extra="allow")

    current: int = 0
    total: int = 0
    last_item: str = ""


class TaskSubmitted(CamelModel):
    status: str = "queued"
    tracking_id: str


class JobView(CamelModel):
    request_id: str
    task_type: str
    status: str
    worker_name: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    progress: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    completed_at: datetime | None = None


def is_failure_result(result: dict[str, Any] | None) -> bool:
    """A report is a failure if it carries an error or any failed items."""
    if not result:
        return False
    if result.get("error"):
        return True
    if result.get("status") == "error":
        return True
    try:
        return int(result.get("failed") or 0) > 0
    except (TypeError, ValueError):
        return False

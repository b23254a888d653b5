"""Producer-facing task submission and status APIs."""

from typing import Any

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse

from workhub.api.deps import get_hub
from workhub.gateway.hub import Hub
from workhub.jobs.schemas import TaskSubmitted

router = APIRouter(prefix="/api", tags=["tasks"])


@router.post("/tasks/{task_type}", status_code=status.HTTP_202_ACCEPTED)
async def submit_task(
    task_type: str,
    payload: dict[str, Any] = Body(default_factory=dict),
    hub: Hub = Depends(get_hub),
) -> dict:
    """Queue a task and return its tracking id immediately."""
    tracking_id = await hub.submit(task_type, payload)
    return TaskSubmitted(tracking_id=tracking_id).to_wire()


@router.get("/tasks/{tracking_id}")
async def get_task_status(tracking_id: str, hub: Hub = Depends(get_hub)):
    job = await hub.get_job(tracking_id)
    if job is None:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "not found"})
    return job


@router.post("/rpc/{task_type}")
async def call_task(
    task_type: str,
    payload: dict[str, Any] = Body(default_factory=dict),
    hub: Hub = Depends(get_hub),
) -> dict:
    """Run a task on the next worker in rotation and wait for its answer."""
    return await hub.call(task_type, payload)

"""Aggregate statistics and health endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy import text

from workhub.api.deps import get_hub
from workhub.gateway.hub import Hub
from workhub.storage.database import session_scope

router = APIRouter(prefix="/api", tags=["dashboard"])


@router.get("/stats")
async def dashboard_stats(hub: Hub = Depends(get_hub)) -> dict:
    return await hub.stats()


@router.get("/health")
async def health(hub: Hub = Depends(get_hub)) -> dict:
    async with session_scope(hub.session_maker) as db:
        await db.execute(text("SELECT 1"))
    return {
        "status": "ok",
        "database": "ok",
        "active_workers": len(hub.registry),
    }

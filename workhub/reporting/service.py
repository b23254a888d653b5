"""Read-only aggregation over jobs, nodes and live connections."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from workhub.gateway.registry import ConnectionRegistry
from workhub.jobs import store
from workhub.nodes.registry import list_nodes
from workhub.storage.models import JobStatus, utcnow


async def get_dashboard_stats(
    db: AsyncSession,
    registry: ConnectionRegistry,
    *,
    rpc_pending: int = 0,
    window_hours: int = 24,
) -> dict[str, Any]:
    since = utcnow() - timedelta(hours=window_hours)

    lifetime = await store.count_by_status(db)
    windowed = await store.count_by_task_type(db, since=since)
    windowed_status = await store.count_by_status(db, since=since)
    by_task_type = await store.count_by_task_type(db)
    nodes = await list_nodes(db)

    return {
        "activeWorkers": len(registry),
        "busyWorkers": registry.busy_count(),
        "queueDepth": lifetime[JobStatus.queued.value],
        "pendingRequests": rpc_pending,
        "jobs": {
            "lifetime": lifetime,
            "window": {
                "hours": window_hours,
                "byStatus": windowed_status,
                "byTaskType": windowed,
            },
            "byTaskType": by_task_type,
        },
        "connections": [entry.to_dict() for entry in registry.entries()],
        "nodes": [node.to_dict() for node in nodes],
    }

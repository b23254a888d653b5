"""Heartbeat ingestion and offline detection on disconnect.

Liveness is event driven: heartbeats refresh last_seen and a disconnect marks
the node offline. There is no background sweep of silent connections.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from workhub.gateway.registry import ConnectionEntry, ConnectionRegistry
from workhub.jobs import store
from workhub.nodes import registry as nodes
from workhub.storage.database import session_scope

logger = logging.getLogger(__name__)


class LivenessMonitor:
    def __init__(
        self,
        registry: ConnectionRegistry,
        session_maker: async_sessionmaker,
        *,
        orphaned_job_policy: str = "leave",
    ) -> None:
        self.registry = registry
        self.session_maker = session_maker
        self.orphaned_job_policy = orphaned_job_policy

    async def heartbeat(self, connection_id: str) -> ConnectionEntry | None:
        entry = await self.registry.heartbeat(connection_id)
        if entry is None:
            return None
        async with session_scope(self.session_maker) as db:
            await nodes.touch(db, entry.machine_id)
        return entry

    async def disconnect(self, connection_id: str) -> ConnectionEntry | None:
        """Drop the connection entry and mark its node offline.

        The node stays online while another connection for the same machine
        is still registered. A job still bound to the connection stays
        processing unless the orphaned-job policy is "fail".
        """
        entry = await self.registry.remove(connection_id)
        if entry is None:
            return None

        async with session_scope(self.session_maker) as db:
            if not self.registry.connections_for(entry.machine_id):
                await nodes.mark_offline(db, entry.machine_id)
            orphan = entry.current_request_id
            if orphan:
                logger.warning(
                    "job_orphaned",
                    extra={"tracking_id": orphan, "machine_id": entry.machine_id, "policy": self.orphaned_job_policy},
                )
                if self.orphaned_job_policy == "fail":
                    await store.fail_lost(db, orphan, machine_id=entry.machine_id)

        logger.info(
            "worker_disconnected",
            extra={"connection_id": connection_id, "machine_id": entry.machine_id},
        )
        return entry

"""Match idle worker connections to queued jobs and push them."""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from workhub.gateway import messages
from workhub.gateway.registry import ConnectionRegistry
from workhub.jobs import store
from workhub.storage.database import session_scope

logger = logging.getLogger(__name__)


class Dispatcher:
    """Single dispatch decision point for the process.

    A connection is offered a job only while idle and is flipped busy before
    the job is claimed. The claim itself is conditional in the store, so two
    dispatchers (or two processes) can never bind the same job.
    """

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
        self._lock = asyncio.Lock()

    async def try_dispatch(self, connection_id: str) -> str | None:
        """Bind at most one queued job to an idle connection. Returns its request id."""
        async with self._lock:
            entry = self.registry.get(connection_id)
            if entry is None or not entry.is_idle:
                return None
            if not await self.registry.claim_idle(connection_id):
                return None

            try:
                async with session_scope(self.session_maker) as db:
                    job = await store.claim_next(db, worker_name=entry.display_name, machine_id=entry.machine_id)
                    claimed = (job.request_id, job.task_type, dict(job.payload)) if job else None
            except Exception:
                await self.registry.mark_idle(connection_id)
                raise

            if claimed is None:
                await self.registry.mark_idle(connection_id)
                return None

            request_id, task_type, payload = claimed
            if not await self.registry.bind(connection_id, request_id):
                await self._lost_before_push(request_id, entry.machine_id, connection_id)
                return None

        try:
            await entry.channel.send(messages.execute_task(request_id, task_type, payload))
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "job_push_failed",
                extra={"tracking_id": request_id, "connection_id": connection_id, "error": str(exc)},
            )
            return request_id

        logger.info(
            "job_dispatched",
            extra={
                "tracking_id": request_id,
                "task_type": task_type,
                "connection_id": connection_id,
                "worker_name": entry.display_name,
            },
        )
        return request_id

    async def dispatch_pending(self) -> list[str]:
        """Offer queued jobs to idle connections until either runs out."""
        dispatched: list[str] = []
        for entry in self.registry.idle_connections():
            request_id = await self.try_dispatch(entry.connection_id)
            if request_id is None:
                current = self.registry.get(entry.connection_id)
                if current is not None and current.is_idle:
                    # idle and still got nothing: queue is empty
                    break
                continue
            dispatched.append(request_id)
        return dispatched

    async def _lost_before_push(self, request_id: str, machine_id: str, connection_id: str) -> None:
        logger.warning(
            "dispatch_target_lost",
            extra={"tracking_id": request_id, "connection_id": connection_id, "policy": self.orphaned_job_policy},
        )
        if self.orphaned_job_policy == "fail":
            async with session_scope(self.session_maker) as db:
                await store.fail_lost(db, request_id, machine_id=machine_id)

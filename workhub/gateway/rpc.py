"""Synchronous request/response dispatch over live connections.

Alternative to the persistent queue: the producer's request waits for one
worker's answer under a hard bound. Nothing is written to the job store.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import async_sessionmaker

from workhub.errors import NoWorkerAvailable, WorkerTimeout
from workhub.gateway import messages
from workhub.gateway.registry import ConnectionRegistry
from workhub.jobs.schemas import count_items, is_failure_result
from workhub.nodes.registry import record_outcome
from workhub.storage.database import session_scope

logger = logging.getLogger(__name__)

RPC_PREFIX = "rpc-"


class RpcDispatcher:
    def __init__(
        self,
        registry: ConnectionRegistry,
        session_maker: async_sessionmaker,
        *,
        timeout_seconds: float = 600.0,
    ) -> None:
        self.registry = registry
        self.session_maker = session_maker
        self.timeout_seconds = timeout_seconds
        self.pending_items = 0
        self._waiters: dict[str, tuple[str, asyncio.Future]] = {}

    def owns(self, request_id: str) -> bool:
        return request_id.startswith(RPC_PREFIX)

    def resolve(self, request_id: str, result: dict[str, Any], *, connection_id: str | None = None) -> bool:
        """Hand a worker's reply to the waiting caller.

        Returns False if nobody is waiting, or if the reply comes from a
        connection other than the one the call was sent to.
        """
        pending = self._waiters.get(request_id)
        if pending is None:
            return False
        target, waiter = pending
        if connection_id is not None and connection_id != target:
            logger.warning(
                "rpc_reply_from_other_connection",
                extra={"tracking_id": request_id, "connection_id": connection_id, "expected": target},
            )
            return False
        del self._waiters[request_id]
        if waiter.done():
            return False
        waiter.set_result(result)
        return True

    async def call(self, task_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        entry = await self.registry.round_robin()
        if entry is None:
            raise NoWorkerAvailable("No active workers available")

        request_id = f"{RPC_PREFIX}{uuid4().hex}"
        items = count_items(task_type, payload) or 1
        waiter: asyncio.Future = asyncio.get_running_loop().create_future()
        self._waiters[request_id] = (entry.connection_id, waiter)
        self.pending_items += items
        logger.info(
            "rpc_dispatched",
            extra={"tracking_id": request_id, "task_type": task_type, "items": items, "connection_id": entry.connection_id},
        )

        try:
            try:
                await entry.channel.send(messages.execute_task(request_id, task_type, payload))
            except ConnectionError as exc:
                logger.warning(
                    "rpc_send_failed",
                    extra={"tracking_id": request_id, "connection_id": entry.connection_id, "error": str(exc)},
                )
                raise NoWorkerAvailable("No active workers available") from exc
            result = await asyncio.wait_for(waiter, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.warning("rpc_timeout", extra={"tracking_id": request_id, "connection_id": entry.connection_id})
            raise WorkerTimeout("Worker Timeout") from exc
        finally:
            self._waiters.pop(request_id, None)
            self.pending_items = max(0, self.pending_items - items)

        async with session_scope(self.session_maker) as db:
            await record_outcome(db, entry.machine_id, success=not is_failure_result(result))
        return result

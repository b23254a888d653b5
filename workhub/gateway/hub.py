"""Process-wide coordinator tying the gateway components together."""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import async_sessionmaker

from workhub.config import Settings
from workhub.errors import PersistenceError
from workhub.executor import ExecutorArtifact
from workhub.gateway import messages
from workhub.gateway.auth import SERVER_ERROR, AuthDecision, AuthOutcome, ConnectionType, authorize
from workhub.gateway.dispatcher import Dispatcher
from workhub.gateway.liveness import LivenessMonitor
from workhub.gateway.observers import ObserverHub
from workhub.gateway.registry import Channel, ConnectionEntry, ConnectionRegistry
from workhub.gateway.rpc import RpcDispatcher
from workhub.jobs import store
from workhub.jobs.schemas import is_failure_result, resolve_task_type, validate_payload
from workhub.nodes import registry as nodes
from workhub.reporting.service import get_dashboard_stats
from workhub.storage.database import session_scope

logger = logging.getLogger(__name__)


class Hub:
    """Owns the connection registry and every component that touches it.

    Instantiated once per process (see ``workhub.main``) and handed to the
    HTTP and WebSocket layers.
    """

    def __init__(self, session_maker: async_sessionmaker, settings: Settings) -> None:
        self.session_maker = session_maker
        self.settings = settings
        self.registry = ConnectionRegistry()
        self.observers = ObserverHub()
        self.dispatcher = Dispatcher(
            self.registry,
            session_maker,
            orphaned_job_policy=settings.orphaned_job_policy,
        )
        self.rpc = RpcDispatcher(self.registry, session_maker, timeout_seconds=settings.rpc_timeout_seconds)
        self.liveness = LivenessMonitor(
            self.registry,
            session_maker,
            orphaned_job_policy=settings.orphaned_job_policy,
        )
        self.artifact = ExecutorArtifact(settings.executor_path)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def authorize(
        self,
        *,
        machine_id: str | None,
        secret_key: str | None,
        remote_address: str | None,
        connection_type: ConnectionType | str = ConnectionType.worker,
    ) -> AuthDecision:
        try:
            async with session_scope(self.session_maker) as db:
                return await authorize(
                    db,
                    machine_id=machine_id,
                    secret_key=secret_key,
                    remote_address=remote_address,
                    connection_type=connection_type,
                    strict=self.settings.strict_registration,
                )
        except PersistenceError as exc:
            logger.error("auth_store_unavailable", extra={"machine_id": machine_id, "error": str(exc)})
            return AuthDecision(AuthOutcome.reject, machine_id, SERVER_ERROR)

    async def register_worker(
        self,
        *,
        connection_id: str,
        machine_id: str,
        display_name: str | None,
        channel: Channel,
        ip_address: str | None = None,
    ) -> ConnectionEntry:
        entry = ConnectionEntry(
            connection_id=connection_id,
            machine_id=machine_id,
            display_name=display_name or machine_id,
            channel=channel,
            ip_address=ip_address,
        )
        await self.registry.add(entry)
        async with session_scope(self.session_maker) as db:
            await nodes.mark_online(db, machine_id, ip_address=ip_address)
        logger.info(
            "worker_registered",
            extra={"connection_id": connection_id, "machine_id": machine_id, "display_name": entry.display_name},
        )
        await self.observers.broadcast(self.registry)
        await self.dispatcher.try_dispatch(connection_id)
        return entry

    async def heartbeat(self, connection_id: str) -> None:
        await self.liveness.heartbeat(connection_id)

    async def disconnect(self, connection_id: str) -> None:
        if await self.liveness.disconnect(connection_id) is not None:
            await self.observers.broadcast(self.registry)

    def add_observer(self, channel: Channel) -> str:
        observer_id = uuid4().hex
        self.observers.add(observer_id, channel)
        return observer_id

    def remove_observer(self, observer_id: str) -> None:
        self.observers.remove(observer_id)

    # ------------------------------------------------------------------
    # Task flow
    # ------------------------------------------------------------------

    async def submit(self, task_type: str, payload: dict[str, Any]) -> str:
        """Persist a queued job and offer it to any idle worker. Returns the tracking id."""
        kind = resolve_task_type(task_type)
        body = validate_payload(kind, payload)
        async with session_scope(self.session_maker) as db:
            job = await store.enqueue(db, task_type=kind.value, payload=body)
            tracking_id = job.request_id
        # The job is durable at this point; dispatch is retried on the next
        # register or completion.
        try:
            await self.dispatcher.dispatch_pending()
        except (PersistenceError, ConnectionError):
            logger.error("dispatch_after_submit_failed", extra={"tracking_id": tracking_id}, exc_info=True)
        return tracking_id

    async def call(self, task_type: str, payload: dict[str, Any]) -> dict[str, Any]:
        """RPC mode: wait for one worker's answer."""
        kind = resolve_task_type(task_type)
        body = validate_payload(kind, payload)
        return await self.rpc.call(kind.value, body)

    async def record_progress(self, connection_id: str, request_id: str, progress: dict[str, Any]) -> None:
        if self.rpc.owns(request_id):
            return
        entry = self.registry.get(connection_id)
        if entry is None:
            logger.warning("progress_from_unknown_connection", extra={"tracking_id": request_id, "connection_id": connection_id})
            return
        async with session_scope(self.session_maker) as db:
            await store.record_progress(db, request_id, progress, machine_id=entry.machine_id)

    async def complete(self, connection_id: str, request_id: str, result: dict[str, Any]) -> None:
        entry = self.registry.get(connection_id)
        if self.rpc.owns(request_id):
            if not self.rpc.resolve(request_id, result, connection_id=connection_id):
                logger.info("rpc_reply_unclaimed", extra={"tracking_id": request_id, "connection_id": connection_id})
            return

        if entry is None:
            logger.warning("completion_from_unknown_connection", extra={"tracking_id": request_id, "connection_id": connection_id})
            return

        success = not is_failure_result(result)
        async with session_scope(self.session_maker) as db:
            await store.complete(
                db,
                request_id,
                result=result,
                success=success,
                machine_id=entry.machine_id,
            )

        if entry.current_request_id == request_id:
            await self.registry.mark_idle(connection_id)
            await self.observers.broadcast(self.registry)
            await self.dispatcher.try_dispatch(connection_id)

    def check_version(self, worker_hash: str | None) -> messages.OutboundEvent:
        version = self.artifact.current()
        if version is None or version.hash == worker_hash:
            return messages.logic_uptodate()
        return messages.update_logic_file(version.hash, version.content)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_job(self, tracking_id: str) -> dict[str, Any] | None:
        async with session_scope(self.session_maker) as db:
            job = await store.get_job(db, tracking_id)
            return job.to_dict() if job else None

    async def stats(self) -> dict[str, Any]:
        async with session_scope(self.session_maker) as db:
            return await get_dashboard_stats(
                db,
                self.registry,
                rpc_pending=self.rpc.pending_items,
                window_hours=self.settings.stats_window_hours,
            )

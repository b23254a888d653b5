"""Per-connection actor: ordered inbound processing, queued outbound writes."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from pydantic import ValidationError

from workhub.errors import PersistenceError
from workhub.gateway import messages
from workhub.gateway.hub import Hub
from workhub.observability.request_context import reset_connection_id, set_connection_id

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """The subset of a WebSocket the session needs."""

    async def receive_json(self) -> Any: ...

    async def send_json(self, data: Any) -> None: ...


class ChannelClosed(ConnectionError):
    """Raised when pushing to a connection that is already gone."""


class QueueChannel:
    """Outbound channel backed by a queue drained by the session's writer task."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[messages.OutboundEvent | None] = asyncio.Queue()
        self.closed = False

    async def send(self, event: messages.OutboundEvent) -> None:
        if self.closed:
            raise ChannelClosed(event.event)
        await self._queue.put(event)

    async def next(self) -> messages.OutboundEvent | None:
        return await self._queue.get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(None)


async def pump(channel: QueueChannel, transport: Transport, label: str) -> None:
    """Drain a channel into its transport until closed or the socket fails."""
    while True:
        event = await channel.next()
        if event is None:
            return
        try:
            await transport.send_json(event.to_frame())
        except Exception as exc:  # noqa: BLE001
            logger.info("session_write_failed", extra={"connection_id": label, "error": str(exc)})
            channel.closed = True
            return


class WorkerSession:
    """Processes one worker's events strictly in arrival order."""

    def __init__(
        self,
        hub: Hub,
        transport: Transport,
        *,
        connection_id: str,
        machine_id: str,
        remote_address: str | None,
        disconnect_errors: tuple[type[BaseException], ...] = (),
    ) -> None:
        self.hub = hub
        self.transport = transport
        self.connection_id = connection_id
        self.machine_id = machine_id
        self.remote_address = remote_address
        self.channel = QueueChannel()
        self.registered = False
        self._disconnect_errors = disconnect_errors

    async def run(self) -> None:
        token = set_connection_id(self.connection_id)
        writer = asyncio.create_task(pump(self.channel, self.transport, self.connection_id))
        try:
            while True:
                try:
                    frame = await self.transport.receive_json()
                except ValueError:
                    await self.channel.send(messages.error("invalid frame"))
                    continue
                await self.handle_frame(frame)
        except self._disconnect_errors:
            pass
        except Exception:
            logger.error("session_crashed", extra={"connection_id": self.connection_id}, exc_info=True)
        finally:
            self.channel.close()
            try:
                await self.hub.disconnect(self.connection_id)
            except PersistenceError as exc:
                logger.error("disconnect_store_error", extra={"connection_id": self.connection_id, "error": str(exc)})
            await writer
            reset_connection_id(token)

    async def handle_frame(self, frame: Any) -> None:
        try:
            event = messages.parse_inbound(frame)
        except ValidationError as exc:
            logger.warning("invalid_frame", extra={"connection_id": self.connection_id, "error": str(exc)})
            await self.channel.send(messages.error("invalid event"))
            return

        try:
            await self.dispatch(event)
        except PersistenceError as exc:
            logger.error(
                "session_store_error",
                extra={"connection_id": self.connection_id, "event": event.event, "error": str(exc)},
            )
            await self.channel.send(messages.error("server error"))
        except ValidationError as exc:
            await self.channel.send(messages.error(f"invalid {event.event}: {exc.error_count()} error(s)"))

    async def dispatch(self, event: messages.InboundEvent) -> None:
        if isinstance(event, messages.Register):
            await self._on_register(event)
            return

        if isinstance(event, messages.CheckVersion):
            await self.channel.send(self.hub.check_version(event.data.hash))
            return

        if not self.registered:
            await self.channel.send(messages.error("not registered"))
            return

        if isinstance(event, messages.Heartbeat):
            await self.hub.heartbeat(self.connection_id)
        elif isinstance(event, messages.TaskProgress):
            await self.hub.record_progress(self.connection_id, event.data.request_id, event.data.progress)
        elif isinstance(event, messages.TaskCompleted):
            await self.hub.complete(self.connection_id, event.data.request_id, event.data.result)

    async def _on_register(self, event: messages.Register) -> None:
        if self.registered:
            return
        await self.channel.send(messages.registered(self.connection_id))
        self.registered = True
        await self.hub.register_worker(
            connection_id=self.connection_id,
            machine_id=self.machine_id,
            display_name=event.data.device_id,
            channel=self.channel,
            ip_address=self.remote_address,
        )


class ObserverSession:
    """Dashboard connection: receives worker_update broadcasts, sends nothing meaningful."""

    def __init__(self, hub: Hub, transport: Transport, *, disconnect_errors: tuple[type[BaseException], ...] = ()) -> None:
        self.hub = hub
        self.transport = transport
        self.channel = QueueChannel()
        self._disconnect_errors = disconnect_errors

    async def run(self) -> None:
        observer_id = self.hub.add_observer(self.channel)
        writer = asyncio.create_task(pump(self.channel, self.transport, observer_id))
        await self.channel.send(messages.worker_update(len(self.hub.registry), self.hub.registry.busy_count()))
        try:
            while True:
                try:
                    await self.transport.receive_json()
                except ValueError:
                    continue
        except self._disconnect_errors:
            pass
        finally:
            self.hub.remove_observer(observer_id)
            self.channel.close()
            await writer

"""Entrypoint and loop for standalone worker service."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import Any

from websockets.exceptions import WebSocketException

from worker.client import HubClient
from worker.config import WorkerSettings, get_worker_settings
from worker.logic import LogicStore
from worker.offline import OfflineBuffer, OfflineBufferConfig
from worker.runner import TaskRunner
from workhub.errors import AuthError

logger = logging.getLogger(__name__)

CONNECTION_ERRORS = (WebSocketException, OSError, asyncio.TimeoutError)


class WorkerService:
    """Coordinates lifecycle for the worker connection."""

    def __init__(self, settings: WorkerSettings) -> None:
        self.settings = settings
        self.client = HubClient(
            hub_url=settings.hub_url,
            machine_id=settings.machine_id,
            secret_key=settings.secret_key,
        )
        self.logic = LogicStore(Path(settings.logic_dir))
        self.runner = TaskRunner(self.logic)
        self.offline_buffer = OfflineBuffer(
            OfflineBufferConfig(
                directory=Path(settings.offline_dir),
                max_files=settings.offline_max_files,
                max_age_seconds=settings.offline_max_age_seconds,
            )
        )
        self._shutdown_event = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    def request_shutdown(self) -> None:
        """Trigger graceful shutdown."""
        self._shutdown_event.set()

    async def run(self) -> None:
        """Stay connected to the hub until shutdown, reconnecting after failures."""
        logger.info(
            "worker_starting",
            extra={"machine_id": self.settings.machine_id, "hub_url": self.settings.hub_url},
        )
        while not self._shutdown_event.is_set():
            try:
                await self.client.open()
                await self._serve()
            except AuthError as exc:
                logger.error(
                    "worker_auth_rejected",
                    extra={"machine_id": self.settings.machine_id, "reason": exc.reason},
                )
            except CONNECTION_ERRORS as exc:
                logger.warning(
                    "worker_connection_lost",
                    extra={"machine_id": self.settings.machine_id, "error": str(exc)},
                )
            finally:
                await self.client.close()

            if self._shutdown_event.is_set():
                break
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.settings.reconnect_delay_seconds)
            except asyncio.TimeoutError:
                pass

        if self._tasks:
            await asyncio.wait(self._tasks, timeout=self.settings.shutdown_grace_seconds)
        logger.info("worker_stopping", extra={"machine_id": self.settings.machine_id})

    async def _serve(self) -> None:
        await self.client.register(self.settings.display_name)
        await self.client.check_version(self.logic.current_hash())
        await self._replay_offline_buffer()

        heartbeat = asyncio.create_task(self._heartbeat_loop())
        stop = asyncio.create_task(self._shutdown_event.wait())
        reader = asyncio.create_task(self._read_loop())
        try:
            done, _ = await asyncio.wait({reader, stop}, return_when=asyncio.FIRST_COMPLETED)
            if reader in done:
                reader.result()
        finally:
            for task in (heartbeat, stop, reader):
                task.cancel()

    async def _read_loop(self) -> None:
        async for frame in self.client.events():
            await self.handle_event(frame.get("event"), frame.get("data") or {})

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.heartbeat_interval_seconds)
            try:
                await self.client.send_heartbeat()
            except CONNECTION_ERRORS as exc:
                logger.warning("worker_heartbeat_failed", extra={"error": str(exc)})
                return

    async def handle_event(self, event: str | None, data: dict[str, Any]) -> None:
        if event == "execute_task":
            task = asyncio.create_task(
                self._execute(data["requestId"], data.get("taskType", ""), data.get("payload") or {})
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        elif event == "update_logic_file":
            try:
                self.logic.install(data["hash"], data["content"])
            except (KeyError, ValueError, OSError) as exc:
                logger.error("executor_install_failed", extra={"error": str(exc)})
        elif event == "logic_uptodate":
            logger.info("executor_up_to_date", extra={"hash": self.logic.current_hash()})
        elif event == "registered":
            logger.info("worker_registered", extra={"connection_id": data.get("connectionId")})
        elif event == "error":
            logger.warning("hub_error", extra={"hub_message": data.get("message")})
        else:
            logger.debug("unhandled_event", extra={"hub_event": event})

    async def _execute(self, request_id: str, task_type: str, payload: dict[str, Any]) -> None:
        async def report_progress(progress: dict[str, Any]) -> None:
            try:
                await self.client.report_progress(request_id, progress)
            except CONNECTION_ERRORS:
                pass

        logger.info("task_started", extra={"tracking_id": request_id, "task_type": task_type})
        result = await self.runner.run(task_type, payload, report_progress)
        await self._submit_or_buffer(request_id, result)

    async def _submit_or_buffer(self, request_id: str, result: dict[str, Any]) -> None:
        try:
            await self.client.report_completed(request_id, result)
        except CONNECTION_ERRORS:
            self.offline_buffer.write(request_id, result)

    async def _replay_offline_buffer(self) -> None:
        for path in self.offline_buffer.list_pending():
            report = self.offline_buffer.load(path)
            await self.client.report_completed(report["requestId"], report["result"])
            self.offline_buffer.ack_delete(path)


async def run_worker(settings: WorkerSettings | None = None) -> None:
    """Run worker until interrupted or asked to stop."""
    resolved_settings = settings or get_worker_settings()
    service = WorkerService(settings=resolved_settings)
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, service.request_shutdown)
        except NotImplementedError:
            pass

    await service.run()


def main() -> None:
    """CLI entrypoint for worker runtime."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()

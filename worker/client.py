"""Hub connection abstraction for worker communication."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator
from urllib.parse import urlencode

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosedError

from workhub.errors import AuthError

AUTH_REJECTED = 4401


class HubClient:
    """Persistent WebSocket connection from a worker to the hub.

    Credentials travel as query parameters on the handshake; every frame after
    that is ``{"event": ..., "data": ...}``.
    """

    def __init__(self, hub_url: str, machine_id: str, secret_key: str) -> None:
        self.hub_url = hub_url
        self.machine_id = machine_id
        self.secret_key = secret_key
        self._conn: ClientConnection | None = None

    @property
    def url(self) -> str:
        query = urlencode(
            {"machineId": self.machine_id, "secretKey": self.secret_key, "connectionType": "worker"}
        )
        separator = "&" if "?" in self.hub_url else "?"
        return f"{self.hub_url}{separator}{query}"

    @property
    def connected(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        self._conn = await connect(self.url, open_timeout=10)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def emit(self, event: str, data: dict[str, Any] | None = None) -> None:
        if self._conn is None:
            raise ConnectionError("not connected to hub")
        await self._conn.send(json.dumps({"event": event, "data": data or {}}))

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded frames until the hub closes the connection."""
        if self._conn is None:
            raise ConnectionError("not connected to hub")
        try:
            async for raw in self._conn:
                yield json.loads(raw)
        except ConnectionClosedError as exc:
            if exc.rcvd is not None and exc.rcvd.code == AUTH_REJECTED:
                raise AuthError(exc.rcvd.reason) from exc
            raise

    async def register(self, device_id: str) -> None:
        await self.emit("register", {"deviceId": device_id})

    async def send_heartbeat(self) -> None:
        await self.emit("heartbeat")

    async def check_version(self, content_hash: str | None) -> None:
        await self.emit("check_version", {"hash": content_hash})

    async def report_progress(self, request_id: str, progress: dict[str, Any]) -> None:
        await self.emit("task_progress", {"requestId": request_id, "progress": progress})

    async def report_completed(self, request_id: str, result: dict[str, Any]) -> None:
        await self.emit("task_completed", {"requestId": request_id, "result": result})

"""In-memory registry of live worker connections."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Protocol

from workhub.gateway.messages import OutboundEvent
from workhub.storage.models import utcnow


class Channel(Protocol):
    """Outbound side of one connection."""

    async def send(self, event: OutboundEvent) -> None: ...


class ConnectionStatus(str, Enum):
    idle = "idle"
    busy = "busy"


@dataclass
class ConnectionEntry:
    connection_id: str
    machine_id: str
    display_name: str
    channel: Channel
    ip_address: str | None = None
    status: ConnectionStatus = ConnectionStatus.idle
    current_request_id: str | None = None
    last_heartbeat: datetime = field(default_factory=utcnow)
    connected_at: datetime = field(default_factory=utcnow)

    @property
    def is_idle(self) -> bool:
        return self.status is ConnectionStatus.idle

    def to_dict(self) -> dict:
        return {
            "connectionId": self.connection_id,
            "machineId": self.machine_id,
            "displayName": self.display_name,
            "status": self.status.value,
            "currentRequestId": self.current_request_id,
            "lastHeartbeat": self.last_heartbeat.isoformat(),
            "connectedAt": self.connected_at.isoformat(),
        }


class ConnectionRegistry:
    """connection_id -> ConnectionEntry, one instance per hub.

    All mutations go through the registry lock so idle/busy flips are never lost.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ConnectionEntry] = {}
        self._lock = asyncio.Lock()
        self._rr_index = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._entries

    def get(self, connection_id: str) -> ConnectionEntry | None:
        return self._entries.get(connection_id)

    def entries(self) -> list[ConnectionEntry]:
        return list(self._entries.values())

    def idle_connections(self) -> list[ConnectionEntry]:
        return [entry for entry in self._entries.values() if entry.is_idle]

    def busy_count(self) -> int:
        return sum(1 for entry in self._entries.values() if not entry.is_idle)

    def holder_of(self, request_id: str) -> list[ConnectionEntry]:
        return [e for e in self._entries.values() if e.current_request_id == request_id]

    def connections_for(self, machine_id: str) -> list[ConnectionEntry]:
        return [e for e in self._entries.values() if e.machine_id == machine_id]

    async def add(self, entry: ConnectionEntry) -> None:
        async with self._lock:
            entry.status = ConnectionStatus.idle
            entry.current_request_id = None
            self._entries[entry.connection_id] = entry

    async def remove(self, connection_id: str) -> ConnectionEntry | None:
        async with self._lock:
            return self._entries.pop(connection_id, None)

    async def heartbeat(self, connection_id: str) -> ConnectionEntry | None:
        async with self._lock:
            entry = self._entries.get(connection_id)
            if entry is not None:
                entry.last_heartbeat = utcnow()
            return entry

    async def claim_idle(self, connection_id: str, request_id: str | None = None) -> bool:
        """Flip an idle connection to busy; False if it is gone or already busy."""
        async with self._lock:
            entry = self._entries.get(connection_id)
            if entry is None or not entry.is_idle:
                return False
            entry.status = ConnectionStatus.busy
            entry.current_request_id = request_id
            return True

    async def bind(self, connection_id: str, request_id: str) -> bool:
        """Attach request_id to a connection already flipped busy."""
        async with self._lock:
            entry = self._entries.get(connection_id)
            if entry is None or entry.is_idle:
                return False
            entry.current_request_id = request_id
            return True

    async def mark_idle(self, connection_id: str) -> ConnectionEntry | None:
        async with self._lock:
            entry = self._entries.get(connection_id)
            if entry is not None:
                entry.status = ConnectionStatus.idle
                entry.current_request_id = None
            return entry

    async def round_robin(self) -> ConnectionEntry | None:
        """Next live connection in rotation, regardless of idle/busy."""
        async with self._lock:
            if not self._entries:
                return None
            entries = list(self._entries.values())
            self._rr_index = (self._rr_index + 1) % len(entries)
            return entries[self._rr_index]

"""Dashboard observer connections and worker-count broadcasts."""

from __future__ import annotations

import logging

from workhub.gateway import messages
from workhub.gateway.registry import Channel, ConnectionRegistry

logger = logging.getLogger(__name__)


class ObserverHub:
    def __init__(self) -> None:
        self._observers: dict[str, Channel] = {}

    def __len__(self) -> int:
        return len(self._observers)

    def add(self, observer_id: str, channel: Channel) -> None:
        self._observers[observer_id] = channel

    def remove(self, observer_id: str) -> None:
        self._observers.pop(observer_id, None)

    async def broadcast(self, registry: ConnectionRegistry) -> None:
        event = messages.worker_update(active=len(registry), busy=registry.busy_count())
        for observer_id, channel in list(self._observers.items()):
            try:
                await channel.send(event)
            except Exception as exc:  # noqa: BLE001
                logger.info("observer_dropped", extra={"observer_id": observer_id, "error": str(exc)})
                self.remove(observer_id)

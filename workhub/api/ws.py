"""WebSocket endpoint for workers and dashboard observers."""

from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from workhub.api.deps import get_hub
from workhub.gateway.auth import SERVER_ERROR, AuthOutcome, ConnectionType
from workhub.gateway.session import ObserverSession, WorkerSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["gateway"])

AUTH_REJECTED = 4401


def _credential(websocket: WebSocket, query_key: str, header_key: str) -> str | None:
    return websocket.query_params.get(query_key) or websocket.headers.get(header_key)


def _connection_type(raw: str | None) -> ConnectionType:
    try:
        return ConnectionType(raw or ConnectionType.worker.value)
    except ValueError:
        return ConnectionType.worker


@router.websocket("/ws")
async def worker_gateway(websocket: WebSocket) -> None:
    hub = get_hub(websocket)
    remote_address = websocket.client.host if websocket.client else None

    decision = await hub.authorize(
        machine_id=_credential(websocket, "machineId", "x-machine-id"),
        secret_key=_credential(websocket, "secretKey", "x-secret-key"),
        remote_address=remote_address,
        connection_type=_connection_type(_credential(websocket, "connectionType", "x-connection-type")),
    )
    # Accept first so the worker can read the rejection reason from the close frame
    await websocket.accept()

    if not decision.accepted:
        code = status.WS_1011_INTERNAL_ERROR if decision.reason == SERVER_ERROR else AUTH_REJECTED
        await websocket.close(code=code, reason=decision.reason)
        return

    if decision.outcome is AuthOutcome.observer:
        await ObserverSession(hub, websocket, disconnect_errors=(WebSocketDisconnect,)).run()
        return

    session = WorkerSession(
        hub,
        websocket,
        connection_id=uuid4().hex,
        machine_id=decision.machine_id,
        remote_address=remote_address,
        disconnect_errors=(WebSocketDisconnect,),
    )
    logger.info(
        "worker_connected",
        extra={"connection_id": session.connection_id, "machine_id": decision.machine_id, "outcome": decision.outcome.value},
    )
    await session.run()

"""Durable worker identity records."""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workhub.storage.models import Node, NodeStatus, utcnow

logger = logging.getLogger(__name__)


async def get_node(db: AsyncSession, machine_id: str) -> Node | None:
    return await db.get(Node, machine_id)


async def create_node(
    db: AsyncSession,
    *,
    machine_id: str,
    secret_key: str,
    ip_address: str | None,
) -> Node:
    """Claim a machine id on first contact. The supplied secret is bound permanently."""
    now = utcnow()
    node = Node(
        machine_id=machine_id,
        secret_key=secret_key,
        name=machine_id,
        status=NodeStatus.online,
        last_seen=now,
        ip_address=ip_address,
        total_success=0,
        total_failed=0,
    )
    db.add(node)
    await db.flush()
    logger.info("node_provisioned", extra={"machine_id": machine_id, "ip_address": ip_address})
    return node


async def mark_online(db: AsyncSession, machine_id: str, *, ip_address: str | None) -> Node | None:
    node = await db.get(Node, machine_id)
    if node is None:
        return None
    node.status = NodeStatus.online
    node.last_seen = utcnow()
    if ip_address:
        node.ip_address = ip_address
    await db.flush()
    return node


async def touch(db: AsyncSession, machine_id: str) -> None:
    """Record a heartbeat. A live heartbeat also means the node is online."""
    await db.execute(
        update(Node).where(Node.machine_id == machine_id).values(status=NodeStatus.online, last_seen=utcnow())
    )


async def mark_offline(db: AsyncSession, machine_id: str) -> None:
    await db.execute(
        update(Node).where(Node.machine_id == machine_id).values(status=NodeStatus.offline, last_seen=utcnow())
    )


async def record_outcome(db: AsyncSession, machine_id: str, *, success: bool) -> None:
    """Count one finished unit of work against the node's lifetime totals."""
    column = Node.total_success if success else Node.total_failed
    await db.execute(
        update(Node).where(Node.machine_id == machine_id).values({column: column + 1})
    )


async def list_nodes(db: AsyncSession) -> list[Node]:
    rows = await db.execute(select(Node).order_by(Node.machine_id))
    return list(rows.scalars().all())

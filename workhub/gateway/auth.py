"""Connection-time authorization with trust-on-first-use provisioning.

Lookup -> NotFound => CreateAndAuthorize (or Reject in strict mode)
       -> Found & match => Authorize
       -> Found & mismatch => Reject
"""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.ext.asyncio import AsyncSession

from workhub.nodes import registry as nodes

logger = logging.getLogger(__name__)

MISSING_CREDENTIALS = "missing credentials"
WRONG_SECRET = "wrong secret"
UNKNOWN_MACHINE = "unknown machine"
SERVER_ERROR = "server error"


class ConnectionType(str, Enum):
    worker = "worker"
    dashboard = "dashboard"


class AuthOutcome(str, Enum):
    observer = "observer"
    authorize = "authorize"
    create_and_authorize = "create_and_authorize"
    reject = "reject"


@dataclass(frozen=True)
class AuthDecision:
    outcome: AuthOutcome
    machine_id: str | None = None
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.outcome is not AuthOutcome.reject

    @property
    def is_worker(self) -> bool:
        return self.outcome in (AuthOutcome.authorize, AuthOutcome.create_and_authorize)


def _secrets_match(presented: str, stored: str) -> bool:
    return hmac.compare_digest(presented.encode("utf-8"), stored.encode("utf-8"))


async def authorize(
    db: AsyncSession,
    *,
    machine_id: str | None,
    secret_key: str | None,
    remote_address: str | None,
    connection_type: ConnectionType | str = ConnectionType.worker,
    strict: bool = False,
) -> AuthDecision:
    """Decide whether a connection attempt may proceed.

    Writes only when an unseen machine id is provisioned.
    """
    if ConnectionType(connection_type) is ConnectionType.dashboard:
        return AuthDecision(AuthOutcome.observer)

    if not machine_id or not secret_key:
        logger.warning("auth_rejected", extra={"machine_id": machine_id, "reason": MISSING_CREDENTIALS})
        return AuthDecision(AuthOutcome.reject, machine_id, MISSING_CREDENTIALS)

    node = await nodes.get_node(db, machine_id)
    if node is None:
        if strict:
            logger.warning("auth_rejected", extra={"machine_id": machine_id, "reason": UNKNOWN_MACHINE})
            return AuthDecision(AuthOutcome.reject, machine_id, UNKNOWN_MACHINE)
        await nodes.create_node(db, machine_id=machine_id, secret_key=secret_key, ip_address=remote_address)
        return AuthDecision(AuthOutcome.create_and_authorize, machine_id)

    if not _secrets_match(secret_key, node.secret_key):
        logger.warning("auth_rejected", extra={"machine_id": machine_id, "reason": WRONG_SECRET})
        return AuthDecision(AuthOutcome.reject, machine_id, WRONG_SECRET)

    return AuthDecision(AuthOutcome.authorize, machine_id)

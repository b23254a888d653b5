"""Heartbeat and disconnect handling, including the orphaned-job policy."""

import pytest

from workhub.gateway.hub import Hub
from workhub.jobs import store
from workhub.nodes import registry as nodes
from workhub.storage.database import session_scope
from workhub.storage.models import JobStatus, NodeStatus

CREDS = {"userid": "u1", "password": "pw"}


async def _node(session_maker, machine_id):
    async with session_scope(session_maker) as db:
        return await nodes.get_node(db, machine_id)


async def _job(session_maker, request_id):
    async with session_scope(session_maker) as db:
        return await store.get_job(db, request_id)


@pytest.mark.asyncio
async def test_heartbeat_refreshes_last_seen(hub, session_maker, connect_worker):
    entry, _ = await connect_worker("pc-01")
    before = (await _node(session_maker, "pc-01")).last_seen
    first_beat = entry.last_heartbeat

    await hub.heartbeat(entry.connection_id)

    assert (await _node(session_maker, "pc-01")).last_seen >= before
    assert entry.last_heartbeat >= first_beat


@pytest.mark.asyncio
async def test_heartbeat_from_unknown_connection_is_noop(hub):
    assert await hub.liveness.heartbeat("nobody") is None


@pytest.mark.asyncio
async def test_disconnect_marks_node_offline(hub, session_maker, connect_worker):
    entry, _ = await connect_worker("pc-01")
    assert (await _node(session_maker, "pc-01")).status == NodeStatus.online

    await hub.disconnect(entry.connection_id)

    assert entry.connection_id not in hub.registry
    assert (await _node(session_maker, "pc-01")).status == NodeStatus.offline


@pytest.mark.asyncio
async def test_node_stays_online_while_another_connection_lives(hub, session_maker, connect_worker):
    old, _ = await connect_worker("pc-01", connection_id="c-old")
    new, _ = await connect_worker("pc-01", connection_id="c-new")

    await hub.disconnect(old.connection_id)

    assert (await _node(session_maker, "pc-01")).status == NodeStatus.online

    await hub.disconnect(new.connection_id)

    assert (await _node(session_maker, "pc-01")).status == NodeStatus.offline


@pytest.mark.asyncio
async def test_heartbeat_restores_online_status(hub, session_maker, connect_worker):
    entry, _ = await connect_worker("pc-01")
    async with session_scope(session_maker) as db:
        await nodes.mark_offline(db, "pc-01")

    await hub.heartbeat(entry.connection_id)

    assert (await _node(session_maker, "pc-01")).status == NodeStatus.online


@pytest.mark.asyncio
async def test_disconnect_twice_is_harmless(hub, connect_worker):
    entry, _ = await connect_worker("pc-01")

    await hub.disconnect(entry.connection_id)
    await hub.disconnect(entry.connection_id)

    assert len(hub.registry) == 0


@pytest.mark.asyncio
async def test_orphaned_job_left_processing_by_default(hub, session_maker, connect_worker):
    entry, _ = await connect_worker("pc-01")
    tracking_id = await hub.submit("login_check", CREDS)

    await hub.disconnect(entry.connection_id)

    job = await _job(session_maker, tracking_id)
    assert job.status == JobStatus.processing
    assert job.worker_name == "pc-01"


@pytest.mark.asyncio
async def test_reconnected_machine_can_report_orphaned_job(hub, session_maker, connect_worker):
    entry, _ = await connect_worker("pc-01", connection_id="c-old")
    tracking_id = await hub.submit("login_check", CREDS)
    await hub.disconnect(entry.connection_id)

    again, _ = await connect_worker("pc-01", connection_id="c-new")
    await hub.complete(again.connection_id, tracking_id, {"status": "success"})

    assert (await _job(session_maker, tracking_id)).status == JobStatus.completed
    assert (await _node(session_maker, "pc-01")).total_success == 1


@pytest.mark.asyncio
async def test_orphaned_job_failed_under_fail_policy(session_maker, settings, make_channel):
    failing_hub = Hub(session_maker, settings.model_copy(update={"orphaned_job_policy": "fail"}))
    decision = await failing_hub.authorize(machine_id="pc-01", secret_key="s", remote_address=None)
    assert decision.accepted

    entry = await failing_hub.register_worker(
        connection_id="c1", machine_id="pc-01", display_name="pc-01", channel=make_channel()
    )
    tracking_id = await failing_hub.submit("login_check", CREDS)

    await failing_hub.disconnect(entry.connection_id)

    job = await _job(session_maker, tracking_id)
    assert job.status == JobStatus.failed
    assert job.result["error"] == store.WORKER_LOST
    assert (await _node(session_maker, "pc-01")).total_failed == 1


@pytest.mark.asyncio
async def test_observers_see_disconnect(hub, connect_worker, make_channel):
    observer = make_channel()
    hub.add_observer(observer)
    entry, _ = await connect_worker("pc-01")

    await hub.disconnect(entry.connection_id)

    updates = [e.data for e in observer.named("worker_update")]
    assert updates[-1] == {"active": 0, "busy": 0}

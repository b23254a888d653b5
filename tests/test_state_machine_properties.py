# test_state_machine_properties.py
"""
Property-based tests for the dispatch state machine.

Hypothesis generates random interleavings of submissions, registrations,
completions and disconnects, and after every step checks:
1. a job is never pushed to more than one connection
2. every busy connection holds exactly one processing job
3. terminal jobs never change again
4. node counters equal the number of finished jobs bound to that node
"""

import asyncio
from collections import Counter

from hypothesis import HealthCheck, given, settings, strategies as st
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from workhub.config import Settings
from workhub.gateway.hub import Hub
from workhub.storage.database import init_db, session_scope
from workhub.storage.models import TERMINAL_JOB_STATUSES, Job, JobStatus, Node

MACHINES = ["pc-01", "pc-02", "pc-03"]
CREDS = {"userid": "u1", "password": "pw"}


class CountingChannel:
    def __init__(self, pushed: Counter):
        self.pushed = pushed

    async def send(self, event):
        if event.event == "execute_task":
            self.pushed[event.data["requestId"]] += 1


operations = st.lists(
    st.one_of(
        st.tuples(st.just("submit"), st.sampled_from(["login_check", "meter_post"])),
        st.tuples(st.just("connect"), st.sampled_from(MACHINES)),
        st.tuples(st.just("complete"), st.booleans()),
        st.tuples(st.just("disconnect"), st.integers(min_value=0, max_value=5)),
    ),
    max_size=25,
)


async def _run(ops, policy):
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    hub = Hub(
        maker,
        Settings(executor_path="/nonexistent/executor.py", orphaned_job_policy=policy),
    )
    pushed: Counter = Counter()
    terminal: dict[str, JobStatus] = {}
    serial = 0

    try:
        for op, arg in ops:
            if op == "submit":
                payload = {**CREDS, "meters": [{"meterNo": "1"}]} if arg == "meter_post" else CREDS
                await hub.submit(arg, payload)
            elif op == "connect":
                serial += 1
                await hub.authorize(machine_id=arg, secret_key="s", remote_address=None)
                await hub.register_worker(
                    connection_id=f"{arg}-{serial}",
                    machine_id=arg,
                    display_name=f"{arg}-{serial}",
                    channel=CountingChannel(pushed),
                )
            elif op == "complete":
                busy = [e for e in hub.registry.entries() if e.current_request_id]
                if busy:
                    result = {"status": "success"} if arg else {"status": "error", "error": "x"}
                    await hub.complete(busy[0].connection_id, busy[0].current_request_id, result)
            elif op == "disconnect":
                entries = hub.registry.entries()
                if entries:
                    await hub.disconnect(entries[arg % len(entries)].connection_id)

            await _check(hub, maker, pushed, terminal)
    finally:
        await engine.dispose()


async def _check(hub, maker, pushed, terminal):
    assert all(count == 1 for count in pushed.values())

    async with session_scope(maker) as db:
        jobs = {job.request_id: job for job in (await db.execute(select(Job))).scalars()}
        nodes = list((await db.execute(select(Node))).scalars())

    holders = Counter(e.current_request_id for e in hub.registry.entries() if e.current_request_id)
    for entry in hub.registry.entries():
        if entry.is_idle:
            assert entry.current_request_id is None
        else:
            assert jobs[entry.current_request_id].status == JobStatus.processing
    assert all(count == 1 for count in holders.values())

    for request_id, status in terminal.items():
        assert jobs[request_id].status == status
    for request_id, job in jobs.items():
        if job.status in TERMINAL_JOB_STATUSES:
            terminal[request_id] = job.status

    finished = sum(1 for job in jobs.values() if job.status in TERMINAL_JOB_STATUSES)
    assert sum(n.total_success + n.total_failed for n in nodes) == finished
    charged = Counter(job.machine_id for job in jobs.values() if job.status in TERMINAL_JOB_STATUSES)
    for node in nodes:
        assert node.total_success + node.total_failed == charged[node.machine_id]


@settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(ops=operations)
def test_dispatch_invariants_leave_policy(ops):
    asyncio.run(_run(ops, "leave"))


@settings(max_examples=40, deadline=None, suppress_health_check=[HealthCheck.too_slow])
@given(ops=operations)
def test_dispatch_invariants_fail_policy(ops):
    asyncio.run(_run(ops, "fail"))

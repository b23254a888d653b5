# conftest.py - Global pytest configuration
"""
Global pytest configuration.

Every test gets its own SQLite database file and its own hub, so no state
leaks between tests through the connection registry or the job table.
"""
import pytest

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workhub.config import Settings
from workhub.gateway.hub import Hub
from workhub.storage.database import init_db


class RecordingChannel:
    """Outbound channel that keeps every event pushed to it."""

    def __init__(self):
        self.events = []
        self.closed = False

    async def send(self, event):
        if self.closed:
            raise ConnectionError("channel closed")
        self.events.append(event)

    def named(self, name):
        return [e for e in self.events if e.event == name]

    def tasks(self):
        return [e.data for e in self.named("execute_task")]


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'workhub-test.db'}"


@pytest.fixture
async def session_maker(database_url):
    """
    Provide a fresh database for each test.

    Creates a new engine per test and disposes it afterwards so no connection
    outlives the event loop that opened it.
    """
    engine = create_async_engine(database_url, echo=False)
    await init_db(engine)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield maker
    await engine.dispose()


@pytest.fixture
async def async_db(session_maker):
    async with session_maker() as session:
        yield session
        await session.commit()


@pytest.fixture
def settings(tmp_path, database_url):
    return Settings(
        database_url=database_url,
        executor_path=str(tmp_path / "executor.py"),
        rpc_timeout_seconds=1.0,
    )


@pytest.fixture
def hub(session_maker, settings):
    return Hub(session_maker, settings)


@pytest.fixture
def make_channel():
    return RecordingChannel


@pytest.fixture
def connect_worker(hub):
    """Authorize (provisioning the node) and register a worker on the hub."""

    async def _connect(machine_id, connection_id=None, secret="s3cret", display_name=None):
        decision = await hub.authorize(machine_id=machine_id, secret_key=secret, remote_address="10.0.0.5")
        assert decision.accepted, decision.reason
        channel = RecordingChannel()
        entry = await hub.register_worker(
            connection_id=connection_id or f"conn-{machine_id}",
            machine_id=machine_id,
            display_name=display_name or machine_id,
            channel=channel,
            ip_address="10.0.0.5",
        )
        return entry, channel

    return _connect

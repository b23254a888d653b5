from __future__ import annotations

import asyncio
import hashlib

from worker.config import WorkerSettings
from worker.logic import LogicStore
from worker.main import WorkerService
from worker.offline import OfflineBuffer, OfflineBufferConfig
from worker.runner import TaskRunner

ECHO_EXECUTOR = """
async def run(task_type, payload, report_progress):
    items = payload.get("meters") or []
    for index, item in enumerate(items, start=1):
        await report_progress({"current": index, "total": len(items), "lastItem": str(item)})
    return {"status": "success", "taskType": task_type, "success": len(items), "failed": 0}
"""


def _sha(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class FakeClient:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.completed: list[tuple[str, dict]] = []
        self.progress: list[tuple[str, dict]] = []

    async def report_progress(self, request_id, progress):
        self.progress.append((request_id, progress))

    async def report_completed(self, request_id, result):
        if self.fail:
            raise OSError("hub unreachable")
        self.completed.append((request_id, result))


def _service(tmp_path, client) -> WorkerService:
    settings = WorkerSettings(
        machine_id="pc-01",
        secret_key="s",
        logic_dir=str(tmp_path / "logic"),
        offline_dir=str(tmp_path / "offline"),
    )
    service = WorkerService(settings)
    service.client = client
    return service


def test_logic_store_install_and_load(tmp_path):
    store = LogicStore(tmp_path)
    assert store.current_hash() is None
    assert store.load() is None

    store.install(_sha(ECHO_EXECUTOR), ECHO_EXECUTOR)

    assert store.current_hash() == _sha(ECHO_EXECUTOR)
    module = store.load()
    assert callable(module.run)
    assert store.load() is module


def test_logic_store_rejects_hash_mismatch(tmp_path):
    store = LogicStore(tmp_path)

    try:
        store.install("0" * 64, ECHO_EXECUTOR)
    except ValueError as exc:
        assert "hash mismatch" in str(exc)
    else:
        raise AssertionError("install accepted content with the wrong hash")
    assert store.current_hash() is None


def test_task_runner_reports_progress_and_result(tmp_path):
    store = LogicStore(tmp_path)
    store.install(_sha(ECHO_EXECUTOR), ECHO_EXECUTOR)
    seen = []

    async def report(progress):
        seen.append(progress)

    result = asyncio.run(TaskRunner(store).run("meter_post", {"meters": ["a", "b"]}, report))

    assert result["status"] == "success"
    assert result["success"] == 2
    assert [p["current"] for p in seen] == [1, 2]


def test_task_runner_without_executor(tmp_path):
    async def report(_progress):
        return None

    result = asyncio.run(TaskRunner(LogicStore(tmp_path)).run("login_check", {}, report))

    assert result["status"] == "error"
    assert result["error_code"] == "EXECUTOR_MISSING"


def test_task_runner_maps_executor_exceptions(tmp_path):
    failing = (
        "from workhub.errors import TaskFailure\n"
        "async def run(task_type, payload, report_progress):\n"
        "    if task_type == 'login_check':\n"
        "        raise TaskFailure('Invalid Credentials')\n"
        "    if task_type == 'inventory':\n"
        "        raise TimeoutError('portal timed out')\n"
        "    if task_type == 'single_check':\n"
        "        return 'not a dict'\n"
        "    raise RuntimeError('boom')\n"
    )
    store = LogicStore(tmp_path)
    store.install(_sha(failing), failing)
    runner = TaskRunner(store)

    async def report(_progress):
        return None

    codes = {
        task_type: asyncio.run(runner.run(task_type, {}, report))["error_code"]
        for task_type in ("login_check", "inventory", "single_check", "meter_post")
    }

    assert codes == {
        "login_check": "TASK_FAILED",
        "inventory": "TIMEOUT_ERROR",
        "single_check": "INVALID_RESULT",
        "meter_post": "EXECUTION_ERROR",
    }


def test_task_runner_reports_broken_executor(tmp_path):
    store = LogicStore(tmp_path)
    broken = "this is not python("
    store.install(_sha(broken), broken)

    async def report(_progress):
        return None

    result = asyncio.run(TaskRunner(store).run("login_check", {}, report))

    assert result["error_code"] == "EXECUTOR_LOAD_ERROR"


def test_offline_buffer_oldest_first_and_ack(tmp_path):
    buffer = OfflineBuffer(OfflineBufferConfig(directory=tmp_path, max_files=10, max_age_seconds=3600))

    p1 = buffer.write("job-1", {"status": "success"})
    p2 = buffer.write("job-2", {"status": "error", "error": "x"})

    pending = buffer.list_pending()
    assert pending[0].name <= pending[1].name
    assert buffer.load(pending[0])["requestId"] == "job-1"

    buffer.ack_delete(p1)
    assert p1.exists() is False
    assert buffer.backlog_size() == 1

    buffer.ack_delete(p2)
    assert buffer.backlog_size() == 0


def test_offline_buffer_evicts_beyond_max_files(tmp_path):
    buffer = OfflineBuffer(OfflineBufferConfig(directory=tmp_path, max_files=2, max_age_seconds=3600))

    for n in range(4):
        buffer.write(f"job-{n}", {})

    assert buffer.backlog_size() == 2


def test_update_logic_file_installs_executor(tmp_path):
    service = _service(tmp_path, FakeClient())

    asyncio.run(service.handle_event("update_logic_file", {"hash": _sha(ECHO_EXECUTOR), "content": ECHO_EXECUTOR}))

    assert service.logic.current_hash() == _sha(ECHO_EXECUTOR)


def test_execute_task_reports_completion(tmp_path):
    client = FakeClient()
    service = _service(tmp_path, client)
    service.logic.install(_sha(ECHO_EXECUTOR), ECHO_EXECUTOR)

    async def scenario():
        await service.handle_event(
            "execute_task",
            {"requestId": "job-1", "taskType": "meter_post", "payload": {"meters": ["a", "b", "c"]}},
        )
        await asyncio.gather(*service._tasks)

    asyncio.run(scenario())

    assert client.completed[0][0] == "job-1"
    assert client.completed[0][1]["success"] == 3
    assert [p["current"] for _, p in client.progress] == [1, 2, 3]


def test_completion_is_buffered_when_hub_unreachable(tmp_path):
    service = _service(tmp_path, FakeClient(fail=True))
    service.logic.install(_sha(ECHO_EXECUTOR), ECHO_EXECUTOR)

    async def scenario():
        await service.handle_event("execute_task", {"requestId": "job-9", "taskType": "login_check", "payload": {}})
        await asyncio.gather(*service._tasks)

    asyncio.run(scenario())

    pending = service.offline_buffer.list_pending()
    assert len(pending) == 1
    assert service.offline_buffer.load(pending[0])["requestId"] == "job-9"

    service.client = FakeClient()
    asyncio.run(service._replay_offline_buffer())

    assert service.client.completed[0][0] == "job-9"
    assert service.offline_buffer.backlog_size() == 0

"""Task dispatch router for worker runtime."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from worker.logic import LogicStore
from workhub.errors import TaskFailure

ProgressCallback = Callable[[dict[str, Any]], Awaitable[None]]


class TaskRunner:
    """Routes tasks to the loaded executor module."""

    def __init__(self, logic: LogicStore) -> None:
        self.logic = logic

    async def run(self, task_type: str, payload: dict[str, Any], report_progress: ProgressCallback) -> dict[str, Any]:
        try:
            executor = self.logic.load()
        except Exception as exc:  # noqa: BLE001
            return {"status": "error", "error_code": "EXECUTOR_LOAD_ERROR", "error": str(exc)}

        if executor is None:
            return {"status": "error", "error_code": "EXECUTOR_MISSING", "error": "executor not loaded"}

        try:
            result = await executor.run(task_type, payload, report_progress)
        except TaskFailure as exc:
            return {"status": "error", "error_code": "TASK_FAILED", "error": str(exc)}
        except TimeoutError as exc:
            return {"status": "error", "error_code": "TIMEOUT_ERROR", "error": str(exc)}
        except Exception as exc:  # noqa: BLE001
            return {"status": "error", "error_code": "EXECUTION_ERROR", "error": str(exc)}

        if not isinstance(result, dict):
            return {"status": "error", "error_code": "INVALID_RESULT", "error": f"executor returned {type(result).__name__}"}
        return result

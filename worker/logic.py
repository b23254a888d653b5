"""Storage and loading of the task-executor module pushed by the hub."""

from __future__ import annotations

import hashlib
import importlib.util
import logging
from pathlib import Path
from types import ModuleType

logger = logging.getLogger(__name__)

EXECUTOR_FILENAME = "executor.py"


class LogicStore:
    """Keeps the executor file on disk and the imported module in memory.

    The executor module must define
    ``async def run(task_type, payload, report_progress) -> dict``.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.directory.mkdir(parents=True, exist_ok=True)
        self._module: ModuleType | None = None
        self._loaded_hash: str | None = None

    @property
    def path(self) -> Path:
        return self.directory / EXECUTOR_FILENAME

    def current_hash(self) -> str | None:
        if not self.path.exists():
            return None
        return hashlib.sha256(self.path.read_bytes()).hexdigest()

    def install(self, content_hash: str, content: str) -> None:
        """Write new executor code after checking it matches the announced hash."""
        digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
        if digest != content_hash:
            raise ValueError(f"executor hash mismatch: expected {content_hash}, got {digest}")
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(self.path)
        self._module = None
        self._loaded_hash = None
        logger.info("executor_installed", extra={"hash": digest})

    def load(self) -> ModuleType | None:
        """Import the executor, re-importing when the file changed."""
        content_hash = self.current_hash()
        if content_hash is None:
            return None
        if self._module is not None and self._loaded_hash == content_hash:
            return self._module

        spec = importlib.util.spec_from_file_location(f"workhub_executor_{content_hash[:12]}", self.path)
        if spec is None or spec.loader is None:
            raise ImportError(f"cannot load executor from {self.path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        if not callable(getattr(module, "run", None)):
            raise ImportError("executor module does not define run()")

        self._module = module
        self._loaded_hash = content_hash
        return module

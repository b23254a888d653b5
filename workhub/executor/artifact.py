"""Version tracking for the task-executor file distributed to workers."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutorVersion:
    hash: str
    content: str


class ExecutorArtifact:
    """Content hash of the executor file, re-read whenever its mtime changes."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._mtime: float | None = None
        self._version: ExecutorVersion | None = None

    def current(self) -> ExecutorVersion | None:
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            self._mtime = None
            self._version = None
            return None

        if self._version is None or mtime != self._mtime:
            content = self.path.read_text(encoding="utf-8")
            digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
            self._version = ExecutorVersion(hash=digest, content=content)
            self._mtime = mtime
            logger.info("executor_loaded", extra={"path": str(self.path), "hash": digest})
        return self._version


"""Offline buffering and replay of completion reports."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path


@dataclass(slots=True)
class OfflineBufferConfig:
    directory: Path
    max_files: int = 500
    max_age_seconds: int = 24 * 3600


class OfflineBuffer:
    """task_completed reports that could not be delivered, oldest first on replay."""

    def __init__(self, config: OfflineBufferConfig):
        self.config = config
        self.config.directory.mkdir(parents=True, exist_ok=True)

    def _filename(self, request_id: str) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        return f"{stamp}-{request_id}.json"

    def write(self, request_id: str, result: dict) -> Path:
        path = self.config.directory / self._filename(request_id)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps({"requestId": request_id, "result": result}, sort_keys=True))
        tmp.replace(path)
        self._evict_if_needed()
        return path

    def list_pending(self) -> list[Path]:
        return sorted(self.config.directory.glob("*.json"))

    def load(self, path: Path) -> dict:
        return json.loads(path.read_text())

    def ack_delete(self, path: Path) -> None:
        path.unlink(missing_ok=True)

    def backlog_size(self) -> int:
        return len(list(self.config.directory.glob("*.json")))

    def _evict_if_needed(self) -> None:
        files = sorted(self.config.directory.glob("*.json"))
        if len(files) > self.config.max_files:
            for path in files[: len(files) - self.config.max_files]:
                path.unlink(missing_ok=True)

        now = datetime.now(timezone.utc).timestamp()
        for path in self.config.directory.glob("*.json"):
            if now - path.stat().st_mtime > self.config.max_age_seconds:
                path.unlink(missing_ok=True)

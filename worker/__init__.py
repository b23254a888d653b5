"""Worker runtime: connects to the hub and executes pushed tasks."""

from worker.config import WorkerSettings, get_worker_settings
from worker.main import run_worker

__all__ = ["WorkerSettings", "get_worker_settings", "run_worker"]

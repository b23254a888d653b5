"""Task-executor artifact distribution."""

from workhub.executor.artifact import ExecutorArtifact, ExecutorVersion

__all__ = ["ExecutorArtifact", "ExecutorVersion"]

"""Executor file hashing and change detection."""

import hashlib
import os

from workhub.executor import ExecutorArtifact


def test_missing_file_has_no_version(tmp_path):
    assert ExecutorArtifact(tmp_path / "executor.py").current() is None


def test_hash_is_sha256_of_content(tmp_path):
    path = tmp_path / "executor.py"
    path.write_text("async def run(t, p, r):\n    return {}\n", encoding="utf-8")

    version = ExecutorArtifact(path).current()

    assert version.hash == hashlib.sha256(path.read_bytes()).hexdigest()
    assert version.content == path.read_text(encoding="utf-8")


def test_reloads_when_file_changes(tmp_path):
    path = tmp_path / "executor.py"
    path.write_text("VERSION = 1\n", encoding="utf-8")
    artifact = ExecutorArtifact(path)
    first = artifact.current()

    path.write_text("VERSION = 2\n", encoding="utf-8")
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 5))

    second = artifact.current()
    assert second.hash != first.hash
    assert "VERSION = 2" in second.content


def test_unchanged_file_is_cached(tmp_path):
    path = tmp_path / "executor.py"
    path.write_text("VERSION = 1\n", encoding="utf-8")
    artifact = ExecutorArtifact(path)

    assert artifact.current() is artifact.current()


def test_hub_check_version_replies(hub, settings):
    assert hub.check_version("anything").event == "logic_uptodate"

    with open(settings.executor_path, "w", encoding="utf-8") as fh:
        fh.write("VERSION = 3\n")

    update = hub.check_version(None)
    assert update.event == "update_logic_file"
    assert update.data["content"] == "VERSION = 3\n"
    assert hub.check_version(update.data["hash"]).event == "logic_uptodate"

"""Tests for the workspace manager."""

from __future__ import annotations

import asyncio

import duckdb
import pytest

from autodocs.errors import RunAborted, WorkspaceError
from autodocs.runner import RunSummary
from autodocs.selector import Candidate, content_hash
from conftest import write


def make_candidate(content: str, path: str = "docs/a.md") -> Candidate:
    return Candidate(path, "markdown", content, content_hash(content.encode()))


class TestCommit:
    @pytest.mark.asyncio
    async def test_commit_writes_file_and_entry(self, workspace):
        candidate = make_candidate("# 标题\n")

        target = await workspace.commit(candidate, "# Title\n")

        assert target.read_text(encoding="utf-8") == "# Title\n"
        entry = workspace.get_entry("docs/a.md")
        assert entry.content_hash == candidate.content_hash
        assert entry.run_id == workspace.run_id
        assert not list(target.parent.glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_should_skip(self, workspace):
        candidate = make_candidate("# 标题\n")
        assert not workspace.should_skip(candidate)

        await workspace.commit(candidate, "# Title\n")

        assert workspace.should_skip(candidate)
        assert not workspace.should_skip(make_candidate("# 新标题\n"))

    @pytest.mark.asyncio
    async def test_should_not_skip_when_output_missing(self, workspace):
        candidate = make_candidate("# 标题\n")
        target = await workspace.commit(candidate, "# Title\n")
        target.unlink()

        assert not workspace.should_skip(candidate)

    @pytest.mark.asyncio
    async def test_upsert_replaces_entry(self, workspace):
        await workspace.commit(make_candidate("v1"), "one")
        await workspace.commit(make_candidate("v2"), "two")

        entries = workspace.get_entries()
        assert len(entries) == 1
        assert entries[0].content_hash == content_hash(b"v2")

    @pytest.mark.asyncio
    async def test_failed_entry_update_restores_previous_output(self, workspace, mocker):
        candidate = make_candidate("v1")
        target = await workspace.commit(candidate, "old translation")

        mocker.patch.object(workspace, "transaction", side_effect=duckdb.Error("disk full"))
        with pytest.raises(WorkspaceError):
            await workspace.commit(make_candidate("v2"), "new translation")

        assert target.read_text(encoding="utf-8") == "old translation"
        assert workspace.get_entry("docs/a.md").content_hash == candidate.content_hash

    @pytest.mark.asyncio
    async def test_failed_first_commit_leaves_no_file(self, workspace, mocker):
        mocker.patch.object(workspace, "transaction", side_effect=duckdb.Error("disk full"))

        with pytest.raises(WorkspaceError):
            await workspace.commit(make_candidate("v1"), "translation")

        assert not workspace.output_path("docs/a.md").exists()

    @pytest.mark.asyncio
    async def test_commits_to_one_path_are_serialized(self, workspace):
        lock = workspace._locks["docs/a.md"]
        await lock.acquire()
        first = asyncio.create_task(workspace.commit(make_candidate("v1"), "one"))
        second = asyncio.create_task(workspace.commit(make_candidate("v2"), "two"))
        await asyncio.sleep(0)

        # Both wait for the path lock, nothing is written yet
        assert not first.done() and not second.done()
        assert not workspace.output_path("docs/a.md").exists()

        lock.release()
        await asyncio.gather(first, second)

        target = workspace.output_path("docs/a.md")
        assert target.read_text(encoding="utf-8") == "two"
        entry = workspace.get_entry("docs/a.md")
        assert entry.content_hash == content_hash(b"v2")
        assert entry.output_path == str(target)

    @pytest.mark.asyncio
    async def test_commit_refused_after_abort(self, workspace):
        workspace.abort("auth failed")

        with pytest.raises(RunAborted):
            await workspace.commit(make_candidate("v1"), "translation")

        assert workspace.get_entries() == []
        assert not workspace.output_path("docs/a.md").exists()

    def test_new_run_clears_abort(self, workspace):
        workspace.abort("stop")
        old_run = workspace.run_id

        assert workspace.new_run() != old_run
        assert not workspace.aborted


class TestTreeMaintenance:
    def test_copy_verbatim(self, workspace, source_dir):
        target = workspace.copy_verbatim("docs/assets/logo.png")

        assert target.read_bytes() == (source_dir / "docs/assets/logo.png").read_bytes()

    @pytest.mark.asyncio
    async def test_prune_removes_stale_outputs(self, workspace):
        await workspace.commit(make_candidate("a", "keep.md"), "A")
        await workspace.commit(make_candidate("b", "old/gone.md"), "B")
        write(workspace.output_dir, "stray.txt", "x")
        write(workspace.output_dir, ".git/HEAD", "ref")

        removed = workspace.prune({"keep.md"})

        assert removed == ["old/gone.md", "stray.txt"]
        assert [e.relative_path for e in workspace.get_entries()] == ["keep.md"]
        assert not (workspace.output_dir / "old").exists()
        assert (workspace.output_dir / ".git/HEAD").exists()


class TestLogsAndRuns:
    def test_log_roundtrip(self, workspace):
        workspace.log("info", "commit", "Translated", path="a.md", context={"units": 2})
        workspace.log("error", "commit", "Failed", path="b.md")

        errors = workspace.get_logs(level="error")
        assert [e["path"] for e in errors] == ["b.md"]

        by_path = workspace.get_logs(path="a.md")
        assert by_path[0]["context"] == {"units": 2}
        assert by_path[0]["run_id"] == workspace.run_id

    def test_logs_newest_first(self, workspace):
        for i in range(3):
            workspace.log("info", "run", f"message {i}")

        assert [e["message"] for e in workspace.get_logs(limit=2)] == ["message 2", "message 1"]

    def test_record_run(self, workspace):
        summary = RunSummary(
            run_id=workspace.run_id,
            source_commit="abc123",
            skipped=["a.md"],
            succeeded=["b.md"],
            failed={"c.md": "timeout"},
        )

        workspace.record_run(summary)

        runs = workspace.get_runs()
        assert len(runs) == 1
        assert runs[0]["status"] == "partial"
        assert runs[0]["failed"] == 1
        assert runs[0]["source_commit"] == "abc123"

    def test_store_persists_across_instances(self, config, workspace):
        workspace.log("info", "run", "hello")
        workspace.close()

        from autodocs.workspace import WorkspaceManager

        with WorkspaceManager(config.output_dir, config.store_path) as reopened:
            assert reopened.get_logs()[0]["message"] == "hello"

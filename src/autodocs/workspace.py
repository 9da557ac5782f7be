"""
Workspace manager for autodocs.

Owns the translated output tree and a DuckDB store holding the last
successful translation per path, the processing log and the run history.
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
import tempfile
import uuid
from collections import defaultdict
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import duckdb

from autodocs.errors import RunAborted, WorkspaceError
from autodocs.selector import SKIP_DIRS

if TYPE_CHECKING:
    from autodocs.runner import RunSummary
    from autodocs.selector import Candidate


@dataclass
class WorkspaceEntry:
    """Record of the last successful translation of a path."""

    relative_path: str
    content_hash: str
    output_path: str
    translated_at: datetime | None = None
    run_id: str | None = None


class WorkspaceManager:
    """DuckDB-backed state of the translated output tree."""

    _SCHEMA = """
    -- Last successful translation per source path
    CREATE TABLE IF NOT EXISTS workspace_entries (
        relative_path VARCHAR PRIMARY KEY,
        content_hash VARCHAR NOT NULL,
        output_path VARCHAR NOT NULL,
        translated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        run_id VARCHAR
    );

    -- Processing log for audit trail
    CREATE TABLE IF NOT EXISTS processing_log (
        id INTEGER PRIMARY KEY,
        run_id VARCHAR NOT NULL,
        path VARCHAR,
        stage VARCHAR NOT NULL,
        level VARCHAR NOT NULL,
        message TEXT NOT NULL,
        context JSON,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE SEQUENCE IF NOT EXISTS processing_log_id_seq START 1;

    -- One row per finished run
    CREATE TABLE IF NOT EXISTS runs (
        run_id VARCHAR PRIMARY KEY,
        source_commit VARCHAR,
        status VARCHAR NOT NULL,
        skipped INTEGER DEFAULT 0,
        succeeded INTEGER DEFAULT 0,
        failed INTEGER DEFAULT 0,
        abort_reason TEXT,
        failures JSON,
        elapsed_seconds DOUBLE,
        started_at TIMESTAMP,
        finished_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE INDEX IF NOT EXISTS idx_log_lookup ON processing_log(run_id, stage, level);
    CREATE INDEX IF NOT EXISTS idx_log_path ON processing_log(path);
    """

    def __init__(self, output_dir: Path | str, store_path: Path | str, source_dir: Path | str | None = None):
        """
        Initialize workspace.

        Args:
            output_dir: Root of the translated output tree.
            store_path: DuckDB file.
            source_dir: Source tree root, needed by copy_verbatim.
        """
        self.output_dir = Path(output_dir)
        self.store_path = Path(store_path)
        self.source_dir = Path(source_dir) if source_dir else None
        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: duckdb.DuckDBPyConnection | None = None
        self._run_id = str(uuid.uuid4())
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._abort_reason: str | None = None

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = duckdb.connect(str(self.store_path))
            self._conn.execute(self._SCHEMA)
        return self._conn

    @property
    def run_id(self) -> str:
        """Get current run ID."""
        return self._run_id

    def new_run(self) -> str:
        """Start a new run and return its ID."""
        self._run_id = str(uuid.uuid4())
        self._abort_reason = None
        self._locks.clear()
        return self._run_id

    @property
    def aborted(self) -> bool:
        return self._abort_reason is not None

    def abort(self, reason: str) -> None:
        """Refuse every further commit in this run."""
        if self._abort_reason is None:
            self._abort_reason = reason

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> WorkspaceManager:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """Context manager for transactions."""
        try:
            self.conn.begin()
            yield self.conn
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

    # ==================== Entries ====================

    def output_path(self, relative_path: str) -> Path:
        """Location of a path in the output tree."""
        return self.output_dir / relative_path

    def get_entry(self, relative_path: str) -> WorkspaceEntry | None:
        """Get the entry for a path."""
        row = self.conn.execute(
            """
            SELECT relative_path, content_hash, output_path, translated_at, run_id
            FROM workspace_entries WHERE relative_path = ?
            """,
            [relative_path],
        ).fetchone()
        if row:
            return WorkspaceEntry(*row)
        return None

    def get_entries(self) -> list[WorkspaceEntry]:
        """Get all entries ordered by path."""
        rows = self.conn.execute(
            """
            SELECT relative_path, content_hash, output_path, translated_at, run_id
            FROM workspace_entries ORDER BY relative_path
            """
        ).fetchall()
        return [WorkspaceEntry(*row) for row in rows]

    def should_skip(self, candidate: Candidate) -> bool:
        """
        Check whether a candidate is already translated.

        True only when the stored hash matches the current content and the
        output file is still present.
        """
        entry = self.get_entry(candidate.relative_path)
        if entry is None or entry.content_hash != candidate.content_hash:
            return False
        return Path(entry.output_path).is_file()

    async def commit(self, candidate: Candidate, output: str) -> Path:
        """
        Publish a translated document.

        The output file is replaced atomically and the entry is upserted in
        a transaction. If the entry update fails the previous output is put
        back, so file and entry never disagree.

        Args:
            candidate: Candidate that was translated.
            output: Complete translated document.

        Returns:
            Path of the written output file.

        Raises:
            RunAborted: If the run has been aborted.
            WorkspaceError: If the file or the entry could not be written.
        """
        async with self._locks[candidate.relative_path]:
            if self.aborted:
                raise RunAborted(f"commit refused: {self._abort_reason}")

            target = self.output_path(candidate.relative_path)
            previous = target.read_bytes() if target.is_file() else None

            try:
                _write_atomic(target, output.encode("utf-8"))
            except OSError as e:
                raise WorkspaceError(
                    f"Cannot write {target}: {e}", {"path": candidate.relative_path}
                ) from e

            try:
                with self.transaction() as conn:
                    conn.execute(
                        """
                        INSERT INTO workspace_entries
                        (relative_path, content_hash, output_path, translated_at, run_id)
                        VALUES (?, ?, ?, CURRENT_TIMESTAMP, ?)
                        ON CONFLICT (relative_path) DO UPDATE SET
                            content_hash = excluded.content_hash,
                            output_path = excluded.output_path,
                            translated_at = excluded.translated_at,
                            run_id = excluded.run_id
                        """,
                        [candidate.relative_path, candidate.content_hash, str(target), self._run_id],
                    )
            except Exception as e:
                if previous is None:
                    target.unlink(missing_ok=True)
                else:
                    _write_atomic(target, previous)
                raise WorkspaceError(
                    f"Cannot record entry for {candidate.relative_path}: {e}",
                    {"path": candidate.relative_path},
                ) from e

            return target

    def copy_verbatim(self, relative_path: str) -> Path:
        """Copy an unselected source file into the output tree unchanged."""
        if self.source_dir is None:
            raise WorkspaceError("copy_verbatim needs a source directory")
        if self.aborted:
            raise RunAborted(f"copy refused: {self._abort_reason}")

        source = self.source_dir / relative_path
        target = self.output_path(relative_path)
        try:
            data = source.read_bytes()
            if target.is_file() and target.read_bytes() == data:
                return target
            _write_atomic(target, data)
            shutil.copystat(source, target)
        except OSError as e:
            raise WorkspaceError(f"Cannot copy {relative_path}: {e}", {"path": relative_path}) from e
        return target

    def prune(self, keep_paths: set[str] | list[str]) -> list[str]:
        """
        Remove outputs and entries of paths that are no longer selected.

        Args:
            keep_paths: Paths that must stay (selected and copied paths).

        Returns:
            Relative paths that were removed.
        """
        keep = set(keep_paths)
        removed: list[str] = []

        for entry in self.get_entries():
            if entry.relative_path in keep:
                continue
            Path(entry.output_path).unlink(missing_ok=True)
            self.conn.execute(
                "DELETE FROM workspace_entries WHERE relative_path = ?", [entry.relative_path]
            )
            removed.append(entry.relative_path)

        # Stray files in the output tree that no entry or kept path explains
        if self.output_dir.is_dir():
            for path in sorted(self.output_dir.rglob("*")):
                if not path.is_file():
                    continue
                parts = path.relative_to(self.output_dir).parts
                if SKIP_DIRS.intersection(parts):
                    continue
                relative = "/".join(parts)
                if relative not in keep and relative not in removed:
                    path.unlink()
                    removed.append(relative)
            _remove_empty_dirs(self.output_dir)

        return sorted(removed)

    # ==================== Logging ====================

    def log(
        self,
        level: str,
        stage: str,
        message: str,
        path: str | None = None,
        context: dict | None = None,
    ) -> None:
        """Insert a log entry."""
        context_json = json.dumps(context, default=str) if context else None
        self.conn.execute(
            """
            INSERT INTO processing_log
            (id, run_id, path, stage, level, message, context)
            VALUES (nextval('processing_log_id_seq'), ?, ?, ?, ?, ?, ?)
            """,
            [self._run_id, path, stage, level, message, context_json],
        )

    def get_logs(
        self,
        run_id: str | None = None,
        level: str | None = None,
        stage: str | None = None,
        path: str | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Get log entries, newest first."""
        conditions = []
        params: list[Any] = []

        if run_id:
            conditions.append("run_id = ?")
            params.append(run_id)
        if level:
            conditions.append("level = ?")
            params.append(level)
        if stage:
            conditions.append("stage = ?")
            params.append(stage)
        if path:
            conditions.append("path = ?")
            params.append(path)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = self.conn.execute(
            f"""
            SELECT run_id, path, stage, level, message, context, created_at
            FROM processing_log
            {where_clause}
            ORDER BY id DESC
            LIMIT ?
            """,
            [*params, limit],
        ).fetchall()

        return [
            {
                "run_id": row[0],
                "path": row[1],
                "stage": row[2],
                "level": row[3],
                "message": row[4],
                "context": json.loads(row[5]) if row[5] else None,
                "created_at": row[6],
            }
            for row in rows
        ]

    # ==================== Runs ====================

    def record_run(self, summary: RunSummary) -> None:
        """Store the summary of a finished run."""
        self.conn.execute(
            """
            INSERT INTO runs
            (run_id, source_commit, status, skipped, succeeded, failed,
             abort_reason, failures, elapsed_seconds, started_at, finished_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT (run_id) DO NOTHING
            """,
            [
                summary.run_id,
                summary.source_commit,
                summary.status,
                len(summary.skipped),
                len(summary.succeeded),
                len(summary.failed),
                summary.abort_reason,
                json.dumps(summary.failed) if summary.failed else None,
                summary.elapsed_seconds,
                summary.started_at,
            ],
        )

    def get_runs(self, limit: int = 10) -> list[dict]:
        """Get recent runs, newest first."""
        rows = self.conn.execute(
            """
            SELECT run_id, source_commit, status, skipped, succeeded, failed,
                   abort_reason, elapsed_seconds, started_at, finished_at
            FROM runs
            ORDER BY finished_at DESC
            LIMIT ?
            """,
            [limit],
        ).fetchall()
        keys = (
            "run_id",
            "source_commit",
            "status",
            "skipped",
            "succeeded",
            "failed",
            "abort_reason",
            "elapsed_seconds",
            "started_at",
            "finished_at",
        )
        return [dict(zip(keys, row, strict=True)) for row in rows]


def _write_atomic(target: Path, data: bytes) -> None:
    """Write to a temporary file next to target, then rename over it."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _remove_empty_dirs(root: Path) -> None:
    """Delete empty directories below root, deepest first."""
    dirs = []
    for dirpath, dirnames, _ in os.walk(root):
        dirnames[:] = [d for d in dirnames if d not in SKIP_DIRS]
        dirs.append(Path(dirpath))
    for path in sorted(dirs, key=lambda p: len(p.parts), reverse=True):
        if path != root and not any(path.iterdir()):
            path.rmdir()

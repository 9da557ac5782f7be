"""
Run orchestrator for autodocs.

One pipeline pass: sync, select, translate changed candidates with bounded
parallelism, commit, prune, and summarize.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import time
from collections.abc import Generator
from dataclasses import dataclass, field
from datetime import datetime

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from autodocs.config import RunConfig
from autodocs.engines import TranslationEngine, create_engine
from autodocs.errors import AutodocsError, RunAborted, WorkspaceError
from autodocs.selector import FileSelector
from autodocs.sync import RepositorySync
from autodocs.translation.dispatch import DispatchPipeline, OutcomeStatus
from autodocs.workspace import WorkspaceManager


@dataclass
class RunSummary:
    """Outcome of one pipeline pass."""

    run_id: str
    source_commit: str | None = None
    started_at: datetime = field(default_factory=datetime.now)
    elapsed_seconds: float = 0.0
    selected: int = 0
    skipped: list[str] = field(default_factory=list)
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    cancelled: list[str] = field(default_factory=list)
    copied: list[str] = field(default_factory=list)
    pruned: list[str] = field(default_factory=list)
    abort_reason: str | None = None
    fatal: bool = False
    interrupted: bool = False

    @property
    def status(self) -> str:
        if self.fatal:
            return "aborted"
        if self.abort_reason:
            return "cancelled"
        if self.failed:
            return "partial"
        return "succeeded"

    def exit_code(self, fail_on_candidate_error: bool = False) -> int:
        """
        Process exit code for this run.

        Returns:
            0 on success, 1 on a fatal error or cancellation, 2 when
            candidate failures are configured to fail the run.
        """
        if self.fatal or self.abort_reason:
            return 1
        if fail_on_candidate_error and self.failed:
            return 2
        return 0


class TranslationRun:
    """A single pass of the translation pipeline."""

    def __init__(
        self,
        config: RunConfig,
        workspace: WorkspaceManager,
        *,
        engine: TranslationEngine | None = None,
        sync: bool = True,
        timeout: float | None = None,
        console: Console | None = None,
    ):
        """
        Initialize run.

        Args:
            config: Validated run configuration.
            workspace: Workspace of the output tree.
            engine: Engine to use; created from the config when omitted.
            sync: Clone or pull the source repository first.
            timeout: Run timeout in seconds, overrides the config.
            console: Console for progress output; silent when omitted.
        """
        self.config = config
        self.workspace = workspace
        self._engine = engine
        self._owns_engine = engine is None
        self.sync = sync
        self.timeout = timeout if timeout is not None else config.processing.run_timeout
        self.console = console
        self.cancel_event = asyncio.Event()
        self.summary = RunSummary(run_id=workspace.new_run())

    def cancel(self, reason: str) -> None:
        """Stop dispatching new work."""
        if not self.cancel_event.is_set():
            self.summary.abort_reason = reason
            self.workspace.log("warning", "run", f"Run cancelled: {reason}")
            self.cancel_event.set()

    def _interrupt(self, sig: signal.Signals) -> None:
        self.summary.interrupted = True
        self.cancel(f"received {sig.name}")

    def _abort(self, error: BaseException) -> None:
        """Record a fatal error and refuse further commits."""
        reason = str(error)
        self.summary.fatal = True
        self.summary.abort_reason = reason
        self.workspace.abort(reason)
        self.cancel_event.set()
        self.workspace.log(
            "error", "run", f"Run aborted: {reason}", context={"error": type(error).__name__}
        )

    async def execute(self) -> RunSummary:
        """
        Execute the pass.

        Fatal errors are recorded in the summary rather than raised.

        Returns:
            RunSummary of the pass.
        """
        start = time.perf_counter()
        loop = asyncio.get_running_loop()
        installed = self._install_signal_handlers(loop)
        timer = None
        if self.timeout:
            timer = loop.call_later(self.timeout, self.cancel, f"run timeout after {self.timeout:g}s")

        self.workspace.log(
            "info",
            "run",
            "Run started",
            context={
                "repository": self.config.repository.url,
                "branch": self.config.repository.branch,
                "engine": self.config.engine.name.value,
            },
        )

        try:
            await self._execute()
        except (AutodocsError, OSError) as e:
            self._abort(e)
        finally:
            if timer is not None:
                timer.cancel()
            for sig in installed:
                loop.remove_signal_handler(sig)
            if self._owns_engine and self._engine is not None:
                await self._engine.aclose()

            self.summary.elapsed_seconds = time.perf_counter() - start
            self.workspace.record_run(self.summary)
            self.workspace.log(
                "info",
                "run",
                f"Run finished: {self.summary.status}",
                context={
                    "skipped": len(self.summary.skipped),
                    "succeeded": len(self.summary.succeeded),
                    "failed": len(self.summary.failed),
                    "elapsed_seconds": round(self.summary.elapsed_seconds, 2),
                },
            )

        return self.summary

    async def _execute(self) -> None:
        config = self.config

        if self.sync:
            syncer = RepositorySync(config.repository, config.source_dir)
            self.summary.source_commit = await asyncio.to_thread(syncer.sync)
            self.workspace.log(
                "info", "sync", "Repository synced", context={"commit": self.summary.source_commit}
            )

        # Selection completes before any dispatch
        selector = FileSelector(config.source_dir, config.filter)
        selected, unselected = selector.classify()
        self.summary.selected = len(selected)
        self.workspace.log(
            "info",
            "select",
            f"Selected {len(selected)} of {len(selected) + len(unselected)} files",
        )

        if self._engine is None:
            try:
                self._engine = create_engine(
                    config.engine,
                    translation=config.translation,
                    processing=config.processing,
                )
            except ValueError as e:
                raise RunAborted(str(e), e) from e

        pipeline = DispatchPipeline(
            self._engine,
            source_lang=config.translation.source_language,
            target_lang=config.translation.target_language,
            max_unit_chars=config.translation.max_unit_chars,
            front_matter_keys=config.translation.translatable_front_matter_keys,
            concurrent_units=config.processing.concurrent_units,
            abort_event=self.cancel_event,
        )
        file_semaphore = asyncio.Semaphore(config.processing.concurrent_files)

        with self._progress() as progress:
            task_id = progress.add_task("Translating", total=len(selected)) if progress else None

            async def bounded(path: str) -> None:
                async with file_semaphore:
                    await self._process_path(path, selector, pipeline)
                if progress is not None:
                    progress.advance(task_id)

            results = await asyncio.gather(*(bounded(p) for p in selected), return_exceptions=True)

        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, AutodocsError):
                raise result
        if pipeline.fatal_error is not None:
            raise pipeline.fatal_error
        for result in results:
            if isinstance(result, AutodocsError):
                raise result

        if self.cancel_event.is_set():
            return

        keep = set(selected)
        if config.output.copy_unselected:
            for path in unselected:
                self.workspace.copy_verbatim(path)
                self.summary.copied.append(path)
            keep.update(unselected)

        if config.output.prune_removed:
            self.summary.pruned = self.workspace.prune(keep)
            if self.summary.pruned:
                self.workspace.log(
                    "info",
                    "prune",
                    f"Removed {len(self.summary.pruned)} stale outputs",
                    context={"paths": self.summary.pruned},
                )

    async def _process_path(
        self, path: str, selector: FileSelector, pipeline: DispatchPipeline
    ) -> None:
        """Translate and commit one candidate. Only fatal errors escape."""
        summary = self.summary
        if self.cancel_event.is_set():
            summary.cancelled.append(path)
            return

        try:
            candidate = selector.load_candidate(path)
        except (OSError, UnicodeDecodeError) as e:
            summary.failed[path] = f"cannot read file: {e}"
            self.workspace.log("error", "select", summary.failed[path], path=path)
            return

        if self.workspace.should_skip(candidate):
            summary.skipped.append(path)
            self.workspace.log("debug", "skip", "Unchanged since last translation", path=path)
            return

        outcome = await pipeline.process(candidate)

        if outcome.status == OutcomeStatus.CANCELLED:
            summary.cancelled.append(path)
            return
        if outcome.status == OutcomeStatus.FAILED:
            summary.failed[path] = outcome.error or "unknown error"
            self.workspace.log(
                "warning",
                "translate",
                summary.failed[path],
                path=path,
                context={"units_total": outcome.units_total, "units_translated": outcome.units_translated},
            )
            return

        if pipeline.fatal_error is not None:
            self.workspace.abort(str(pipeline.fatal_error))

        try:
            await self.workspace.commit(candidate, outcome.output or "")
        except RunAborted:
            summary.cancelled.append(path)
            return
        except WorkspaceError as e:
            summary.failed[path] = e.message
            self.workspace.log("error", "commit", e.message, path=path)
            return

        summary.succeeded.append(path)
        self.workspace.log(
            "info",
            "commit",
            "Translated",
            path=path,
            context={"units": outcome.units_total, "hash": candidate.content_hash},
        )

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> list[signal.Signals]:
        """Route SIGINT/SIGTERM to cancellation where the platform allows it."""
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            # Not available on Windows or outside the main thread
            with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
                loop.add_signal_handler(sig, self._interrupt, sig)
                installed.append(sig)
        return installed

    @contextlib.contextmanager
    def _progress(self) -> Generator[Progress | None, None, None]:
        if self.console is None:
            yield None
            return
        with Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(complete_style="green", finished_style="green"),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
            transient=True,
        ) as progress:
            yield progress


async def run_once(
    config: RunConfig,
    *,
    engine: TranslationEngine | None = None,
    sync: bool = True,
    timeout: float | None = None,
    console: Console | None = None,
) -> RunSummary:
    """
    Execute one pipeline pass against the configured workspace.

    Args:
        config: Validated run configuration.
        engine: Engine override, mainly for tests and dry runs.
        sync: Clone or pull before selecting.
        timeout: Run timeout in seconds.
        console: Console for progress output.

    Returns:
        RunSummary of the pass.
    """
    with WorkspaceManager(config.output_dir, config.store_path, config.source_dir) as workspace:
        run = TranslationRun(
            config, workspace, engine=engine, sync=sync, timeout=timeout, console=console
        )
        return await run.execute()

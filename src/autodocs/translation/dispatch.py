"""
Chunk & dispatch pipeline.

Turns one candidate into a translated document: mask, split into units,
dispatch units through the engine under a shared concurrency cap, then
reassemble. A candidate either yields a complete document or fails; partial
output is never produced.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from autodocs.errors import AssemblyError, EngineError
from autodocs.translation.chunker import TranslationUnit, split_units
from autodocs.translation.masking import mask

if TYPE_CHECKING:
    from autodocs.engines.base import TranslationEngine
    from autodocs.selector import Candidate


class OutcomeStatus(str, Enum):
    """Terminal state of a unit or candidate."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class TranslationResult:
    """Output of one engine call."""

    unit: TranslationUnit
    status: OutcomeStatus
    text: str = ""
    error: str | None = None


@dataclass
class CandidateOutcome:
    """Translation outcome of a whole candidate."""

    path: str
    status: OutcomeStatus
    output: str | None = None
    error: str | None = None
    units_total: int = 0
    units_translated: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == OutcomeStatus.SUCCEEDED


# path, units done, units total
UnitProgressCallback = Callable[[str, int, int], None] | None


class DispatchPipeline:
    """
    Processes candidates through a translation engine.

    One instance serves a whole run: the semaphore caps engine calls across
    all candidates, and the abort event stops new dispatches run-wide.
    """

    def __init__(
        self,
        engine: TranslationEngine,
        *,
        source_lang: str,
        target_lang: str,
        max_unit_chars: int = 2000,
        front_matter_keys: tuple[str, ...] = ("title", "description", "summary"),
        concurrent_units: int = 8,
        abort_event: asyncio.Event | None = None,
        progress_callback: UnitProgressCallback = None,
    ):
        """
        Initialize pipeline.

        Args:
            engine: Translation engine.
            source_lang: Source language code.
            target_lang: Target language code.
            max_unit_chars: Maximum characters per unit.
            front_matter_keys: Front-matter keys whose values are translated.
            concurrent_units: Engine calls in flight across all candidates.
            abort_event: Run-level cancellation flag.
            progress_callback: Called after each unit completes.
        """
        self.engine = engine
        self.source_lang = source_lang
        self.target_lang = target_lang
        self.max_unit_chars = max_unit_chars
        self.front_matter_keys = front_matter_keys
        self.semaphore = asyncio.Semaphore(concurrent_units)
        self.abort_event = abort_event or asyncio.Event()
        self._progress_callback = progress_callback
        self.fatal_error: EngineError | None = None

    @property
    def aborted(self) -> bool:
        return self.abort_event.is_set()

    async def process(self, candidate: Candidate) -> CandidateOutcome:
        """
        Translate one candidate.

        Returns:
            CandidateOutcome with the assembled document on success.

        Raises:
            EngineError: Fatal engine errors (authentication). The abort
                event is set before the error is raised.
        """
        if not candidate.content.strip():
            # Nothing to translate, the file is mirrored as-is
            return CandidateOutcome(
                path=candidate.relative_path,
                status=OutcomeStatus.SUCCEEDED,
                output=candidate.content,
            )

        masked = mask(candidate.content, candidate.kind, self.front_matter_keys)
        document = split_units(masked, self.max_unit_chars)
        units = document.translatable_units
        failed = asyncio.Event()
        done = 0

        async def run_unit(unit: TranslationUnit) -> TranslationResult:
            nonlocal done
            if self.aborted or failed.is_set():
                return TranslationResult(unit, OutcomeStatus.CANCELLED)
            async with self.semaphore:
                if self.aborted or failed.is_set():
                    return TranslationResult(unit, OutcomeStatus.CANCELLED)
                try:
                    text = await self.engine.translate(
                        unit,
                        self.source_lang,
                        self.target_lang,
                        context=candidate.relative_path,
                    )
                except EngineError as e:
                    if e.fatal:
                        if self.fatal_error is None:
                            self.fatal_error = e
                        self.abort_event.set()
                        raise
                    failed.set()
                    return TranslationResult(unit, OutcomeStatus.FAILED, error=str(e))
                except Exception as e:
                    failed.set()
                    return TranslationResult(
                        unit, OutcomeStatus.FAILED, error=f"{type(e).__name__}: {e}"
                    )
            done += 1
            if self._progress_callback:
                self._progress_callback(candidate.relative_path, done, len(units))
            return TranslationResult(unit, OutcomeStatus.SUCCEEDED, text=text)

        gathered = await asyncio.gather(*(run_unit(u) for u in units), return_exceptions=True)

        results: list[TranslationResult] = []
        for item in gathered:
            if isinstance(item, BaseException):
                raise item
            results.append(item)

        outcome = CandidateOutcome(
            path=candidate.relative_path,
            status=OutcomeStatus.SUCCEEDED,
            units_total=len(units),
            units_translated=sum(1 for r in results if r.status == OutcomeStatus.SUCCEEDED),
        )

        failures = sorted(
            (r for r in results if r.status == OutcomeStatus.FAILED),
            key=lambda r: r.unit.position,
        )
        if failures:
            first = failures[0]
            outcome.status = OutcomeStatus.FAILED
            outcome.error = f"unit {first.unit.position}: {first.error}"
            return outcome

        if any(r.status == OutcomeStatus.CANCELLED for r in results):
            outcome.status = OutcomeStatus.CANCELLED
            outcome.error = "run cancelled before all units completed"
            return outcome

        # Units are keyed by position, completion order does not matter
        translations = {r.unit.position: r.text for r in results}
        try:
            outcome.output = document.assemble(translations)
        except AssemblyError as e:
            outcome.status = OutcomeStatus.FAILED
            outcome.error = f"{e.message}: {e.details}"
        return outcome

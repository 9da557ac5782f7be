"""
Translation pipeline for autodocs.

Provides:
- Placeholder masking of code, links and markup
- Chunking of masked documents into translation units
- Concurrent dispatch of units and document reassembly
"""

from autodocs.translation.chunker import ChunkedDocument, TranslationUnit, split_units
from autodocs.translation.dispatch import (
    CandidateOutcome,
    DispatchPipeline,
    OutcomeStatus,
    TranslationResult,
)
from autodocs.translation.masking import MaskedText, mask, restore

__all__ = [
    "CandidateOutcome",
    "ChunkedDocument",
    "DispatchPipeline",
    "MaskedText",
    "OutcomeStatus",
    "TranslationResult",
    "TranslationUnit",
    "mask",
    "restore",
    "split_units",
]

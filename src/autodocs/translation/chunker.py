"""
Splitting masked documents into translation units.

Units follow structural boundaries (blank lines and headings) and are packed
up to a maximum size. Whitespace between units is kept verbatim and never
sent to an engine, so reassembly by position reproduces the layout.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from autodocs.translation.masking import MaskedText, find_tokens, has_prose, token_pattern

# Paragraph breaks and the line break before a heading
BOUNDARY_RE = re.compile(r"(\n[ \t]*\n\s*|\n(?=[ \t]{0,3}#{1,6}[ \t]))")
SENTENCE_RE = re.compile(r".*?(?:[.!?。！？；;]+[ \t]*|$)")


@dataclass
class TranslationUnit:
    """A chunk of a candidate's content sized for one engine call."""

    position: int
    text: str
    placeholders: dict[str, str] = field(default_factory=dict)
    separator: str = ""
    translatable: bool = True
    keyword: str = "id"

    def __len__(self) -> int:
        return len(self.text)


@dataclass
class ChunkedDocument:
    """Units of one document plus the whitespace that precedes them."""

    masked: MaskedText
    units: list[TranslationUnit]
    prefix: str = ""

    @property
    def translatable_units(self) -> list[TranslationUnit]:
        """Units that need an engine call."""
        return [u for u in self.units if u.translatable]

    def assemble(self, translations: dict[int, str]) -> str:
        """
        Reassemble the document by unit position and restore placeholders.

        Args:
            translations: Translated text keyed by unit position. Units not
                present keep their original text.

        Raises:
            AssemblyError: If placeholders cannot be restored.
        """
        parts = [self.prefix]
        for unit in sorted(self.units, key=lambda u: u.position):
            parts.append(translations.get(unit.position, unit.text))
            parts.append(unit.separator)
        return self.masked.restore("".join(parts))


def _split_blocks(text: str) -> tuple[str, list[tuple[str, str]]]:
    """
    Split text into (block, separator) pairs.

    Returns the leading whitespace and the pairs; trailing whitespace of a
    block is moved into its separator.
    """
    stripped = text.lstrip()
    prefix = text[: len(text) - len(stripped)]
    pieces = BOUNDARY_RE.split(stripped)

    pairs: list[tuple[str, str]] = []
    for i in range(0, len(pieces), 2):
        block = pieces[i]
        separator = pieces[i + 1] if i + 1 < len(pieces) else ""
        body = block.rstrip()
        separator = block[len(body) :] + separator
        if not body:
            if pairs:
                block_, sep = pairs[-1]
                pairs[-1] = (block_, sep + separator)
            else:
                prefix += separator
            continue
        pairs.append((body, separator))
    return prefix, pairs


def _hard_split(text: str, max_chars: int, keyword: str) -> list[str]:
    """Cut text into pieces of at most max_chars, preferring spaces and never inside a token."""
    tokens = token_pattern(keyword)
    pieces: list[str] = []
    rest = text
    while len(rest) > max_chars:
        space = max(rest.rfind(" ", 0, max_chars), rest.rfind("\t", 0, max_chars))
        cut = space + 1 if space > 0 and rest[:space].strip() else max_chars
        for match in tokens.finditer(rest):
            if match.start() >= cut:
                break
            if cut < match.end():
                cut = match.start() or match.end()
                break
        pieces.append(rest[:cut])
        rest = rest[cut:]
    pieces.append(rest)
    return pieces


def _split_oversized(block: str, max_chars: int, keyword: str = "id") -> list[tuple[str, str]]:
    """Split a block larger than max_chars on lines, then sentences, then spaces."""
    if len(block) <= max_chars:
        return [(block, "")]

    pieces: list[tuple[str, str]] = []
    lines = block.split("\n")
    for index, line in enumerate(lines):
        separator = "\n" if index < len(lines) - 1 else ""
        if len(line) <= max_chars:
            pieces.append((line, separator))
            continue
        sentences = [m.group(0) for m in SENTENCE_RE.finditer(line) if m.group(0)]
        chunks = [c for s in sentences for c in _hard_split(s, max_chars, keyword)]
        for chunk in chunks[:-1]:
            pieces.append((chunk, ""))
        pieces.append((chunks[-1], separator))

    result: list[tuple[str, str]] = []
    for text, separator in pieces:
        body = text.rstrip()
        trailing = text[len(body) :] + separator
        if not body and result:
            prev, sep = result[-1]
            result[-1] = (prev, sep + trailing)
        elif body:
            result.append((body, trailing))
        elif not result:
            result.append(("", trailing))
    return result


def split_units(masked: MaskedText, max_chars: int = 2000) -> ChunkedDocument:
    """
    Split a masked document into translation units.

    Consecutive blocks are packed into one unit while the packed text stays
    within max_chars. Units without prose are passed through untranslated.

    Args:
        masked: Masked document.
        max_chars: Maximum characters per unit.

    Returns:
        ChunkedDocument ready for dispatch.
    """
    keyword = masked.keyword
    prefix, blocks = _split_blocks(masked.text)

    pieces: list[tuple[str, str]] = []
    for block, separator in blocks:
        split = _split_oversized(block, max_chars, keyword)
        last_text, last_sep = split[-1]
        split[-1] = (last_text, last_sep + separator)
        pieces.extend(split)

    units: list[TranslationUnit] = []
    buffer: str | None = None
    buffer_sep = ""

    def flush() -> None:
        nonlocal buffer, buffer_sep
        if buffer is None:
            return
        tokens = find_tokens(buffer, keyword)
        units.append(
            TranslationUnit(
                position=len(units),
                text=buffer,
                placeholders={t: masked.placeholders[t] for t in tokens},
                separator=buffer_sep,
                translatable=has_prose(buffer, keyword),
                keyword=keyword,
            )
        )
        buffer, buffer_sep = None, ""

    for text, separator in pieces:
        if buffer is not None:
            if len(buffer) + len(buffer_sep) + len(text) <= max_chars:
                buffer = buffer + buffer_sep + text
                buffer_sep = separator
                continue
            flush()
        buffer, buffer_sep = text, separator
    flush()

    return ChunkedDocument(masked=masked, units=units, prefix=prefix)

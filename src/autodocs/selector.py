"""
File selector for autodocs.

Walks the source tree and decides, per file, whether it is a translation
candidate. Exclude rules always win over include rules and target globs.
"""

from __future__ import annotations

import hashlib
import os
from collections.abc import Iterator
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath

from autodocs.config import FilterConfig, has_glob_chars
from autodocs.errors import SelectorError

# Content kinds by file extension
CONTENT_KINDS = {
    ".md": "markdown",
    ".markdown": "markdown",
    ".mdx": "markdown",
    ".toml": "toml",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".txt": "text",
    ".rst": "text",
}

SKIP_DIRS = frozenset({".git"})


@dataclass(frozen=True)
class Candidate:
    """A single source file slated for translation in the current run."""

    relative_path: str
    kind: str
    content: str
    content_hash: str


def detect_kind(path: str) -> str:
    """Detect content kind from the file extension."""
    return CONTENT_KINDS.get(PurePosixPath(path).suffix.lower(), "text")


def content_hash(data: bytes) -> str:
    """SHA-256 hex digest of raw file content."""
    return hashlib.sha256(data).hexdigest()


def matches_target(path: str, pattern: str) -> bool:
    """
    Check a relative path against a target glob.

    Patterns without a slash match the file name at any depth; patterns with
    a slash match the whole relative path, anchored at the source root.
    """
    if "/" not in pattern:
        return fnmatchcase(PurePosixPath(path).name, pattern)
    return fnmatchcase(path, pattern)


def matches_rule(path: str, rule: str) -> bool:
    """
    Check a relative path against an include/exclude rule.

    A rule with glob characters is matched against the whole path (and, when
    it has no slash, against every path component). Any other rule is a
    directory or file prefix: `docs/test/` matches `docs/test/b.md` but not
    `docs/testing/b.md`.
    """
    if has_glob_chars(rule):
        pattern = rule.rstrip("/")
        if fnmatchcase(path, pattern) or fnmatchcase(path, pattern + "/*"):
            return True
        if "/" not in pattern:
            return any(fnmatchcase(part, pattern) for part in PurePosixPath(path).parts)
        return False

    prefix = rule.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


def is_selected(path: str, filter_config: FilterConfig) -> bool:
    """Decide whether a relative path is a translation candidate."""
    if not any(matches_target(path, pattern) for pattern in filter_config.target):
        return False
    if any(matches_rule(path, rule) for rule in filter_config.exclude):
        return False
    if filter_config.include:
        return any(matches_rule(path, rule) for rule in filter_config.include)
    return True


class FileSelector:
    """Enumerates and filters files under a source root."""

    def __init__(self, root: Path, filter_config: FilterConfig):
        """
        Initialize selector.

        Args:
            root: Source tree root.
            filter_config: Target/include/exclude rules.
        """
        self.root = Path(root)
        self.filter = filter_config

    def _walk(self) -> Iterator[str]:
        """Yield every file under root as a relative POSIX path."""
        if not self.root.exists():
            raise SelectorError(f"Source directory not found: {self.root}")
        if not self.root.is_dir():
            raise SelectorError(f"Not a directory: {self.root}")

        def on_error(err: OSError) -> None:
            raise SelectorError(f"Cannot read {err.filename}: {err.strerror}")

        for dirpath, dirnames, filenames in os.walk(self.root, onerror=on_error):
            dirnames[:] = [d for d in dirnames if d not in SKIP_DIRS]
            base = Path(dirpath).relative_to(self.root)
            for filename in filenames:
                yield (base / filename).as_posix()

    def classify(self) -> tuple[list[str], list[str]]:
        """
        Split all files into selected and unselected paths.

        Returns:
            (selected, unselected), each sorted lexicographically.
        """
        selected: list[str] = []
        unselected: list[str] = []
        for path in self._walk():
            if is_selected(path, self.filter):
                selected.append(path)
            else:
                unselected.append(path)
        return sorted(selected), sorted(unselected)

    def select(self) -> list[str]:
        """Return selected relative paths in lexicographic order."""
        return self.classify()[0]

    def load_candidate(self, relative_path: str) -> Candidate:
        """
        Snapshot a selected file.

        Raises:
            OSError: If the file cannot be read.
            UnicodeDecodeError: If the file is not UTF-8 text.
        """
        data = (self.root / relative_path).read_bytes()
        return Candidate(
            relative_path=relative_path,
            kind=detect_kind(relative_path),
            content=data.decode("utf-8"),
            content_hash=content_hash(data),
        )


def select(root: Path, filter_config: FilterConfig) -> list[str]:
    """Select candidate paths under root."""
    return FileSelector(root, filter_config).select()

"""Tests for file selection."""

from __future__ import annotations

import random

import pytest

from autodocs.config import FilterConfig
from autodocs.errors import SelectorError
from autodocs.selector import (
    FileSelector,
    content_hash,
    detect_kind,
    is_selected,
    matches_rule,
    matches_target,
    select,
)
from conftest import write


class TestMatching:
    @pytest.mark.parametrize(
        "path,pattern,expected",
        [
            ("a.md", "*.md", True),
            ("docs/deep/a.md", "*.md", True),
            ("docs/a.toml", "*.md", False),
            ("docs/a.md", "docs/*.md", True),
            ("src/docs/a.md", "docs/*.md", False),
            ("x/docs/a.md", "docs/*.md", False),
            ("notes.txt", "*.txt", True),
        ],
    )
    def test_target(self, path, pattern, expected):
        assert matches_target(path, pattern) is expected

    @pytest.mark.parametrize(
        "path,rule,expected",
        [
            ("docs/test/b.md", "docs/test/", True),
            ("docs/test/b.md", "docs/test", True),
            ("docs/testing/x.md", "docs/test/", False),
            ("docs/testing/x.md", "docs/test", False),
            ("docs/a.md", "docs/a.md", True),
            ("docs/a.md", "docs/*", True),
            ("docs/drafts/a.md", "drafts", False),
            ("docs/drafts/a.md", "draft*", True),
            ("other/a.md", "docs/", False),
        ],
    )
    def test_rule(self, path, rule, expected):
        assert matches_rule(path, rule) is expected

    def test_kind_detection(self):
        assert detect_kind("a/b.md") == "markdown"
        assert detect_kind("book.toml") == "toml"
        assert detect_kind("x.YAML") == "yaml"
        assert detect_kind("LICENSE") == "text"


class TestFileSelector:
    def test_exclude_scenario(self, tmp_path):
        for path in ("docs/a.md", "docs/test/b.md", "docs/c.toml"):
            write(tmp_path, path, "x")
        filter_config = FilterConfig(target="*.md", exclude=["docs/test/"])

        assert select(tmp_path, filter_config) == ["docs/a.md"]

    def test_include_restricts(self, tmp_path):
        for path in ("README.md", "docs/a.md", "guide/b.md"):
            write(tmp_path, path, "x")
        filter_config = FilterConfig(target="*.md", include=["docs/", "guide"])

        assert select(tmp_path, filter_config) == ["docs/a.md", "guide/b.md"]

    def test_exclude_wins_over_include(self, tmp_path):
        write(tmp_path, "docs/a.md", "x")
        filter_config = FilterConfig(target="*.md", include=["docs/"], exclude=["docs/a.md"])

        assert select(tmp_path, filter_config) == []

    def test_git_directory_never_walked(self, tmp_path):
        write(tmp_path, ".git/notes.md", "x")
        write(tmp_path, "a.md", "x")

        assert select(tmp_path, FilterConfig(target="*.md")) == ["a.md"]

    def test_classify(self, tmp_path):
        for path in ("a.md", "b.png", "sub/c.md"):
            write(tmp_path, path, "x")

        selected, unselected = FileSelector(tmp_path, FilterConfig(target="*.md")).classify()

        assert selected == ["a.md", "sub/c.md"]
        assert unselected == ["b.png"]

    def test_missing_root(self, tmp_path):
        with pytest.raises(SelectorError):
            select(tmp_path / "missing", FilterConfig(target="*.md"))

    def test_root_is_file(self, tmp_path):
        path = write(tmp_path, "file.md", "x")
        with pytest.raises(SelectorError):
            select(path, FilterConfig(target="*.md"))

    def test_load_candidate(self, tmp_path):
        write(tmp_path, "docs/a.md", "# 标题\n")
        candidate = FileSelector(tmp_path, FilterConfig(target="*.md")).load_candidate("docs/a.md")

        assert candidate.kind == "markdown"
        assert candidate.relative_path == "docs/a.md"
        assert candidate.content == "# 标题\n"
        assert candidate.content_hash == content_hash("# 标题\n".encode())

    def test_load_candidate_not_utf8(self, tmp_path):
        (tmp_path / "bad.md").write_bytes(b"\xff\xfe\x00bad")
        selector = FileSelector(tmp_path, FilterConfig(target="*.md"))

        with pytest.raises(UnicodeDecodeError):
            selector.load_candidate("bad.md")


def _oracle(path: str, include: list[str], exclude: list[str]) -> bool:
    def under(prefix: str) -> bool:
        prefix = prefix.rstrip("/")
        return path == prefix or path.startswith(prefix + "/")

    if not path.endswith(".md"):
        return False
    if any(under(rule) for rule in exclude):
        return False
    return not include or any(under(rule) for rule in include)


@pytest.mark.parametrize("seed", range(25))
def test_selection_property(seed):
    """Selected iff target matches, not excluded, and under an include rule."""
    rng = random.Random(seed)
    dirs = ["", "docs", "docs/test", "docs/testing", "guide", "guide/api", "misc"]
    names = ["a.md", "b.md", "c.toml", "d.txt", "index.md"]
    paths = sorted(
        {f"{d}/{n}".lstrip("/") for d in rng.sample(dirs, 4) for n in rng.sample(names, 3)}
    )
    rules = ["docs/", "docs/test/", "guide", "guide/api/", "misc/"]
    include = rng.sample(rules, rng.randint(0, 2))
    exclude = rng.sample(rules, rng.randint(0, 2))
    filter_config = FilterConfig(target="*.md", include=include, exclude=exclude)

    for path in paths:
        assert is_selected(path, filter_config) is _oracle(path, include, exclude), path

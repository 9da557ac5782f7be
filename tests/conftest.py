"""Shared fixtures for autodocs tests."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import pytest

from autodocs.config import RunConfig
from autodocs.engines.base import EngineResponse, TranslationEngine
from autodocs.workspace import WorkspaceManager

TOKEN_LINE_RE = re.compile(r"(?:\[\w+\]\s*)+")

REPO_URL = "https://example.com/docs/book.git"


class ScriptedEngine(TranslationEngine):
    """
    Engine driven by a script of canned replies.

    Each call consumes the next script item: an exception is raised, a string
    is returned as-is. Once the script is exhausted the engine "translates" by
    prefixing every prose line with ``EN:``, which keeps placeholders intact.
    """

    def __init__(self, script: list[Any] | None = None, **kwargs: Any):
        kwargs.setdefault("retry_delay", 0.0)
        super().__init__(**kwargs)
        self.script = list(script or [])
        self.calls = 0
        self.prompts: list[str] = []
        self.closed = False

    @property
    def name(self) -> str:
        return "scripted"

    @property
    def model(self) -> str:
        return "scripted-1"

    async def complete(self, messages, *, temperature=0.3, max_tokens=4096) -> EngineResponse:
        self.calls += 1
        prompt = messages[-1]["content"]
        self.prompts.append(prompt)
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            return EngineResponse(content=item, model=self.model)
        _, _, text = prompt.partition("\n\n")
        return EngineResponse(content=translate_lines(text), model=self.model)

    async def aclose(self) -> None:
        self.closed = True


def translate_lines(text: str) -> str:
    """Deterministic fake translation: prefix lines that carry prose."""
    return "\n".join(
        f"EN:{line}" if line.strip() and not TOKEN_LINE_RE.fullmatch(line.strip()) else line
        for line in text.split("\n")
    )


@pytest.fixture
def engine() -> ScriptedEngine:
    return ScriptedEngine()


@pytest.fixture
def workspace_dir(tmp_path: Path) -> Path:
    return tmp_path / "ws"


@pytest.fixture
def make_config(workspace_dir: Path):
    """Build a RunConfig with test-friendly defaults and section overrides."""

    def factory(**sections: dict[str, Any]) -> RunConfig:
        data: dict[str, Any] = {
            "repository": {"url": REPO_URL, "branch": "main"},
            "engine": {"name": "debug"},
            "filter": {"target": "*.md"},
            "processing": {"retry_delay": 0.0, "concurrent_files": 2, "concurrent_units": 4},
            "paths": {"workspace": str(workspace_dir)},
        }
        for name, values in sections.items():
            data[name] = {**data.get(name, {}), **values}
        return RunConfig(**data)

    return factory


@pytest.fixture
def config(make_config) -> RunConfig:
    return make_config()


@pytest.fixture
def source_dir(config: RunConfig) -> Path:
    """Source clone with a small book."""
    root = config.source_dir
    files = {
        "README.md": "# 简介\n\n这是一本书。\n",
        "docs/intro.md": "# 入门\n\n运行 `make` 命令。\n\n```sh\nmake all\n```\n",
        "docs/test/skip.md": "# 测试\n",
        "docs/assets/logo.png": "PNG",
        "book.toml": 'title = "书"\n',
    }
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def workspace(config: RunConfig):
    ws = WorkspaceManager(config.output_dir, config.store_path, config.source_dir)
    yield ws
    ws.close()


def write(root: Path, relative: str, content: str) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path

"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from autodocs.config import (
    EngineName,
    FilterConfig,
    RunConfig,
    create_default_config,
    load_config,
    validate_glob,
)
from autodocs.errors import ConfigError, ConfigErrorKind

BASE_YAML = """
repository:
  url: https://example.com/docs/book.git
  branch: main
engine:
  name: {engine}
  url: https://api.example.com/v1
  model: test-model
{key_line}
filter:
  target: "*.md *.txt"
  include: [docs/]
  exclude: [docs/test/]
"""


def write_config(tmp_path: Path, engine: str = "openai", key_file: str | None = "key.txt") -> Path:
    key_line = f"  api_key_file: {key_file}" if key_file else ""
    path = tmp_path / "autodocs.yml"
    path.write_text(BASE_YAML.format(engine=engine, key_line=key_line), encoding="utf-8")
    return path


class TestLoadConfig:
    def test_valid_config(self, tmp_path):
        (tmp_path / "key.txt").write_text("sk-secret\n", encoding="utf-8")
        config = load_config(write_config(tmp_path))

        assert config.repository.name == "book"
        assert config.engine.name == EngineName.OPENAI
        assert config.engine.api_key.get_secret_value() == "sk-secret"
        assert config.filter.target == ("*.md", "*.txt")
        assert config.filter.include == ("docs/",)
        assert config.processing.max_attempts == 3
        assert config.translation.source_language == "zh"

    def test_secret_not_in_repr(self, tmp_path):
        (tmp_path / "key.txt").write_text("sk-secret", encoding="utf-8")
        config = load_config(write_config(tmp_path))

        assert "sk-secret" not in repr(config)
        assert "sk-secret" not in config.model_dump_json()

    def test_config_is_immutable(self, tmp_path):
        (tmp_path / "key.txt").write_text("sk-secret", encoding="utf-8")
        config = load_config(write_config(tmp_path))

        with pytest.raises(ValidationError):
            config.paths = None

    def test_flat_repository_layout(self, tmp_path):
        path = tmp_path / "flat.yml"
        path.write_text(
            "repo: https://example.com/hvisor-book\n"
            "branch: dev\n"
            "engine:\n  name: debug\n"
            "filter:\n  target: '*.md'\n",
            encoding="utf-8",
        )
        config = load_config(path)

        assert config.repository.url == "https://example.com/hvisor-book"
        assert config.repository.branch == "dev"
        assert config.source_dir.name == "hvisor-book"
        assert config.output_dir.name == "hvisor-book-translated"

    def test_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DOCS_REPO", "https://example.com/other.git")
        path = tmp_path / "env.yml"
        path.write_text(
            "repository:\n  url: ${DOCS_REPO}\n"
            "engine:\n  name: ollama\n"
            "filter:\n  target: '*.md'\n",
            encoding="utf-8",
        )

        assert load_config(path).repository.name == "other"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "nope.yml")
        assert exc_info.value.kind == ConfigErrorKind.UNREADABLE

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("repository: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.kind == ConfigErrorKind.UNREADABLE

    def test_unknown_engine(self, tmp_path):
        (tmp_path / "key.txt").write_text("sk", encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            load_config(write_config(tmp_path, engine="babelfish"))
        assert exc_info.value.kind == ConfigErrorKind.UNKNOWN_ENGINE

    def test_missing_credential_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(write_config(tmp_path))
        assert exc_info.value.kind == ConfigErrorKind.MISSING_FIELD
        assert exc_info.value.field == "engine.api_key_file"

    def test_empty_credential_file(self, tmp_path):
        (tmp_path / "key.txt").write_text("  \n", encoding="utf-8")
        with pytest.raises(ConfigError) as exc_info:
            load_config(write_config(tmp_path))
        assert exc_info.value.kind == ConfigErrorKind.MISSING_FIELD

    def test_authenticated_engine_requires_key_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(write_config(tmp_path, engine="openrouter", key_file=None))
        assert exc_info.value.kind == ConfigErrorKind.MISSING_FIELD

    def test_local_engine_needs_no_key(self, tmp_path):
        config = load_config(write_config(tmp_path, engine="ollama", key_file=None))
        assert config.engine.api_key.get_secret_value() == ""

    def test_missing_repository(self, tmp_path):
        path = tmp_path / "norepo.yml"
        path.write_text("engine:\n  name: debug\nfilter:\n  target: '*.md'\n", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.kind == ConfigErrorKind.MISSING_FIELD

    def test_empty_target(self, tmp_path):
        path = tmp_path / "notarget.yml"
        path.write_text(
            "repository:\n  url: https://example.com/book\n"
            "engine:\n  name: debug\n"
            "filter:\n  target: ''\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.kind == ConfigErrorKind.MISSING_FIELD

    def test_invalid_glob(self, tmp_path):
        path = tmp_path / "glob.yml"
        path.write_text(
            "repository:\n  url: https://example.com/book\n"
            "engine:\n  name: debug\n"
            "filter:\n  target: '*.md'\n  exclude: ['docs/[ab']\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.kind == ConfigErrorKind.INVALID_GLOB

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "value.yml"
        path.write_text(
            "repository:\n  url: https://example.com/book\n"
            "engine:\n  name: debug\n"
            "filter:\n  target: '*.md'\n"
            "processing:\n  max_attempts: 0\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.kind == ConfigErrorKind.INVALID_VALUE


class TestGlobValidation:
    @pytest.mark.parametrize("pattern", ["*.md", "docs/", "docs/**/*.md", "[ab].md", "./x.md"])
    def test_valid(self, pattern):
        assert validate_glob(pattern)

    @pytest.mark.parametrize("pattern", ["", "/abs/*.md", "../up.md", "a/[b", "a/[[b]]"])
    def test_invalid(self, pattern):
        with pytest.raises(ValueError):
            FilterConfig(target=[pattern])

    def test_normalizes_leading_dot(self):
        assert validate_glob("./docs/") == "docs/"


def test_default_config_loads(tmp_path):
    path = tmp_path / "autodocs.yml"
    create_default_config(path)
    (tmp_path / "api_key.txt").write_text("sk-test", encoding="utf-8")

    config = load_config(path)

    assert isinstance(config, RunConfig)
    assert config.engine.name == EngineName.OPENAI
    assert config.output.prune_removed is True

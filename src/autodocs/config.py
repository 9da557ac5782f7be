"""
Configuration management for autodocs.

Loads the run configuration from a YAML file, validates it and resolves the
engine credential. A loaded RunConfig is immutable.
"""

from __future__ import annotations

import os
import re
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator
from pydantic import model_validator
from pydantic_core import PydanticCustomError
from pydantic_settings import BaseSettings, SettingsConfigDict

from autodocs.errors import ConfigError, ConfigErrorKind

# Load .env file if present (before RunConfig initialization)
load_dotenv()

_GLOB_CHARS = re.compile(r"[*?\[]")


class EngineName(str, Enum):
    """Known translation engine providers."""

    OPENAI = "openai"
    OPENROUTER = "openrouter"
    OLLAMA = "ollama"
    DEBUG = "debug"


# Providers that authenticate with an API key read from api_key_file
AUTHENTICATED_ENGINES = frozenset({EngineName.OPENAI, EngineName.OPENROUTER})


def has_glob_chars(pattern: str) -> bool:
    """Check whether a pattern contains glob metacharacters."""
    return bool(_GLOB_CHARS.search(pattern))


def validate_glob(pattern: str) -> str:
    """
    Validate a single glob or path-prefix pattern.

    Returns the normalized pattern (POSIX separators, no leading "./").

    Raises:
        PydanticCustomError: With type "invalid_glob".
    """
    normalized = pattern.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]

    if not normalized:
        raise PydanticCustomError("invalid_glob", "empty pattern")
    if normalized.startswith("/"):
        raise PydanticCustomError(
            "invalid_glob", "pattern must be relative: {pattern}", {"pattern": pattern}
        )
    if ".." in PurePosixPath(normalized).parts:
        raise PydanticCustomError(
            "invalid_glob", "pattern must not contain '..': {pattern}", {"pattern": pattern}
        )

    depth = 0
    for char in normalized:
        if char == "[":
            if depth:
                raise PydanticCustomError(
                    "invalid_glob", "nested '[' in pattern: {pattern}", {"pattern": pattern}
                )
            depth = 1
        elif char == "]" and depth:
            depth = 0
    if depth:
        raise PydanticCustomError(
            "invalid_glob", "unclosed '[' in pattern: {pattern}", {"pattern": pattern}
        )

    return normalized


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class RepositoryConfig(_Frozen):
    """Source repository location."""

    url: str
    branch: str = Field(default="main")

    @field_validator("url", "branch")
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Reject empty strings."""
        v = v.strip()
        if not v:
            raise PydanticCustomError("missing_field", "value must not be empty")
        return v

    @property
    def name(self) -> str:
        """Repository name: last URL segment without extension."""
        tail = self.url.rstrip("/").split("/")[-1].split(":")[-1]
        return tail.split(".")[0] or "repository"


class EngineConfig(_Frozen):
    """Translation engine selection."""

    name: EngineName
    url: str = Field(default="")
    model: str = Field(default="")
    api_key_file: Path | None = Field(default=None)
    # Resolved by load_config from api_key_file, never read from YAML
    api_key: SecretStr = Field(default=SecretStr(""), exclude=True)

    @field_validator("name", mode="before")
    @classmethod
    def known_engine(cls, v: Any) -> Any:
        """Normalize and check the provider name."""
        if v is None or (isinstance(v, str) and not v.strip()):
            raise PydanticCustomError("missing_field", "engine name must not be empty")
        if isinstance(v, str):
            v = v.strip().lower().replace("_", "-")
            valid = [e.value for e in EngineName]
            if v not in valid:
                raise PydanticCustomError(
                    "unknown_engine",
                    "unknown engine {name}, valid options: {valid}",
                    {"name": v, "valid": ", ".join(valid)},
                )
        return v

    @property
    def requires_api_key(self) -> bool:
        """Whether this provider authenticates with a secret."""
        return self.name in AUTHENTICATED_ENGINES


class FilterConfig(_Frozen):
    """File selection rules. Exclude wins over include and target."""

    target: tuple[str, ...]
    include: tuple[str, ...] = Field(default_factory=tuple)
    exclude: tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("target", mode="before")
    @classmethod
    def split_target(cls, v: Any) -> Any:
        """Accept "*.md *.txt" as well as a list of globs."""
        if v is None:
            raise PydanticCustomError("missing_field", "target must not be empty")
        if isinstance(v, str):
            v = v.split()
        if not v:
            raise PydanticCustomError("missing_field", "target must not be empty")
        return v

    @field_validator("include", "exclude", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        """Treat a null list as empty."""
        if v is None:
            return ()
        if isinstance(v, str):
            return (v,)
        return v

    @field_validator("target", "include", "exclude")
    @classmethod
    def valid_globs(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Validate every pattern."""
        return tuple(validate_glob(p) for p in v)


class TranslationConfig(_Frozen):
    """Configuration for translation requests."""

    source_language: str = Field(default="zh")
    target_language: str = Field(default="en")
    max_unit_chars: int = Field(default=2000, ge=200, le=50000)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    translatable_front_matter_keys: tuple[str, ...] = Field(
        default=("title", "description", "summary")
    )


class ProcessingConfig(_Frozen):
    """Configuration for retries, concurrency and timeouts."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    retry_delay: float = Field(default=1.0, ge=0.0, le=60.0)
    max_retry_delay: float = Field(default=30.0, ge=0.0, le=600.0)
    concurrent_files: int = Field(default=4, ge=1, le=64)
    concurrent_units: int = Field(default=8, ge=1, le=128)
    request_timeout: float = Field(default=120.0, gt=0.0, le=3600.0)
    run_timeout: float | None = Field(default=None, gt=0.0)
    fail_on_candidate_error: bool = Field(default=False)


class PathsConfig(_Frozen):
    """Configuration for file paths."""

    workspace: Path = Field(default=Path("./workspace"))

    @field_validator("workspace")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        """Expand user home directory and make path absolute."""
        return Path(v).expanduser().resolve()


class OutputConfig(_Frozen):
    """Configuration for the translated output tree."""

    copy_unselected: bool = Field(default=False)
    prune_removed: bool = Field(default=True)


class RunConfig(BaseSettings):
    """Validated, immutable configuration for one pipeline run."""

    model_config = SettingsConfigDict(
        env_prefix="AUTODOCS_",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    repository: RepositoryConfig
    engine: EngineConfig
    filter: FilterConfig
    translation: TranslationConfig = Field(default_factory=TranslationConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @model_validator(mode="before")
    @classmethod
    def fold_flat_repository(cls, data: Any) -> Any:
        """Accept the flat `repo:` / `branch:` layout."""
        if isinstance(data, dict) and "repository" not in data and "repo" in data:
            data = dict(data)
            data["repository"] = {"url": data.pop("repo"), "branch": data.pop("branch", "main")}
        return data

    @property
    def source_dir(self) -> Path:
        """Working copy of the source repository."""
        return self.paths.workspace / self.repository.name

    @property
    def output_dir(self) -> Path:
        """Root of the translated mirror tree."""
        return self.paths.workspace / f"{self.repository.name}-translated"

    @property
    def store_path(self) -> Path:
        """DuckDB workspace store."""
        return self.paths.workspace / f"{self.repository.name}.duckdb"


def _substitute_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively substitute ${ENV_VAR} patterns in config values."""
    result = {}
    for key, value in config.items():
        if isinstance(value, dict):
            result[key] = _substitute_env_vars(value)
        elif isinstance(value, str) and value.startswith("${") and value.endswith("}"):
            env_var = value[2:-1]
            result[key] = os.getenv(env_var, "")
        elif isinstance(value, list):
            result[key] = [
                _substitute_env_vars(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            result[key] = value
    return result


_ERROR_KINDS = {
    "missing": ConfigErrorKind.MISSING_FIELD,
    "missing_field": ConfigErrorKind.MISSING_FIELD,
    "unknown_engine": ConfigErrorKind.UNKNOWN_ENGINE,
    "invalid_glob": ConfigErrorKind.INVALID_GLOB,
}


def _to_config_error(exc: ValidationError) -> ConfigError:
    """Convert the first pydantic error into a ConfigError."""
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error["loc"])
    kind = _ERROR_KINDS.get(error["type"], ConfigErrorKind.INVALID_VALUE)
    return ConfigError(kind, f"{field}: {error['msg']}", field=field or None)


def read_secret(path: Path, base_dir: Path | None = None) -> str:
    """
    Read a credential file.

    Relative paths are tried against the working directory first, then
    against `base_dir` (the config file's directory).

    Raises:
        ConfigError: If the file is missing or empty.
    """
    candidates = [Path(path).expanduser()]
    if base_dir is not None and not candidates[0].is_absolute():
        candidates.append(base_dir / path)

    for candidate in candidates:
        if candidate.is_file():
            try:
                secret = candidate.read_text(encoding="utf-8").strip()
            except OSError as e:
                raise ConfigError(
                    ConfigErrorKind.UNREADABLE,
                    f"cannot read api_key_file {candidate}: {e.strerror}",
                    field="engine.api_key_file",
                ) from None
            if not secret:
                raise ConfigError(
                    ConfigErrorKind.MISSING_FIELD,
                    f"api_key_file {candidate} is empty",
                    field="engine.api_key_file",
                )
            return secret

    raise ConfigError(
        ConfigErrorKind.MISSING_FIELD,
        f"api_key_file not found: {path}",
        field="engine.api_key_file",
    )


def load_config(path: Path | str) -> RunConfig:
    """
    Load and validate a run configuration.

    Args:
        path: Path to the YAML config file.

    Returns:
        A fully validated RunConfig with the engine credential resolved.

    Raises:
        ConfigError: If the file is unreadable or any field is invalid.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(
            ConfigErrorKind.UNREADABLE, f"cannot read config {path}: {e.strerror}"
        ) from None
    except yaml.YAMLError as e:
        raise ConfigError(ConfigErrorKind.UNREADABLE, f"invalid YAML in {path}: {e}") from None

    if not isinstance(raw, dict):
        raise ConfigError(ConfigErrorKind.UNREADABLE, f"config {path} is not a mapping")

    try:
        config = RunConfig(**_substitute_env_vars(raw))
    except ValidationError as e:
        raise _to_config_error(e) from None

    engine = config.engine
    if engine.api_key_file is not None:
        secret = read_secret(engine.api_key_file, base_dir=path.parent.resolve())
    elif engine.requires_api_key:
        raise ConfigError(
            ConfigErrorKind.MISSING_FIELD,
            f"engine.api_key_file is required for engine {engine.name.value}",
            field="engine.api_key_file",
        )
    else:
        secret = ""

    return config.model_copy(
        update={"engine": engine.model_copy(update={"api_key": SecretStr(secret)})}
    )


def create_default_config(path: Path | str = "autodocs.yml") -> None:
    """Create a default configuration file."""
    default_config = """# autodocs configuration
repository:
  # Source documentation repository
  url: "https://github.com/example/my-book.git"
  branch: "main"

engine:
  # Provider: openai, openrouter, ollama or debug
  name: "openai"
  # OpenAI-compatible endpoint
  url: "https://api.openai.com/v1"
  model: "gpt-4o-mini"
  # openrouter also accepts the aliases default, fast, deepseek and gemini
  # File holding the API key (plain text, never logged)
  api_key_file: "./api_key.txt"

filter:
  # Files to translate
  target: "*.md"
  # Only translate under these paths (empty = everywhere)
  include: []
  # Never translate these paths (wins over include and target)
  exclude: []

translation:
  source_language: "zh"
  target_language: "en"
  # Maximum characters sent to the engine in one request
  max_unit_chars: 2000

processing:
  # Attempts per request for rate limits and timeouts
  max_attempts: 3
  # Base delay for exponential backoff (seconds)
  retry_delay: 1.0
  # Files processed in parallel
  concurrent_files: 4
  # Engine requests in flight across all files
  concurrent_units: 8
  # Exit non-zero when any file fails
  fail_on_candidate_error: false

paths:
  workspace: "./workspace"

output:
  # Copy files that are not translated into the output tree
  copy_unselected: false
  # Remove outputs of files no longer selected
  prune_removed: true
"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(default_config)

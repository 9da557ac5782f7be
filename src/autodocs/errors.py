"""
Exception hierarchy for autodocs.

Fatal errors abort a run; candidate-level errors fail a single file only.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class AutodocsError(Exception):
    """Base class for all autodocs errors."""

    fatal: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigErrorKind(str, Enum):
    """Reasons a configuration file is rejected."""

    MISSING_FIELD = "missing_field"
    INVALID_GLOB = "invalid_glob"
    UNKNOWN_ENGINE = "unknown_engine"
    INVALID_VALUE = "invalid_value"
    UNREADABLE = "unreadable"


class ConfigError(AutodocsError):
    """Configuration could not be loaded or validated."""

    fatal = True

    def __init__(self, kind: ConfigErrorKind, message: str, field: str | None = None):
        super().__init__(message, {"kind": kind.value, "field": field})
        self.kind = kind
        self.field = field


class SelectorError(AutodocsError):
    """The source tree could not be read."""

    fatal = True


class SyncError(AutodocsError):
    """Repository clone or pull failed."""

    fatal = True


class EngineErrorKind(str, Enum):
    """Failure modes of a translation engine call."""

    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    AUTH_FAILED = "auth_failed"
    MALFORMED_RESPONSE = "malformed_response"


class EngineError(AutodocsError):
    """A translation engine call failed."""

    def __init__(self, kind: EngineErrorKind, message: str, provider: str = ""):
        super().__init__(message, {"kind": kind.value, "provider": provider})
        self.kind = kind
        self.provider = provider

    @property
    def fatal(self) -> bool:  # type: ignore[override]
        return self.kind == EngineErrorKind.AUTH_FAILED

    @property
    def transient(self) -> bool:
        """Whether backoff-and-retry can help."""
        return self.kind in (EngineErrorKind.RATE_LIMITED, EngineErrorKind.TIMEOUT)

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class AssemblyError(AutodocsError):
    """Placeholders could not be restored into a translated document."""


class WorkspaceError(AutodocsError):
    """The output tree or the workspace store could not be updated."""


class RunAborted(AutodocsError):
    """A run was stopped before all candidates completed."""

    fatal = True

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause

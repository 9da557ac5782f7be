"""
autodocs: automated translation of documentation repositories.

This package provides tools for:
- Selecting documentation files with target/include/exclude rules
- Masking code, links and markup so only prose reaches the engine
- Pluggable AI translation engines with retry policy
- An incremental, atomically updated translated mirror of the source tree
"""

__version__ = "0.1.0"

from autodocs.config import RunConfig, load_config
from autodocs.errors import (
    AssemblyError,
    AutodocsError,
    ConfigError,
    EngineError,
    RunAborted,
    SelectorError,
    SyncError,
    WorkspaceError,
)
from autodocs.runner import RunSummary, TranslationRun, run_once
from autodocs.selector import Candidate, FileSelector, select
from autodocs.workspace import WorkspaceEntry, WorkspaceManager

__all__ = [
    # Config
    "RunConfig",
    "load_config",
    # Errors
    "AutodocsError",
    "ConfigError",
    "SelectorError",
    "SyncError",
    "EngineError",
    "AssemblyError",
    "WorkspaceError",
    "RunAborted",
    # Selector
    "Candidate",
    "FileSelector",
    "select",
    # Workspace
    "WorkspaceEntry",
    "WorkspaceManager",
    # Runner
    "RunSummary",
    "TranslationRun",
    "run_once",
]

"""
Repository sync for autodocs.

Clone-or-pull of the source repository through the git executable.
"""

from __future__ import annotations

import subprocess
from pathlib import Path

from autodocs.config import RepositoryConfig
from autodocs.errors import SyncError


class RepositorySync:
    """Keeps a local clone of the source repository up to date."""

    def __init__(self, repository: RepositoryConfig, clone_dir: Path, timeout: float = 300.0):
        """
        Initialize sync.

        Args:
            repository: Repository URL and branch.
            clone_dir: Local clone location.
            timeout: Seconds allowed per git command.
        """
        self.repository = repository
        self.clone_dir = Path(clone_dir)
        self.timeout = timeout

    def _git(self, *args: str, cwd: Path | None = None) -> str:
        """Run a git command and return its stdout."""
        command = ["git", *args]
        try:
            result = subprocess.run(
                command,
                cwd=cwd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise SyncError("git executable not found") from e
        except subprocess.TimeoutExpired as e:
            raise SyncError(f"git {args[0]} timed out after {self.timeout:.0f}s") from e
        except subprocess.CalledProcessError as e:
            raise SyncError(
                f"git {args[0]} failed: {(e.stderr or '').strip()}",
                {"returncode": e.returncode},
            ) from e
        return result.stdout.strip()

    def sync(self) -> str:
        """
        Clone the repository if missing, otherwise pull.

        Returns:
            Commit hash of HEAD after the sync.

        Raises:
            SyncError: If any git command fails.
        """
        if (self.clone_dir / ".git").exists():
            self._git("pull", "--ff-only", cwd=self.clone_dir)
        else:
            if self.clone_dir.exists() and any(self.clone_dir.iterdir()):
                raise SyncError(f"{self.clone_dir} exists and is not a git clone")
            self.clone_dir.parent.mkdir(parents=True, exist_ok=True)
            self._git(
                "clone",
                "--branch",
                self.repository.branch,
                self.repository.url,
                str(self.clone_dir),
            )
        return self.head()

    def head(self) -> str:
        """Commit hash of the current checkout."""
        return self._git("rev-parse", "HEAD", cwd=self.clone_dir)

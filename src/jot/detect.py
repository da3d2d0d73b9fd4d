"""Context auto-detection from source control and the working directory.

Fallback chain: git remote + branch -> working directory name -> default.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

PRIMARY_BRANCHES = frozenset({"main", "master"})
DEFAULT_CONTEXT_NAME = "general"
GIT_TIMEOUT = 5


@runtime_checkable
class SourceControl(Protocol):
    """Read-only view of the working tree's VCS state."""

    def remote_url(self) -> str | None:
        """URL of the primary remote, or None when unavailable."""
        ...

    def current_branch(self) -> str | None:
        """Checked-out branch name, or None when unavailable."""
        ...


@dataclass
class GitSourceControl:
    """Subprocess wrapper around the ``git`` CLI."""

    cwd: str | None = None
    remote: str = "origin"

    def _git(self, *args: str) -> str | None:
        try:
            proc = subprocess.run(
                ["git", *args],
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug("git %s unavailable: %s", " ".join(args), e)
            return None
        if proc.returncode != 0:
            logger.debug("git %s exited %d", " ".join(args), proc.returncode)
            return None
        return proc.stdout.strip() or None

    def remote_url(self) -> str | None:
        return self._git("config", "--get", f"remote.{self.remote}.url")

    def current_branch(self) -> str | None:
        return self._git("rev-parse", "--abbrev-ref", "HEAD")


def repo_name_from_url(url: str) -> str | None:
    """Derive a short repository name from a remote URL.

    Handles https, ssh (``git@host:owner/repo.git``) and local paths.
    """
    tail = url.strip().rstrip("/\\")
    for sep in ("/", "\\", ":"):
        tail = tail.rsplit(sep, 1)[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    return tail or None


def _dir_name(cwd: str) -> str | None:
    name = Path(cwd).name
    if name in ("", ".", "..", "/", "\\"):
        return None
    return name


@dataclass
class DetectedContext:
    """Result of auto-detection: a context name plus optional VCS labels."""

    name: str
    repository: str | None = None
    branch: str | None = None


class ContextDetector:
    """Decides the context name for the current working environment."""

    def __init__(
        self,
        source_control: SourceControl | None = None,
        cwd: str | None = None,
        default_name: str = DEFAULT_CONTEXT_NAME,
    ) -> None:
        self._cwd = cwd
        self.source_control = source_control or GitSourceControl(cwd=cwd)
        self.default_name = default_name

    def _current_dir(self) -> str | None:
        if self._cwd is not None:
            return self._cwd
        try:
            return os.getcwd()
        except OSError as e:
            logger.debug("Working directory unavailable: %s", e)
            return None

    def detect(self) -> DetectedContext:
        url = self.source_control.remote_url()
        branch = self.source_control.current_branch() if url else None
        repo = repo_name_from_url(url) if url else None

        if repo and branch:
            if branch in PRIMARY_BRANCHES:
                return DetectedContext(name=repo, repository=repo, branch=branch)
            return DetectedContext(name=f"{repo}/{branch}", repository=repo, branch=branch)

        cwd = self._current_dir()
        name = _dir_name(cwd) if cwd else None
        if name:
            logger.debug("No git context, using directory name %r", name)
            return DetectedContext(name=name)

        logger.debug("No git or directory context, using default %r", self.default_name)
        return DetectedContext(name=self.default_name)

    def detect_name(self) -> str:
        return self.detect().name

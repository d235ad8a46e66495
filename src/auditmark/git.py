from __future__ import annotations

import os
import re
import subprocess
from pathlib import Path

from auditmark.models import RemoteInfo

_HTTPS_REMOTE_RE = re.compile(r"^https?://(?:[^@/]+@)?([^/]+)/([^/]+)/([^/]+?)/?$")
_SSH_REMOTE_RE = re.compile(r"^(?:ssh://)?git@([^:/]+)[:/]([^/]+)/([^/]+?)/?$")
_SHORT_HASH_LENGTH = 7


class GitError(RuntimeError):
    pass


def _run_git_command(args: list[str], *, cwd: Path | None = None) -> str | None:
    try:
        proc = subprocess.run(
            ["git", *args],
            cwd=cwd,
            check=False,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        raise GitError(f"could not run git: {exc}") from exc
    if proc.returncode != 0:
        return None
    return proc.stdout.strip()


def parse_remote_url(url: str | None) -> RemoteInfo | None:
    if not url:
        return None
    value = url.strip()
    match = _HTTPS_REMOTE_RE.match(value) or _SSH_REMOTE_RE.match(value)
    if match is None:
        return None
    host, owner, repo = match.groups()
    repo = repo.removesuffix(".git")
    if not repo:
        return None
    return RemoteInfo(host=host, owner=owner, repo=repo)


def relative_path(absolute_path: Path | str, repo_root: Path | str) -> str:
    absolute = Path(os.path.abspath(absolute_path))
    root = Path(os.path.abspath(repo_root))
    try:
        return absolute.relative_to(root).as_posix()
    except ValueError:
        return absolute.name


class GitRepo:
    """Read-only view of the git repository containing ``cwd``."""

    def __init__(self, cwd: Path | None = None) -> None:
        self.cwd = cwd if cwd is not None else Path.cwd()

    def _git(self, args: list[str]) -> str | None:
        return _run_git_command(args, cwd=self.cwd)

    def is_repo(self) -> bool:
        return self._git(["rev-parse", "--is-inside-work-tree"]) == "true"

    def repo_root(self) -> Path | None:
        if not self.is_repo():
            return None
        output = self._git(["rev-parse", "--show-toplevel"])
        return Path(output) if output else None

    def head_commit(self) -> str | None:
        if not self.is_repo():
            return None
        output = self._git(["rev-parse", f"--short={_SHORT_HASH_LENGTH}", "HEAD"])
        return output or None

    def remote_url(self, remote: str = "origin") -> str | None:
        if not self.is_repo():
            return None
        output = self._git(["remote", "get-url", remote])
        return output or None

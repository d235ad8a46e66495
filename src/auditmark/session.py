from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from auditmark.git import GitRepo, parse_remote_url
from auditmark.models import SessionMetadata
from auditmark.store import SessionStore

logger = logging.getLogger(__name__)


class SessionError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Session:
    host: str
    owner: str
    repo: str
    commit: str
    path: Path
    repo_root: Path
    repo_url: str

    @property
    def label(self) -> str:
        return f"{self.host}/{self.owner}/{self.repo}@{self.commit}"


def require_metadata(store: SessionStore, session: Session) -> SessionMetadata:
    metadata = store.load_metadata(session.path)
    if metadata is None:
        raise SessionError(f"Session {session.label} has no readable metadata.")
    return metadata


def open_session(
    git: GitRepo, store: SessionStore, *, create: bool = True
) -> Session:
    if not git.is_repo():
        raise SessionError("Not in a git repository. auditmark requires git.")

    repo_root = git.repo_root()
    if repo_root is None:
        raise SessionError("Failed to get git repository root.")
    remote_url = git.remote_url()
    if remote_url is None:
        raise SessionError("No git remote found. auditmark requires a remote origin.")
    head_commit = git.head_commit()
    if head_commit is None:
        raise SessionError("Failed to get git HEAD commit.")

    remote = parse_remote_url(remote_url)
    if remote is None:
        raise SessionError(f"Failed to parse git remote URL: {remote_url}")

    path = store.resolve_path(remote.host, remote.owner, remote.repo, head_commit)
    if create and not store.session_exists(path):
        existing = store.list_commits(remote.host, remote.owner, remote.repo)
        if existing:
            logger.info(
                "Creating new audit session for commit %s. "
                "Found %d existing audit(s): %s",
                head_commit,
                len(existing),
                ", ".join(existing),
            )
        path = store.init_session(
            remote.host,
            remote.owner,
            remote.repo,
            head_commit,
            str(repo_root),
            remote_url,
        )

    return Session(
        host=remote.host,
        owner=remote.owner,
        repo=remote.repo,
        commit=head_commit,
        path=path,
        repo_root=repo_root,
        repo_url=remote_url,
    )


def sibling_session(store: SessionStore, session: Session, commit: str) -> Session:
    path = store.resolve_path(session.host, session.owner, session.repo, commit)
    if not store.session_exists(path):
        raise SessionError(f"No audit session for commit {commit}.")
    metadata = store.load_metadata(path)
    return Session(
        host=session.host,
        owner=session.owner,
        repo=session.repo,
        commit=commit,
        path=path,
        repo_root=Path(metadata.repo_root) if metadata else session.repo_root,
        repo_url=metadata.repo_url if metadata else session.repo_url,
    )


class SessionRegistry:
    """Sessions keyed by the file they were opened for.

    A session is created on first access for a file and dropped once the
    repository HEAD moves to another commit.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        git_factory: Callable[[Path], GitRepo] = GitRepo,
    ) -> None:
        self.store = store
        self._git_factory = git_factory
        self._sessions: dict[Path, Session] = {}

    def _git_for(self, file_path: Path) -> GitRepo:
        directory = file_path if file_path.is_dir() else file_path.parent
        return self._git_factory(directory)

    def get(self, file_path: Path) -> Session:
        key = file_path.resolve()
        session = self._sessions.get(key)
        if session is None:
            session = open_session(self._git_for(key), self.store)
            self._sessions[key] = session
        return session

    def refresh(self) -> int:
        stale = [
            key
            for key, session in self._sessions.items()
            if self._git_for(key).head_commit() != session.commit
        ]
        for key in stale:
            logger.debug("HEAD moved; dropping session for %s", key)
            del self._sessions[key]
        return len(stale)

    def invalidate(self, file_path: Path | None = None) -> None:
        if file_path is None:
            self._sessions.clear()
            return
        self._sessions.pop(file_path.resolve(), None)

    def __len__(self) -> int:
        return len(self._sessions)

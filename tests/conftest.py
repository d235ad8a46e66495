from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from auditmark.models import Note, NoteType
from auditmark.session import Session
from auditmark.store import SessionStore

REPO_URL = "git@github.com:ethereum/solidity.git"


def make_note(
    file: str,
    line: int,
    fingerprint: str | None,
    *,
    commit: str = "aaaaaaa",
    note_type: NoteType = NoteType.FINDING,
    text: str = "check this",
) -> Note:
    return Note(
        file=file,
        line=line,
        type=note_type,
        text=text,
        created_at="2024-01-01T00:00:00Z",
        commit=commit,
        fingerprint=fingerprint,
    )


@pytest.fixture
def store(tmp_path: Path) -> SessionStore:
    return SessionStore(tmp_path / "data")


@pytest.fixture
def make_session(store: SessionStore) -> Callable[..., Session]:
    def factory(commit: str, *, host: str = "github.com") -> Session:
        path = store.init_session(
            host, "ethereum", "solidity", commit, "/src/solidity", REPO_URL
        )
        return Session(
            host=host,
            owner="ethereum",
            repo="solidity",
            commit=commit,
            path=path,
            repo_root=Path("/src/solidity"),
            repo_url=REPO_URL,
        )

    return factory

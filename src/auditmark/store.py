"""Persistent session storage.

Each audit session lives in its own directory::

    <base_dir>/<host>/<owner>/<repo>/<commit>/notes.json
    <base_dir>/<host>/<owner>/<repo>/<commit>/metadata.json

The store assumes a single writer; there is no locking between processes.
"""

from __future__ import annotations

import json
import logging
import shutil
from collections.abc import Iterator
from pathlib import Path
from typing import Literal

from auditmark.models import NOTES_VERSION, Note, NotesDocument, SessionMetadata
from auditmark.util import load_json, utc_now_iso, write_json

logger = logging.getLogger(__name__)

NOTES_FILENAME = "notes.json"
METADATA_FILENAME = "metadata.json"

# host/owner/repo/commit plus slack for stray nesting.
_MAX_WALK_DEPTH = 8

EntryKind = Literal["dir", "file"]


def _read_document(path: Path) -> object | None:
    if not path.exists():
        logger.debug("No document at %s", path)
        return None
    try:
        return load_json(path)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.error("Failed to parse %s: %s", path, exc)
        return None


def _parse_notes(payload: object, source: Path) -> NotesDocument:
    if not isinstance(payload, dict) or not isinstance(payload.get("notes"), list):
        logger.error("Malformed notes document %s; using an empty one", source)
        return NotesDocument()

    notes: list[Note] = []
    for index, raw_note in enumerate(payload["notes"]):
        if not isinstance(raw_note, dict):
            logger.warning("Skipping note %d in %s: not an object", index, source)
            continue
        try:
            notes.append(Note.from_dict(raw_note))
        except ValueError as exc:
            logger.warning("Skipping note %d in %s: %s", index, source, exc)

    version = payload.get("version")
    return NotesDocument(
        version=version if isinstance(version, str) and version else NOTES_VERSION,
        notes=notes,
    )


def walk(
    root: Path, *, max_depth: int = _MAX_WALK_DEPTH
) -> Iterator[tuple[Path, EntryKind]]:
    """Yield ``(path, kind)`` for everything below ``root``, parents first."""
    if not root.is_dir():
        return
    pending: list[tuple[Path, int]] = [(root, 0)]
    while pending:
        directory, depth = pending.pop()
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            logger.warning("Cannot list %s: %s", directory, exc)
            continue
        subdirs: list[Path] = []
        for entry in entries:
            if entry.is_dir() and not entry.is_symlink():
                yield entry, "dir"
                subdirs.append(entry)
            else:
                yield entry, "file"
        if depth + 1 < max_depth:
            pending.extend((subdir, depth + 1) for subdir in reversed(subdirs))


class SessionStore:
    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir

    def resolve_path(self, host: str, owner: str, repo: str, commit: str) -> Path:
        return self.base_dir / host / owner / repo / commit

    def repo_path(self, host: str, owner: str, repo: str) -> Path:
        return self.base_dir / host / owner / repo

    @staticmethod
    def ensure_dir(path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def load_notes(self, path: Path) -> NotesDocument:
        notes_path = path / NOTES_FILENAME
        payload = _read_document(notes_path)
        if payload is None:
            return NotesDocument()
        return _parse_notes(payload, notes_path)

    def save_notes(self, path: Path, document: NotesDocument) -> None:
        write_json(path / NOTES_FILENAME, document.to_dict())

    def load_metadata(self, path: Path) -> SessionMetadata | None:
        metadata_path = path / METADATA_FILENAME
        payload = _read_document(metadata_path)
        if payload is None:
            return None
        if not isinstance(payload, dict):
            logger.error("Malformed metadata document %s", metadata_path)
            return None
        return SessionMetadata.from_dict(payload)

    def save_metadata(self, path: Path, metadata: SessionMetadata) -> None:
        write_json(path / METADATA_FILENAME, metadata.to_dict())

    def session_exists(self, path: Path) -> bool:
        return (path / NOTES_FILENAME).is_file() or (path / METADATA_FILENAME).is_file()

    def init_session(
        self,
        host: str,
        owner: str,
        repo: str,
        commit: str,
        repo_root: str,
        repo_url: str,
    ) -> Path:
        path = self.resolve_path(host, owner, repo, commit)
        self.ensure_dir(path)
        now = utc_now_iso()
        self.save_metadata(
            path,
            SessionMetadata(
                repo_url=repo_url,
                repo_root=repo_root,
                base_ref=commit,
                created_at=now,
                last_modified=now,
            ),
        )
        self.save_notes(path, NotesDocument())
        logger.info("Initialized session %s", path)
        return path

    def list_commits(self, host: str, owner: str, repo: str) -> list[str]:
        repo_dir = self.repo_path(host, owner, repo)
        if not repo_dir.is_dir():
            return []
        return sorted(entry.name for entry in repo_dir.iterdir() if entry.is_dir())

    def is_session_empty(self, path: Path) -> bool:
        notes_path = path / NOTES_FILENAME
        if not notes_path.exists():
            return True
        try:
            payload = load_json(notes_path)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            # An unreadable document is never treated as empty during cleanup.
            logger.warning("Keeping session %s: unreadable notes (%s)", path, exc)
            return False
        if not isinstance(payload, dict) or not isinstance(payload.get("notes"), list):
            logger.warning("Keeping session %s: malformed notes document", path)
            return False
        return not payload["notes"]

    @staticmethod
    def remove_session_dir(path: Path) -> None:
        shutil.rmtree(path)
        logger.info("Removed session %s", path)

    def clean_empty_sessions(self, host: str, owner: str, repo: str) -> int:
        removed = 0
        for commit in self.list_commits(host, owner, repo):
            path = self.resolve_path(host, owner, repo, commit)
            if self.is_session_empty(path):
                self.remove_session_dir(path)
                removed += 1
        return removed

    def clean_all_empty(self) -> int:
        session_dirs = [
            path.parent
            for path, kind in walk(self.base_dir)
            if kind == "file" and path.name == NOTES_FILENAME
        ]
        removed = 0
        touched_parents: set[Path] = set()
        for session_dir in session_dirs:
            if not self.is_session_empty(session_dir):
                continue
            self.remove_session_dir(session_dir)
            removed += 1
            touched_parents.add(session_dir.parent)

        self._prune_empty_parents(touched_parents)
        return removed

    def _prune_empty_parents(self, directories: set[Path]) -> None:
        base = self.base_dir.resolve()
        # Deepest first so that emptied grandparents are seen after children.
        for directory in sorted(directories, key=lambda p: len(p.parts), reverse=True):
            current = directory
            while current.resolve() != base and base in current.resolve().parents:
                try:
                    next(current.iterdir())
                except StopIteration:
                    current.rmdir()
                    logger.debug("Pruned empty directory %s", current)
                    current = current.parent
                    continue
                except FileNotFoundError:
                    current = current.parent
                    continue
                break

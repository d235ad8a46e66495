"""Cross-commit reconciliation of audit notes.

Notes are matched between sessions only through their fingerprints, never
through line numbers. Notes without a fingerprint (written before
fingerprinting existed) take no part in diff or harmonize.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field, replace

from auditmark.models import Note
from auditmark.notes import persist_mutation, sort_notes
from auditmark.session import Session, require_metadata
from auditmark.store import SessionStore
from auditmark.util import utc_now_iso

logger = logging.getLogger(__name__)


class NotEnoughSessions(Exception):
    """Informational: the repository lacks the sessions an operation needs."""


@dataclass(slots=True)
class FingerprintMatch:
    fingerprint: str
    notes_a: list[Note]
    notes_b: list[Note]


@dataclass(slots=True)
class SessionDiff:
    matching: list[FingerprintMatch] = field(default_factory=list)
    orphaned_a: list[Note] = field(default_factory=list)
    orphaned_b: list[Note] = field(default_factory=list)
    excluded: int = 0

    @property
    def matching_fingerprints(self) -> list[str]:
        return [match.fingerprint for match in self.matching]


@dataclass(slots=True)
class HarmonizeResult:
    count: int
    commits: list[str]


def index_by_fingerprint(notes: Iterable[Note]) -> dict[str, list[Note]]:
    index: dict[str, list[Note]] = {}
    for note in notes:
        if note.fingerprint is None:
            continue
        index.setdefault(note.fingerprint, []).append(note)
    return index


def diff_sessions(notes_a: list[Note], notes_b: list[Note]) -> SessionDiff:
    index_a = index_by_fingerprint(notes_a)
    index_b = index_by_fingerprint(notes_b)

    result = SessionDiff(
        excluded=sum(1 for note in [*notes_a, *notes_b] if note.fingerprint is None)
    )
    for fingerprint, group in index_a.items():
        if fingerprint in index_b:
            result.matching.append(
                FingerprintMatch(fingerprint, list(group), list(index_b[fingerprint]))
            )
        else:
            result.orphaned_a.extend(group)
    for fingerprint, group in index_b.items():
        if fingerprint not in index_a:
            result.orphaned_b.extend(group)
    return result


def diff_stored_sessions(
    store: SessionStore, session_a: Session, session_b: Session
) -> SessionDiff:
    return diff_sessions(
        store.load_notes(session_a.path).notes,
        store.load_notes(session_b.path).notes,
    )


def other_commits(store: SessionStore, session: Session) -> list[str]:
    return [
        commit
        for commit in store.list_commits(session.host, session.owner, session.repo)
        if commit != session.commit
    ]


def latest_sibling_commit(store: SessionStore, session: Session) -> str:
    """Pick the most recently modified sibling session to compare against."""
    siblings = other_commits(store, session)
    if not siblings:
        raise NotEnoughSessions("Need at least two sessions to diff.")

    def last_modified(commit: str) -> str:
        path = store.resolve_path(session.host, session.owner, session.repo, commit)
        metadata = store.load_metadata(path)
        return metadata.last_modified if metadata else ""

    return max(siblings, key=lambda commit: (last_modified(commit), commit))


def restore_notes(
    store: SessionStore,
    target: Session,
    source_commit: str,
    notes: Iterable[Note],
) -> int:
    restored = [
        replace(note, commit=target.commit, restored_from=source_commit)
        for note in notes
    ]
    if not restored:
        return 0

    document = store.load_notes(target.path)
    document.notes.extend(restored)
    sort_notes(document.notes)
    persist_mutation(store, target, document)
    logger.info(
        "Restored %d note(s) from %s into %s",
        len(restored),
        source_commit,
        target.label,
    )
    return len(restored)


def harmonize_session(store: SessionStore, target: Session) -> HarmonizeResult:
    siblings = other_commits(store, target)
    if not siblings:
        raise NotEnoughSessions("No sessions to harmonize.")

    metadata = require_metadata(store, target)
    document = store.load_notes(target.path)
    seen = {note.fingerprint for note in document.notes if note.fingerprint is not None}

    harmonized: list[Note] = []
    contributors: list[str] = []
    # Sibling order decides ties between equal fingerprints; it carries no meaning.
    for commit in siblings:
        sibling_path = store.resolve_path(
            target.host, target.owner, target.repo, commit
        )
        for note in store.load_notes(sibling_path).notes:
            if note.fingerprint is None or note.fingerprint in seen:
                continue
            seen.add(note.fingerprint)
            harmonized.append(
                replace(
                    note,
                    commit=target.commit,
                    restored_from=None,
                    harmonized_from=commit,
                )
            )
            if commit not in contributors:
                contributors.append(commit)

    if not harmonized:
        return HarmonizeResult(count=0, commits=[])

    document.notes.extend(harmonized)
    sort_notes(document.notes)
    store.save_notes(target.path, document)

    previous = metadata.harmonized_from or []
    added = [commit for commit in contributors if commit not in previous]
    metadata.harmonized_from = [*previous, *added]
    metadata.last_modified = utc_now_iso()
    store.save_metadata(target.path, metadata)
    logger.info(
        "Harmonized %d note(s) into %s from %s",
        len(harmonized),
        target.label,
        ", ".join(contributors),
    )
    return HarmonizeResult(count=len(harmonized), commits=contributors)

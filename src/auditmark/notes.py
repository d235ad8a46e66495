from __future__ import annotations

from collections.abc import Callable, Iterable

from auditmark.models import Note, NotesDocument, NoteType
from auditmark.session import Session, SessionError, require_metadata
from auditmark.store import SessionStore
from auditmark.util import utc_now_iso


def _sort_key(note: Note) -> tuple[str, int]:
    return note.file, note.line


def sort_notes(notes: list[Note]) -> None:
    notes.sort(key=_sort_key)


def is_sorted(notes: Iterable[Note]) -> bool:
    keys = [_sort_key(note) for note in notes]
    return all(left <= right for left, right in zip(keys, keys[1:]))


def new_note(
    *,
    file: str,
    line: int,
    note_type: NoteType | str,
    text: str,
    commit: str,
    fingerprint: str | None,
) -> Note:
    if not text.strip():
        raise ValueError("Note text must not be empty.")
    if line < 1:
        raise ValueError(f"Line must be positive, got {line}.")
    return Note(
        file=file,
        line=line,
        type=NoteType(note_type),
        text=text.strip(),
        created_at=utc_now_iso(),
        commit=commit,
        fingerprint=fingerprint,
    )


def add_note(document: NotesDocument, note: Note) -> None:
    document.notes.append(note)
    sort_notes(document.notes)


def remove_at(document: NotesDocument, index: int) -> Note:
    if index < 0 or index >= len(document.notes):
        raise IndexError(f"No note at index {index}.")
    removed = document.notes.pop(index)
    sort_notes(document.notes)
    return removed


def remove_where(
    document: NotesDocument, predicate: Callable[[Note], bool]
) -> list[Note]:
    removed = [note for note in document.notes if predicate(note)]
    if removed:
        document.notes = [note for note in document.notes if not predicate(note)]
        sort_notes(document.notes)
    return removed


def remove_at_location(document: NotesDocument, file: str, line: int) -> list[Note]:
    return remove_where(document, lambda note: note.location == (file, line))


def remove_in_file(document: NotesDocument, file: str) -> list[Note]:
    return remove_where(document, lambda note: note.file == file)


def remove_one_at_location(
    document: NotesDocument, file: str, line: int, choice: int
) -> Note:
    """Remove the ``choice``-th (0-based) note among those at ``file:line``."""
    positions = [
        index
        for index, note in enumerate(document.notes)
        if note.location == (file, line)
    ]
    if choice < 0 or choice >= len(positions):
        raise IndexError(
            f"Choice {choice + 1} is out of range; "
            f"{len(positions)} note(s) at {file}:{line}."
        )
    return remove_at(document, positions[choice])


def notes_for_file(document: NotesDocument, file: str) -> list[Note]:
    return [note for note in document.notes if note.file == file]


def notes_at_line(document: NotesDocument, file: str, line: int) -> list[Note]:
    return [note for note in document.notes if note.location == (file, line)]


def next_note_line(notes: list[Note], line: int) -> int | None:
    if not notes:
        return None
    lines = sorted({note.line for note in notes})
    for candidate in lines:
        if candidate > line:
            return candidate
    return lines[0]


def persist_mutation(
    store: SessionStore, session: Session, document: NotesDocument
) -> None:
    metadata = require_metadata(store, session)
    store.save_notes(session.path, document)
    metadata.last_modified = utc_now_iso()
    store.save_metadata(session.path, metadata)


def load_session_notes(store: SessionStore, session: Session) -> NotesDocument:
    if not store.session_exists(session.path):
        raise SessionError(f"Session {session.label} does not exist.")
    return store.load_notes(session.path)

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

NOTES_VERSION = "1.0"


class NoteType(StrEnum):
    FINDING = "finding"
    QUESTION = "question"
    SAFE = "safe"
    SUGGESTION = "suggestion"
    COMMENT = "comment"
    INVARIANT = "invariant"


@dataclass(frozen=True, slots=True)
class NoteStyle:
    sign: str
    color: str
    label: str
    plural: str


NOTE_STYLES: dict[NoteType, NoteStyle] = {
    NoteType.FINDING: NoteStyle("🔴", "#FF6B6B", "Finding", "Findings"),
    NoteType.QUESTION: NoteStyle("🟡", "#FFD93D", "Question", "Questions"),
    NoteType.SAFE: NoteStyle("🟢", "#6BCF7F", "Safe", "Marked Safe"),
    NoteType.SUGGESTION: NoteStyle("🔵", "#4ECDC4", "Suggestion", "Suggestions"),
    NoteType.COMMENT: NoteStyle("⚪", "#C0C0C0", "Comment", "Comments"),
    NoteType.INVARIANT: NoteStyle("🟣", "#B084F5", "Invariant", "Invariants"),
}


def note_style(note_type: NoteType) -> NoteStyle:
    return NOTE_STYLES[note_type]


@dataclass(slots=True)
class Note:
    file: str
    line: int
    type: NoteType
    text: str
    created_at: str
    commit: str
    fingerprint: str | None = None
    restored_from: str | None = None
    harmonized_from: str | None = None

    @property
    def location(self) -> tuple[str, int]:
        return self.file, self.line

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "file": self.file,
            "line": self.line,
            "type": self.type.value,
            "text": self.text,
            "created_at": self.created_at,
            "commit": self.commit,
        }
        # Legacy notes never had a fingerprint; keep them that way on save.
        if self.fingerprint is not None:
            data["fingerprint"] = self.fingerprint
        if self.restored_from is not None:
            data["restored_from"] = self.restored_from
        if self.harmonized_from is not None:
            data["harmonized_from"] = self.harmonized_from
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Note:
        file_path = data.get("file")
        if not isinstance(file_path, str) or not file_path:
            raise ValueError("note.file must be a non-empty string")
        line = data.get("line")
        if isinstance(line, bool) or not isinstance(line, int) or line < 1:
            raise ValueError(f"note.line must be a positive integer, got {line!r}")
        text = data.get("text")
        if not isinstance(text, str) or not text.strip():
            raise ValueError("note.text must be a non-empty string")
        try:
            note_type = NoteType(data.get("type"))
        except ValueError:
            raise ValueError(f"unknown note type {data.get('type')!r}") from None

        def optional_str(key: str) -> str | None:
            value = data.get(key)
            return value if isinstance(value, str) and value else None

        return cls(
            file=file_path,
            line=line,
            type=note_type,
            text=text,
            created_at=str(data.get("created_at", "")),
            commit=str(data.get("commit", "")),
            fingerprint=optional_str("fingerprint"),
            restored_from=optional_str("restored_from"),
            harmonized_from=optional_str("harmonized_from"),
        )


@dataclass(slots=True)
class NotesDocument:
    version: str = NOTES_VERSION
    notes: list[Note] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "version": self.version,
            "notes": [note.to_dict() for note in self.notes],
        }


@dataclass(slots=True)
class SessionMetadata:
    repo_url: str
    repo_root: str
    base_ref: str
    created_at: str
    last_modified: str
    harmonized_from: list[str] | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "repo_url": self.repo_url,
            "repo_root": self.repo_root,
            "base_ref": self.base_ref,
            "created_at": self.created_at,
            "last_modified": self.last_modified,
        }
        if self.harmonized_from is not None:
            data["harmonized_from"] = list(self.harmonized_from)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionMetadata:
        harmonized = data.get("harmonized_from")
        return cls(
            repo_url=str(data.get("repo_url", "")),
            repo_root=str(data.get("repo_root", "")),
            base_ref=str(data.get("base_ref", "")),
            created_at=str(data.get("created_at", "")),
            last_modified=str(data.get("last_modified", "")),
            harmonized_from=(
                [str(commit) for commit in harmonized]
                if isinstance(harmonized, list)
                else None
            ),
        )


@dataclass(frozen=True, slots=True)
class RemoteInfo:
    host: str
    owner: str
    repo: str

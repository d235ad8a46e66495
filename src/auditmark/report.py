from __future__ import annotations

from importlib import resources
from typing import Any, Literal

from jinja2 import Environment

from auditmark.models import NOTE_STYLES, Note, NotesDocument, NoteType, SessionMetadata
from auditmark.session import Session

GroupBy = Literal["file", "type"]

_TEMPLATE_ENV = Environment(
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)
_REPORT_TEMPLATE = _TEMPLATE_ENV.from_string(
    resources.files("auditmark")
    .joinpath("templates/report.md.j2")
    .read_text(encoding="utf-8")
)


def _date(value: str) -> str:
    return value[:10]


def generate_permalink(
    host: str, owner: str, repo: str, commit: str, file: str, line: int
) -> str | None:
    if host == "github.com":
        return f"https://github.com/{owner}/{repo}/blob/{commit}/{file}#L{line}"
    if host == "gitlab.com":
        return f"https://gitlab.com/{owner}/{repo}/-/blob/{commit}/{file}#L{line}"
    return None


def calculate_stats(notes: list[Note]) -> dict[NoteType, int]:
    stats = {note_type: 0 for note_type in NoteType}
    for note in notes:
        stats[note.type] += 1
    return stats


def session_stats(
    session: Session, document: NotesDocument, metadata: SessionMetadata | None
) -> dict[str, Any]:
    return {
        "session": f"{session.host}/{session.owner}/{session.repo}",
        "commit": session.commit,
        "started": _date(metadata.created_at) if metadata else "unknown",
        "total": len(document.notes),
        "files": len({note.file for note in document.notes}),
        "by_type": calculate_stats(document.notes),
    }


def format_stats(stats: dict[str, Any]) -> str:
    lines = [
        f"Audit Session: {stats['session']}",
        f"Commit: {stats['commit']}",
        f"Started: {stats['started']}",
        "",
        f"Total Notes: {stats['total']}",
        f"Files Annotated: {stats['files']}",
        "",
        "By Type:",
    ]
    width = max(len(style.plural) for style in NOTE_STYLES.values()) + 1
    for note_type, count in stats["by_type"].items():
        label = f"{NOTE_STYLES[note_type].plural}:"
        lines.append(f"  {label:<{width}} {count}")
    return "\n".join(lines)


def format_notes(notes: list[Note]) -> str:
    """Render notes as a popup would show them, numbered when ambiguous."""
    lines: list[str] = []
    numbered = len(notes) > 1
    for index, note in enumerate(notes, start=1):
        style = NOTE_STYLES[note.type]
        tag = note.type.value.upper()
        header = f"Note {index} [{tag}]" if numbered else f"[{tag}]"
        lines.append(f"{style.sign} {header} {note.file}:{note.line}")
        lines.append(note.text)
        lines.append("")
    return "\n".join(lines).rstrip("\n")


def _provenance(note: Note) -> str | None:
    if note.restored_from:
        return f"Restored from: {note.restored_from}"
    if note.harmonized_from:
        return f"Harmonized from: {note.harmonized_from}"
    return None


def _note_view(session: Session, note: Note, *, group_by: GroupBy) -> dict[str, Any]:
    tag = note.type.value.upper()
    if group_by == "file":
        heading = f"Line {note.line} [{tag}]"
    else:
        heading = f"{note.file}:{note.line}"
    return {
        "heading": heading,
        "permalink": generate_permalink(
            session.host, session.owner, session.repo, note.commit, note.file, note.line
        ),
        "added": _date(note.created_at),
        "provenance": _provenance(note),
        "text": note.text,
    }


def _groups(
    session: Session, notes: list[Note], group_by: GroupBy
) -> list[dict[str, Any]]:
    def view(note: Note) -> dict[str, Any]:
        return _note_view(session, note, group_by=group_by)

    if group_by == "file":
        by_file: dict[str, list[Note]] = {}
        for note in notes:
            by_file.setdefault(note.file, []).append(note)
        return [
            {
                "title": file,
                "notes": [view(note) for note in by_file[file]],
            }
            for file in sorted(by_file)
        ]

    groups: list[dict[str, Any]] = []
    for note_type in NoteType:
        typed = [note for note in notes if note.type is note_type]
        if not typed:
            continue
        groups.append(
            {
                "title": NOTE_STYLES[note_type].plural,
                "notes": [view(note) for note in typed],
            }
        )
    return groups


def render_report(
    session: Session,
    document: NotesDocument,
    metadata: SessionMetadata | None,
    *,
    group_by: GroupBy = "file",
) -> str:
    if group_by not in ("file", "type"):
        raise ValueError(f"Unsupported grouping: {group_by}")
    stats = calculate_stats(document.notes)
    return _REPORT_TEMPLATE.render(
        owner=session.owner,
        repo=session.repo,
        base_ref=metadata.base_ref if metadata else session.commit,
        started=_date(metadata.created_at) if metadata else "unknown",
        last_updated=_date(metadata.last_modified) if metadata else "unknown",
        harmonized_from=metadata.harmonized_from if metadata else None,
        summary=[
            {"count": count, "plural": NOTE_STYLES[note_type].plural}
            for note_type, count in stats.items()
        ],
        groups=_groups(session, document.notes, group_by),
    )

from __future__ import annotations

import argparse
import logging
import sys
import tomllib
from pathlib import Path

from auditmark.config import load_config
from auditmark.fingerprint import fingerprint_file_line
from auditmark.git import GitError, GitRepo, relative_path
from auditmark.models import NOTE_STYLES, Note, NoteType
from auditmark.notes import (
    add_note,
    load_session_notes,
    new_note,
    next_note_line,
    notes_at_line,
    notes_for_file,
    persist_mutation,
    remove_at_location,
    remove_in_file,
    remove_one_at_location,
)
from auditmark.reconcile import (
    NotEnoughSessions,
    SessionDiff,
    diff_stored_sessions,
    harmonize_session,
    latest_sibling_commit,
    restore_notes,
)
from auditmark.report import format_notes, format_stats, render_report, session_stats
from auditmark.session import (
    Session,
    SessionError,
    SessionRegistry,
    open_session,
    sibling_session,
)
from auditmark.store import SessionStore
from auditmark.util import write_text


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _registry(args: argparse.Namespace) -> SessionRegistry:
    return SessionRegistry(SessionStore(args.data_dir))


def _file_session(args: argparse.Namespace) -> tuple[SessionRegistry, Session, str]:
    registry = _registry(args)
    absolute = args.file.expanduser().resolve()
    session = registry.get(absolute)
    return registry, session, relative_path(absolute, session.repo_root)


def _repo_session(args: argparse.Namespace) -> tuple[SessionRegistry, Session]:
    registry = _registry(args)
    return registry, registry.get(Path.cwd())


def _note_line(note: Note) -> str:
    style = NOTE_STYLES[note.type]
    marker = ""
    if note.restored_from:
        marker = f" (restored from {note.restored_from})"
    elif note.harmonized_from:
        marker = f" (harmonized from {note.harmonized_from})"
    location = f"{note.file}:{note.line}"
    return f"{style.sign} {location} [{note.type.value}] {note.text}{marker}"


def _prompt_note_type() -> NoteType:
    if not sys.stdin.isatty():
        raise SystemExit("add needs --type in non-interactive mode.")
    choices = list(NoteType)
    for index, note_type in enumerate(choices, start=1):
        style = NOTE_STYLES[note_type]
        print(f"  {index}. {style.sign} {style.label}")
    answer = input("Select note type: ").strip()
    if answer.isdigit() and 1 <= int(answer) <= len(choices):
        return choices[int(answer) - 1]
    try:
        return NoteType(answer.lower())
    except ValueError:
        raise SystemExit(f"Unknown note type: {answer!r}") from None


def _prompt_note_text() -> str:
    if not sys.stdin.isatty():
        raise SystemExit("add needs --text in non-interactive mode.")
    return input("Note: ")


def _add_cmd(args: argparse.Namespace) -> int:
    note_type = NoteType(args.type) if args.type else _prompt_note_type()
    text = args.text if args.text is not None else _prompt_note_text()
    if not text.strip():
        print("Empty note; nothing added.")
        return 1

    registry, session, relative = _file_session(args)
    try:
        fingerprint = fingerprint_file_line(session.repo_root, relative, args.line)
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Cannot annotate {relative}:{args.line}: {exc}") from exc

    note = new_note(
        file=relative,
        line=args.line,
        note_type=note_type,
        text=text,
        commit=session.commit,
        fingerprint=fingerprint,
    )
    document = load_session_notes(registry.store, session)
    add_note(document, note)
    persist_mutation(registry.store, session, document)
    print(f"Added {note_type.value} at {relative}:{args.line} ({fingerprint})")
    return 0


def _rm_cmd(args: argparse.Namespace) -> int:
    registry, session, relative = _file_session(args)
    document = load_session_notes(registry.store, session)
    candidates = notes_at_line(document, relative, args.line)
    if not candidates:
        print(f"No notes at {relative}:{args.line}.")
        return 1

    if args.all or len(candidates) == 1:
        removed = remove_at_location(document, relative, args.line)
    elif args.index is not None:
        try:
            removed = [
                remove_one_at_location(document, relative, args.line, args.index - 1)
            ]
        except IndexError as exc:
            raise SystemExit(str(exc)) from exc
    else:
        print(f"{len(candidates)} notes at {relative}:{args.line}:")
        print(format_notes(candidates))
        print("Rerun with --index N to delete one note or --all to delete all of them.")
        return 1

    persist_mutation(registry.store, session, document)
    print(f"Removed {len(removed)} note(s) at {relative}:{args.line}.")
    return 0


def _rm_file_cmd(args: argparse.Namespace) -> int:
    registry, session, relative = _file_session(args)
    document = load_session_notes(registry.store, session)
    if not notes_for_file(document, relative):
        print(f"No notes in {relative}.")
        return 1

    if not args.yes:
        if not sys.stdin.isatty():
            raise SystemExit("rm-file needs --yes in non-interactive mode.")
        confirm = input(f"Remove all notes in {relative}? (y/n): ").strip().lower()
        if confirm not in {"y", "yes"}:
            print("Removal cancelled.")
            return 1

    removed = remove_in_file(document, relative)
    persist_mutation(registry.store, session, document)
    print(f"Removed {len(removed)} note(s) in {relative}.")
    return 0


def _show_cmd(args: argparse.Namespace) -> int:
    registry, session, relative = _file_session(args)
    document = load_session_notes(registry.store, session)
    notes = notes_at_line(document, relative, args.line)
    if not notes:
        print(f"No notes at {relative}:{args.line}.")
        return 1
    print(format_notes(notes))
    return 0


def _list_cmd(args: argparse.Namespace) -> int:
    if args.file is not None:
        registry, session, relative = _file_session(args)
        notes = notes_for_file(load_session_notes(registry.store, session), relative)
    else:
        registry, session = _repo_session(args)
        notes = load_session_notes(registry.store, session).notes

    if args.type:
        notes = [note for note in notes if note.type is NoteType(args.type)]
    if not notes:
        print("No notes.")
        return 0
    for note in notes:
        print(_note_line(note))
    return 0


def _next_cmd(args: argparse.Namespace) -> int:
    registry, session, relative = _file_session(args)
    notes = notes_for_file(load_session_notes(registry.store, session), relative)
    line = next_note_line(notes, args.line)
    if line is None:
        print(f"No notes in {relative}.")
        return 1
    print(line)
    if args.show:
        print(format_notes([note for note in notes if note.line == line]))
    return 0


def _export_cmd(args: argparse.Namespace) -> int:
    registry, session = _repo_session(args)
    document = load_session_notes(registry.store, session)
    metadata = registry.store.load_metadata(session.path)
    output_path = args.output if args.output is not None else args.report_path
    report = render_report(session, document, metadata, group_by=args.group_by)
    write_text(output_path, report)
    print(f"Exported {len(document.notes)} notes to {output_path}")
    return 0


def _stats_cmd(args: argparse.Namespace) -> int:
    registry, session = _repo_session(args)
    document = load_session_notes(registry.store, session)
    metadata = registry.store.load_metadata(session.path)
    print(format_stats(session_stats(session, document, metadata)))
    return 0


def _sessions_cmd(args: argparse.Namespace) -> int:
    registry, session = _repo_session(args)
    store = registry.store
    for commit in store.list_commits(session.host, session.owner, session.repo):
        path = store.resolve_path(session.host, session.owner, session.repo, commit)
        count = len(store.load_notes(path).notes)
        marker = "*" if commit == session.commit else " "
        print(f"{marker} {commit}  {count} note(s)")
    return 0


def _print_diff(current: Session, other: Session, diff: SessionDiff) -> None:
    print(f"Comparing {current.commit} (current) with {other.commit}")
    print(f"Matching: {len(diff.matching)}")
    for match in diff.matching:
        left = ", ".join(f"{n.file}:{n.line}" for n in match.notes_a)
        right = ", ".join(f"{n.file}:{n.line}" for n in match.notes_b)
        print(f"  {match.fingerprint}  {left} <-> {right}")
    print(f"Only in {current.commit}: {len(diff.orphaned_a)}")
    for note in diff.orphaned_a:
        print(f"  {note.fingerprint}  {_note_line(note)}")
    print(f"Only in {other.commit}: {len(diff.orphaned_b)}")
    for note in diff.orphaned_b:
        print(f"  {note.fingerprint}  {_note_line(note)}")
    if diff.excluded:
        print(f"Skipped {diff.excluded} note(s) without a fingerprint.")


def _other_session(
    registry: SessionRegistry, session: Session, commit: str | None
) -> Session:
    if commit is None:
        commit = latest_sibling_commit(registry.store, session)
    if commit == session.commit:
        raise SessionError("Cannot compare a session with itself.")
    return sibling_session(registry.store, session, commit)


def _diff_cmd(args: argparse.Namespace) -> int:
    registry, session = _repo_session(args)
    other = _other_session(registry, session, args.against)
    _print_diff(session, other, diff_stored_sessions(registry.store, session, other))
    return 0


def _restore_cmd(args: argparse.Namespace) -> int:
    registry, session = _repo_session(args)
    source = _other_session(registry, session, args.source)
    orphaned = diff_stored_sessions(registry.store, session, source).orphaned_b
    if args.fingerprint:
        wanted = set(args.fingerprint)
        orphaned = [note for note in orphaned if note.fingerprint in wanted]
    if not orphaned:
        print(f"No orphaned notes to restore from {source.commit}.")
        return 1
    count = restore_notes(registry.store, session, source.commit, orphaned)
    print(f"Restored {count} note(s) from {source.commit} into {session.commit}.")
    return 0


def _harmonize_cmd(args: argparse.Namespace) -> int:
    registry, session = _repo_session(args)
    result = harmonize_session(registry.store, session)
    if result.count == 0:
        print("No new notes to harmonize.")
        return 0
    print(
        f"Harmonized {result.count} note(s) into {session.commit} "
        f"from {', '.join(result.commits)}."
    )
    return 0


def _clean_cmd(args: argparse.Namespace) -> int:
    store = SessionStore(args.data_dir)
    if args.all:
        removed = store.clean_all_empty()
        print(f"Removed {removed} empty session(s) from {store.base_dir}")
        return 0

    # Identity only; no session is created here.
    session = open_session(GitRepo(Path.cwd()), store, create=False)
    removed = store.clean_empty_sessions(session.host, session.owner, session.repo)
    print(f"Removed {removed} empty session(s) for {session.owner}/{session.repo}")
    return 0


def _add_location_args(parser: argparse.ArgumentParser, *, line: bool = True) -> None:
    parser.add_argument("--file", type=Path, required=True, help="File to annotate.")
    if line:
        parser.add_argument(
            "--line", type=int, required=True, help="1-based line number."
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="auditmark",
        description="Attach typed audit notes to lines of a git repository.",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding audit sessions (default: from config).",
    )
    parser.add_argument(
        "--config", type=Path, default=None, help="Path to an auditmark.toml file."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    type_choices = [note_type.value for note_type in NoteType]

    add_parser = subparsers.add_parser("add", help="Add a note at a file line.")
    _add_location_args(add_parser)
    add_parser.add_argument("--type", choices=type_choices, help="Note type.")
    add_parser.add_argument("--text", help="Note text.")
    add_parser.set_defaults(func=_add_cmd)

    rm_parser = subparsers.add_parser("rm", help="Remove notes at a file line.")
    _add_location_args(rm_parser)
    rm_group = rm_parser.add_mutually_exclusive_group()
    rm_group.add_argument(
        "--index", type=int, help="Remove only the N-th note at this line (1-based)."
    )
    rm_group.add_argument(
        "--all", action="store_true", help="Remove every note at this line."
    )
    rm_parser.set_defaults(func=_rm_cmd)

    rm_file_parser = subparsers.add_parser(
        "rm-file", help="Remove all notes in a file."
    )
    _add_location_args(rm_file_parser, line=False)
    rm_file_parser.add_argument("--yes", action="store_true", help="Skip confirmation.")
    rm_file_parser.set_defaults(func=_rm_file_cmd)

    show_parser = subparsers.add_parser("show", help="Show notes at a file line.")
    _add_location_args(show_parser)
    show_parser.set_defaults(func=_show_cmd)

    list_parser = subparsers.add_parser(
        "list", help="List notes in the current session."
    )
    list_parser.add_argument("--file", type=Path, default=None, help="Only this file.")
    list_parser.add_argument(
        "--type", choices=type_choices, help="Only this note type."
    )
    list_parser.set_defaults(func=_list_cmd)

    next_parser = subparsers.add_parser("next", help="Print the next annotated line.")
    _add_location_args(next_parser)
    next_parser.add_argument("--show", action="store_true", help="Also show its notes.")
    next_parser.set_defaults(func=_next_cmd)

    export_parser = subparsers.add_parser("export", help="Export notes as markdown.")
    export_parser.add_argument("--output", type=Path, default=None, help="Report path.")
    export_parser.add_argument(
        "--group-by", choices=["file", "type"], default="file", help="Report grouping."
    )
    export_parser.set_defaults(func=_export_cmd)

    stats_parser = subparsers.add_parser("stats", help="Show session statistics.")
    stats_parser.set_defaults(func=_stats_cmd)

    sessions_parser = subparsers.add_parser(
        "sessions", help="List audit sessions for this repository."
    )
    sessions_parser.set_defaults(func=_sessions_cmd)

    diff_parser = subparsers.add_parser(
        "diff", help="Compare the current session with another commit's session."
    )
    diff_parser.add_argument(
        "--against", help="Commit to compare with (default: most recently modified)."
    )
    diff_parser.set_defaults(func=_diff_cmd)

    restore_parser = subparsers.add_parser(
        "restore", help="Copy notes orphaned in another session into this one."
    )
    restore_parser.add_argument(
        "--from",
        dest="source",
        help="Commit to restore from (default: most recently modified).",
    )
    restore_parser.add_argument(
        "--fingerprint",
        action="append",
        default=[],
        help="Restore only notes with this fingerprint (repeatable).",
    )
    restore_parser.set_defaults(func=_restore_cmd)

    harmonize_parser = subparsers.add_parser(
        "harmonize", help="Merge unique notes from all sibling sessions into this one."
    )
    harmonize_parser.set_defaults(func=_harmonize_cmd)

    clean_parser = subparsers.add_parser("clean", help="Delete empty audit sessions.")
    clean_parser.add_argument(
        "--all",
        action="store_true",
        help="Clean every repository in the data directory, not just this one.",
    )
    clean_parser.set_defaults(func=_clean_cmd)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    try:
        config = load_config(args.config)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise SystemExit(f"Cannot load configuration: {exc}") from exc
    _setup_logging(config.log_level)
    if args.data_dir is None:
        args.data_dir = config.data_dir
    args.report_path = config.report_path

    try:
        return args.func(args)
    except NotEnoughSessions as exc:
        print(exc)
        return 1
    except (SessionError, GitError, ValueError) as exc:
        raise SystemExit(str(exc)) from exc


if __name__ == "__main__":
    sys.exit(main())

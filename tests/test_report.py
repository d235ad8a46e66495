from __future__ import annotations

from pathlib import Path

from auditmark.models import NotesDocument, NoteType, SessionMetadata
from auditmark.report import (
    calculate_stats,
    format_notes,
    format_stats,
    generate_permalink,
    render_report,
    session_stats,
)
from auditmark.session import Session
from conftest import make_note


def _session(host: str = "github.com") -> Session:
    return Session(
        host=host,
        owner="ethereum",
        repo="solidity",
        commit="bbbbbbb",
        path=Path("/unused"),
        repo_root=Path("/src/solidity"),
        repo_url="git@github.com:ethereum/solidity.git",
    )


def _metadata(**overrides: object) -> SessionMetadata:
    values: dict[str, object] = {
        "repo_url": "git@github.com:ethereum/solidity.git",
        "repo_root": "/src/solidity",
        "base_ref": "bbbbbbb",
        "created_at": "2024-03-01T10:00:00Z",
        "last_modified": "2024-03-05T12:00:00Z",
        **overrides,
    }
    return SessionMetadata(**values)  # type: ignore[arg-type]


def _document() -> NotesDocument:
    return NotesDocument(
        notes=[
            make_note("libsolidity/a.cpp", 12, "f1", commit="bbbbbbb", text="Overflow on add."),
            make_note(
                "libsolidity/a.cpp",
                40,
                "f2",
                commit="aaaaaaa",
                note_type=NoteType.QUESTION,
                text="Is this reachable?",
            ),
            make_note("README.md", 3, "f3", commit="bbbbbbb", note_type=NoteType.SAFE, text="Fine."),
        ]
    )


def test_generate_permalink_for_known_forges() -> None:
    assert (
        generate_permalink("github.com", "ethereum", "solidity", "abc1234", "src/a.cpp", 7)
        == "https://github.com/ethereum/solidity/blob/abc1234/src/a.cpp#L7"
    )
    assert (
        generate_permalink("gitlab.com", "group", "proj", "abc1234", "a.py", 1)
        == "https://gitlab.com/group/proj/-/blob/abc1234/a.py#L1"
    )
    assert generate_permalink("git.example.org", "o", "r", "c", "a.py", 1) is None


def test_calculate_stats_counts_every_type() -> None:
    stats = calculate_stats(_document().notes)
    assert stats[NoteType.FINDING] == 1
    assert stats[NoteType.QUESTION] == 1
    assert stats[NoteType.SAFE] == 1
    assert stats[NoteType.INVARIANT] == 0
    assert list(stats) == list(NoteType)


def test_render_report_groups_by_file() -> None:
    report = render_report(_session(), _document(), _metadata())

    assert report.startswith("# Audit Report: ethereum/solidity\nRef: bbbbbbb\n")
    assert "Started: 2024-03-01" in report
    assert "Last Updated: 2024-03-05" in report
    assert "- 1 Findings" in report
    assert "- 0 Invariants" in report
    assert report.index("## README.md") < report.index("## libsolidity/a.cpp")
    assert "### Line 12 [FINDING]" in report
    assert (
        "**Link:** https://github.com/ethereum/solidity/blob/bbbbbbb/libsolidity/a.cpp#L12"
        in report
    )
    assert "/blob/aaaaaaa/libsolidity/a.cpp#L40" in report
    assert "Added: 2024-01-01" in report
    assert "Overflow on add." in report
    assert "{%" not in report
    assert "Harmonized From" not in report


def test_render_report_groups_by_type_and_shows_provenance() -> None:
    document = _document()
    document.notes[2].restored_from = "0000001"
    report = render_report(
        _session("git.example.org"),
        document,
        _metadata(harmonized_from=["aaaaaaa"]),
        group_by="type",
    )

    assert report.index("## Findings") < report.index("## Questions")
    assert report.index("## Questions") < report.index("## Marked Safe")
    assert "## Invariants" not in report
    assert "### libsolidity/a.cpp:12" in report
    assert "**Link:**" not in report
    assert "Restored from: 0000001" in report
    assert "Harmonized From: aaaaaaa" in report


def test_render_report_without_metadata() -> None:
    report = render_report(_session(), NotesDocument(), None)
    assert "Ref: bbbbbbb" in report
    assert "Started: unknown" in report
    assert "- 0 Findings" in report


def test_format_stats_lists_totals() -> None:
    stats = session_stats(_session(), _document(), _metadata())
    text = format_stats(stats)

    assert stats["total"] == 3
    assert stats["files"] == 2
    assert "Audit Session: github.com/ethereum/solidity" in text
    assert "Commit: bbbbbbb" in text
    assert "Started: 2024-03-01" in text
    assert "Files Annotated: 2" in text
    assert "Findings:" in text and "Invariants:" in text


def test_format_notes_numbers_only_when_ambiguous() -> None:
    single = format_notes([make_note("a.py", 1, "x", text="one")])
    assert "[FINDING] a.py:1" in single
    assert "Note 1" not in single

    several = format_notes(
        [make_note("a.py", 1, "x", text="one"), make_note("a.py", 1, "y", note_type=NoteType.COMMENT)]
    )
    assert "Note 1 [FINDING]" in several
    assert "Note 2 [COMMENT]" in several

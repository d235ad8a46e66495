from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

CONTEXT_RADIUS = 2
_LINE_DELIMITER = "|"
_DJB2_SEED = 5381
_HASH_MASK = 0xFFFFFFFF


def normalize_line(value: str) -> str:
    return " ".join(value.split())


def djb2(data: bytes) -> int:
    value = _DJB2_SEED
    for byte in data:
        value = (value * 33 + byte) & _HASH_MASK
    return value


def _fingerprint_key(file_path: str, context_lines: Sequence[str]) -> str:
    parts = [file_path, ":"]
    for line in context_lines:
        parts.append(normalize_line(line))
        parts.append(_LINE_DELIMITER)
    return "".join(parts)


def generate_fingerprint(
    file_path: str, line_number: int, context_lines: Sequence[str]
) -> str:
    """Fingerprint a note location from its path and surrounding text.

    Only the path and the normalized context lines feed the hash; the line
    number is accepted for validation so that the same code at a different
    line yields the same fingerprint.
    """
    if line_number < 1:
        raise ValueError(f"line_number must be positive, got {line_number}")
    if len(context_lines) > 2 * CONTEXT_RADIUS + 1:
        raise ValueError(
            f"at most {2 * CONTEXT_RADIUS + 1} context lines are hashed, "
            f"got {len(context_lines)}"
        )
    key = _fingerprint_key(file_path, context_lines)
    return f"{djb2(key.encode('utf-8')):08x}"


def context_window(
    lines: Sequence[str], line_number: int, radius: int = CONTEXT_RADIUS
) -> list[str]:
    if line_number < 1 or line_number > len(lines):
        raise ValueError(
            f"line {line_number} is outside the file (1-{len(lines)})"
        )
    index = line_number - 1
    return list(lines[max(0, index - radius) : index + radius + 1])


def fingerprint_lines(file_path: str, lines: Sequence[str], line_number: int) -> str:
    context = context_window(lines, line_number)
    return generate_fingerprint(file_path, line_number, context)


def split_source_lines(text: str) -> list[str]:
    """Split on LF only, the way git numbers lines, dropping the CR of CRLF."""
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line.removesuffix("\r") for line in lines]


def fingerprint_file_line(repo_root: Path, file_path: str, line_number: int) -> str:
    source = repo_root / file_path
    text = source.read_bytes().decode("utf-8", errors="replace")
    lines = split_source_lines(text)
    return fingerprint_lines(file_path, lines, line_number)

"""Configuration loading from environment variables and auditmark.toml."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

_CONFIG_FILENAME = "auditmark.toml"
_DEFAULT_REPORT_PATH = Path("audit-report.md")
_DEFAULT_LOG_LEVEL = "WARNING"


def default_data_dir() -> Path:
    xdg_data_home = os.getenv("XDG_DATA_HOME")
    base = Path(xdg_data_home) if xdg_data_home else Path.home() / ".local" / "share"
    return base / "auditmark"


def _config_candidates() -> list[Path]:
    xdg_config_home = os.getenv("XDG_CONFIG_HOME")
    config_home = Path(xdg_config_home) if xdg_config_home else Path.home() / ".config"
    return [Path.cwd() / _CONFIG_FILENAME, config_home / "auditmark" / _CONFIG_FILENAME]


@dataclass
class AuditmarkConfig:
    data_dir: Path
    log_level: str = _DEFAULT_LOG_LEVEL
    report_path: Path = _DEFAULT_REPORT_PATH


def _read_config_file(config_path: Path | None) -> dict[str, Any]:
    if config_path is not None:
        return tomllib.loads(config_path.read_text(encoding="utf-8"))
    for candidate in _config_candidates():
        if candidate.is_file():
            return tomllib.loads(candidate.read_text(encoding="utf-8"))
    return {}


def load_config(config_path: Path | None = None) -> AuditmarkConfig:
    """Load configuration.

    Priority: environment variables > auditmark.toml > defaults. An explicit
    ``config_path`` must exist; otherwise the current directory and the user
    config directory are searched.
    """
    file_data = _read_config_file(config_path)

    data_dir = os.getenv("AUDITMARK_DATA_DIR") or file_data.get("data_dir")
    return AuditmarkConfig(
        data_dir=Path(data_dir).expanduser() if data_dir else default_data_dir(),
        log_level=os.getenv(
            "AUDITMARK_LOG_LEVEL", file_data.get("log_level", _DEFAULT_LOG_LEVEL)
        ),
        report_path=Path(file_data.get("report_path", _DEFAULT_REPORT_PATH)),
    )

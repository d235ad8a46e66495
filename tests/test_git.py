from __future__ import annotations

from pathlib import Path

import pytest

import auditmark.git as git_module
from auditmark.git import GitRepo, parse_remote_url, relative_path
from auditmark.models import RemoteInfo


@pytest.mark.parametrize(
    "url",
    [
        "git@github.com:ethereum/solidity.git",
        "git@github.com:ethereum/solidity",
        "https://github.com/ethereum/solidity.git",
        "https://github.com/ethereum/solidity",
        "https://user@github.com/ethereum/solidity.git",
        "ssh://git@github.com/ethereum/solidity.git",
    ],
)
def test_parse_remote_url_forms(url: str) -> None:
    assert parse_remote_url(url) == RemoteInfo("github.com", "ethereum", "solidity")


@pytest.mark.parametrize("url", [None, "", "not a url", "https://github.com/only-owner", "/local/path.git"])
def test_parse_remote_url_rejects_unknown_forms(url: str | None) -> None:
    assert parse_remote_url(url) is None


def test_relative_path_inside_and_outside_repo(tmp_path: Path) -> None:
    root = tmp_path / "repo"
    assert relative_path(root / "src" / "a.py", root) == "src/a.py"
    assert relative_path(str(root / "src" / "a.py"), str(root) + "/") == "src/a.py"
    assert relative_path(tmp_path / "elsewhere" / "b.py", root) == "b.py"


def test_git_repo_queries(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls: list[tuple[list[str], Path | None]] = []
    responses = {
        ("rev-parse", "--is-inside-work-tree"): "true",
        ("rev-parse", "--show-toplevel"): str(tmp_path),
        ("rev-parse", "--short=7", "HEAD"): "abc1234",
        ("remote", "get-url", "origin"): "git@github.com:ethereum/solidity.git",
    }

    def fake_run(args: list[str], *, cwd: Path | None = None) -> str | None:
        calls.append((args, cwd))
        return responses.get(tuple(args))

    monkeypatch.setattr(git_module, "_run_git_command", fake_run)
    repo = GitRepo(tmp_path)

    assert repo.is_repo()
    assert repo.repo_root() == tmp_path
    assert repo.head_commit() == "abc1234"
    assert repo.remote_url() == "git@github.com:ethereum/solidity.git"
    assert repo.remote_url("upstream") is None
    assert all(cwd == tmp_path for _, cwd in calls)


def test_git_repo_outside_repository(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(git_module, "_run_git_command", lambda args, *, cwd=None: None)
    repo = GitRepo(tmp_path)
    assert not repo.is_repo()
    assert repo.repo_root() is None
    assert repo.head_commit() is None
    assert repo.remote_url() is None


def test_missing_git_binary_raises_git_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(*args: object, **kwargs: object) -> None:
        raise FileNotFoundError("git")

    monkeypatch.setattr(git_module.subprocess, "run", boom)
    with pytest.raises(git_module.GitError, match="could not run git"):
        git_module._run_git_command(["status"])

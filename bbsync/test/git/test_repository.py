"""Tests for git/repository.py."""

from __future__ import annotations

import asyncio
import shutil
import subprocess
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from bbsync.core.result import Err, Ok
from bbsync.git.repository import (
    GitError,
    Repository,
    parse_branch_list,
    parse_head_branch,
)
from bbsync.platform.process import ProcessError

REMOTE_SHOW = """\
* remote origin
  Fetch URL: ssh://git@bb:7999/proj/api.git
  Push  URL: ssh://git@bb:7999/proj/api.git
  HEAD branch: develop
  Remote branches:
    develop tracked
    main    tracked
"""


# =============================================================================
# Parsing
# =============================================================================


class TestParseHeadBranch:
    def test_parses_branch(self) -> None:
        assert parse_head_branch(REMOTE_SHOW) == "develop"

    def test_unknown(self) -> None:
        assert parse_head_branch("* remote origin\n  HEAD branch: (unknown)\n") is None

    def test_ambiguous(self) -> None:
        output = "  HEAD branch (remote HEAD is ambiguous, may be one of the following):\n"
        assert parse_head_branch(output) is None

    def test_missing(self) -> None:
        assert parse_head_branch("* remote origin\n  Fetch URL: x\n") is None


class TestParseBranchList:
    def test_markers_are_dropped(self) -> None:
        output = "  feature/a\n* main\n+ other-worktree\n"
        assert parse_branch_list(output) == ["feature/a", "main", "other-worktree"]

    def test_detached_head_is_skipped(self) -> None:
        output = "* (HEAD detached at 1a2b3c)\n  main\n"
        assert parse_branch_list(output) == ["main"]

    def test_empty(self) -> None:
        assert parse_branch_list("") == []


# =============================================================================
# Commands (mocked)
# =============================================================================


class TestRepositoryMocked:
    def test_default_branch(self, tmp_path: Path) -> None:
        with patch(
            "bbsync.git.repository.run_process", new=AsyncMock(return_value=Ok(REMOTE_SHOW))
        ) as run:
            result = asyncio.run(Repository(tmp_path).default_branch())

        assert result == Ok("develop")
        cmd = run.call_args.args[0]
        assert cmd == ["git", "-C", str(tmp_path), "remote", "show", "origin"]
        assert run.call_args.kwargs["env"] == {
            "GIT_TERMINAL_PROMPT": "0",
            "LC_ALL": "C",
            "LANGUAGE": "C",
        }

    def test_default_branch_unknown(self, tmp_path: Path) -> None:
        output = "* remote origin\n  HEAD branch: (unknown)\n"
        with patch("bbsync.git.repository.run_process", new=AsyncMock(return_value=Ok(output))):
            result = asyncio.run(Repository(tmp_path).default_branch())

        assert isinstance(result, Err)
        assert result.error.kind == "default_branch_unknown"

    def test_failure_carries_first_stderr_line(self, tmp_path: Path) -> None:
        error = ProcessError(
            command=("git", "pull"),
            kind="exited",
            returncode=128,
            stdout="",
            stderr="fatal: Not possible to fast-forward, aborting.\nhint: ...\n",
        )
        with patch("bbsync.git.repository.run_process", new=AsyncMock(return_value=Err(error))):
            result = asyncio.run(Repository(tmp_path).pull_ff())

        assert result == Err(
            GitError(
                command="pull",
                message="fatal: Not possible to fast-forward, aborting.",
                kind="exited",
                returncode=128,
            )
        )

    def test_pull_arguments(self, tmp_path: Path) -> None:
        with patch("bbsync.git.repository.run_process", new=AsyncMock(return_value=Ok(""))) as run:
            asyncio.run(Repository(tmp_path).pull_ff())

        assert run.call_args.args[0][-4:] == ["pull", "--autostash", "--ff-only", "--rebase"]

    def test_pull_names_origin_branch(self, tmp_path: Path) -> None:
        with patch("bbsync.git.repository.run_process", new=AsyncMock(return_value=Ok(""))) as run:
            asyncio.run(Repository(tmp_path).pull_ff("develop"))

        assert run.call_args.args[0][-6:] == [
            "pull",
            "--autostash",
            "--ff-only",
            "--rebase",
            "origin",
            "develop",
        ]

    def test_clone_separates_url_from_options(self, tmp_path: Path) -> None:
        with patch("bbsync.git.repository.run_process", new=AsyncMock(return_value=Ok(""))) as run:
            asyncio.run(Repository.clone("--upload-pack=evil", tmp_path / "api"))

        assert run.call_args.args[0] == ["git", "clone", "--", "--upload-pack=evil", "api"]
        assert run.call_args.kwargs["cwd"] == tmp_path

    def test_current_branch_detached(self, tmp_path: Path) -> None:
        with patch("bbsync.git.repository.run_process", new=AsyncMock(return_value=Ok("HEAD\n"))):
            result = asyncio.run(Repository(tmp_path).current_branch())

        assert result == Ok(None)

    def test_spawn_failure(self, tmp_path: Path) -> None:
        error = ProcessError(("git",), "spawn", -1, "", "No such file or directory: 'git'")
        with patch("bbsync.git.repository.run_process", new=AsyncMock(return_value=Err(error))):
            result = asyncio.run(Repository(tmp_path).head_sha())

        assert isinstance(result, Err)
        assert result.error.kind == "spawn"


# =============================================================================
# Real git
# =============================================================================


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise RuntimeError(
            f"git {' '.join(args)} failed (code {result.returncode}): {result.stderr.strip()}"
        )
    return result.stdout.strip()


@pytest.mark.skipif(shutil.which("git") is None, reason="git not available")
def test_clone_and_inspect(tmp_path: Path) -> None:
    remote = tmp_path / "api.git"
    seed = tmp_path / "seed"
    _git(tmp_path, "init", "--bare", "-b", "trunk", str(remote))
    seed.mkdir()
    _git(seed, "init", "-b", "trunk")
    _git(seed, "config", "user.email", "test@example.com")
    _git(seed, "config", "user.name", "Test")
    (seed / "README").write_text("hi\n", encoding="utf-8")
    _git(seed, "add", "README")
    _git(seed, "commit", "-m", "init")
    _git(seed, "push", remote.as_uri(), "trunk")

    dest = tmp_path / "out" / "api"
    dest.parent.mkdir()

    async def scenario() -> tuple[object, object, object, object]:
        cloned = await Repository.clone(remote.as_uri(), dest)
        repo = Repository(dest)
        return (
            cloned,
            await repo.default_branch(),
            await repo.current_branch(),
            await repo.head_sha(),
        )

    cloned, default, current, sha = asyncio.run(scenario())

    assert isinstance(cloned, Ok)
    assert cloned.value.exists()
    assert default == Ok("trunk")
    assert current == Ok("trunk")
    assert sha == Ok(_git(seed, "rev-parse", "HEAD"))

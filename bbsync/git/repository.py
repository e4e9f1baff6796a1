"""Git repository abstraction.

This module provides the Repository class for the git operations the sync
engine needs on a single checkout. All operations are coroutines returning
Result types; git always runs with an argument vector and with
``GIT_TERMINAL_PROMPT=0`` so that it never waits on a credential prompt,
and under the C locale so that its output can be parsed.

Usage:
    repo = Repository(Path("/srv/mirror/proj/api"))

    match await repo.default_branch():
        case Ok(branch):
            print(f"Default: {branch}")
        case Err(e):
            print(f"Error: {e.message}")
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from bbsync.core.result import Err, Ok, Result
from bbsync.platform.process import ProcessError
from bbsync.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 60.0
_GIT_NETWORK_TIMEOUT_SECONDS = 10 * 60.0
_NETWORK_COMMANDS = frozenset({"clone", "fetch", "pull", "remote"})

# Untranslated output: parse_head_branch matches the English "HEAD branch:" label.
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "LC_ALL": "C", "LANGUAGE": "C"}

__all__ = [
    "GIT_ENV",
    "GitError",
    "GitErrorKind",
    "Repository",
    "parse_head_branch",
    "parse_branch_list",
]

GitErrorKind = Literal["exited", "spawn", "default_branch_unknown"]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed (e.g. "pull")
        message: One-line cause
        kind: "exited", "spawn", or "default_branch_unknown"
        returncode: Process return code (-1 when not available)
    """

    command: str
    message: str
    kind: GitErrorKind = "exited"
    returncode: int = 1

    @classmethod
    def from_process(cls, command: str, error: ProcessError) -> GitError:
        return cls(
            command=command,
            message=error.summary,
            kind=error.kind,
            returncode=error.returncode,
        )


def parse_head_branch(output: str) -> str | None:
    """Extract the remote default branch from ``git remote show origin``.

    Returns None when the line is missing or git reports ``(unknown)``.
    """
    for line in output.splitlines():
        label, sep, value = line.strip().partition(":")
        if not sep or label.strip() != "HEAD branch":
            continue
        branch = value.strip()
        if not branch or branch == "(unknown)" or " " in branch:
            return None
        return branch
    return None


def parse_branch_list(output: str) -> list[str]:
    """Parse ``git branch`` output into branch names.

    The current-branch marker (``*``) and worktree marker (``+``) are dropped,
    as are detached HEAD entries.
    """
    branches: list[str] = []
    for line in output.splitlines():
        name = line.strip()
        if name[:2] in ("* ", "+ "):
            name = name[2:].strip()
        if not name or name.startswith("("):
            continue
        branches.append(name)
    return branches


class Repository:
    """Git checkout on disk.

    Attributes:
        path: Path to the repository root
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        """Check if the checkout directory exists."""
        return self.path.is_dir()

    @classmethod
    async def clone(cls, url: str, path: Path) -> Result[Repository, GitError]:
        """Clone ``url`` into ``path`` (``git clone -- <url> <name>`` in its parent)."""
        result = await _git(["clone", "--", url, path.name], cwd=path.parent, command="clone")
        match result:
            case Err(e):
                return Err(GitError.from_process("clone", e))
            case Ok(_):
                return Ok(cls(path))

    async def reset_hard(self) -> Result[None, GitError]:
        return await self._simple("reset", "--hard")

    async def default_branch(self) -> Result[str, GitError]:
        """Remote default branch as reported by ``git remote show origin``.

        Never guessed: an unparsable answer is a ``default_branch_unknown``
        error.
        """
        result = await self._run(["remote", "show", "origin"])
        match result:
            case Err(e):
                return Err(GitError.from_process("remote show origin", e))
            case Ok(stdout):
                branch = parse_head_branch(stdout)
                if branch is None:
                    return Err(
                        GitError(
                            command="remote show origin",
                            message="Default branch unknown",
                            kind="default_branch_unknown",
                        )
                    )
                return Ok(branch)

    async def current_branch(self) -> Result[str | None, GitError]:
        """Current branch name, None on a detached HEAD."""
        result = await self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        match result:
            case Err(e):
                return Err(GitError.from_process("rev-parse", e))
            case Ok(stdout):
                branch = stdout.strip()
                return Ok(None if branch == "HEAD" else branch)

    async def head_sha(self) -> Result[str, GitError]:
        result = await self._run(["rev-parse", "HEAD"])
        match result:
            case Err(e):
                return Err(GitError.from_process("rev-parse", e))
            case Ok(stdout):
                return Ok(stdout.strip())

    async def pull_ff(self, branch: str | None = None) -> Result[None, GitError]:
        """Fast-forward-only pull with autostash; divergence is an error.

        With ``branch`` the pull names ``origin <branch>`` explicitly, so it
        works for a local branch that has no upstream configured.
        """
        args = ["pull", "--autostash", "--ff-only", "--rebase"]
        if branch is not None:
            args += ["origin", branch]
        return await self._simple(*args)

    async def fetch_branch(self, branch: str) -> Result[None, GitError]:
        """Fetch ``origin/<branch>`` into the same-named local branch."""
        return await self._simple("fetch", "origin", f"{branch}:{branch}")

    async def fetch_remote_branch(self, branch: str) -> Result[None, GitError]:
        """Update ``origin/<branch>`` without touching local branches."""
        return await self._simple("fetch", "origin", branch)

    async def checkout_force(self, branch: str) -> Result[None, GitError]:
        return await self._simple("checkout", "--force", branch)

    async def merged_branches(self, into: str) -> Result[list[str], GitError]:
        """Local branches already merged into ``into``."""
        result = await self._run(["branch", "--merged", into])
        match result:
            case Err(e):
                return Err(GitError.from_process("branch --merged", e))
            case Ok(stdout):
                return Ok(parse_branch_list(stdout))

    async def delete_branch(self, branch: str) -> Result[None, GitError]:
        return await self._simple("branch", "-d", branch)

    async def _simple(self, *args: str) -> Result[None, GitError]:
        result = await self._run(list(args))
        match result:
            case Err(e):
                return Err(GitError.from_process(args[0], e))
            case Ok(_):
                return Ok(None)

    async def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        return await _git(["-C", str(self.path), *args], cwd=self.path, command=args[0])


async def _git(args: list[str], *, cwd: Path, command: str) -> Result[str, ProcessError]:
    timeout = (
        _GIT_NETWORK_TIMEOUT_SECONDS if command in _NETWORK_COMMANDS else _GIT_TIMEOUT_SECONDS
    )
    return await run_process(["git", *args], cwd=cwd, env=GIT_ENV, timeout=timeout)

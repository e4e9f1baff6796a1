"""Per-repository clone-or-update workflow.

A repository lives at ``{output_directory}/{project_key}/{name}``:

- absent: clone it (terminal on failure)
- present: optionally hard-reset onto the remote default branch, then bring
  the default branch up to date by fast-forward only, then delete local
  branches already merged into it

The remote default branch is always read from ``git remote show origin``
and never guessed.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from bbsync.bitbucket.models import Repo
from bbsync.core.config import SyncOptions
from bbsync.core.result import Err, Ok
from bbsync.git.repository import GitError, Repository

__all__ = [
    "OutcomeKind",
    "SyncFailure",
    "SyncOutcome",
    "failure_message",
    "repo_path",
    "sync_repo",
]


class OutcomeKind(StrEnum):
    CLONED = "cloned"
    UPDATED = "updated"
    UP_TO_DATE = "up_to_date"
    FAILED = "failed"

    @property
    def tag(self) -> str:
        """One-character tag shown per repository."""
        return _TAGS[self]


_TAGS = {
    OutcomeKind.CLONED: "c",
    OutcomeKind.UPDATED: "U",
    OutcomeKind.UP_TO_DATE: "u",
    OutcomeKind.FAILED: "F",
}


@dataclass(frozen=True, slots=True)
class SyncOutcome:
    """What happened to one repository.

    Attributes:
        repo: The repository worked on
        kind: Outcome kind
        reason: Failure message (empty unless ``kind`` is FAILED)
    """

    repo: Repo
    kind: OutcomeKind
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is not OutcomeKind.FAILED


class SyncFailure(Exception):
    """A step of the workflow failed; ends the repository's workflow."""

    def __init__(self, step: str, cause: str) -> None:
        super().__init__(f"{step}. Cause: {cause}")
        self.step = step
        self.cause = cause


def repo_path(repo: Repo, options: SyncOptions) -> Path:
    return options.output_directory / repo.project_key / repo.name


def failure_message(repo: Repo, step: str, cause: str) -> str:
    return f"{repo.project_key}/{repo.name} {step}. Cause: {cause}"


def _cause(error: GitError) -> str:
    if error.kind == "spawn":
        return f"could not start git: {error.message}"
    return error.message


async def sync_repo(repo: Repo, options: SyncOptions) -> SyncOutcome:
    """Clone or update one repository.

    Never raises for git failures: every failure becomes a FAILED outcome
    carrying ``{key}/{name} {step}. Cause: {cause}``.
    """
    try:
        kind = await _sync(repo, options)
    except SyncFailure as e:
        return SyncOutcome(repo, OutcomeKind.FAILED, failure_message(repo, e.step, e.cause))
    return SyncOutcome(repo, kind)


async def _sync(repo: Repo, options: SyncOptions) -> OutcomeKind:
    path = repo_path(repo, options)
    repository = Repository(path)

    if not repository.exists():
        await _clone(repo, path, options)
        return OutcomeKind.CLONED

    before = await repository.head_sha()
    default: str | None = None
    if options.reset_state:
        default = await _reset(repository)

    if default is None:
        default = await _default_branch(repository)

    await _update(repository, default)
    await _prune(repository, default)
    after = await repository.head_sha()

    match (before, after):
        case (Ok(old), Ok(new)) if old == new:
            return OutcomeKind.UP_TO_DATE
        case _:
            return OutcomeKind.UPDATED


async def _clone(repo: Repo, path: Path, options: SyncOptions) -> None:
    step = f"failed git clone into {options.output_directory}"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SyncFailure(step, f"could not create {path.parent}: {e}") from e

    match await Repository.clone(repo.url, path):
        case Err(e):
            raise SyncFailure(step, _cause(e))
        case Ok(_):
            pass


async def _default_branch(repository: Repository) -> str:
    match await repository.default_branch():
        case Err(e) if e.kind == "default_branch_unknown":
            raise SyncFailure("failed resolving default branch", "Default branch unknown")
        case Err(e):
            raise SyncFailure("failed resolving default branch", _cause(e))
        case Ok(branch):
            return branch


async def _reset(repository: Repository) -> str:
    match await repository.reset_hard():
        case Err(e):
            raise SyncFailure("failed resetting repo", _cause(e))
        case Ok(_):
            pass

    default = await _default_branch(repository)
    match await repository.fetch_remote_branch(default):
        case Err(e):
            raise SyncFailure(f"failed git fetch origin {default}", _cause(e))
        case Ok(_):
            pass
    # A default branch only known as origin/<default> is created by checkout.
    await _checkout(repository, default)
    return default


async def _update(repository: Repository, default: str) -> None:
    current = await repository.current_branch()
    if isinstance(current, Ok) and current.value == default:
        match await repository.pull_ff(default):
            case Err(e):
                raise SyncFailure("failed git pull", _cause(e))
            case Ok(_):
                return

    match await repository.fetch_branch(default):
        case Err(e):
            raise SyncFailure(f"failed git fetch origin {default}", _cause(e))
        case Ok(_):
            pass
    # The current branch may have diverged; that is expected here.
    await repository.pull_ff()
    await _checkout(repository, default)


async def _checkout(repository: Repository, branch: str) -> None:
    match await repository.checkout_force(branch):
        case Err(e):
            raise SyncFailure(f"failed 'checkout {branch}'", _cause(e))
        case Ok(_):
            pass


async def _prune(repository: Repository, default: str) -> None:
    current = await repository.current_branch()
    keep = {default}
    if isinstance(current, Ok) and current.value is not None:
        keep.add(current.value)

    match await repository.merged_branches(default):
        case Err(e):
            raise SyncFailure("failed listing merged branches", _cause(e))
        case Ok(branches):
            for branch in branches:
                if branch in keep:
                    continue
                deleted = await repository.delete_branch(branch)
                if isinstance(deleted, Err):
                    raise SyncFailure(f"failed deleting branch {branch}", _cause(deleted.error))

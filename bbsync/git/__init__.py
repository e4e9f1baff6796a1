"""Git operations for bbsync."""

from bbsync.git.repository import GitError, Repository
from bbsync.git.sync import OutcomeKind, SyncOutcome, repo_path, sync_repo

__all__ = [
    "GitError",
    "OutcomeKind",
    "Repository",
    "SyncOutcome",
    "repo_path",
    "sync_repo",
]

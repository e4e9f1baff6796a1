"""Batch orchestration: catalog fetch and concurrent clone-or-update.

``SyncService`` is what the CLI drives. It fetches the catalog through the
bitbucket layer, prepares one directory per project, runs the per-repo
workflow under the git concurrency bound, and prints the report.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from bbsync.bitbucket.fetcher import FetchError, fetch_catalog
from bbsync.bitbucket.filter import filter_repos
from bbsync.bitbucket.http import HttpClient
from bbsync.bitbucket.models import Repo
from bbsync.core.config import Selection, SyncOptions, ValidatedConfig
from bbsync.core.errors import ErrorCode
from bbsync.core.result import Err, Ok, Result
from bbsync.git.sync import OutcomeKind, SyncOutcome, failure_message, sync_repo
from bbsync.output.console import ConsoleProtocol, Style
from bbsync.output.progress import NullProgress, ProgressProtocol
from bbsync.platform.dispatch import dispatch
from bbsync.services.report import SyncReport, aggregate, print_report

__all__ = [
    "SyncError",
    "SyncService",
    "prepare_directories",
    "sync",
]


@dataclass(frozen=True, slots=True)
class SyncError:
    """Fatal error for the whole batch."""

    message: str
    code: ErrorCode = ErrorCode.NETWORK_ERROR
    cause: str = ""


def prepare_directories(repos: Sequence[Repo], options: SyncOptions) -> Result[None, SyncError]:
    """Create ``{output_directory}/{project_key}`` once per project."""
    for key in dict.fromkeys(r.project_key for r in repos):
        path = options.output_directory / key
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Err(
                SyncError(
                    message=f"Unable to create project dir {key}",
                    code=ErrorCode.IO_ERROR,
                    cause=str(e),
                )
            )
    return Ok(None)


async def sync(
    repos: Sequence[Repo],
    options: SyncOptions,
    *,
    progress: ProgressProtocol | None = None,
) -> SyncReport:
    """Clone or update every repo with at most ``options.concurrency`` in flight.

    One repository's failure never affects another; every repo yields
    exactly one outcome.
    """
    progress = progress or NullProgress()

    def crashed(repo: Repo, exc: Exception) -> SyncOutcome:
        return SyncOutcome(
            repo, OutcomeKind.FAILED, failure_message(repo, "failed unexpectedly", repr(exc))
        )

    progress.start("Working repos", len(repos))
    try:
        outcomes = await dispatch(
            repos,
            lambda repo: sync_repo(repo, options),
            limit=options.concurrency,
            on_error=crashed,
            on_done=lambda _repo, _outcome: progress.advance(),
        )
    finally:
        progress.stop()
    return aggregate(outcomes)


class SyncService:
    """Fetch the catalog, then sync it to disk."""

    def __init__(
        self,
        *,
        config: ValidatedConfig,
        console: ConsoleProtocol,
        progress: ProgressProtocol | None = None,
        client: HttpClient | None = None,
    ) -> None:
        self._config = config
        self._console = console
        self._progress = progress or NullProgress()
        self._client = client

    async def fetch(self, selection: Selection) -> Result[list[Repo], SyncError]:
        """Fetch the selected repos, narrowed to the configured keys."""
        options = self._config.sync
        keys = tuple(options.filter_keys)

        try:
            result = await fetch_catalog(
                self._config.connection,
                selection,
                keys,
                client=self._client,
                console=self._console,
                on_entries=self._grow_progress,
                on_done=self._progress.advance,
            )
        finally:
            self._progress.stop()

        match result:
            case Err(e):
                return Err(self._fetch_error(e))
            case Ok(repos):
                return Ok(filter_repos(repos, keys))

    async def run(self, selection: Selection) -> Result[SyncReport, SyncError]:
        """Fetch, clone or update, and print the report.

        Returns Err only for batch-level failures (catalog unreachable,
        project directories not creatable); per-repo failures are part of
        the report.
        """
        fetched = await self.fetch(selection)
        if isinstance(fetched, Err):
            return fetched
        repos = fetched.value

        if not repos:
            self._console.warning("No repos to work on")
            return Ok(SyncReport())

        prepared = prepare_directories(repos, self._config.sync)
        if isinstance(prepared, Err):
            return prepared

        report = await sync(repos, self._config.sync, progress=self._progress)
        print_report(report, self._console, quiet=self._config.sync.quiet)
        return Ok(report)

    def list_repos(self, repos: Sequence[Repo]) -> None:
        for repo in repos:
            self._console.print(repo.display_name)
        self._console.print(f"{len(repos)} repos", Style.DIM)

    def _grow_progress(self, count: int) -> None:
        # One bar per listing; ALL fetches users, then projects.
        self._progress.start("Fetching repos", count)

    def _fetch_error(self, error: FetchError) -> SyncError:
        return SyncError(message=error.message, code=ErrorCode.NETWORK_ERROR, cause=error.cause)

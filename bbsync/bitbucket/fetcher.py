"""Catalog fetching from the Bitbucket Server REST API.

Listing endpoints are paged (``limit=500&start=N``). Each page is retried
when it times out, sleeping ``backoff * (timeouts_so_far + 1)`` seconds
between attempts, where the timeout count is shared by every fetch of the
run. Any other failure (HTTP error status, malformed body, transport error)
is returned immediately.

Usage:
    async with HttpxClient(credentials=conn.credentials, timeout=conn.timeout) as client:
        fetcher = CatalogFetcher(conn, client)
        match await fetcher.fetch_selection(Selection.ALL, keys=()):
            case Ok(repos):
                ...
            case Err(error):
                print(error.message)
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass

from bbsync.bitbucket.filter import filter_entries
from bbsync.bitbucket.http import HttpClient, HttpxClient
from bbsync.bitbucket.models import (
    PROJECTS_PATH,
    USERS_PATH,
    CatalogEntry,
    CatalogPage,
    ProjectEntry,
    Repo,
    RepositoryRecord,
    UserEntry,
    describe,
    parse_page,
    parse_project,
    parse_repository,
    parse_user,
    repos_path,
    select_repos,
)
from bbsync.core.config import Selection, ServerConnection
from bbsync.core.result import Err, Ok, Result
from bbsync.output.console import ConsoleProtocol, Style
from bbsync.platform.dispatch import dispatch

__all__ = [
    "PAGE_LIMIT",
    "CatalogFetcher",
    "FetchError",
    "TimeoutCounter",
    "fetch_catalog",
]

PAGE_LIMIT = 500

type Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class FetchError:
    """Error from fetching a catalog listing.

    Attributes:
        message: What failed, e.g. "Failed fetching projects from bitbucket."
        cause: Response body or transport error detail
        is_timeout: True when every attempt timed out
    """

    message: str
    cause: str = ""
    is_timeout: bool = False

    def describe(self, verbose: bool) -> str:
        if verbose and self.cause:
            return f"{self.message}\nCause: {self.cause}"
        return self.message


class TimeoutCounter:
    """Run-wide count of HTTP timeouts, used to scale retry backoff.

    Only ever incremented, and only from the event loop thread.
    """

    def __init__(self) -> None:
        self._count = 0

    @property
    def value(self) -> int:
        return self._count

    def increment(self) -> int:
        self._count += 1
        return self._count


class CatalogFetcher:
    """Paged, retrying reader of the repository catalog.

    Attributes:
        connection: Server settings (base URL, retries, backoff, concurrency)
        timeouts: Shared timeout counter
    """

    def __init__(
        self,
        connection: ServerConnection,
        client: HttpClient,
        *,
        timeouts: TimeoutCounter | None = None,
        console: ConsoleProtocol | None = None,
        sleep: Sleep = asyncio.sleep,
        page_limit: int = PAGE_LIMIT,
    ) -> None:
        self.connection = connection
        self.timeouts = timeouts or TimeoutCounter()
        self._client = client
        self._console = console
        self._sleep = sleep
        self._page_limit = page_limit

    # -------------------------------------------------------------------------
    # Paging
    # -------------------------------------------------------------------------

    def page_url(self, path: str, start: int) -> str:
        return f"{self.connection.server}{path}?limit={self._page_limit}&start={start}"

    async def fetch_paginated[T](
        self,
        path: str,
        parse_item: Callable[[object], Result[T, str]],
        *,
        naming: str,
    ) -> Result[list[T], FetchError]:
        """Fetch every page of one listing endpoint.

        Args:
            path: Endpoint path below the server base URL
            parse_item: Parser for one element of ``values``
            naming: Human name of the listing used in error messages

        Returns:
            Ok(all items in page order) or Err(FetchError) for the first
            page that could not be fetched
        """
        items: list[T] = []
        start = 0
        while True:
            page_result = await self._fetch_page(path, start, parse_item, naming=naming)
            if isinstance(page_result, Err):
                return page_result
            page = page_result.value
            items.extend(page.items)
            if page.is_last_page:
                return Ok(items)
            if page.size <= 0:
                return Err(
                    FetchError(
                        message=f"Failed fetching {naming} from bitbucket, bad json format.",
                        cause=f"page at start={start} is empty but not the last page",
                    )
                )
            start = page.next_start

    async def _fetch_page[T](
        self,
        path: str,
        start: int,
        parse_item: Callable[[object], Result[T, str]],
        *,
        naming: str,
    ) -> Result[CatalogPage[T], FetchError]:
        url = self.page_url(path, start)
        attempts = self.connection.retries + 1

        for attempt in range(attempts):
            response = await self._client.get(url)
            if isinstance(response, Err):
                error = response.error
                if not error.is_timeout:
                    return Err(
                        FetchError(
                            message=f"Failed fetching {naming} from bitbucket.",
                            cause=error.message,
                        )
                    )
                seen = self.timeouts.value
                self.timeouts.increment()
                if attempt + 1 < attempts:
                    await self._sleep(self.connection.backoff * (seen + 1))
                    continue
                return Err(
                    FetchError(
                        message=(
                            f"Failed fetching {naming} from bitbucket, "
                            f"timed out {attempts} time(s)."
                        ),
                        cause=error.message,
                        is_timeout=True,
                    )
                )

            raw = response.value
            if not raw.is_success:
                return Err(
                    FetchError(
                        message=(
                            f"Failed fetching {naming} from bitbucket, "
                            f"status code: {raw.status}."
                        ),
                        cause=f"Body: '{raw.text}'",
                    )
                )

            try:
                data: object = json.loads(raw.text)
            except json.JSONDecodeError as e:
                return Err(
                    FetchError(
                        message=f"Failed fetching {naming} from bitbucket, bad json format.",
                        cause=str(e),
                    )
                )

            parsed = parse_page(data, parse_item, start=start)
            if isinstance(parsed, Err):
                return Err(
                    FetchError(
                        message=f"Failed fetching {naming} from bitbucket, bad json format.",
                        cause=parsed.error,
                    )
                )
            return parsed

        # attempts is always >= 1, so the loop returns before getting here
        raise AssertionError("unreachable")

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def fetch_projects(self) -> Result[list[ProjectEntry], FetchError]:
        return await self.fetch_paginated(PROJECTS_PATH, parse_project, naming="projects")

    async def fetch_users(self) -> Result[list[UserEntry], FetchError]:
        return await self.fetch_paginated(USERS_PATH, parse_user, naming="users")

    async def fetch_entry_repos(self, entry: CatalogEntry) -> Result[list[Repo], FetchError]:
        """Fetch the repositories of one project or user."""
        result = await self.fetch_paginated(
            repos_path(entry), parse_repository, naming=describe(entry)
        )
        if isinstance(result, Err):
            return result
        records: list[RepositoryRecord] = result.value
        return Ok(select_repos(records, self.connection))

    async def fetch_repos_of(
        self,
        entries: Sequence[CatalogEntry],
        *,
        on_done: Callable[[], None] | None = None,
    ) -> list[Repo]:
        """Fetch repositories of many entries under the HTTP concurrency bound.

        A failing entry is reported as a warning (in verbose mode) and simply
        contributes no repositories.
        """

        def as_error(entry: CatalogEntry, exc: Exception) -> Result[list[Repo], FetchError]:
            return Err(
                FetchError(
                    message=f"Failed fetching {describe(entry)} from bitbucket.",
                    cause=repr(exc),
                )
            )

        results = await dispatch(
            entries,
            self.fetch_entry_repos,
            limit=self.connection.concurrency,
            on_error=as_error,
            on_done=(lambda _entry, _result: on_done()) if on_done is not None else None,
        )

        repos: list[Repo] = []
        for result in results:
            match result:
                case Ok(entry_repos):
                    repos.extend(entry_repos)
                case Err(error):
                    self._warn(error)
        return repos

    async def fetch_selection(
        self,
        selection: Selection,
        keys: Iterable[str] = (),
        *,
        on_entries: Callable[[int], None] | None = None,
        on_done: Callable[[], None] | None = None,
    ) -> Result[list[Repo], FetchError]:
        """Fetch the repositories of the selected part of the catalog.

        The top-level listing (projects and/or users) must succeed. For
        ``Selection.ALL`` one of the two listings may fail, in which case the
        other one's repositories are returned and the failure is warned about.

        Args:
            selection: Projects, users, or both
            keys: Allow-list of project keys / ``~user`` slugs (empty = all)
            on_entries: Called with the number of entries about to be fetched
            on_done: Called once per entry whose repositories were fetched
        """
        keys = tuple(keys)

        match selection:
            case Selection.PROJECTS:
                return await self._fetch_listing(self.fetch_projects, keys, on_entries, on_done)
            case Selection.USERS:
                return await self._fetch_listing(self.fetch_users, keys, on_entries, on_done)
            case Selection.ALL:
                users = await self._fetch_listing(self.fetch_users, keys, on_entries, on_done)
                projects = await self._fetch_listing(
                    self.fetch_projects, keys, on_entries, on_done
                )
                match (users, projects):
                    case (Ok(u), Ok(p)):
                        return Ok([*u, *p])
                    case (Err(e), Ok(p)):
                        self._warn(e, always=True, prefix="Failed loading user repos")
                        return Ok(p)
                    case (Ok(u), Err(e)):
                        self._warn(e, always=True, prefix="Failed loading project repos")
                        return Ok(u)
                    case (Err(ue), Err(pe)):
                        return Err(
                            FetchError(
                                message=(
                                    f"Failed loading user repos due to '{ue.message}'. "
                                    f"Failed loading project repos due to '{pe.message}'"
                                ),
                                cause="\n".join(c for c in (ue.cause, pe.cause) if c),
                                is_timeout=ue.is_timeout and pe.is_timeout,
                            )
                        )
        raise ValueError(f"unknown selection: {selection}")

    async def _fetch_listing[E: CatalogEntry](
        self,
        listing: Callable[[], Awaitable[Result[list[E], FetchError]]],
        keys: tuple[str, ...],
        on_entries: Callable[[int], None] | None,
        on_done: Callable[[], None] | None,
    ) -> Result[list[Repo], FetchError]:
        entries_result = await listing()
        if isinstance(entries_result, Err):
            return entries_result
        entries = filter_entries(entries_result.value, keys)
        if on_entries is not None:
            on_entries(len(entries))
        return Ok(await self.fetch_repos_of(entries, on_done=on_done))

    def _warn(self, error: FetchError, *, always: bool = False, prefix: str | None = None) -> None:
        if self._console is None or not (always or self.connection.verbose):
            return
        message = f"{prefix} due to '{error.message}'" if prefix else error.message
        self._console.warning(message)
        if self.connection.verbose and error.cause:
            self._console.print(f"Cause: {error.cause}", Style.DIM)


async def fetch_catalog(
    connection: ServerConnection,
    selection: Selection = Selection.PROJECTS,
    keys: Iterable[str] = (),
    *,
    client: HttpClient | None = None,
    console: ConsoleProtocol | None = None,
    on_entries: Callable[[int], None] | None = None,
    on_done: Callable[[], None] | None = None,
) -> Result[list[Repo], FetchError]:
    """Fetch the selected catalog and resolve it into Repos.

    Opens (and closes) an ``HttpxClient`` unless a client is given.
    """
    if client is not None:
        fetcher = CatalogFetcher(connection, client, console=console)
        return await fetcher.fetch_selection(
            selection, keys, on_entries=on_entries, on_done=on_done
        )

    async with HttpxClient(credentials=connection.credentials, timeout=connection.timeout) as real:
        fetcher = CatalogFetcher(connection, real, console=console)
        return await fetcher.fetch_selection(
            selection, keys, on_entries=on_entries, on_done=on_done
        )

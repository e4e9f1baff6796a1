"""Tests for bbsync.bitbucket.fetcher module."""

from __future__ import annotations

import asyncio

from bbsync.bitbucket.fetcher import CatalogFetcher, FetchError, TimeoutCounter, fetch_catalog
from bbsync.bitbucket.http import HttpError, HttpResponse, MockHttpClient
from bbsync.bitbucket.models import ProjectEntry, Repo, parse_project
from bbsync.core.config import CloneType, Selection, ServerConnection
from bbsync.core.result import Err, Ok
from bbsync.output.console import MockConsole

BASE = "http://bb"
PROJECTS = "/rest/api/1.0/projects"
USERS = "/rest/api/1.0/users"


def _url(path: str, start: int = 0) -> str:
    return f"{BASE}{path}?limit=500&start={start}"


def _page(
    values: list[dict[str, object]], *, last: bool = True, size: int | None = None
) -> dict[str, object]:
    return {
        "isLastPage": last,
        "size": len(values) if size is None else size,
        "limit": 500,
        "values": values,
    }


def _repo_json(slug: str, owner: str) -> dict[str, object]:
    return {
        "slug": slug,
        "scmId": "git",
        "state": "AVAILABLE",
        "project": {"key": owner},
        "links": {
            "clone": [
                {"name": "ssh", "href": f"ssh://git@bb:7999/{owner.lower()}/{slug}.git"},
                {"name": "http", "href": f"http://bb/scm/{owner.lower()}/{slug}.git"},
            ]
        },
    }


def _timeout(url: str) -> HttpError:
    return HttpError(url=url, message="timed out", is_timeout=True)


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _fetcher(
    client: MockHttpClient,
    *,
    retries: int = 3,
    backoff: float = 1.0,
    verbose: bool = False,
    timeouts: TimeoutCounter | None = None,
    console: MockConsole | None = None,
) -> tuple[CatalogFetcher, _Sleeps]:
    sleeps = _Sleeps()
    conn = ServerConnection(
        server=BASE,
        clone_type=CloneType.SSH,
        concurrency=4,
        retries=retries,
        backoff=backoff,
        verbose=verbose,
    )
    fetcher = CatalogFetcher(conn, client, timeouts=timeouts, console=console, sleep=sleeps)
    return fetcher, sleeps


# =============================================================================
# Pagination
# =============================================================================


class TestPagination:
    def test_accumulates_pages_until_last(self) -> None:
        client = MockHttpClient()
        client.set_json(_url(PROJECTS, 0), _page([{"key": "A"}, {"key": "B"}], last=False))
        client.set_json(_url(PROJECTS, 2), _page([{"key": "C"}], last=True))
        fetcher, _ = _fetcher(client)

        result = asyncio.run(fetcher.fetch_paginated(PROJECTS, parse_project, naming="projects"))

        assert result == Ok([ProjectEntry("A"), ProjectEntry("B"), ProjectEntry("C")])
        assert client.calls == [_url(PROJECTS, 0), _url(PROJECTS, 2)]

    def test_offset_follows_reported_size(self) -> None:
        client = MockHttpClient()
        client.set_json(_url(PROJECTS, 0), _page([{"key": "A"}], last=False, size=1))
        client.set_json(_url(PROJECTS, 1), _page([{"key": "B"}], last=False, size=1))
        client.set_json(_url(PROJECTS, 2), _page([], last=True))
        fetcher, _ = _fetcher(client)

        result = asyncio.run(fetcher.fetch_paginated(PROJECTS, parse_project, naming="projects"))

        assert isinstance(result, Ok)
        assert len(result.value) == 2
        assert len(client.calls) == 3

    def test_single_last_page_is_one_call(self) -> None:
        client = MockHttpClient()
        client.set_json(_url(PROJECTS), _page([{"key": "A"}]))
        fetcher, _ = _fetcher(client)

        asyncio.run(fetcher.fetch_paginated(PROJECTS, parse_project, naming="projects"))

        assert client.calls == [_url(PROJECTS)]

    def test_empty_page_that_is_not_last_is_an_error(self) -> None:
        client = MockHttpClient()
        client.set_json(_url(PROJECTS), _page([], last=False))
        fetcher, _ = _fetcher(client)

        result = asyncio.run(fetcher.fetch_paginated(PROJECTS, parse_project, naming="projects"))

        assert isinstance(result, Err)
        assert len(client.calls) == 1


# =============================================================================
# Retries
# =============================================================================


class TestRetries:
    def test_retries_timeouts_then_succeeds(self) -> None:
        url = _url(PROJECTS)
        client = MockHttpClient()
        client.queue(url, _timeout(url), _timeout(url))
        client.set_json(url, _page([{"key": "A"}]))
        fetcher, sleeps = _fetcher(client, retries=2, backoff=1.0)

        result = asyncio.run(fetcher.fetch_paginated(PROJECTS, parse_project, naming="projects"))

        assert result == Ok([ProjectEntry("A")])
        assert client.call_count(url) == 3
        assert sleeps.delays == [1.0, 2.0]

    def test_exhausted_retries_is_terminal_timeout(self) -> None:
        url = _url(PROJECTS)
        client = MockHttpClient()
        client.queue(url, _timeout(url), _timeout(url), _timeout(url))
        fetcher, sleeps = _fetcher(client, retries=2, backoff=0.5)

        result = asyncio.run(fetcher.fetch_paginated(PROJECTS, parse_project, naming="projects"))

        assert isinstance(result, Err)
        assert result.error.is_timeout is True
        assert client.call_count(url) == 3
        assert sleeps.delays == [0.5, 1.0]

    def test_zero_retries_means_single_attempt(self) -> None:
        url = _url(PROJECTS)
        client = MockHttpClient()
        client.queue(url, _timeout(url))
        fetcher, sleeps = _fetcher(client, retries=0)

        result = asyncio.run(fetcher.fetch_paginated(PROJECTS, parse_project, naming="projects"))

        assert isinstance(result, Err)
        assert result.error.is_timeout is True
        assert client.call_count(url) == 1
        assert sleeps.delays == []

    def test_backoff_scales_with_shared_timeout_count(self) -> None:
        url = _url(PROJECTS)
        client = MockHttpClient()
        client.queue(url, _timeout(url))
        client.set_json(url, _page([{"key": "A"}]))
        timeouts = TimeoutCounter()
        for _ in range(4):
            timeouts.increment()
        fetcher, sleeps = _fetcher(client, backoff=1.0, timeouts=timeouts)

        asyncio.run(fetcher.fetch_paginated(PROJECTS, parse_project, naming="projects"))

        assert sleeps.delays == [5.0]
        assert timeouts.value == 5

    def test_error_status_is_not_retried(self) -> None:
        url = _url(PROJECTS)
        client = MockHttpClient()
        client.queue(url, HttpResponse(url=url, status=500, text="boom"))
        fetcher, sleeps = _fetcher(client)

        result = asyncio.run(fetcher.fetch_paginated(PROJECTS, parse_project, naming="projects"))

        assert result == Err(
            FetchError(
                message="Failed fetching projects from bitbucket, status code: 500.",
                cause="Body: 'boom'",
            )
        )
        assert client.call_count(url) == 1
        assert sleeps.delays == []

    def test_bad_json_is_not_retried(self) -> None:
        url = _url(PROJECTS)
        client = MockHttpClient()
        client.queue(url, HttpResponse(url=url, status=200, text="<html>"))
        fetcher, _ = _fetcher(client)

        result = asyncio.run(fetcher.fetch_paginated(PROJECTS, parse_project, naming="projects"))

        assert isinstance(result, Err)
        assert result.error.message == "Failed fetching projects from bitbucket, bad json format."
        assert result.error.is_timeout is False
        assert client.call_count(url) == 1

    def test_transport_error_is_not_retried(self) -> None:
        url = _url(PROJECTS)
        client = MockHttpClient()
        client.queue(url, HttpError(url=url, message="connection refused"))
        fetcher, sleeps = _fetcher(client)

        result = asyncio.run(fetcher.fetch_paginated(PROJECTS, parse_project, naming="projects"))

        assert isinstance(result, Err)
        assert result.error.is_timeout is False
        assert result.error.cause == "connection refused"
        assert client.call_count(url) == 1
        assert sleeps.delays == []


class TestFetchError:
    def test_describe(self) -> None:
        error = FetchError(message="Failed.", cause="Body: 'x'")
        assert error.describe(verbose=False) == "Failed."
        assert error.describe(verbose=True) == "Failed.\nCause: Body: 'x'"


# =============================================================================
# Catalog
# =============================================================================


def _catalog_client(*, failing: dict[str, int] | None = None) -> MockHttpClient:
    """Two projects (PROJ: 1 repo, OPS: 2 repos) and one user (alice: 1 repo).

    ``failing`` maps paths to an error status served instead of the page.
    """
    failing = failing or {}
    client = MockHttpClient()
    for path, status in failing.items():
        client.queue(_url(path), HttpResponse(url=_url(path), status=status, text="down"))
    pages: dict[str, dict[str, object]] = {
        PROJECTS: _page([{"key": "PROJ"}, {"key": "OPS"}]),
        f"{PROJECTS}/PROJ/repos": _page([_repo_json("api", "PROJ")]),
        f"{PROJECTS}/OPS/repos": _page([_repo_json("deploy", "OPS"), _repo_json("infra", "OPS")]),
        USERS: _page([{"slug": "alice", "active": True}]),
        f"{USERS}/alice/repos": _page([_repo_json("notes", "~ALICE")]),
    }
    for path, page in pages.items():
        if path not in failing:
            client.set_json(_url(path), page)
    return client


class TestFetchSelection:
    def test_projects(self) -> None:
        fetcher, _ = _fetcher(_catalog_client())

        result = asyncio.run(fetcher.fetch_selection(Selection.PROJECTS))

        assert isinstance(result, Ok)
        assert sorted(r.display_name for r in result.value) == [
            "ops/deploy",
            "ops/infra",
            "proj/api",
        ]

    def test_users(self) -> None:
        fetcher, _ = _fetcher(_catalog_client())

        result = asyncio.run(fetcher.fetch_selection(Selection.USERS))

        assert result == Ok([Repo("~alice", "notes", "ssh://git@bb:7999/~alice/notes.git")])

    def test_all_combines_users_and_projects(self) -> None:
        fetcher, _ = _fetcher(_catalog_client())

        result = asyncio.run(fetcher.fetch_selection(Selection.ALL))

        assert isinstance(result, Ok)
        assert len(result.value) == 4

    def test_keys_limit_what_is_fetched(self) -> None:
        client = _catalog_client()
        fetcher, _ = _fetcher(client)

        result = asyncio.run(fetcher.fetch_selection(Selection.PROJECTS, ["proj"]))

        assert isinstance(result, Ok)
        assert [r.display_name for r in result.value] == ["proj/api"]
        assert client.call_count(_url(f"{PROJECTS}/OPS/repos")) == 0

    def test_failing_entry_is_excluded(self) -> None:
        client = _catalog_client(failing={f"{PROJECTS}/OPS/repos": 500})
        console = MockConsole()
        fetcher, _ = _fetcher(client, verbose=True, console=console)

        result = asyncio.run(fetcher.fetch_selection(Selection.PROJECTS))

        assert isinstance(result, Ok)
        assert [r.display_name for r in result.value] == ["proj/api"]
        assert console.has_warning()
        assert console.find("project OPS")

    def test_failing_entry_is_silent_unless_verbose(self) -> None:
        client = MockHttpClient()
        client.set_json(_url(PROJECTS), _page([{"key": "OPS"}]))
        console = MockConsole()
        fetcher, _ = _fetcher(client, console=console)

        result = asyncio.run(fetcher.fetch_selection(Selection.PROJECTS))

        assert result == Ok([])
        assert not console.has_warning()

    def test_top_level_failure_is_fatal(self) -> None:
        client = MockHttpClient()
        url = _url(PROJECTS)
        client.queue(url, HttpResponse(url=url, status=401, text="Unauthorized"))
        fetcher, _ = _fetcher(client)

        result = asyncio.run(fetcher.fetch_selection(Selection.PROJECTS))

        assert isinstance(result, Err)
        assert "status code: 401" in result.error.message

    def test_all_tolerates_one_listing_failure(self) -> None:
        client = _catalog_client(failing={USERS: 403})
        console = MockConsole()
        fetcher, _ = _fetcher(client, console=console)

        result = asyncio.run(fetcher.fetch_selection(Selection.ALL))

        assert isinstance(result, Ok)
        assert len(result.value) == 3
        assert console.find("Failed loading user repos")

    def test_all_fails_when_both_listings_fail(self) -> None:
        client = MockHttpClient()
        for path in (PROJECTS, USERS):
            url = _url(path)
            client.queue(url, HttpResponse(url=url, status=500, text="down"))
        fetcher, _ = _fetcher(client)

        result = asyncio.run(fetcher.fetch_selection(Selection.ALL))

        assert isinstance(result, Err)
        assert "Failed loading user repos" in result.error.message
        assert "Failed loading project repos" in result.error.message

    def test_progress_callbacks(self) -> None:
        fetcher, _ = _fetcher(_catalog_client())
        totals: list[int] = []
        done: list[int] = []

        asyncio.run(
            fetcher.fetch_selection(
                Selection.ALL,
                on_entries=totals.append,
                on_done=lambda: done.append(1),
            )
        )

        assert totals == [1, 2]
        assert len(done) == 3


def test_fetch_catalog_with_client() -> None:
    conn = ServerConnection(server=BASE, clone_type=CloneType.HTTP)

    result = asyncio.run(fetch_catalog(conn, Selection.PROJECTS, client=_catalog_client()))

    assert isinstance(result, Ok)
    assert "http://bb/scm/proj/api.git" in [r.url for r in result.value]

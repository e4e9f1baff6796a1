"""Bitbucket Server catalog access."""

from bbsync.bitbucket.fetcher import (
    PAGE_LIMIT,
    CatalogFetcher,
    FetchError,
    TimeoutCounter,
    fetch_catalog,
)
from bbsync.bitbucket.filter import filter_entries, filter_repos, normalize_keys
from bbsync.bitbucket.http import HttpClient, HttpError, HttpResponse, HttpxClient, MockHttpClient
from bbsync.bitbucket.models import (
    CatalogEntry,
    CatalogPage,
    CloneLink,
    ProjectEntry,
    Repo,
    RepositoryRecord,
    UserEntry,
    embed_credentials,
    select_repos,
)

__all__ = [
    "PAGE_LIMIT",
    "CatalogEntry",
    "CatalogFetcher",
    "CatalogPage",
    "CloneLink",
    "FetchError",
    "HttpClient",
    "HttpError",
    "HttpResponse",
    "HttpxClient",
    "MockHttpClient",
    "ProjectEntry",
    "Repo",
    "RepositoryRecord",
    "TimeoutCounter",
    "UserEntry",
    "embed_credentials",
    "fetch_catalog",
    "filter_entries",
    "filter_repos",
    "normalize_keys",
    "select_repos",
]

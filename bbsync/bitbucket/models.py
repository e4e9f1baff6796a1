"""Catalog data model.

Typed views of the Bitbucket Server REST payloads, plus the rules that turn
raw repository records into ``Repo`` units of work:

- only ``scmId == "git"`` and ``state == "AVAILABLE"`` records are eligible
- the clone link whose name matches the configured clone type is used
- with ``http_saved_login`` the credentials are embedded into the http URL
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from urllib.parse import quote

from bbsync.core.config import CloneType, ServerConnection
from bbsync.core.result import Err, Ok, Result
from bbsync.core.structured import (
    as_obj_list,
    as_str_dict,
    get_bool,
    get_int,
    get_raw_str,
    get_str,
    get_table,
)

__all__ = [
    "CatalogEntry",
    "CatalogPage",
    "CloneLink",
    "ProjectEntry",
    "Repo",
    "RepositoryRecord",
    "UserEntry",
    "describe",
    "embed_credentials",
    "filter_key",
    "parse_page",
    "parse_project",
    "parse_repository",
    "parse_user",
    "repos_path",
    "select_repos",
]

PROJECTS_PATH = "/rest/api/1.0/projects"
USERS_PATH = "/rest/api/1.0/users"


# -----------------------------------------------------------------------------
# Catalog entries
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ProjectEntry:
    key: str


@dataclass(frozen=True, slots=True)
class UserEntry:
    slug: str
    active: bool = True
    name: str = ""
    display_name: str = ""


type CatalogEntry = ProjectEntry | UserEntry


def repos_path(entry: CatalogEntry) -> str:
    """REST path listing the repositories owned by a catalog entry."""
    match entry:
        case ProjectEntry(key=key):
            return f"{PROJECTS_PATH}/{key}/repos"
        case UserEntry(slug=slug):
            return f"{USERS_PATH}/{slug}/repos"


def filter_key(entry: CatalogEntry) -> str:
    """Normalized key matched against the ``--key`` allow-list.

    Personal repositories live under ``~slug`` in Bitbucket, so user keys
    carry the same prefix.
    """
    match entry:
        case ProjectEntry(key=key):
            return key.lower()
        case UserEntry(slug=slug):
            return f"~{slug.lower()}"


def describe(entry: CatalogEntry) -> str:
    match entry:
        case ProjectEntry(key=key):
            return f"project {key}"
        case UserEntry(slug=slug):
            return f"user {slug}"


# -----------------------------------------------------------------------------
# Repositories
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CloneLink:
    name: str
    href: str


@dataclass(frozen=True, slots=True)
class RepositoryRecord:
    """A repository as listed by the REST API.

    Attributes:
        slug: Repository slug
        scm_id: SCM type ("git" for eligible repositories)
        state: Repository state ("AVAILABLE" for eligible repositories)
        owner_key: Parent project key (``~slug`` for personal repositories)
        clone_links: Named clone URLs ("ssh", "http")
    """

    slug: str
    scm_id: str
    state: str
    owner_key: str
    clone_links: tuple[CloneLink, ...] = field(default_factory=tuple)

    @property
    def is_eligible(self) -> bool:
        return self.scm_id.strip() == "git" and self.state.strip() == "AVAILABLE"


@dataclass(frozen=True, slots=True)
class Repo:
    """A resolved unit of work for the sync engine.

    Attributes:
        project_key: Lowercased project key (or ``~user``)
        name: Lowercased repository slug
        url: Clone URL, possibly with embedded credentials
    """

    project_key: str
    name: str
    url: str

    @property
    def display_name(self) -> str:
        return f"{self.project_key}/{self.name}"


def embed_credentials(url: str, username: str, password: str) -> Result[str, str]:
    """Put ``username:password@`` into a URL, replacing any existing user info.

    Credentials are percent-encoded so that reserved characters in passwords
    cannot break the URL.

    Returns:
        Ok(new_url), or Err(message) when the URL has no ``://``
    """
    if "://" not in url:
        return Err(f"URL {url} didn't contain '://'")

    scheme, rest = url.split("://", 1)
    authority, slash, path = rest.partition("/")
    if "@" in authority:
        authority = authority.rsplit("@", 1)[1]

    user = quote(username, safe="")
    secret = quote(password, safe="")
    return Ok(f"{scheme}://{user}:{secret}@{authority}{slash}{path}")


def select_repos(records: Iterable[RepositoryRecord], connection: ServerConnection) -> list[Repo]:
    """Turn raw repository records into Repos for the configured clone type.

    Ineligible records and records without a matching clone link contribute
    nothing. When credential embedding is not possible the URL is kept as-is.
    """
    link_name = connection.clone_type.link_name
    credentials = (
        connection.credentials if connection.clone_type is CloneType.HTTP_SAVED_LOGIN else None
    )

    repos: list[Repo] = []
    for record in records:
        if not record.is_eligible:
            continue
        for link in record.clone_links:
            if link.name.strip() != link_name:
                continue
            url = link.href
            if credentials is not None:
                url = embed_credentials(url, *credentials).unwrap_or(url)
            repos.append(
                Repo(
                    project_key=record.owner_key.lower(),
                    name=record.slug.lower(),
                    url=url,
                )
            )
    return repos


# -----------------------------------------------------------------------------
# Pages and parsing
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CatalogPage[T]:
    """One page of a paginated listing.

    Attributes:
        items: Parsed values of this page
        size: Number of values the server reports for this page
        limit: Page size limit the server applied
        is_last_page: True when there is nothing after this page
        start: Offset this page was requested at
    """

    items: tuple[T, ...]
    size: int
    limit: int
    is_last_page: bool
    start: int = 0

    @property
    def next_start(self) -> int:
        return self.start + self.size


def parse_page[T](
    data: object,
    parse_item: Callable[[object], Result[T, str]],
    *,
    start: int = 0,
) -> Result[CatalogPage[T], str]:
    """Parse a page envelope ``{isLastPage, size, limit, values}``."""
    page = as_str_dict(data)
    if page is None:
        return Err("page is not a JSON object")

    is_last = get_bool(page, "isLastPage")
    values = as_obj_list(page.get("values"))
    if is_last is None:
        return Err("page has no boolean 'isLastPage'")
    if values is None:
        return Err("page has no 'values' list")

    size = get_int(page, "size")
    if size is None:
        size = len(values)
    limit = get_int(page, "limit") or 0

    items: list[T] = []
    for raw in values:
        item = parse_item(raw)
        if isinstance(item, Err):
            return item
        items.append(item.value)

    return Ok(
        CatalogPage(
            items=tuple(items),
            size=size,
            limit=limit,
            is_last_page=is_last,
            start=start,
        )
    )


def parse_project(data: object) -> Result[ProjectEntry, str]:
    item = as_str_dict(data)
    key = get_str(item, "key") if item is not None else None
    if key is None:
        return Err("project without 'key'")
    return Ok(ProjectEntry(key=key))


def parse_user(data: object) -> Result[UserEntry, str]:
    item = as_str_dict(data)
    slug = get_str(item, "slug") if item is not None else None
    if item is None or slug is None:
        return Err("user without 'slug'")
    active = get_bool(item, "active")
    return Ok(
        UserEntry(
            slug=slug,
            active=True if active is None else active,
            name=get_raw_str(item, "name") or "",
            display_name=get_raw_str(item, "displayName") or "",
        )
    )


def parse_repository(data: object) -> Result[RepositoryRecord, str]:
    item = as_str_dict(data)
    if item is None:
        return Err("repository is not a JSON object")

    slug = get_str(item, "slug")
    project = get_table(item, "project") or {}
    owner_key = get_str(project, "key")
    if slug is None or owner_key is None:
        return Err("repository without 'slug' or 'project.key'")

    links = get_table(item, "links") or {}
    clone_links: list[CloneLink] = []
    for raw_link in as_obj_list(links.get("clone")) or []:
        link = as_str_dict(raw_link)
        if link is None:
            continue
        name = get_raw_str(link, "name")
        href = get_str(link, "href")
        if name is not None and href is not None:
            clone_links.append(CloneLink(name=name, href=href))

    return Ok(
        RepositoryRecord(
            slug=slug,
            scm_id=get_raw_str(item, "scmId") or "",
            state=get_raw_str(item, "state") or "",
            owner_key=owner_key,
            clone_links=tuple(clone_links),
        )
    )

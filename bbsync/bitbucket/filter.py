"""Narrowing the catalog to the selected project / user keys.

Keys are compared case-insensitively. An empty allow-list keeps everything,
which is also what ``--all`` resolves to.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from bbsync.bitbucket.models import CatalogEntry, Repo, filter_key

__all__ = ["filter_entries", "filter_repos", "normalize_keys"]


def normalize_keys(keys: Iterable[str]) -> frozenset[str]:
    """Lowercase and strip keys, dropping blanks."""
    return frozenset(k.strip().lower() for k in keys if k.strip())


def filter_entries[E: CatalogEntry](entries: Sequence[E], keys: Iterable[str]) -> list[E]:
    """Keep catalog entries whose filter key is in the allow-list."""
    allowed = normalize_keys(keys)
    if not allowed:
        return list(entries)
    return [e for e in entries if filter_key(e) in allowed]


def filter_repos(repos: Sequence[Repo], keys: Iterable[str]) -> list[Repo]:
    """Keep repos whose project / user key is in the allow-list."""
    allowed = normalize_keys(keys)
    if not allowed:
        return list(repos)
    return [r for r in repos if r.project_key.lower() in allowed]

"""Command-line options shared by every command.

Flags can only switch a setting on; leaving a flag out keeps whatever the
config file says.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from bbsync.core.config import Settings

ServerOpt = Annotated[
    str | None,
    typer.Option("--server", "-s", help="Bitbucket server base URL, e.g. https://git.example.com"),
]
UsernameOpt = Annotated[
    str | None, typer.Option("--username", "-u", help="Username for HTTP basic auth")
]
PasswordOpt = Annotated[
    str | None, typer.Option("--password", "-w", help="Password for HTTP basic auth")
]
EnvPasswordOpt = Annotated[
    bool,
    typer.Option("--env-password", "-W", help="Read the password from BITBUCKET_PASSWORD"),
]
CloneTypeOpt = Annotated[
    str | None,
    typer.Option("--clone-type", help="ssh | http | http_saved_login"),
]
KeyOpt = Annotated[
    list[str] | None,
    typer.Option("--key", "-k", help="Project key or ~user to work on (repeatable)"),
]
AllOpt = Annotated[bool, typer.Option("--all", "-A", help="Work on every project / user")]
ResetOpt = Annotated[
    bool,
    typer.Option("--reset", "-R", help="Hard-reset and check out the default branch first"),
]
HttpConcurrencyOpt = Annotated[
    int | None,
    typer.Option("--concurrent-http", "-b", help="Max parallel catalog requests (1-100)"),
]
GitConcurrencyOpt = Annotated[
    int | None,
    typer.Option("--concurrent-git", "-g", help="Max parallel git repositories (1-100)"),
]
TimeoutOpt = Annotated[
    float | None, typer.Option("--timeout", help="HTTP request timeout in seconds")
]
RetriesOpt = Annotated[
    int | None, typer.Option("--retries", help="Retries for a page that timed out")
]
BackoffOpt = Annotated[
    float | None, typer.Option("--backoff", help="Seconds of backoff per accumulated timeout")
]
QuietOpt = Annotated[bool, typer.Option("--quiet", "-Q", help="Only print the failure count")]
VerboseOpt = Annotated[
    bool, typer.Option("--verbose", "-H", help="Print causes of HTTP failures")
]
OutputDirOpt = Annotated[
    Path | None,
    typer.Option("--output-directory", "-o", help="Root directory for checkouts"),
]
ConfigOpt = Annotated[
    Path | None, typer.Option("--config", help="TOML config file (default: ./bbsync.toml)")
]


def _flag(value: bool) -> bool | None:
    return True if value else None


def cli_settings(
    *,
    server: str | None = None,
    username: str | None = None,
    password: str | None = None,
    env_password: bool = False,
    clone_type: str | None = None,
    keys: list[str] | None = None,
    all_: bool = False,
    reset: bool = False,
    http_concurrency: int | None = None,
    git_concurrency: int | None = None,
    timeout: float | None = None,
    retries: int | None = None,
    backoff: float | None = None,
    quiet: bool = False,
    verbose: bool = False,
    output_directory: Path | None = None,
) -> Settings:
    """Settings layer made of what was given on the command line."""
    return Settings(
        server=server,
        username=username,
        password=password,
        password_from_env=_flag(env_password),
        clone_type=clone_type,
        http_concurrency=http_concurrency,
        timeout=timeout,
        retries=retries,
        backoff=backoff,
        verbose=_flag(verbose),
        output_directory=str(output_directory) if output_directory is not None else None,
        git_concurrency=git_concurrency,
        reset_state=_flag(reset),
        quiet=_flag(quiet),
        keys=tuple(keys) if keys else None,
        all=_flag(all_),
    )

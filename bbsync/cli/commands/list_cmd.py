"""List command - print the catalog without touching the disk."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer

from bbsync.cli.commands._options import (
    AllOpt,
    BackoffOpt,
    CloneTypeOpt,
    ConfigOpt,
    EnvPasswordOpt,
    HttpConcurrencyOpt,
    KeyOpt,
    PasswordOpt,
    RetriesOpt,
    ServerOpt,
    TimeoutOpt,
    UsernameOpt,
    VerboseOpt,
    cli_settings,
)
from bbsync.cli.commands.sync import report_sync_error
from bbsync.cli.context import build_context
from bbsync.core.config import Selection
from bbsync.core.result import Err, Ok
from bbsync.services.cloner import SyncService

SelectionArg = Annotated[
    Selection,
    typer.Argument(help="What to list: projects, users or all", case_sensitive=False),
]


def list_repos(
    selection: SelectionArg = Selection.PROJECTS,
    server: ServerOpt = None,
    username: UsernameOpt = None,
    password: PasswordOpt = None,
    env_password: EnvPasswordOpt = False,
    clone_type: CloneTypeOpt = None,
    key: KeyOpt = None,
    all_: AllOpt = False,
    concurrent_http: HttpConcurrencyOpt = None,
    timeout: TimeoutOpt = None,
    retries: RetriesOpt = None,
    backoff: BackoffOpt = None,
    verbose: VerboseOpt = False,
    config: ConfigOpt = None,
) -> None:
    """List the repositories that a sync would work on."""
    overrides = cli_settings(
        server=server,
        username=username,
        password=password,
        env_password=env_password,
        clone_type=clone_type,
        keys=key,
        all_=all_,
        http_concurrency=concurrent_http,
        timeout=timeout,
        retries=retries,
        backoff=backoff,
        verbose=verbose,
    )
    ctx = build_context(config, overrides)
    service = SyncService(config=ctx.config, console=ctx.console, progress=ctx.progress)

    match asyncio.run(service.fetch(selection)):
        case Err(e):
            report_sync_error(e, ctx)
        case Ok(repos):
            service.list_repos(repos)

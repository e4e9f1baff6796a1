"""Sync commands - clone or update every selected repository."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import typer

from bbsync.cli.commands._options import (
    AllOpt,
    BackoffOpt,
    CloneTypeOpt,
    ConfigOpt,
    EnvPasswordOpt,
    GitConcurrencyOpt,
    HttpConcurrencyOpt,
    KeyOpt,
    OutputDirOpt,
    PasswordOpt,
    QuietOpt,
    ResetOpt,
    RetriesOpt,
    ServerOpt,
    TimeoutOpt,
    UsernameOpt,
    VerboseOpt,
    cli_settings,
)
from bbsync.cli.context import CLIContext, build_context
from bbsync.core.config import Selection
from bbsync.core.result import Err, Ok
from bbsync.output.console import Style
from bbsync.services.cloner import SyncError, SyncService


def report_sync_error(error: SyncError, ctx: CLIContext) -> None:
    ctx.console.error(error.message)
    if ctx.config.connection.verbose and error.cause:
        ctx.console.print(f"Cause: {error.cause}", Style.DIM)
    raise typer.Exit(code=int(error.code))


def run_sync(ctx: CLIContext, selection: Selection) -> None:
    service = SyncService(config=ctx.config, console=ctx.console, progress=ctx.progress)
    match asyncio.run(service.run(selection)):
        case Err(e):
            report_sync_error(e, ctx)
        case Ok(_):
            pass


def make_sync_command(selection: Selection) -> Callable[..., None]:
    """Build the command that syncs one part of the catalog."""

    def command(
        server: ServerOpt = None,
        username: UsernameOpt = None,
        password: PasswordOpt = None,
        env_password: EnvPasswordOpt = False,
        clone_type: CloneTypeOpt = None,
        key: KeyOpt = None,
        all_: AllOpt = False,
        reset: ResetOpt = False,
        concurrent_http: HttpConcurrencyOpt = None,
        concurrent_git: GitConcurrencyOpt = None,
        timeout: TimeoutOpt = None,
        retries: RetriesOpt = None,
        backoff: BackoffOpt = None,
        quiet: QuietOpt = False,
        verbose: VerboseOpt = False,
        output_directory: OutputDirOpt = None,
        config: ConfigOpt = None,
    ) -> None:
        overrides = cli_settings(
            server=server,
            username=username,
            password=password,
            env_password=env_password,
            clone_type=clone_type,
            keys=key,
            all_=all_,
            reset=reset,
            http_concurrency=concurrent_http,
            git_concurrency=concurrent_git,
            timeout=timeout,
            retries=retries,
            backoff=backoff,
            quiet=quiet,
            verbose=verbose,
            output_directory=output_directory,
        )
        run_sync(build_context(config, overrides), selection)

    command.__doc__ = _DOCS[selection]
    return command


_DOCS = {
    Selection.PROJECTS: "Clone or update the repositories of every selected project.",
    Selection.USERS: "Clone or update the personal repositories of every selected user.",
    Selection.ALL: "Clone or update both user and project repositories.",
}

projects = make_sync_command(Selection.PROJECTS)
users = make_sync_command(Selection.USERS)
all_repos = make_sync_command(Selection.ALL)

from __future__ import annotations

import typer

from bbsync import __version__
from bbsync.cli.commands.list_cmd import list_repos
from bbsync.cli.commands.sync import all_repos, projects, users

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Clone or update every repository of a Bitbucket Server.",
)


# Commands
app.command("projects")(projects)
app.command("users")(users)
app.command("all")(all_repos)
app.command("list")(list_repos)


@app.callback(invoke_without_command=True)
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)


def main() -> None:
    app()

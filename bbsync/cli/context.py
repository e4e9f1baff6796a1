from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer

from bbsync.core.config import (
    ConfigError,
    Settings,
    ValidatedConfig,
    load_settings,
    validate_settings,
)
from bbsync.core.result import Err
from bbsync.output.console import ConsoleProtocol, RichConsole, Style
from bbsync.output.progress import ProgressProtocol, RichProgress


@dataclass(frozen=True, slots=True)
class CLIContext:
    config: ValidatedConfig
    console: ConsoleProtocol
    progress: ProgressProtocol


def fail_config(error: ConfigError, console: ConsoleProtocol) -> NoReturn:
    console.error(error.message)
    if error.path is not None and str(error.path) not in error.message:
        console.print(f"  in {error.path}", Style.DIM)
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)
    raise typer.Exit(code=int(error.code))


def build_context(config_path: Path | None, overrides: Settings) -> CLIContext:
    """Load, merge and validate settings; exit with the error code on failure."""
    console = RichConsole()

    loaded = load_settings(config_path)
    if isinstance(loaded, Err):
        fail_config(loaded.error, console)

    validated = validate_settings(loaded.value.merged_with(overrides), os.environ)
    if isinstance(validated, Err):
        fail_config(validated.error, console)

    return CLIContext(
        config=validated.value,
        console=console,
        progress=RichProgress(console.rich),
    )

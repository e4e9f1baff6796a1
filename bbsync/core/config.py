"""Typed configuration loading and validation.

Settings come from three places, later ones winning:
1. built-in defaults
2. an optional TOML file (``bbsync.toml`` or ``--config``)
3. command-line flags

``validate_settings`` turns the merged ``Settings`` into the immutable
``ServerConnection`` + ``SyncOptions`` pair the core works with, or a
``ConfigError``. Nothing here exits the process.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from enum import StrEnum
from pathlib import Path

from .errors import ErrorCode
from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_float,
    get_int,
    get_str,
    get_str_list,
    get_table,
)

__all__ = [
    "CloneType",
    "ConfigError",
    "DEFAULT_CONFIG_NAME",
    "MAX_CONCURRENCY",
    "PASSWORD_ENV_VAR",
    "Selection",
    "ServerConnection",
    "Settings",
    "SyncOptions",
    "ValidatedConfig",
    "load_settings",
    "validate_settings",
]

DEFAULT_CONFIG_NAME = "bbsync.toml"
PASSWORD_ENV_VAR = "BITBUCKET_PASSWORD"
MAX_CONCURRENCY = 100

DEFAULT_HTTP_CONCURRENCY = 10
DEFAULT_GIT_CONCURRENCY = 3
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_SECONDS = 1.0


class CloneType(StrEnum):
    """Which clone link to use for each repository."""

    SSH = "ssh"
    HTTP = "http"
    HTTP_SAVED_LOGIN = "http_saved_login"

    @property
    def link_name(self) -> str:
        """Name of the clone link in the REST payload."""
        return "ssh" if self is CloneType.SSH else "http"


class Selection(StrEnum):
    """Which part of the catalog to work on."""

    PROJECTS = "projects"
    USERS = "users"
    ALL = "all"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when configuration cannot be loaded or is invalid."""

    message: str
    code: ErrorCode = ErrorCode.USER_ERROR
    path: Path | None = None
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class ServerConnection:
    """How to talk to the Bitbucket server.

    Attributes:
        server: Base URL without trailing slash
        username: Basic-auth user, if any
        password: Basic-auth password, if any
        clone_type: Which clone link to pick per repository
        concurrency: Max in-flight catalog requests
        timeout: Per-request HTTP timeout in seconds
        retries: Extra attempts for a page that timed out
        backoff: Seconds of sleep per accumulated timeout
        verbose: Print causes of HTTP failures
    """

    server: str
    username: str | None = None
    password: str | None = None
    clone_type: CloneType = CloneType.SSH
    concurrency: int = DEFAULT_HTTP_CONCURRENCY
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    retries: int = DEFAULT_RETRIES
    backoff: float = DEFAULT_BACKOFF_SECONDS
    verbose: bool = False

    @property
    def credentials(self) -> tuple[str, str] | None:
        """Username/password pair, only when both are present."""
        if self.username and self.password:
            return (self.username, self.password)
        return None


@dataclass(frozen=True, slots=True)
class SyncOptions:
    """How to run the git side of a sync.

    Attributes:
        output_directory: Root under which ``{key}/{repo}`` checkouts live
        concurrency: Max in-flight git repositories
        reset_state: Hard-reset and force-checkout the default branch first
        quiet: Suppress failure details in the final report
        keys: Project keys / ``~user`` slugs to keep (empty means all)
        all: Ignore ``keys`` and keep everything
    """

    output_directory: Path
    concurrency: int = DEFAULT_GIT_CONCURRENCY
    reset_state: bool = False
    quiet: bool = False
    keys: tuple[str, ...] = ()
    all: bool = False

    @property
    def filter_keys(self) -> frozenset[str]:
        """Lowercased allow-list; empty when everything is selected."""
        if self.all:
            return frozenset()
        return frozenset(k.strip().lower() for k in self.keys if k.strip())


@dataclass(frozen=True, slots=True)
class ValidatedConfig:
    connection: ServerConnection
    sync: SyncOptions


@dataclass(frozen=True, slots=True)
class Settings:
    """Unvalidated settings; ``None`` means "not given at this layer"."""

    server: str | None = None
    username: str | None = None
    password: str | None = None
    password_from_env: bool | None = None
    clone_type: str | None = None
    http_concurrency: int | None = None
    timeout: float | None = None
    retries: int | None = None
    backoff: float | None = None
    verbose: bool | None = None
    output_directory: str | None = None
    git_concurrency: int | None = None
    reset_state: bool | None = None
    quiet: bool | None = None
    keys: tuple[str, ...] | None = None
    all: bool | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Settings:
        """Create Settings from a parsed TOML mapping.

        Passwords are never read from the file.
        """
        server: StrDict = get_table(data, "server") or {}
        sync: StrDict = get_table(data, "sync") or {}
        keys = get_str_list(sync, "keys")

        return cls(
            server=get_str(server, "url"),
            username=get_str(server, "username"),
            password_from_env=get_bool(server, "password_from_env"),
            clone_type=get_str(server, "clone_type"),
            http_concurrency=get_int(server, "concurrency"),
            timeout=get_float(server, "timeout"),
            retries=get_int(server, "retries"),
            backoff=get_float(server, "backoff"),
            verbose=get_bool(server, "verbose"),
            output_directory=get_str(sync, "output_directory"),
            git_concurrency=get_int(sync, "concurrency"),
            reset_state=get_bool(sync, "reset"),
            quiet=get_bool(sync, "quiet"),
            keys=tuple(keys) if keys is not None else None,
            all=get_bool(sync, "all"),
        )

    def merged_with(self, override: Settings) -> Settings:
        """Return a copy where every non-None field of ``override`` wins."""
        changes = {
            f.name: getattr(override, f.name)
            for f in fields(override)
            if getattr(override, f.name) is not None
        }
        return replace(self, **changes)


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        data_obj: object = tomllib.loads(path.read_bytes().decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(
            ConfigError(f"Permission denied reading: {path}", code=ErrorCode.IO_ERROR, path=path)
        )
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_settings(path: Path | None, *, cwd: Path | None = None) -> Result[Settings, ConfigError]:
    """Load settings from a TOML file.

    With ``path=None`` the default ``bbsync.toml`` in ``cwd`` is used when it
    exists; a missing default file yields empty settings. An explicit path
    that does not exist is an error.
    """
    if path is None:
        candidate = (cwd or Path.cwd()) / DEFAULT_CONFIG_NAME
        if not candidate.is_file():
            return Ok(Settings())
        path = candidate

    result = _parse_toml(path)
    if isinstance(result, Err):
        return result
    return Ok(Settings.from_dict(result.value))


def _check_concurrency(name: str, value: int) -> ConfigError | None:
    if value < 1 or value > MAX_CONCURRENCY:
        return ConfigError(f"{name} must be between 1 and {MAX_CONCURRENCY}, got {value}")
    return None


def _resolve_password(
    settings: Settings, env: Mapping[str, str]
) -> Result[str | None, ConfigError]:
    if settings.password:
        return Ok(settings.password)
    if settings.password_from_env:
        value = env.get(PASSWORD_ENV_VAR)
        if not value:
            return Err(
                ConfigError(
                    f"{PASSWORD_ENV_VAR} is not set",
                    code=ErrorCode.ENV_ERROR,
                    hint=f"IFS= read -rs {PASSWORD_ENV_VAR} < /dev/tty && export {PASSWORD_ENV_VAR}",
                )
            )
        return Ok(value)
    return Ok(None)


def _check_output_directory(raw: str) -> Result[Path, ConfigError]:
    path = Path(raw).expanduser()
    if not path.exists():
        return Err(
            ConfigError(
                f"output directory does not exist: {path}",
                code=ErrorCode.IO_ERROR,
                path=path,
                hint="Create it first, e.g. mkdir -p " + str(path),
            )
        )
    if not path.is_dir():
        return Err(
            ConfigError(
                f"output directory is not a directory: {path}",
                code=ErrorCode.IO_ERROR,
                path=path,
            )
        )
    if not os.access(path, os.W_OK | os.X_OK):
        return Err(
            ConfigError(
                f"output directory is not writable: {path}",
                code=ErrorCode.IO_ERROR,
                path=path,
            )
        )
    return Ok(path.resolve())


def validate_settings(
    settings: Settings,
    env: Mapping[str, str] | None = None,
) -> Result[ValidatedConfig, ConfigError]:
    """Validate merged settings in a single pass.

    Args:
        settings: Defaults/file/CLI settings already merged
        env: Environment to read the password from (``os.environ`` if None)

    Returns:
        Ok(ValidatedConfig) or Err(ConfigError) for the first problem found
    """
    env = os.environ if env is None else env

    server = (settings.server or "").strip().rstrip("/")
    if not server:
        return Err(ConfigError("no server given", hint="Pass --server or set [server].url"))

    try:
        clone_type = CloneType((settings.clone_type or CloneType.SSH.value).lower())
    except ValueError:
        choices = ", ".join(c.value for c in CloneType)
        return Err(ConfigError(f"unknown clone type '{settings.clone_type}' (expected {choices})"))

    http_concurrency = (
        DEFAULT_HTTP_CONCURRENCY if settings.http_concurrency is None else settings.http_concurrency
    )
    git_concurrency = (
        DEFAULT_GIT_CONCURRENCY if settings.git_concurrency is None else settings.git_concurrency
    )
    for name, value in (
        ("http concurrency", http_concurrency),
        ("git concurrency", git_concurrency),
    ):
        error = _check_concurrency(name, value)
        if error is not None:
            return Err(error)

    retries = DEFAULT_RETRIES if settings.retries is None else settings.retries
    timeout = DEFAULT_TIMEOUT_SECONDS if settings.timeout is None else settings.timeout
    backoff = DEFAULT_BACKOFF_SECONDS if settings.backoff is None else settings.backoff
    if retries < 0:
        return Err(ConfigError(f"retries must not be negative, got {retries}"))
    if timeout <= 0:
        return Err(ConfigError(f"timeout must be positive, got {timeout}"))
    if backoff < 0:
        return Err(ConfigError(f"backoff must not be negative, got {backoff}"))

    password_result = _resolve_password(settings, env)
    if isinstance(password_result, Err):
        return password_result
    password = password_result.value

    if clone_type is CloneType.HTTP_SAVED_LOGIN and not (settings.username and password):
        return Err(
            ConfigError(
                "clone type http_saved_login needs both username and password",
                hint="Pass --username with --password or --env-password",
            )
        )

    keys = settings.keys or ()
    if settings.all and keys:
        return Err(ConfigError("--all cannot be combined with --key"))

    out_result = _check_output_directory(settings.output_directory or ".")
    if isinstance(out_result, Err):
        return out_result

    return Ok(
        ValidatedConfig(
            connection=ServerConnection(
                server=server,
                username=settings.username,
                password=password,
                clone_type=clone_type,
                concurrency=http_concurrency,
                timeout=timeout,
                retries=retries,
                backoff=backoff,
                verbose=bool(settings.verbose),
            ),
            sync=SyncOptions(
                output_directory=out_result.value,
                concurrency=git_concurrency,
                reset_state=bool(settings.reset_state),
                quiet=bool(settings.quiet),
                keys=tuple(keys),
                all=bool(settings.all),
            ),
        )
    )

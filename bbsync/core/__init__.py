"""Core domain types and logic."""

from .config import (
    CloneType,
    ConfigError,
    Selection,
    ServerConnection,
    Settings,
    SyncOptions,
    ValidatedConfig,
    load_settings,
    validate_settings,
)
from .errors import ErrorCode
from .result import Err, Ok, Result, is_err, is_ok

__all__ = [
    # config
    "CloneType",
    "ConfigError",
    "Selection",
    "ServerConnection",
    "Settings",
    "SyncOptions",
    "ValidatedConfig",
    "load_settings",
    "validate_settings",
    # errors
    "ErrorCode",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
]

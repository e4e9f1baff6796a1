"""Platform abstraction layer."""

from .dispatch import dispatch
from .process import (
    ProcessError,
    first_line,
    run,
)

__all__ = [
    # dispatch
    "dispatch",
    # process
    "ProcessError",
    "first_line",
    "run",
]

"""Output abstraction layer."""

from .console import (
    ConsoleProtocol,
    MockConsole,
    RichConsole,
    Style,
)
from .progress import (
    CountingProgress,
    NullProgress,
    ProgressProtocol,
    RichProgress,
)

__all__ = [
    "ConsoleProtocol",
    "CountingProgress",
    "MockConsole",
    "NullProgress",
    "ProgressProtocol",
    "RichConsole",
    "RichProgress",
    "Style",
]

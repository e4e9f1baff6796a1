"""Progress indicator abstraction.

The fetcher and the sync service tick a counter each time one unit of work
finishes. Rendering is cosmetic and never affects results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from rich.console import Console
    from rich.progress import Progress, TaskID

__all__ = [
    "CountingProgress",
    "NullProgress",
    "ProgressProtocol",
    "RichProgress",
]


class ProgressProtocol(Protocol):
    def start(self, description: str, total: int) -> None:
        """Begin a new bounded counter."""
        ...

    def advance(self, step: int = 1) -> None: ...

    def stop(self) -> None: ...


class NullProgress:
    """Progress that renders nothing."""

    def start(self, description: str, total: int) -> None:
        pass

    def advance(self, step: int = 1) -> None:
        pass

    def stop(self) -> None:
        pass


class RichProgress:
    """Progress bar using rich.progress."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console
        self._progress: Progress | None = None
        self._task: TaskID | None = None

    def start(self, description: str, total: int) -> None:
        from rich.progress import (
            BarColumn,
            MofNCompleteColumn,
            Progress,
            TextColumn,
            TimeElapsedColumn,
            TimeRemainingColumn,
        )

        self.stop()
        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            TimeRemainingColumn(),
            console=self._console,
            transient=False,
        )
        self._progress.start()
        self._task = self._progress.add_task(description, total=total)

    def advance(self, step: int = 1) -> None:
        if self._progress is not None and self._task is not None:
            self._progress.advance(self._task, step)

    def stop(self) -> None:
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task = None


@dataclass
class CountingProgress:
    """Progress that only records calls (for tests)."""

    description: str = ""
    total: int = 0
    completed: int = 0
    stopped: bool = False
    starts: list[str] = field(default_factory=list)

    def start(self, description: str, total: int) -> None:
        self.description = description
        self.total = total
        self.completed = 0
        self.stopped = False
        self.starts.append(description)

    def advance(self, step: int = 1) -> None:
        self.completed += step

    def stop(self) -> None:
        self.stopped = True

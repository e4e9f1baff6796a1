"""Aggregation and rendering of per-repository outcomes."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from bbsync.git.sync import OutcomeKind, SyncOutcome
from bbsync.output.console import ConsoleProtocol, Style

__all__ = ["SyncReport", "aggregate", "print_report"]


@dataclass(frozen=True, slots=True)
class SyncReport:
    """Summary of one sync batch.

    Attributes:
        total: Number of repositories worked on
        counts: Number of outcomes per kind
        failures: Failure messages in submission order
    """

    total: int = 0
    counts: dict[OutcomeKind, int] = field(default_factory=dict)
    failures: tuple[str, ...] = ()

    def count(self, kind: OutcomeKind) -> int:
        return self.counts.get(kind, 0)

    @property
    def succeeded(self) -> int:
        return self.total - len(self.failures)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def tags(self) -> str:
        """Compact summary such as ``c:2 U:1 u:5 F:0``."""
        return " ".join(f"{kind.tag}:{self.count(kind)}" for kind in OutcomeKind)


def aggregate(outcomes: Iterable[SyncOutcome]) -> SyncReport:
    outcomes = list(outcomes)
    counts = Counter(o.kind for o in outcomes)
    failures = tuple(o.reason for o in outcomes if o.kind is OutcomeKind.FAILED)
    return SyncReport(total=len(outcomes), counts=dict(counts), failures=failures)


def print_report(report: SyncReport, console: ConsoleProtocol, *, quiet: bool = False) -> None:
    """Print the batch summary.

    The failure count is always shown; individual failure messages only
    when not ``quiet``.
    """
    console.print(
        f"{report.total} repos: {report.count(OutcomeKind.CLONED)} cloned, "
        f"{report.count(OutcomeKind.UPDATED)} updated, "
        f"{report.count(OutcomeKind.UP_TO_DATE)} up to date ({report.tags})",
        Style.DIM,
    )
    if not report.failures:
        return

    console.newline()
    console.error(f"{report.failed} projects failed to update or clone.")
    if quiet:
        return
    for failure in report.failures:
        console.print(failure, Style.ERROR)

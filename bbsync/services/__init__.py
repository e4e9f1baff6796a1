"""Application services for bbsync.

Services coordinate the catalog layer (bitbucket/) and the git layer (git/)
and report through the output layer.
"""

from bbsync.services.cloner import SyncError, SyncService, prepare_directories, sync
from bbsync.services.report import SyncReport, aggregate, print_report

__all__ = [
    "SyncError",
    "SyncReport",
    "SyncService",
    "aggregate",
    "prepare_directories",
    "print_report",
    "sync",
]

"""Exit codes for the bbsync CLI.

Per-repository sync failures never change the exit code; only failed
preconditions (bad configuration, unreachable catalog) do.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Process exit codes.

    - 0: Success (including runs with soft per-repository failures)
    - 1: User error (bad or conflicting options)
    - 2: Environment error (missing password variable, git not installed)
    - 4: Network error (catalog listing unreachable)
    - 5: I/O error (output directory not usable)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    NETWORK_ERROR = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK

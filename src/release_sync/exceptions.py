"""Error types raised by release_sync.

Every error carries the process exit code the CLI reports for it.
"""

from __future__ import annotations


class ReleaseSyncError(Exception):
    """Base class for all release_sync errors."""

    exit_code: int = 2


class ValidationError(ReleaseSyncError):
    """Bad options, inaccessible paths or a malformed config document."""

    exit_code = 1


class IngestError(ReleaseSyncError):
    """The hosting API returned an error while ingesting releases."""

    exit_code = 13

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TransferError(ReleaseSyncError):
    """A download or a transfer into the target tree failed fatally."""

    exit_code = 13


class SubprocessError(ReleaseSyncError):
    """An external command exited non-zero or was killed by a signal."""

    exit_code = 13

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        signal_name: str | None = None,
    ):
        super().__init__(message)
        self.process_exit_code = exit_code
        self.signal_name = signal_name


class DiffInvariantError(ReleaseSyncError):
    """A diff record violates one of its structural invariants."""

"""Incremental mirroring of repository releases.

This package provides:
- Ingestion of release metadata into a config document
- Diffing of two config snapshots into file operations
- A bounded-concurrency orchestrator applying those operations to a target
- Self-healing of files missing from the target
"""

from __future__ import annotations

__version__ = "0.1.0"

from release_sync.diff import (
    DiffRecord,
    FileItem,
    PartialRemoval,
    WholeTag,
    compute_diff,
    snapshot_files,
)
from release_sync.exceptions import (
    DiffInvariantError,
    IngestError,
    ReleaseSyncError,
    SubprocessError,
    TransferError,
    ValidationError,
)
from release_sync.healing import compute_fix_set
from release_sync.models import Asset, Config, Release, ReleaseTag
from release_sync.orchestrator import TransferOrchestrator
from release_sync.report import ReconciliationReport
from release_sync.semaphore import BoundedSemaphore

__all__ = [
    "Asset",
    "BoundedSemaphore",
    "Config",
    "DiffInvariantError",
    "DiffRecord",
    "FileItem",
    "IngestError",
    "PartialRemoval",
    "ReconciliationReport",
    "Release",
    "ReleaseSyncError",
    "ReleaseTag",
    "SubprocessError",
    "TransferError",
    "TransferOrchestrator",
    "ValidationError",
    "WholeTag",
    "__version__",
    "compute_diff",
    "compute_fix_set",
    "snapshot_files",
]

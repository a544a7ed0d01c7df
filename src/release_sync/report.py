"""Per-run counts of file operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from release_sync.diff import PartialRemoval, WholeTag, snapshot_files


if TYPE_CHECKING:
    from release_sync.diff import DiffRecord, FileOps
    from release_sync.models import Config


def _count(records: FileOps) -> int:
    return sum(len(items) for items in records.values())


@dataclass
class ReconciliationReport:
    """Counts of a reconciliation run, used for summaries only."""

    added: int = 0
    removed: int = 0
    modified: int = 0
    fixed: int = 0

    downloaded: int = 0
    """Files downloaded successfully during the run."""

    failed: int = 0
    """Downloads that failed during the run."""

    failures: list[str] = field(default_factory=list)
    """`<tag>/<filename>` of the failed downloads."""

    @classmethod
    def from_diff(cls, diff: DiffRecord, compare: Config | None = None) -> ReconciliationReport:
        """Count the operations of a diff.

        A whole-tag removal counts every file the compare snapshot declared
        for that tag (assets and archive slots).
        """
        former_files = snapshot_files(compare) if compare is not None else {}
        removed = 0
        for tag, removal in diff.remove.items():
            match removal:
                case WholeTag():
                    removed += len(former_files.get(tag, ()))
                case PartialRemoval(filenames=filenames):
                    removed += len(filenames)
        return cls(
            added=_count(diff.add),
            removed=removed,
            modified=_count(diff.modify),
            fixed=_count(diff.fix),
        )

    @property
    def need_sync(self) -> bool:
        return any((self.added, self.removed, self.modified, self.fixed))

    def summary(self) -> str:
        if not self.need_sync:
            return "Everything is up to date."
        text = (
            f"{self.added} added, {self.modified} modified, "
            f"{self.removed} removed, {self.fixed} fixed"
        )
        if self.failed:
            text += f" ({self.failed} downloads failed)"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "add": self.added,
            "remove": self.removed,
            "modify": self.modified,
            "fix": self.fixed,
            "downloaded": self.downloaded,
            "failed": self.failed,
            "failures": list(self.failures),
        }

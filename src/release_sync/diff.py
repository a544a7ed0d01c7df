"""Snapshot diffing: turn two config snapshots into file operations.

The diff is recomputed from scratch on every run. Its only inputs are the
freshly ingested snapshot and, optionally, the snapshot saved by the previous
run. Files are addressed as `<tag>/<filename>`, where archive slots use the
synthetic `archive/<repo>-<tag>.<ext>` filename.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from release_sync.exceptions import DiffInvariantError
from release_sync.log import get_logger
from release_sync.models import ARCHIVE_ORDER
from release_sync.templating import archive_filename, user_download_url


if TYPE_CHECKING:
    from collections.abc import Iterator

    from release_sync.models import Config, Release


logger = get_logger(__name__)

OperationKind = Literal["fix", "add", "modify"]

OPERATION_ORDER: tuple[OperationKind, ...] = ("fix", "add", "modify")
"""Order in which file operations are staged and relocated."""


@dataclass(frozen=True)
class FileItem:
    """A file to be placed at `<tag>/<filename>` in the target."""

    filename: str
    """Path relative to the tag directory."""

    download_url: str
    """Where the content is fetched from."""

    user_download_url: str
    """User-facing URL (rendered URL template or the download URL)."""

    def to_dict(self) -> dict[str, str]:
        return {
            "downloadUrl": self.download_url,
            "userDownloadUrl": self.user_download_url,
            "filename": self.filename,
        }


@dataclass(frozen=True)
class WholeTag:
    """The whole tag directory is gone."""

    def to_json(self) -> str:
        return "*"


@dataclass(frozen=True)
class PartialRemoval:
    """Specific files of a still existing tag are gone."""

    filenames: tuple[str, ...]

    def to_json(self) -> list[str]:
        return list(self.filenames)

    def with_filename(self, filename: str) -> PartialRemoval:
        return PartialRemoval((*self.filenames, filename))


Removal = WholeTag | PartialRemoval

FileOps = dict[str, list[FileItem]]


@dataclass
class DiffRecord:
    """Operations needed to bring the target in line with the current snapshot."""

    add: FileOps = field(default_factory=dict)
    """New files, by tag."""

    remove: dict[str, Removal] = field(default_factory=dict)
    """Removed tags or files, by tag."""

    modify: FileOps = field(default_factory=dict)
    """Files whose content changed, by tag."""

    passed_modify: FileOps = field(default_factory=dict)
    """Unchanged files, candidates for the fix pass."""

    fix: FileOps = field(default_factory=dict)
    """Unchanged files found missing from the target."""

    def operations(self, kind: OperationKind) -> FileOps:
        return getattr(self, kind)

    def iter_items(self) -> Iterator[tuple[OperationKind, str, FileItem]]:
        """Yield `(kind, tag, item)` for fix, then add, then modify."""
        for kind in OPERATION_ORDER:
            for tag, items in self.operations(kind).items():
                for item in items:
                    yield kind, tag, item

    def scheduled(self, tag: str) -> set[str]:
        """Filenames of a tag already scheduled for download."""
        return {
            item.filename
            for kind in OPERATION_ORDER
            for item in self.operations(kind).get(tag, [])
        }

    def is_empty(self) -> bool:
        return not (self.add or self.remove or self.modify or self.fix)

    def validate(self) -> None:
        """Check structural invariants, raising DiffInvariantError."""
        for tag, removal in self.remove.items():
            scheduled = self.scheduled(tag)
            match removal:
                case WholeTag():
                    if any(tag in self.operations(kind) for kind in OPERATION_ORDER):
                        msg = f"Tag {tag!r} is removed as a whole but also scheduled"
                        raise DiffInvariantError(msg)
                case PartialRemoval(filenames=filenames):
                    if clash := scheduled.intersection(filenames):
                        msg = f"Files {sorted(clash)} of {tag!r} are both scheduled and removed"
                        raise DiffInvariantError(msg)

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible form, `"*"` standing for a whole-tag removal."""

        def ops(records: FileOps) -> dict[str, list[dict[str, str]]]:
            return {tag: [i.to_dict() for i in items] for tag, items in records.items()}

        return {
            "add": ops(self.add),
            "remove": {tag: removal.to_json() for tag, removal in self.remove.items()},
            "modify": ops(self.modify),
            "passedModify": ops(self.passed_modify),
            "fix": ops(self.fix),
        }


class _DiffBuilder:
    def __init__(self, repo_name: str, url_template: str | None):
        self.repo_name = repo_name
        self.url_template = url_template
        self.record = DiffRecord()

    def item(self, release: Release, filename: str, url: str) -> FileItem:
        return FileItem(
            filename=filename,
            download_url=url,
            user_download_url=user_download_url(self.url_template, release, filename, url),
        )

    def append(self, kind: str, tag: str, item: FileItem) -> None:
        records: FileOps = getattr(self.record, kind)
        records.setdefault(tag, []).append(item)

    def remove_file(self, tag: str, filename: str) -> None:
        match self.record.remove.get(tag):
            case None:
                self.record.remove[tag] = PartialRemoval((filename,))
            case PartialRemoval() as removal:
                self.record.remove[tag] = removal.with_filename(filename)
            case WholeTag():
                msg = f"Cannot remove {filename!r} from {tag!r}, the whole tag is removed"
                raise DiffInvariantError(msg)

    def add_release(self, release: Release) -> None:
        tag = release.tag.name
        for asset in release.assets:
            self.append("add", tag, self.item(release, asset.name, asset.download_url))
        for kind, url in release.archive_slots():
            filename = archive_filename(self.repo_name, tag, kind)
            self.append("add", tag, self.item(release, filename, url))

    def compare_release(self, release: Release, former: Release) -> None:
        tag = release.tag.name
        current_assets = {asset.name: asset for asset in release.assets}
        former_assets = {asset.name: asset for asset in former.assets}

        for asset in former.assets:
            if asset.name not in current_assets:
                self.remove_file(tag, asset.name)

        for asset in release.assets:
            item = self.item(release, asset.name, asset.download_url)
            former_asset = former_assets.get(asset.name)
            if former_asset is None:
                self.append("add", tag, item)
            elif asset.same_content(former_asset):
                self.append("passed_modify", tag, item)
            else:
                self.append("modify", tag, item)

        for kind in ARCHIVE_ORDER:
            url = release.archive_url(kind)
            former_url = former.archive_url(kind)
            filename = archive_filename(self.repo_name, tag, kind)
            if url == former_url:
                if url:
                    self.append("passed_modify", tag, self.item(release, filename, url))
            elif url and former_url:
                self.append("modify", tag, self.item(release, filename, url))
            elif url:
                self.append("add", tag, self.item(release, filename, url))
            else:
                self.remove_file(tag, filename)


def compute_diff(
    current: Config,
    compare: Config | None,
    *,
    url_template: str | None = None,
) -> DiffRecord:
    """Compute the file operations turning `compare` into `current`.

    Args:
        current: Freshly ingested snapshot
        compare: Snapshot of the previous run, None to treat everything as new
        url_template: Template for user-facing download URLs

    Returns:
        The diff record, `fix` left empty
    """
    builder = _DiffBuilder(current.name, url_template)

    if compare is None:
        logger.info("No compare configuration provided, skipping comparison step")
        for release in current.releases:
            builder.add_release(release)
        builder.record.validate()
        return builder.record

    logger.info("Comparing with former configuration", former=compare.name)
    former_releases = compare.release_map()
    current_tags = {release.tag.name for release in current.releases}
    for release in compare.releases:
        if release.tag.name not in current_tags:
            builder.record.remove[release.tag.name] = WholeTag()
            del former_releases[release.tag.name]

    for release in current.releases:
        former = former_releases.get(release.tag.name)
        if former is None:
            builder.add_release(release)
        else:
            builder.compare_release(release, former)

    builder.record.validate()
    return builder.record


def snapshot_files(config: Config) -> dict[str, set[str]]:
    """Map every tag of a snapshot to the filenames it declares."""
    files: dict[str, set[str]] = {}
    for release in config.releases:
        tag = release.tag.name
        names = {asset.name for asset in release.assets}
        names.update(
            archive_filename(config.name, tag, kind) for kind, _ in release.archive_slots()
        )
        files[tag] = names
    return files

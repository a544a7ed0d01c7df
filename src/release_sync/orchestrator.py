"""Phase-ordered application of a diff record to the download target."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from release_sync.diff import OPERATION_ORDER, PartialRemoval, WholeTag, snapshot_files
from release_sync.exceptions import TransferError
from release_sync.fetcher import AssetFetcher
from release_sync.healing import compute_fix_set
from release_sync.log import get_logger
from release_sync.report import ReconciliationReport
from release_sync.semaphore import BoundedSemaphore
from release_sync.templating import apply_url_template


if TYPE_CHECKING:
    from pathlib import Path

    from release_sync.build import Publisher
    from release_sync.diff import DiffRecord, FileItem, OperationKind
    from release_sync.models import Config
    from release_sync.transport import Target


logger = get_logger(__name__)


class Fetcher(Protocol):
    async def fetch(self, url: str, dest: Path, retries: int = 3) -> bool: ...


@dataclass
class TransferOptions:
    """Behaviour switches of the orchestrator."""

    url_template: str | None = None
    """Template for user-facing download URLs in the published config."""

    fail_fast: bool = False
    """Stop dispatching and fail the run on the first failed download."""

    fast_sync: bool = False
    """Move each file into the target as soon as it is downloaded."""

    concurrency: int = 1
    """Maximum number of downloads in flight."""

    retries: int = 3
    """Additional attempts per download."""


class TransferOrchestrator:
    """Drives the phases of a run: fix, stage, drain, relocate, publish, remove.

    Relocation merges into the target and removal only deletes files the
    current snapshot no longer lists, so an interrupted run leaves the target
    in a state the next run can heal from.
    """

    def __init__(
        self,
        work_dir: Path,
        *,
        target: Target | None = None,
        fetcher: Fetcher | None = None,
        publisher: Publisher | None = None,
        options: TransferOptions | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            work_dir: Run-exclusive directory for staged files and build input
            target: Download target, file operations are skipped if None
            fetcher: Downloader (an AssetFetcher is created per run if None)
            publisher: Site build collaborator, publishing is skipped if None
            options: Behaviour switches
        """
        self.work_dir = work_dir
        self.target = target
        self.fetcher = fetcher
        self.publisher = publisher
        self.options = options or TransferOptions()

    @property
    def staging_dir(self) -> Path:
        return self.work_dir / "staging"

    async def run(
        self,
        diff: DiffRecord,
        config: Config,
        compare: Config | None = None,
    ) -> ReconciliationReport:
        """Apply a diff record.

        Args:
            diff: Diff of `compare` to `config`, its `fix` set is filled in here
            config: Current snapshot
            compare: Snapshot the diff was computed against

        Returns:
            Counts of the run

        Raises:
            TransferError: On a fail-fast abort or a failing target operation
            SubprocessError: If the site build fails
        """
        if self.target is not None:
            diff.fix = await compute_fix_set(
                diff, self.target.exists, concurrency=self.options.concurrency
            )
            diff.validate()

        report = ReconciliationReport.from_diff(diff, compare)
        if not report.need_sync:
            logger.info("Everything is up to date")
        elif self.target is None:
            logger.info("No download target configured, skipping file transfers")
        else:
            await self.stage(self.target, diff, report)
            if not self.options.fast_sync:
                await self.relocate(self.target)

        await self.publish(config)

        if report.need_sync and self.target is not None:
            await self.remove(self.target, diff, config)
        logger.info("Reconciliation finished", summary=report.summary())
        return report

    def staged_path(self, kind: OperationKind, tag: str, item: FileItem) -> Path:
        return self.staging_dir / kind / tag / item.filename

    async def stage(self, target: Target, diff: DiffRecord, report: ReconciliationReport) -> None:
        """Download every scheduled file, at most `concurrency` at a time."""
        if self.fetcher is not None:
            await self._stage(self.fetcher, target, diff, report)
            return
        async with AssetFetcher() as fetcher:
            await self._stage(fetcher, target, diff, report)

    async def _stage(
        self,
        fetcher: Fetcher,
        target: Target,
        diff: DiffRecord,
        report: ReconciliationReport,
    ) -> None:
        semaphore = BoundedSemaphore(self.options.concurrency)
        abort = asyncio.Event()
        tasks: list[asyncio.Task[None]] = []

        async def download(kind: OperationKind, tag: str, item: FileItem) -> None:
            dest = self.staged_path(kind, tag, item)
            try:
                ok = await fetcher.fetch(item.download_url, dest, self.options.retries)
            finally:
                await semaphore.release()
            path = f"{tag}/{item.filename}"
            if not ok:
                report.failed += 1
                report.failures.append(path)
                logger.error("Download failed", kind=kind, path=path, url=item.download_url)
                if self.options.fail_fast:
                    abort.set()
                if kind == "modify" and await target.delete_extraneous(
                    (), scope=tag, candidates=[path]
                ):
                    logger.warning("Removed outdated file until it can be fetched", path=path)
                return
            report.downloaded += 1
            logger.info("Downloaded file", kind=kind, path=path)
            if self.options.fast_sync:
                await target.put_file(dest, path, move=True)

        for kind, tag, item in diff.iter_items():
            await semaphore.acquire()
            if abort.is_set():
                await semaphore.release()
                break
            tasks.append(asyncio.create_task(download(kind, tag, item)))

        await semaphore.wait_all()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result
        if abort.is_set():
            msg = f"Aborting after failed download of {report.failures[0]}"
            raise TransferError(msg)
        if report.failed:
            logger.warning(
                "Some downloads failed, they will be retried on the next run",
                failed=report.failed,
            )

    async def relocate(self, target: Target) -> None:
        """Merge the staged files into the target, fix first, then add, then modify."""
        for kind in OPERATION_ORDER:
            merged = await target.merge_tree(self.staging_dir / kind, move=True)
            if merged:
                logger.info("Relocated files", kind=kind, count=len(merged))

    async def publish(self, config: Config) -> None:
        """Write the URL-templated config and hand it to the publisher."""
        if self.publisher is None:
            return
        published = apply_url_template(config, self.options.url_template, config.name)
        config_path = self.work_dir / "config.publish.json"
        config_path.write_text(published.to_json(), encoding="utf-8")
        await self.publisher.publish(config_path, self.work_dir)

    async def remove(self, target: Target, diff: DiffRecord, config: Config) -> None:
        """Delete removed files and tags that the current snapshot does not list."""
        expected = snapshot_files(config)
        for tag, removal in diff.remove.items():
            keep = {f"{tag}/{filename}" for filename in expected.get(tag, ())}
            match removal:
                case WholeTag():
                    deleted = await target.delete_extraneous(keep, scope=tag)
                case PartialRemoval(filenames=filenames):
                    candidates = [f"{tag}/{filename}" for filename in filenames]
                    deleted = await target.delete_extraneous(
                        keep, scope=tag, candidates=candidates
                    )
            if deleted:
                logger.info("Removed files", tag=tag, count=len(deleted))

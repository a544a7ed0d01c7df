"""Self-healing pass: re-schedule unchanged files missing from the target."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from release_sync.log import get_logger
from release_sync.semaphore import BoundedSemaphore


if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from release_sync.diff import DiffRecord, FileItem, FileOps

    ExistenceProbe = Callable[[str], Awaitable[bool]]


logger = get_logger(__name__)


async def compute_fix_set(
    diff: DiffRecord,
    probe: ExistenceProbe,
    *,
    concurrency: int = 1,
) -> FileOps:
    """Find files the diff believes present that are missing from the target.

    A previous run may have recorded its snapshot without every file reaching
    the target. Checking the unchanged files against the live target on every
    run re-derives that missing state without a transaction log.

    Args:
        diff: Diff record whose `passed_modify` files are checked
        probe: Async existence check taking a `<tag>/<filename>` path
        concurrency: Maximum number of probes in flight

    Returns:
        Mapping of tag to the files that must be downloaded again
    """
    semaphore = BoundedSemaphore(concurrency)

    async def check(tag: str, item: FileItem) -> tuple[str, FileItem] | None:
        async with semaphore:
            exists = await probe(f"{tag}/{item.filename}")
        if exists:
            return None
        logger.info("File missing from target", tag=tag, filename=item.filename)
        return tag, item

    checks = [
        check(tag, item)
        for tag, items in diff.passed_modify.items()
        for item in items
        if item.filename not in diff.scheduled(tag)
    ]
    fix: FileOps = {}
    for result in await asyncio.gather(*checks):
        if result is not None:
            tag, item = result
            fix.setdefault(tag, []).append(item)
    return fix

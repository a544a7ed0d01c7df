"""Transfers between the local staging area and the (possibly remote) target.

Targets are local paths or fsspec URLs (`s3://bucket/releases`,
`sftp://host/srv/releases`, ...). The target tree is shared with the outside
world, so it is only ever changed by merging files in or by deleting files
the caller does not expect anymore; it is never replaced as a whole.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
import re
from typing import TYPE_CHECKING, TypeVar

import fsspec

from release_sync.exceptions import TransferError
from release_sync.log import get_logger


if TYPE_CHECKING:
    from collections.abc import Callable, Collection

    from fsspec import AbstractFileSystem


logger = get_logger(__name__)

T = TypeVar("T")

_REMOTE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


def is_remote(location: str) -> bool:
    """Whether a location is addressed by URL rather than a local path."""
    return bool(_REMOTE.match(location)) and not location.startswith("file://")


class Target:
    """A directory tree on any fsspec filesystem.

    All methods run the blocking fsspec calls in a worker thread. Failures are
    raised as TransferError.
    """

    def __init__(self, location: str, fs: AbstractFileSystem | None = None):
        """Initialize the target.

        Args:
            location: Local path or fsspec URL of the tree root
            fs: Filesystem to use instead of the one inferred from the URL
        """
        self.location = location
        if fs is None:
            fs, root = fsspec.core.url_to_fs(location)
        else:
            root = fs._strip_protocol(location)
        self.fs: AbstractFileSystem = fs
        self.root: str = root.rstrip("/")

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.location!r})"

    def path(self, relative: str) -> str:
        """Absolute filesystem path of a path relative to the root."""
        return f"{self.root}/{relative.lstrip('/')}"

    async def _call(self, description: str, func: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(func)
        except (OSError, ValueError) as e:
            msg = f"{description} failed on {self.location}: {e}"
            raise TransferError(msg) from e

    async def exists(self, relative: str) -> bool:
        """Check whether a file exists, without transferring content."""
        return await self._call(
            f"Existence check of {relative}",
            lambda: self.fs.exists(self.path(relative)),
        )

    def _put(self, source: Path, relative: str) -> None:
        destination = self.path(relative)
        self.fs.makedirs(self.fs._parent(destination), exist_ok=True)
        self.fs.put_file(str(source), destination)

    async def put_file(self, source: Path, relative: str, *, move: bool = False) -> None:
        """Copy a local file into the tree, removing the source if `move`."""
        await self._call(f"Upload of {relative}", lambda: self._put(source, relative))
        if move:
            source.unlink()

    async def merge_tree(self, source: Path, *, move: bool = False) -> list[str]:
        """Copy a local directory tree into the target.

        Relative paths are preserved and files not present in `source` are
        left alone.

        Args:
            source: Local directory to merge in
            move: Remove each source file once it has been copied

        Returns:
            Relative paths of the merged files
        """
        if not source.is_dir():
            return []
        files = sorted(p for p in source.rglob("*") if p.is_file())
        merged: list[str] = []
        for file in files:
            relative = file.relative_to(source).as_posix()
            await self.put_file(file, relative, move=move)
            merged.append(relative)
        logger.debug("Merged tree", source=str(source), target=self.location, files=len(merged))
        return merged

    def _list_files(self, relative: str) -> list[str]:
        base = self.path(relative) if relative else self.root
        if not self.fs.exists(base):
            return []
        prefix = f"{self.root}/"
        return [
            path.removeprefix(prefix)
            for path in self.fs.find(base)
            if path.startswith(prefix)
        ]

    async def list_files(self, relative: str = "") -> list[str]:
        """Relative paths of all files below a sub-directory (or the root)."""
        return await self._call(f"Listing of {relative or '/'}", lambda: self._list_files(relative))

    async def delete_extraneous(
        self,
        expected: Collection[str],
        *,
        scope: str = "",
        candidates: Collection[str] | None = None,
    ) -> list[str]:
        """Delete files of the tree that are not expected.

        Args:
            expected: Relative paths that must survive
            scope: Sub-directory to restrict deletion to (whole tree if empty)
            candidates: Only consider these relative paths instead of listing
                the scope. The scope directory itself is only removed when
                no candidates are given.

        Returns:
            Relative paths of the deleted files
        """
        prune_scope = candidates is None
        if candidates is None:
            candidates = await self.list_files(scope)
        expected_set = set(expected)
        deleted: list[str] = []
        for relative in candidates:
            if relative in expected_set:
                continue
            if scope and not relative.startswith(f"{scope}/"):
                continue
            if not await self.exists(relative):
                continue
            await self._call(f"Removal of {relative}", lambda r=relative: self.fs.rm_file(self.path(r)))
            deleted.append(relative)
        if prune_scope and scope and not any(p.startswith(f"{scope}/") for p in expected_set):
            await self._remove_dir(scope)
        return deleted

    async def _remove_dir(self, relative: str) -> None:
        path = self.path(relative)

        def remove() -> None:
            if self.fs.exists(path):
                self.fs.rm(path, recursive=True)

        await self._call(f"Removal of {relative}/", remove)

    async def mirror_from(self, source: Path) -> None:
        """Make the tree an exact copy of a local directory.

        Files are merged first, then the ones unknown to `source` are deleted.
        """
        merged = await self.merge_tree(source)
        await self.delete_extraneous(merged)

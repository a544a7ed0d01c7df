"""Per-run working directory."""

from __future__ import annotations

import os
from pathlib import Path
import re
import shutil
import tempfile
from typing import Self
import weakref

from release_sync.log import get_logger


logger = get_logger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def _remove(path: str) -> None:
    shutil.rmtree(path, ignore_errors=True)


class Workspace:
    """Uniquely named temporary directory, removed exactly once.

    Cleanup runs on `cleanup()`, on leaving the context, when the object is
    garbage collected, or at interpreter exit, whichever comes first.

    Example:
        ```python
        with Workspace("acme/widget") as ws:
            (ws.path / "config.json").write_text(...)
        ```
    """

    def __init__(self, repo_fullname: str, *, base_dir: str | Path | None = None):
        owner, _, name = repo_fullname.partition("/")
        prefix = f"release-sync.{_UNSAFE.sub('_', owner)}.{_UNSAFE.sub('_', name)}.{os.getpid()}-"
        self.path = Path(tempfile.mkdtemp(prefix=prefix, dir=base_dir))
        self._finalizer = weakref.finalize(self, _remove, str(self.path))
        logger.debug("Created working directory", path=str(self.path))

    @property
    def config_path(self) -> Path:
        return self.path / "config.json"

    @property
    def record_path(self) -> Path:
        return self.path / "record.json"

    @property
    def alive(self) -> bool:
        return self._finalizer.alive

    def cleanup(self) -> None:
        if self._finalizer.alive:
            logger.debug("Removing working directory", path=str(self.path))
        self._finalizer()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: object) -> None:
        self.cleanup()

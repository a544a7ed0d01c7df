"""Static site build and publication of its output."""

from __future__ import annotations

import asyncio
import shlex
import signal
from typing import TYPE_CHECKING, Protocol

from release_sync.exceptions import SubprocessError
from release_sync.log import get_logger
from release_sync.templating import render
from release_sync.transport import Target


if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path


logger = get_logger(__name__)

DEFAULT_BUILD_COMMAND = "pnpm build -- -c {config} -d {out_dir}"


class Publisher(Protocol):
    """Regenerates everything derived from a config document."""

    async def publish(self, config_path: Path, work_dir: Path) -> None: ...


def check_returncode(args: Sequence[str], returncode: int) -> None:
    """Raise SubprocessError for a non-zero exit or a terminating signal."""
    if returncode > 0:
        msg = f"Subprocess {args[0]!r} exited with code {returncode}"
        raise SubprocessError(msg, exit_code=returncode)
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = str(-returncode)
        msg = f"Subprocess {args[0]!r} terminated by signal {name}"
        raise SubprocessError(msg, signal_name=name)


async def run_command(args: Sequence[str], *, cwd: Path | None = None) -> None:
    """Run a command with inherited stdio, raising SubprocessError on failure."""
    logger.info("Running command", command=shlex.join(args))
    try:
        process = await asyncio.create_subprocess_exec(*args, cwd=cwd)
    except FileNotFoundError as e:
        msg = f"Command not found: {args[0]}"
        raise SubprocessError(msg, exit_code=127) from e
    check_returncode(args, await process.wait())


class SiteBuilder:
    """Builds the static site for a config and mirrors it to the web root."""

    def __init__(
        self,
        command: str | None = DEFAULT_BUILD_COMMAND,
        *,
        build_base: str | None = None,
        www_root: str | None = None,
        cwd: Path | None = None,
    ):
        """Initialize the builder.

        Args:
            command: Build command, `{config}` and `{out_dir}` are substituted.
                An empty command disables the build.
            build_base: Base URL of the site, passed as `--base`
            www_root: Local path or fsspec URL the site is published to
            cwd: Working directory of the build command
        """
        self.command = command
        self.build_base = build_base
        self.www_root = www_root
        self.cwd = cwd

    def build_args(self, config_path: Path, out_dir: Path) -> list[str]:
        if not self.command:
            msg = "No build command configured"
            raise ValueError(msg)
        variables = {"config": str(config_path), "out_dir": str(out_dir)}
        args = [render(arg, variables) for arg in shlex.split(self.command)]
        if self.build_base:
            args.extend(["--base", self.build_base])
        return args

    async def publish(self, config_path: Path, work_dir: Path) -> None:
        if not self.command:
            logger.info("No build command configured, skipping site build")
            return
        out_dir = work_dir / "web-dist"
        logger.info("Building front-end", config=str(config_path))
        await run_command(self.build_args(config_path, out_dir), cwd=self.cwd)
        if not self.www_root:
            logger.info("No www root configured, build output left in working directory")
            return
        logger.info("Publishing front-end", www_root=self.www_root)
        await Target(self.www_root).mirror_from(out_dir)

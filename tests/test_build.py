from __future__ import annotations

from pathlib import Path
import signal
import sys

import pytest

from release_sync.build import SiteBuilder, check_returncode, run_command
from release_sync.exceptions import SubprocessError


def test_nonzero_exit_raises():
    with pytest.raises(SubprocessError) as exc_info:
        check_returncode(["pnpm", "build"], 3)

    assert exc_info.value.process_exit_code == 3
    assert exc_info.value.exit_code == 13


def test_signal_exit_raises_with_name():
    with pytest.raises(SubprocessError, match="SIGKILL") as exc_info:
        check_returncode(["pnpm"], -signal.SIGKILL)

    assert exc_info.value.signal_name == "SIGKILL"


def test_zero_exit_passes():
    check_returncode(["true"], 0)


def test_build_args_substitute_paths():
    builder = SiteBuilder("pnpm build -- -c {config} -d {out_dir}", build_base="/widget/")

    args = builder.build_args(Path("/w/config.json"), Path("/w/web-dist"))

    assert args == [
        "pnpm", "build", "--", "-c", "/w/config.json", "-d", "/w/web-dist", "--base", "/widget/"
    ]  # fmt: skip


async def test_missing_command_raises():
    with pytest.raises(SubprocessError, match="Command not found"):
        await run_command(["release-sync-definitely-missing-binary"])


async def test_publish_mirrors_build_output(tmp_path: Path):
    script = tmp_path / "build.py"
    script.write_text(
        "import pathlib, sys\n"
        "out = pathlib.Path(sys.argv[2])\n"
        "out.mkdir(parents=True)\n"
        "(out / 'index.html').write_text(pathlib.Path(sys.argv[1]).read_text())\n"
    )
    www = tmp_path / "www"
    www.mkdir()
    (www / "stale.html").write_text("old")
    config_path = tmp_path / "config.json"
    config_path.write_text("{}")
    builder = SiteBuilder(f"{sys.executable} {script} {{config}} {{out_dir}}", www_root=str(www))

    await builder.publish(config_path, tmp_path)

    assert (www / "index.html").read_text() == "{}"
    assert not (www / "stale.html").exists()


async def test_empty_command_skips_build(tmp_path: Path):
    await SiteBuilder("").publish(tmp_path / "config.json", tmp_path)

    assert not (tmp_path / "web-dist").exists()


def test_build_args_without_command_raises():
    with pytest.raises(ValueError, match="No build command configured"):
        SiteBuilder(None).build_args(Path("/w/config.json"), Path("/w/web-dist"))

from __future__ import annotations

from typing import TYPE_CHECKING

import fsspec
import pytest

from release_sync.exceptions import TransferError
from release_sync.transport import Target, is_remote


if TYPE_CHECKING:
    from pathlib import Path


def write(path: Path, content: str = "data") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def target(tmp_path: Path) -> Target:
    (tmp_path / "target").mkdir()
    return Target(str(tmp_path / "target"))


def test_is_remote():
    assert is_remote("s3://bucket/releases")
    assert is_remote("sftp://host/srv")
    assert not is_remote("/srv/releases")
    assert not is_remote("relative/dir")
    assert not is_remote("file:///srv/releases")


async def test_put_file_creates_parents(tmp_path: Path, target: Target):
    source = write(tmp_path / "src.bin", "payload")

    await target.put_file(source, "v1/archive/widget-v1.zip", move=True)

    assert (tmp_path / "target/v1/archive/widget-v1.zip").read_text() == "payload"
    assert not source.exists()
    assert await target.exists("v1/archive/widget-v1.zip")


async def test_merge_tree_keeps_other_files(tmp_path: Path, target: Target):
    write(tmp_path / "target/v1/old.bin", "old")
    write(tmp_path / "target/v1/a.bin", "stale")
    staging = tmp_path / "staging"
    write(staging / "v1/a.bin", "fresh")
    write(staging / "v2/b.bin")

    merged = await target.merge_tree(staging, move=True)

    assert merged == ["v1/a.bin", "v2/b.bin"]
    assert (tmp_path / "target/v1/a.bin").read_text() == "fresh"
    assert (tmp_path / "target/v1/old.bin").read_text() == "old"
    assert not (staging / "v1/a.bin").exists()


async def test_merge_missing_tree_is_noop(tmp_path: Path, target: Target):
    assert await target.merge_tree(tmp_path / "nothing") == []


async def test_delete_extraneous_keeps_expected(tmp_path: Path, target: Target):
    write(tmp_path / "target/v1/a.bin")
    write(tmp_path / "target/v1/b.bin")
    write(tmp_path / "target/v2/c.bin")

    deleted = await target.delete_extraneous({"v1/a.bin"}, scope="v1")

    assert deleted == ["v1/b.bin"]
    assert (tmp_path / "target/v1/a.bin").exists()
    assert (tmp_path / "target/v2/c.bin").exists()


async def test_delete_extraneous_removes_scope_without_expected_files(
    tmp_path: Path, target: Target
):
    write(tmp_path / "target/v1/a.bin")
    write(tmp_path / "target/v1/archive/widget-v1.zip")

    await target.delete_extraneous(set(), scope="v1")

    assert not (tmp_path / "target/v1").exists()


async def test_delete_candidates_only(tmp_path: Path, target: Target):
    write(tmp_path / "target/v1/a.bin")
    write(tmp_path / "target/v1/b.bin")
    write(tmp_path / "target/v1/unknown.bin")

    deleted = await target.delete_extraneous(
        {"v1/a.bin"}, scope="v1", candidates=["v1/a.bin", "v1/b.bin", "v1/missing.bin"]
    )

    assert deleted == ["v1/b.bin"]
    assert (tmp_path / "target/v1/a.bin").exists()
    assert (tmp_path / "target/v1/unknown.bin").exists()


async def test_mirror_from_replaces_content(tmp_path: Path, target: Target):
    write(tmp_path / "target/old/index.html")
    write(tmp_path / "build/index.html", "new")
    write(tmp_path / "build/assets/app.js")

    await target.mirror_from(tmp_path / "build")

    assert sorted(await target.list_files()) == ["assets/app.js", "index.html"]
    assert (tmp_path / "target/index.html").read_text() == "new"


async def test_memory_filesystem_target(tmp_path: Path):
    fs = fsspec.filesystem("memory")
    target = Target("memory://releases-test", fs=fs)
    source = write(tmp_path / "a.bin", "mem")

    await target.put_file(source, "v1/a.bin")

    assert await target.exists("v1/a.bin")
    assert await target.list_files("v1") == ["v1/a.bin"]
    fs.rm(target.root, recursive=True)


async def test_failures_raise_transfer_error(tmp_path: Path, target: Target):
    with pytest.raises(TransferError, match="Upload of v1/a.bin"):
        await target.put_file(tmp_path / "does-not-exist.bin", "v1/a.bin")

from __future__ import annotations

from typing import TYPE_CHECKING

import pydantic
import pytest

from release_sync.models import Asset, Config


if TYPE_CHECKING:
    from pathlib import Path


def test_json_round_trip(snapshot):
    assert Config.from_json(snapshot.to_json()) == snapshot


def test_save_and_load(snapshot, tmp_path: Path):
    path = tmp_path / "nested/dir/config.json"

    snapshot.save(str(path))

    assert Config.load(str(path)) == snapshot


def test_duplicate_tags_are_rejected(make_config, make_release):
    with pytest.raises(pydantic.ValidationError, match="Duplicate release tag"):
        make_config(make_release("v1", "a"), make_release("v1", "b"))


def test_duplicate_assets_are_rejected(make_release):
    with pytest.raises(pydantic.ValidationError, match="Duplicate asset"):
        make_release("v1", "a", "a")


def test_empty_archive_url_is_absent(make_release):
    release = make_release("v1", zip_url="", tar_url="https://x/v1.tar.gz")

    assert release.archive_url("zip") is None
    assert list(release.archive_slots()) == [("tar", "https://x/v1.tar.gz")]


def test_same_content_compares_identity_fields():
    asset = Asset(name="a", size=1, digest="sha256:1", download_url="https://x/a")

    assert asset.same_content(asset.model_copy(update={"updated_at": "2024-01-01"}))
    assert not asset.same_content(asset.model_copy(update={"digest": "sha256:2"}))
    assert not asset.same_content(asset.model_copy(update={"size": 2}))


def test_unknown_fields_are_ignored():
    config = Config.from_json('{"name": "widget", "extra": 1, "releases": []}')

    assert config.name == "widget"

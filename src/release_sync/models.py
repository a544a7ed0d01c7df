"""Configuration document describing the releases of a repository.

The document is produced by ingestion, consumed by the diff engine and the
site build, and round-trips through JSON field for field.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal, Self

import fsspec
from pydantic import BaseModel, ConfigDict, Field, model_validator


if TYPE_CHECKING:
    from collections.abc import Iterator


ArchiveKind = Literal["zip", "tar"]

ARCHIVE_EXTENSIONS: dict[ArchiveKind, str] = {"zip": "zip", "tar": "tar.gz"}
"""File extension of each archive slot."""

ARCHIVE_ORDER: tuple[ArchiveKind, ...] = ("zip", "tar")
"""Order in which archive slots are visited after the regular assets."""


class ConfigModel(BaseModel):
    """Base for all config document models."""

    model_config = ConfigDict(frozen=True, extra="ignore")


class Asset(ConfigModel):
    """A downloadable file attached to a release."""

    name: str
    """File name, unique within its release."""

    size: int = 0
    """Size in bytes."""

    digest: str | None = None
    """Content digest as reported by the API (e.g. `sha256:...`)."""

    download_url: str
    """URL the file is fetched from."""

    updated_at: str = ""
    """Last update timestamp (ISO 8601)."""

    def same_content(self, other: Asset) -> bool:
        """Whether both describe the same file (name, url, size and digest)."""
        return (
            self.name == other.name
            and self.download_url == other.download_url
            and self.size == other.size
            and self.digest == other.digest
        )


class ReleaseTag(ConfigModel):
    """Source control tag of a release."""

    name: str
    """Tag name, the primary key of a release."""

    tree_url: str | None = None
    """Web URL of the tree at this tag."""


class Author(ConfigModel):
    name: str
    url: str
    avatar_url: str | None = None


class Commit(ConfigModel):
    sha: str
    url: str


class Release(ConfigModel):
    """A single release with its assets and source archives."""

    name: str = ""
    """Display name."""

    tag: ReleaseTag
    """Tag the release points to."""

    labels: list[str] = Field(default_factory=list)
    """Badges such as `Latest` or `Pre-release`."""

    published_at: str | None = None
    """Publication timestamp (ISO 8601)."""

    detail_url: str = ""
    """Web page of the release."""

    author: Author | None = None
    commit: Commit | None = None

    assets: list[Asset] = Field(default_factory=list)
    """Attached files, in API order."""

    tar_url: str | None = None
    """Tarball of the tagged source tree, if any."""

    zip_url: str | None = None
    """Zipball of the tagged source tree, if any."""

    body: str | None = None
    """Release notes (markdown)."""

    @model_validator(mode="after")
    def _check_unique_assets(self) -> Self:
        seen: set[str] = set()
        for asset in self.assets:
            if asset.name in seen:
                msg = f"Duplicate asset {asset.name!r} in release {self.tag.name!r}"
                raise ValueError(msg)
            seen.add(asset.name)
        return self

    def archive_url(self, kind: ArchiveKind) -> str | None:
        """Return the URL of an archive slot, None when the slot is empty."""
        url = self.zip_url if kind == "zip" else self.tar_url
        return url or None

    def archive_slots(self) -> Iterator[tuple[ArchiveKind, str]]:
        """Yield the non-empty archive slots in fixed order."""
        for kind in ARCHIVE_ORDER:
            if url := self.archive_url(kind):
                yield kind, url


class Config(ConfigModel):
    """Snapshot of a repository's releases."""

    name: str
    """Repository name (without owner)."""

    description: str | None = None
    repo_fullname: str = ""
    repo_url: str = ""
    avatar_url: str | None = None
    labels: list[str] = Field(default_factory=list)
    license: str | None = None

    index_tags: list[str] = Field(default_factory=list)
    """Tags that redirects point to."""

    redirect: dict[str, str] = Field(default_factory=dict)
    """Mapping of alias (e.g. `latest`, `v1`) to tag name."""

    releases: list[Release] = Field(default_factory=list)
    """Releases, newest first."""

    @model_validator(mode="after")
    def _check_unique_tags(self) -> Self:
        seen: set[str] = set()
        for release in self.releases:
            if release.tag.name in seen:
                msg = f"Duplicate release tag {release.tag.name!r}"
                raise ValueError(msg)
            seen.add(release.tag.name)
        return self

    def release_map(self) -> dict[str, Release]:
        """Map tag name to release."""
        return {release.tag.name: release for release in self.releases}

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)

    @classmethod
    def from_json(cls, data: str | bytes) -> Config:
        return cls.model_validate_json(data)

    @classmethod
    def load(cls, path: str) -> Config:
        """Load a config document from a local path or fsspec URL."""
        with fsspec.open(path, "r", encoding="utf-8") as f:
            return cls.from_json(f.read())

    def save(self, path: str) -> None:
        """Write the config document to a local path or fsspec URL."""
        fs, fs_path = fsspec.core.url_to_fs(path)
        fs.makedirs(fs._parent(fs_path), exist_ok=True)
        with fs.open(fs_path, "w", encoding="utf-8") as f:
            f.write(self.to_json())

"""Test configuration and shared fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from release_sync.models import Asset, Config, Release, ReleaseTag


if TYPE_CHECKING:
    from collections.abc import Callable


DOWNLOAD_BASE = "https://github.com/acme/widget/releases/download"


def _asset(tag: str, name: str, digest: str | None = None, size: int = 100) -> Asset:
    return Asset(
        name=name,
        size=size,
        digest=digest if digest is not None else f"sha256:{name}",
        download_url=f"{DOWNLOAD_BASE}/{tag}/{name}",
    )


@pytest.fixture
def make_release() -> Callable[..., Release]:
    """Factory for releases: `make_release("v1.0", "a.zip", ("b.zip", "D2"))`."""

    def factory(
        tag: str,
        *assets: str | tuple[str, str],
        zip_url: str | None = None,
        tar_url: str | None = None,
        **kwargs: Any,
    ) -> Release:
        built = [
            _asset(tag, *spec) if isinstance(spec, tuple) else _asset(tag, spec)
            for spec in assets
        ]
        return Release(
            name=kwargs.pop("name", tag),
            tag=ReleaseTag(name=tag),
            assets=built,
            zip_url=zip_url,
            tar_url=tar_url,
            **kwargs,
        )

    return factory


@pytest.fixture
def make_config() -> Callable[..., Config]:
    """Factory for `widget` snapshots holding the given releases."""

    def factory(*releases: Release, **kwargs: Any) -> Config:
        return Config(
            name="widget",
            repo_fullname="acme/widget",
            repo_url="https://github.com/acme/widget",
            releases=list(releases),
            **kwargs,
        )

    return factory


@pytest.fixture
def snapshot(make_config, make_release) -> Config:
    """Two releases, the older one with source archives."""
    return make_config(
        make_release("v1.1", "widget-linux.tar.gz", "widget-win.zip"),
        make_release(
            "v1.0",
            "widget-linux.tar.gz",
            zip_url="https://github.com/acme/widget/archive/v1.0.zip",
            tar_url="https://github.com/acme/widget/archive/v1.0.tar.gz",
        ),
    )

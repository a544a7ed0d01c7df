"""File naming and user-facing URL templates."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from release_sync.models import ARCHIVE_EXTENSIONS


if TYPE_CHECKING:
    from collections.abc import Mapping

    from release_sync.models import ArchiveKind, Asset, Config, Release


ARCHIVE_DIR = "archive"
"""Sub-directory of a tag holding the source archives."""

_PLACEHOLDER = re.compile(r"\{([a-zA-Z0-9_]+)\}")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def render(template: str, variables: Mapping[str, str]) -> str:
    """Substitute `{key}` placeholders, leaving unknown ones verbatim."""
    return _PLACEHOLDER.sub(
        lambda m: variables.get(m.group(1), m.group(0)),
        template,
    )


def safe_filename(value: str) -> str:
    """Replace every character outside `[A-Za-z0-9._-]` by `_`."""
    return _UNSAFE_CHARS.sub("_", value)


def archive_filename(repo_name: str, tag_name: str, kind: ArchiveKind) -> str:
    """Path of an archive slot relative to its tag directory.

    >>> archive_filename("widget", "v1.0", "zip")
    'archive/widget-v1.0.zip'
    """
    basename = safe_filename(f"{repo_name}-{tag_name}.{ARCHIVE_EXTENSIONS[kind]}")
    return f"{ARCHIVE_DIR}/{basename}"


def url_context(release: Release, name: str, url: str) -> dict[str, str]:
    return {
        "tag": release.tag.name,
        "name": name,
        "release": release.name,
        "url": url,
    }


def user_download_url(
    template: str | None,
    release: Release,
    name: str,
    url: str,
) -> str:
    """URL shown to users for a file, the real URL when no template is set."""
    if not template:
        return url
    return render(template, url_context(release, name, url))


def _templated_asset(template: str, release: Release, asset: Asset) -> Asset:
    url = user_download_url(template, release, asset.name, asset.download_url)
    return asset.model_copy(update={"download_url": url})


def apply_url_template(config: Config, template: str | None, repo_name: str) -> Config:
    """Return a copy of the config whose download URLs use the template.

    Archive URLs are rewritten with the archive filename as `{name}`. The
    given config is left untouched.
    """
    if not template:
        return config
    releases = []
    for release in config.releases:
        update: dict[str, object] = {
            "assets": [_templated_asset(template, release, a) for a in release.assets],
        }
        for kind, url in release.archive_slots():
            filename = archive_filename(repo_name, release.tag.name, kind)
            field = "zip_url" if kind == "zip" else "tar_url"
            update[field] = user_download_url(template, release, filename, url)
        releases.append(release.model_copy(update=update))
    return config.model_copy(update={"releases": releases})

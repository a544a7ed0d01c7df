"""Ingestion of GitHub release metadata into a config document."""

from __future__ import annotations

import re
import sys
from typing import TYPE_CHECKING, Any, Self

import httpx

from release_sync import __version__
from release_sync.exceptions import IngestError
from release_sync.log import get_logger
from release_sync.models import Asset, Author, Commit, Config, Release, ReleaseTag


if TYPE_CHECKING:
    from collections.abc import Iterable

    from release_sync.settings import ReduceSpec


logger = get_logger(__name__)

GITHUB_API_URL = "https://api.github.com"

_SEMVER_HEAD = re.compile(r"^v?(\d+)(?:\.(\d+))?")
_VERSION_SEGMENT = re.compile(r"((?:^|\.)v?\d+[^.]*)(?:\.\d+[^.]*)?")
_BOT_SUFFIX = re.compile(r"\[bot\]$", re.IGNORECASE)


def _replace_last(value: str, old: str, new: str) -> str:
    head, sep, tail = value.rpartition(old)
    return f"{head}{new}{tail}" if sep else value


def web_url(api_url: str) -> str:
    """Turn a `api.github.com/repos/...` URL into its `github.com/...` form."""
    return api_url.replace("api.github.com/repos", "github.com", 1)


def commit_web_url(api_url: str) -> str:
    return _replace_last(web_url(api_url), "/commits/", "/commit/")


def archive_web_url(api_url: str, kind: str) -> str:
    """Web download URL of a `tarball` / `zipball` API URL."""
    if kind == "tar":
        return _replace_last(web_url(api_url), "/tarball/", "/archive/") + ".tar.gz"
    return _replace_last(web_url(api_url), "/zipball/", "/archive/") + ".zip"


def reduce_release_tags(
    tags: Iterable[str],
    max_major: int | None = None,
    max_minor: int | None = None,
    max_patch: int | None = None,
) -> list[str]:
    """Keep at most N majors, N minors per major and N patches per minor.

    Tags are visited in the given order (newest first), so the first seen
    versions are kept. Tags that do not start with a version number are
    dropped. None means unlimited and zero keeps nothing; without any limit
    all tags are returned unchanged.

    Args:
        tags: Tag names, newest first
        max_major: Maximum number of major versions
        max_minor: Maximum number of minor versions per major
        max_patch: Maximum number of tags per minor version

    Returns:
        The kept tags, in their original order
    """
    tags = list(tags)
    if max_major is None and max_minor is None and max_patch is None:
        return tags
    versions: dict[str, dict[str, list[str]]] = {}
    for tag in tags:
        if not (match := _SEMVER_HEAD.match(tag)):
            continue
        major, minor = match.group(1), match.group(2) or "0"
        if major not in versions:
            if max_major is not None and len(versions) >= max_major:
                continue
            versions[major] = {}
        minors = versions[major]
        if minor not in minors:
            if max_minor is not None and len(minors) >= max_minor:
                continue
            minors[minor] = []
        if max_patch is not None and len(minors[minor]) >= max_patch:
            continue
        minors[minor].append(tag)

    kept = {tag for minors in versions.values() for group in minors.values() for tag in group}
    logger.info(
        "Reduced releases",
        major=len(versions),
        minor=sum(len(minors) for minors in versions.values()),
        patch=len(kept),
    )
    return [tag for tag in tags if tag in kept]


def _group_by_segment(tags: Iterable[str], offset: int) -> dict[str, list[str]]:
    groups: dict[str, list[str]] = {}
    for tag in tags:
        if match := _VERSION_SEGMENT.search(tag[offset:]):
            groups.setdefault(match.group(1), []).append(tag)
    return groups


def create_tag_redirects(tags: Iterable[str], max_depth: int = 2) -> dict[str, str]:
    """Create version prefix redirects such as `v1.4 -> v1.4.2`.

    Tags are grouped by their leading version segments, down to `max_depth`
    segments. A group of the deepest level redirects to its first tag when it
    holds more than one tag. A group with nested groups counts as a single
    entry, so only the deepest prefixes redirect. Prefixes that are tag names
    themselves are skipped.

    Args:
        tags: Tag names, newest first
        max_depth: Number of version segments to build prefixes from

    Returns:
        Mapping of prefix to tag name
    """
    tags = list(dict.fromkeys(tags))
    existing = set(tags)
    redirects: dict[str, str] = {}

    def visit(group: list[str], prefix: str, depth: int) -> str:
        first_of_group = ""
        for segment, members in _group_by_segment(group, len(prefix)).items():
            alias = prefix + segment
            if depth < max_depth:
                first_tag = visit(members, alias, depth + 1)
                count = 1
            else:
                first_tag = members[0]
                count = len(members)
            if count > 1 and alias not in existing:
                redirects[alias] = first_tag
                logger.debug("Created redirect", alias=alias, tag=first_tag)
            first_of_group = first_of_group or first_tag
        return first_of_group

    visit(tags, "", 1)
    return redirects


def compile_release(
    data: dict[str, Any],
    tag: dict[str, Any],
    *,
    repo_url: str,
    latest_tag: str,
) -> Release:
    """Build a release from its API representation and the one of its tag."""
    tag_name = data["tag_name"]
    labels = []
    if tag_name == latest_tag:
        labels.append("Latest")
    if data.get("prerelease"):
        labels.append("Pre-release")
    if data.get("draft"):
        labels.append("Draft")

    author = None
    if user := data.get("author"):
        login = user["login"]
        if str(user.get("type", "")).lower() == "bot":
            login = _BOT_SUFFIX.sub("", login)
        author = Author(name=login, url=user["html_url"], avatar_url=user.get("avatar_url"))

    commit = tag["commit"]
    return Release(
        name=data.get("name") or "",
        tag=ReleaseTag(name=tag_name, tree_url=f"{repo_url}/tree/{tag_name}"),
        labels=labels,
        published_at=data.get("published_at"),
        detail_url=data.get("html_url", ""),
        author=author,
        commit=Commit(sha=commit["sha"], url=commit_web_url(commit["url"])),
        assets=[
            Asset(
                name=asset["name"],
                size=asset.get("size", 0),
                digest=asset.get("digest"),
                download_url=asset["browser_download_url"],
                updated_at=asset.get("updated_at", ""),
            )
            for asset in data.get("assets", [])
        ],
        tar_url=archive_web_url(tag["tarball_url"], "tar"),
        zip_url=archive_web_url(tag["zipball_url"], "zip"),
        body=data.get("body"),
    )


class ReleaseIngestor:
    """Reads a repository's releases from the GitHub REST API.

    Example:
        ```python
        async with ReleaseIngestor("acme/widget", token=token) as ingestor:
            config = await ingestor.ingest()
        ```
    """

    def __init__(
        self,
        repo_fullname: str,
        *,
        token: str | None = None,
        client: httpx.AsyncClient | None = None,
        api_url: str = GITHUB_API_URL,
        reduce: ReduceSpec = (),
        ignore_empty_assets: bool = False,
    ):
        """Initialize the ingestor.

        Args:
            repo_fullname: Repository as `owner/name`
            token: API token, sent as bearer token
            client: HTTP client to use (one is created and owned if None)
            api_url: Base URL of the API
            reduce: Limits passed to `reduce_release_tags`
            ignore_empty_assets: Drop releases without assets
        """
        self.repo_fullname = repo_fullname
        self.api_url = api_url.rstrip("/")
        self.reduce = reduce
        self.ignore_empty_assets = ignore_empty_assets
        headers = {
            "X-App-Repo": repo_fullname,
            "User-Agent": f"release-sync/{__version__} ({sys.platform})",
            "Accept": "application/vnd.github+json",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=30.0)
        self._headers = headers

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def repo_api_url(self) -> str:
        return f"{self.api_url}/repos/{self.repo_fullname}"

    async def _get_json(self, what: str, url: str, **params: Any) -> Any:
        try:
            response = await self._client.get(url, params=params, headers=self._headers)
        except httpx.HTTPError as e:
            msg = f"Failed to fetch {what} for {self.repo_fullname}: {e}"
            raise IngestError(msg) from e
        if response.is_error:
            try:
                detail = response.json().get("message", "")
            except ValueError:
                detail = response.text
            msg = (
                f"Failed to fetch {what} for {self.repo_fullname}: "
                f"{response.status_code} {response.reason_phrase}: {detail}"
            )
            raise IngestError(msg, status_code=response.status_code)
        return response.json()

    async def fetch_repo(self) -> dict[str, Any]:
        logger.info("Fetching repository data", repo=self.repo_fullname)
        return await self._get_json("repository data", self.repo_api_url)

    async def fetch_releases(self) -> list[dict[str, Any]]:
        """Fetch all releases, newest first, paging until an empty page."""
        releases: list[dict[str, Any]] = []
        page = 1
        while True:
            logger.debug("Fetching releases", page=page)
            data = await self._get_json("releases", f"{self.repo_api_url}/releases", page=page)
            if not data:
                break
            releases.extend(data)
            page += 1
        logger.info("Fetched releases", count=len(releases))
        return releases

    async def fetch_tags(self, names: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Fetch the tags with the given names, stopping once all are found."""
        missing = set(names)
        tags: dict[str, dict[str, Any]] = {}
        page = 1
        while missing:
            logger.debug("Fetching tags", page=page)
            data = await self._get_json("tags", f"{self.repo_api_url}/tags", page=page)
            if not data:
                break
            for tag in data:
                if tag["name"] in missing:
                    tags[tag["name"]] = tag
                    missing.discard(tag["name"])
            page += 1
        return tags

    async def ingest(self) -> Config:
        """Build the config document of the repository."""
        repo = await self.fetch_repo()
        releases = await self.fetch_releases()
        tags = await self.fetch_tags(r["tag_name"] for r in releases) if releases else {}
        if missing := [r["tag_name"] for r in releases if r["tag_name"] not in tags]:
            logger.warning("Tags of releases not found, dropping releases", tags=missing)
            releases = [r for r in releases if r["tag_name"] in tags]

        license_info = repo.get("license") or {}
        base = {
            "name": repo["name"],
            "description": repo.get("description"),
            "repo_fullname": repo["full_name"],
            "repo_url": repo["html_url"],
            "avatar_url": (repo.get("owner") or {}).get("avatar_url"),
            "labels": repo.get("topics") or [],
            "license": license_info.get("name"),
        }
        if not releases:
            logger.warning("No releases found", repo=self.repo_fullname)
            return Config(**base)

        latest_tag = releases[0]["tag_name"]
        tag_names = [r["tag_name"] for r in releases]
        if self.reduce:
            tag_names = reduce_release_tags(tag_names, *self.reduce)
        kept_tags = set(tag_names)

        compiled: list[Release] = []
        for data in releases:
            if data["tag_name"] not in kept_tags:
                continue
            release = compile_release(
                data, tags[data["tag_name"]], repo_url=repo["html_url"], latest_tag=latest_tag
            )
            if self.ignore_empty_assets and not release.assets:
                logger.info("Skipped release without assets", tag=release.tag.name)
                continue
            logger.debug("Compiled release", tag=release.tag.name, assets=len(release.assets))
            compiled.append(release)
        logger.info("Compiled releases", count=len(compiled))

        release_tags = [release.tag.name for release in compiled]
        redirect: dict[str, str] = {}
        if latest_tag in release_tags:
            redirect["latest"] = latest_tag
        redirect.update(create_tag_redirects(release_tags))
        index_tags = list(dict.fromkeys(redirect.values()))
        logger.info("Created redirects", count=len(redirect), index_tags=len(index_tags))
        return Config(**base, index_tags=index_tags, redirect=redirect, releases=compiled)

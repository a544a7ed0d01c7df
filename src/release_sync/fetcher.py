"""Download of release files into the local staging area."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Self

import httpx

from release_sync import __version__
from release_sync.log import get_logger


if TYPE_CHECKING:
    from pathlib import Path


logger = get_logger(__name__)

USER_AGENT = f"release-sync/{__version__}"
RETRYABLE_STATUS = frozenset({408, 425, 429, 500, 502, 503, 504})


class AssetFetcher:
    """Reliable file fetcher: `fetch(url, dest, retries) -> bool`.

    Streams the response into `<dest>.part` and renames it once complete, so a
    staged file is either absent or whole.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 60.0,
        chunk_size: int = 64 * 1024,
        retry_delay: float = 1.0,
    ):
        """Initialize the fetcher.

        Args:
            client: HTTP client to use (one is created and owned if None)
            timeout: Timeout per request in seconds
            chunk_size: Size of streamed chunks
            retry_delay: Base delay between attempts, doubled on each retry
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=True,
            timeout=timeout,
            headers={"User-Agent": USER_AGENT},
        )
        self.chunk_size = chunk_size
        self.retry_delay = retry_delay

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str, dest: Path, retries: int = 3) -> bool:
        """Download `url` to `dest`.

        Args:
            url: Source URL
            dest: Destination file, parent directories are created
            retries: Additional attempts after the first failure

        Returns:
            True if the file was downloaded completely
        """
        dest.parent.mkdir(parents=True, exist_ok=True)
        partial = dest.with_name(f"{dest.name}.part")
        for attempt in range(retries + 1):
            try:
                size = await self._download(url, partial)
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.warning("Download failed", url=url, status=status, attempt=attempt + 1)
                if status not in RETRYABLE_STATUS:
                    break
            except (httpx.HTTPError, OSError) as e:
                logger.warning("Download failed", url=url, error=str(e), attempt=attempt + 1)
            else:
                partial.replace(dest)
                logger.debug("Downloaded file", url=url, dest=str(dest), size=size)
                return True
            if attempt < retries:
                await asyncio.sleep(self.retry_delay * 2**attempt)

        partial.unlink(missing_ok=True)
        return False

    async def _download(self, url: str, partial: Path) -> int:
        size = 0
        async with self._client.stream("GET", url) as response:
            response.raise_for_status()
            with partial.open("wb") as f:
                async for chunk in response.aiter_bytes(self.chunk_size):
                    f.write(chunk)
                    size += len(chunk)
        return size

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from release_sync.fetcher import AssetFetcher


if TYPE_CHECKING:
    from pathlib import Path


def make_fetcher(handler) -> AssetFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AssetFetcher(client, retry_delay=0)


@pytest.fixture
def dest(tmp_path: Path) -> Path:
    return tmp_path / "staging/add/v1/a.bin"


async def test_fetch_writes_file(dest: Path):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"x" * 1000)

    async with make_fetcher(handler) as fetcher:
        assert await fetcher.fetch("https://example.com/a.bin", dest)

    assert dest.read_bytes() == b"x" * 1000
    assert not dest.with_name("a.bin.part").exists()


async def test_fetch_retries_server_errors(dest: Path):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        if calls < 3:
            return httpx.Response(503)
        return httpx.Response(200, content=b"ok")

    async with make_fetcher(handler) as fetcher:
        assert await fetcher.fetch("https://example.com/a.bin", dest, retries=3)

    assert calls == 3
    assert dest.read_bytes() == b"ok"


async def test_fetch_gives_up_after_retries(dest: Path):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("unreachable", request=request)

    async with make_fetcher(handler) as fetcher:
        assert not await fetcher.fetch("https://example.com/a.bin", dest, retries=2)

    assert calls == 3
    assert not dest.exists()


async def test_fetch_does_not_retry_client_errors(dest: Path):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(404)

    async with make_fetcher(handler) as fetcher:
        assert not await fetcher.fetch("https://example.com/a.bin", dest, retries=3)

    assert calls == 1

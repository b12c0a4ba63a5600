"""Tests for the HTTP tile fetcher."""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

import aiohttp
import pytest
from aiohttp import web
from aiohttp import test_utils

from tile_prefetch.fetch.tile_fetcher import (
    HttpTileFetcher,
    close_connection_pool,
    get_connection_pool,
)
from tile_prefetch.models.config import LayerConfig
from tile_prefetch.models.stats import FetchStats
from tile_prefetch.storage.tile_cache import TileCache

TILE_BYTES = b"\x89PNG\r\n\x1a\n fake tile"


@asynccontextmanager
async def tile_server(requests: list[str]):
    """Serves tiles under /tiles/z/x/y.png; y == 404 is missing, y == 204 is empty."""

    async def handle_tile(request: web.Request) -> web.Response:
        requests.append(request.path)
        y = request.match_info["y"]
        if y == "404":
            raise web.HTTPNotFound()
        if y == "204":
            return web.Response(body=b"")
        return web.Response(body=TILE_BYTES, content_type="image/png")

    app = web.Application()
    app.router.add_get("/tiles/{z}/{x}/{y}.png", handle_tile)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield f"http://{server.host}:{server.port}/tiles/{{z}}/{{x}}/{{y}}.png"
    finally:
        await server.close()


def _fetcher(template, tmp_path, session):
    layer = LayerConfig(url_template=template)
    cache = TileCache(tmp_path, "mapnik")
    return HttpTileFetcher(layer, cache, FetchStats(), session=session)


class TestHttpTileFetcher:
    """Tests for HttpTileFetcher."""

    @pytest.mark.asyncio
    async def test_downloads_into_cache(self, tmp_path):
        requests = []
        async with tile_server(requests) as template:
            async with aiohttp.ClientSession() as session:
                fetcher = _fetcher(template, tmp_path, session)
                await fetcher.fetch("12,2200,1343")

        assert requests == ["/tiles/12/2200/1343.png"]
        assert fetcher.cache.path_for("12,2200,1343").read_bytes() == TILE_BYTES
        assert fetcher.stats.fetched == 1
        assert fetcher.stats.bytes_downloaded == len(TILE_BYTES)
        assert fetcher.stats.failed == 0

    @pytest.mark.asyncio
    async def test_cached_tile_is_not_requested(self, tmp_path):
        requests = []
        async with tile_server(requests) as template:
            async with aiohttp.ClientSession() as session:
                fetcher = _fetcher(template, tmp_path, session)
                await fetcher.cache.write("3,3,5", b"cached")
                await fetcher.fetch("3,3,5")

        assert requests == []
        assert fetcher.stats.already_cached == 1
        assert fetcher.stats.fetched == 0

    @pytest.mark.asyncio
    async def test_http_error_is_counted_not_raised(self, tmp_path):
        requests = []
        async with tile_server(requests) as template:
            async with aiohttp.ClientSession() as session:
                fetcher = _fetcher(template, tmp_path, session)
                await fetcher.fetch("10,1,404")

        assert requests == ["/tiles/10/1/404.png"]
        assert fetcher.stats.failed == 1
        assert not fetcher.cache.contains("10,1,404")

    @pytest.mark.asyncio
    async def test_empty_body_is_a_failure(self, tmp_path):
        async with tile_server([]) as template:
            async with aiohttp.ClientSession() as session:
                fetcher = _fetcher(template, tmp_path, session)
                await fetcher.fetch("10,1,204")

        assert fetcher.stats.failed == 1
        assert not fetcher.cache.contains("10,1,204")

    @pytest.mark.asyncio
    async def test_connection_error_is_counted_not_raised(self, tmp_path):
        session = MagicMock()
        session.get.side_effect = aiohttp.ClientConnectionError("connection refused")
        fetcher = _fetcher("https://tiles.invalid/{z}/{x}/{y}.png", tmp_path, session)

        await fetcher.fetch("1,0,0")

        assert fetcher.stats.failed == 1
        assert fetcher.stats.completed == 1

    @pytest.mark.asyncio
    async def test_timeout_is_counted_not_raised(self, tmp_path):
        session = MagicMock()
        session.get.side_effect = asyncio.TimeoutError()
        fetcher = _fetcher("https://tiles.invalid/{z}/{x}/{y}.png", tmp_path, session)

        await fetcher.fetch("1,0,0")

        assert fetcher.stats.failed == 1


class TestConnectionPool:
    """Tests for the shared connection pool."""

    @pytest.mark.asyncio
    async def test_pool_is_shared_until_closed(self):
        first = await get_connection_pool(max_connections=2, user_agent="test-agent")
        second = await get_connection_pool()
        assert first is second
        assert first.headers["User-Agent"] == "test-agent"

        await close_connection_pool()
        assert first.closed

        third = await get_connection_pool()
        assert third is not first
        await close_connection_pool()

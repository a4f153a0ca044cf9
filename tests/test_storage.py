"""Tests for tile stores."""

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils

from planet_canvas.core.errors import StorageFailure
from planet_canvas.core.remote import HttpTileStore
from planet_canvas.core.storage import FileTileStore, MemoryTileStore
from planet_canvas.core.tile import TileId


@pytest.mark.asyncio
async def test_memory_store_round_trip():
    store = MemoryTileStore()
    assert await store.load_tile(TileId(0, 0)) is None
    await store.save_tile(TileId(0, 0), b"png")
    assert await store.load_tile(TileId(0, 0)) == b"png"


@pytest.mark.asyncio
async def test_file_store_round_trip(tmp_path):
    store = FileTileStore(str(tmp_path / "tiles"))
    assert await store.load_tile(TileId(2, 1)) is None

    await store.save_tile(TileId(2, 1), b"data")

    assert (tmp_path / "tiles" / "earth-tile-2-1.png").read_bytes() == b"data"
    assert await store.load_tile(TileId(2, 1)) == b"data"
    assert not list((tmp_path / "tiles").glob("*.tmp"))


@pytest.mark.asyncio
async def test_file_store_write_failure(tmp_path):
    blocker = tmp_path / "tiles"
    blocker.write_text("not a directory")
    store = FileTileStore(str(blocker))

    with pytest.raises(StorageFailure) as exc_info:
        await store.save_tile(TileId(0, 0), b"data")
    assert exc_info.value.operation == "save_tile"
    assert exc_info.value.retryable


@pytest_asyncio.fixture
async def blob_server():
    """Minimal blob endpoint: GET/PUT under /tiles, always 500 under /broken."""
    blobs = {}

    async def get_blob(request):
        name = request.match_info["name"]
        if name not in blobs:
            return web.Response(status=404)
        return web.Response(body=blobs[name], content_type="image/png")

    async def put_blob(request):
        blobs[request.match_info["name"]] = await request.read()
        return web.Response(status=201)

    async def broken(request):
        return web.Response(status=500)

    app = web.Application()
    app.router.add_get("/tiles/{name}", get_blob)
    app.router.add_put("/tiles/{name}", put_blob)
    app.router.add_route("*", "/broken/{name}", broken)

    server = test_utils.TestServer(app)
    await server.start_server()
    yield server, blobs
    await server.close()


@pytest.mark.asyncio
async def test_http_store_round_trip(blob_server):
    server, blobs = blob_server
    store = HttpTileStore(base_url=str(server.make_url("/tiles")), retry_times=0)
    try:
        assert await store.load_tile(TileId(1, 1)) is None
        await store.save_tile(TileId(1, 1), b"tile-bytes")
        assert blobs["earth-tile-1-1.png"] == b"tile-bytes"
        assert await store.load_tile(TileId(1, 1)) == b"tile-bytes"
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_http_store_server_error_is_storage_failure(blob_server):
    server, _ = blob_server
    store = HttpTileStore(base_url=str(server.make_url("/broken")), retry_times=1)
    try:
        with pytest.raises(StorageFailure) as exc_info:
            await store.save_tile(TileId(0, 0), b"tile-bytes")
        assert "HTTP 500" in exc_info.value.detail
        with pytest.raises(StorageFailure):
            await store.load_tile(TileId(0, 0))
    finally:
        await store.close()


@pytest.mark.asyncio
async def test_http_store_unreachable(unused_tcp_port):
    store = HttpTileStore(base_url=f"http://127.0.0.1:{unused_tcp_port}/tiles", retry_times=0, timeout=2)
    try:
        with pytest.raises(StorageFailure):
            await store.load_tile(TileId(0, 0))
    finally:
        await store.close()

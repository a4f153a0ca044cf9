"""Async HTTP tile store with concurrency control."""

import asyncio
import logging
from typing import Dict, Optional

import aiohttp

from ..config import STORAGE
from .errors import StorageFailure
from .storage import TileStore
from .tile import TileId, tile_path

logger = logging.getLogger(__name__)


class HttpTileStore(TileStore):
    """Tile store backed by a blob endpoint speaking plain GET/PUT."""

    def __init__(
        self,
        base_url: str = None,
        max_concurrent: int = 4,
        retry_times: int = None,
        timeout: int = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize the store.

        Args:
            base_url: Blob endpoint; tiles live at {base_url}/earth-tile-{x}-{y}.png
            max_concurrent: Maximum concurrent requests
            retry_times: Number of retries on failure
            timeout: Request timeout in seconds
            headers: Extra request headers (e.g. authorization)
        """
        self.base_url = (base_url or STORAGE["base_url"]).rstrip("/")
        self.max_concurrent = max_concurrent
        self.retry_times = STORAGE["retry_times"] if retry_times is None else retry_times
        self.timeout = STORAGE["timeout"] if timeout is None else timeout
        self.headers = dict(headers or {})

        self._semaphore = asyncio.Semaphore(self.max_concurrent)
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_tile_url(self, tile_id: TileId) -> str:
        return f"{self.base_url}/{tile_path(tile_id)}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=self.max_concurrent)
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers=self.headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._session

    async def _request(self, method: str, tile_id: TileId, data: bytes = None) -> Optional[bytes]:
        """Issue one request with retry logic; None means the tile does not exist."""
        url = self._get_tile_url(tile_id)
        session = await self._get_session()
        last_error = None

        for attempt in range(self.retry_times + 1):
            try:
                async with self._semaphore:
                    kwargs = {}
                    if data is not None:
                        kwargs["data"] = data
                        kwargs["headers"] = {"Content-Type": "image/png"}
                    async with session.request(method, url, **kwargs) as response:
                        if method == "GET" and response.status == 404:
                            return None
                        if response.status in (200, 201, 204):
                            if method == "GET":
                                return await response.read()
                            return b""
                        last_error = f"HTTP {response.status}"
                        if 400 <= response.status < 500 and response.status != 429:
                            break

            except asyncio.TimeoutError:
                last_error = "Timeout"
            except aiohttp.ClientError as e:
                last_error = str(e)

            # Wait before retry
            if attempt < self.retry_times:
                logger.warning(
                    "%s %s failed (%s), retrying (%d/%d)",
                    method, url, last_error, attempt + 1, self.retry_times,
                )
                await asyncio.sleep(0.5 * (attempt + 1))

        operation = "load_tile" if method == "GET" else "save_tile"
        raise StorageFailure(operation, tile_id.key, last_error or "unknown error")

    async def load_tile(self, tile_id: TileId) -> Optional[bytes]:
        return await self._request("GET", tile_id)

    async def save_tile(self, tile_id: TileId, data: bytes) -> None:
        await self._request("PUT", tile_id, data)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

"""Tile blob stores.

A store holds the encoded PNG of every tile that has been written at least
once. load_tile returns None for tiles that were never written; any other
failure surfaces as StorageFailure.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from .errors import StorageFailure
from .tile import TileId, tile_path

logger = logging.getLogger(__name__)


class TileStore:
    """Interface of a tile blob store."""

    async def load_tile(self, tile_id: TileId) -> Optional[bytes]:
        raise NotImplementedError

    async def save_tile(self, tile_id: TileId, data: bytes) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        pass


class MemoryTileStore(TileStore):
    """Tiles kept in a dict; used for development and tests."""

    def __init__(self):
        self.blobs: Dict[TileId, bytes] = {}

    async def load_tile(self, tile_id: TileId) -> Optional[bytes]:
        return self.blobs.get(tile_id)

    async def save_tile(self, tile_id: TileId, data: bytes) -> None:
        self.blobs[tile_id] = bytes(data)


class FileTileStore(TileStore):
    """
    Tiles stored as PNG files in one directory:

        root/
          ├─ earth-tile-0-0.png
          ├─ earth-tile-1-0.png
          └─ ...
    """

    def __init__(self, root: str):
        self.root = Path(root)

    def path_for(self, tile_id: TileId) -> Path:
        return self.root / tile_path(tile_id)

    def _read(self, tile_id: TileId) -> Optional[bytes]:
        path = self.path_for(tile_id)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def _write(self, tile_id: TileId, data: bytes) -> None:
        path = self.path_for(tile_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".png.tmp")
        tmp.write_bytes(data)
        os.replace(tmp, path)

    async def load_tile(self, tile_id: TileId) -> Optional[bytes]:
        try:
            return await asyncio.to_thread(self._read, tile_id)
        except OSError as e:
            raise StorageFailure("load_tile", tile_id.key, str(e)) from e

    async def save_tile(self, tile_id: TileId, data: bytes) -> None:
        try:
            await asyncio.to_thread(self._write, tile_id, data)
        except OSError as e:
            raise StorageFailure("save_tile", tile_id.key, str(e)) from e
        logger.debug("Wrote %s (%d bytes)", self.path_for(tile_id), len(data))

"""LRU cache of decoded tiles."""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterator, Optional

from PIL import Image

from ..config import CACHE_SETTINGS
from .tile import TileId, tile_path


@dataclass
class Tile:
    """Decoded pixel buffer for one tile."""
    tile_id: TileId
    image: Image.Image
    path: str = ""

    def __post_init__(self):
        if not self.path:
            self.path = tile_path(self.tile_id)


class TileCache:
    """
    Capacity-bounded TileId -> Tile mapping with least-recently-used eviction.

    Not thread-safe; callers serialize access.
    """

    def __init__(self, capacity: int = None):
        self.capacity = CACHE_SETTINGS["capacity"] if capacity is None else capacity
        if self.capacity < 1:
            raise ValueError("Tile cache capacity must be at least 1")
        self._entries: "OrderedDict[TileId, Tile]" = OrderedDict()

    def get(self, tile_id: TileId) -> Optional[Tile]:
        tile = self._entries.get(tile_id)
        if tile is not None:
            self._entries.move_to_end(tile_id)
        return tile

    def put(self, tile_id: TileId, tile: Tile) -> Optional[TileId]:
        """
        Insert or replace a tile.

        Returns:
            The evicted TileId, if any
        """
        evicted = None
        if tile_id in self._entries:
            self._entries.move_to_end(tile_id)
        elif len(self._entries) >= self.capacity:
            evicted, _ = self._entries.popitem(last=False)
        self._entries[tile_id] = tile
        return evicted

    def peek(self, tile_id: TileId) -> Optional[Tile]:
        """Look up without touching the LRU order."""
        return self._entries.get(tile_id)

    def discard(self, tile_id: TileId) -> None:
        self._entries.pop(tile_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, int]:
        return {"size": len(self._entries), "capacity": self.capacity}

    def __contains__(self, tile_id: TileId) -> bool:
        return tile_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TileId]:
        """Iterate ids from least to most recently used."""
        return iter(list(self._entries))

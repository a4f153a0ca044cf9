"""Tile coordinate calculation utilities.

The world texture is an equirectangular image split into a fixed grid of
tiles. Tile x wraps around the antimeridian, tile y is clamped at the poles.
"""

import math
from typing import Iterator, List, NamedTuple, Set, Tuple

from ..config import TILE_CONFIG
from .projection import GeoCoordinate, UVCoordinate, geo_to_uv
from .region import GeoBounds


class TileId(NamedTuple):
    """Tile coordinate within the grid."""
    x: int
    y: int

    @property
    def key(self) -> str:
        return f"{self.x}-{self.y}"

    @classmethod
    def parse(cls, key: str) -> "TileId":
        x, y = key.split("-")
        return cls(int(x), int(y))


class TileGrid(NamedTuple):
    """Partition of the world texture into tiles_x * tiles_y equal tiles."""
    tiles_x: int
    tiles_y: int
    tile_width: int
    tile_height: int

    @classmethod
    def default(cls) -> "TileGrid":
        return cls(**TILE_CONFIG)

    @property
    def total_width(self) -> int:
        return self.tiles_x * self.tile_width

    @property
    def total_height(self) -> int:
        return self.tiles_y * self.tile_height

    def contains(self, tile_id: TileId) -> bool:
        return 0 <= tile_id.x < self.tiles_x and 0 <= tile_id.y < self.tiles_y

    def all_tiles(self) -> Iterator[TileId]:
        for y in range(self.tiles_y):
            for x in range(self.tiles_x):
                yield TileId(x, y)


def tile_path(tile_id: TileId) -> str:
    """Content path of a tile, relative to the tile store root."""
    return f"earth-tile-{tile_id.x}-{tile_id.y}.png"


def _index_range(low: float, high: float) -> Tuple[int, int]:
    # The high edge is exclusive, so a rectangle ending exactly on a tile
    # boundary does not pull in the next tile.
    first = math.floor(low)
    last = max(first, math.ceil(high) - 1)
    return first, last


def get_affected_tiles(bounds: GeoBounds, grid: TileGrid) -> Set[TileId]:
    """
    Get every tile a geographic rectangle overlaps.

    Args:
        bounds: Drawing bounds, possibly crossing the antimeridian
        grid: Tile grid

    Returns:
        Set of TileId, x wrapped modulo tiles_x, y clamped to the grid
    """
    uv_min = geo_to_uv(GeoCoordinate(bounds.lat_max, bounds.long_min))
    uv_max = geo_to_uv(GeoCoordinate(bounds.lat_min, bounds.long_max))

    u_low = uv_min.u
    u_high = uv_min.u + bounds.long_span / 360.0

    x_first, x_last = _index_range(u_low * grid.tiles_x, u_high * grid.tiles_x)
    y_first, y_last = _index_range(uv_min.v * grid.tiles_y, uv_max.v * grid.tiles_y)

    if x_last - x_first + 1 >= grid.tiles_x:
        xs = set(range(grid.tiles_x))
    else:
        xs = {x % grid.tiles_x for x in range(x_first, x_last + 1)}

    y_first = max(0, min(grid.tiles_y - 1, y_first))
    y_last = max(0, min(grid.tiles_y - 1, y_last))
    ys = range(y_first, y_last + 1)

    return {TileId(x, y) for x in xs for y in ys}


def uv_to_tile(uv: UVCoordinate, grid: TileGrid) -> TileId:
    """Tile containing a texture coordinate."""
    x = math.floor(uv.u * grid.tiles_x) % grid.tiles_x
    y = max(0, min(grid.tiles_y - 1, math.floor(uv.v * grid.tiles_y)))
    return TileId(x, y)


def pixel_offset_within_tile(
    uv: UVCoordinate,
    tile_id: TileId,
    grid: TileGrid,
) -> Tuple[int, int]:
    """
    Pixel position of a texture coordinate inside a tile.

    The result is relative to the tile's top-left corner. For the tile that
    contains the point it lies inside the tile; for any other tile it is the
    same point expressed in that tile's frame (may be negative or exceed the
    tile size). Horizontal distance takes the shortest way around the globe.
    """
    gx = uv.u * grid.tiles_x
    gy = uv.v * grid.tiles_y

    containing = uv_to_tile(uv, grid)
    local_x = math.floor((gx % 1.0) * grid.tile_width)
    local_y = math.floor((gy % 1.0) * grid.tile_height)
    if gy >= grid.tiles_y:
        local_y = grid.tile_height

    dx = containing.x - tile_id.x
    if dx > grid.tiles_x / 2:
        dx -= grid.tiles_x
    elif dx < -grid.tiles_x / 2:
        dx += grid.tiles_x
    dy = containing.y - tile_id.y

    return local_x + dx * grid.tile_width, local_y + dy * grid.tile_height


def tile_geo_bounds(tile_id: TileId, grid: TileGrid) -> GeoBounds:
    """Geographic bounds of a tile."""
    long_min = tile_id.x / grid.tiles_x * 360.0 - 180.0
    long_max = (tile_id.x + 1) / grid.tiles_x * 360.0 - 180.0
    lat_max = 90.0 - tile_id.y / grid.tiles_y * 180.0
    lat_min = 90.0 - (tile_id.y + 1) / grid.tiles_y * 180.0
    return GeoBounds(lat_min, lat_max, long_min, long_max)


def sorted_tiles(tiles: Set[TileId]) -> List[TileId]:
    return sorted(tiles, key=lambda t: (t.y, t.x))

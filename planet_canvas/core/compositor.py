"""Tile compositing utilities using Pillow."""

import base64
import binascii
from io import BytesIO
from typing import Tuple, Union

from PIL import Image, UnidentifiedImageError

from .errors import InvalidInput
from .projection import GeoCoordinate, geo_to_uv
from .region import GeoBounds
from .tile import TileGrid, TileId, pixel_offset_within_tile


def create_blank_tile(grid: TileGrid) -> Image.Image:
    """Create a fully transparent tile for tiles that were never written."""
    return Image.new("RGBA", (grid.tile_width, grid.tile_height), (0, 0, 0, 0))


def decode_tile(data: bytes, grid: TileGrid) -> Image.Image:
    """Decode stored tile bytes into an RGBA image of the grid's tile size."""
    image = Image.open(BytesIO(data))
    image.load()
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    if image.size != (grid.tile_width, grid.tile_height):
        image = image.resize((grid.tile_width, grid.tile_height), Image.Resampling.LANCZOS)
    return image


def encode_tile(image: Image.Image) -> bytes:
    """Encode a tile as PNG bytes."""
    buffer = BytesIO()
    image.save(buffer, "PNG")
    return buffer.getvalue()


def decode_payload(payload: Union[str, bytes]) -> bytes:
    """
    Turn an image payload into raw bytes.

    Accepts raw bytes, a base64 string or a data URL
    ("data:image/png;base64,...").
    """
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    text = payload.strip()
    if text.startswith("data:"):
        _, _, text = text.partition(",")
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInput("image", "Image is not valid base64")


def decode_stamp_image(data: bytes) -> Image.Image:
    """Decode a drawing into RGBA, rejecting anything Pillow cannot read."""
    if not data:
        raise InvalidInput("image", "Image payload is empty")
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidInput("image", f"Image could not be decoded: {e}")
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return image


def stamp_pixel_size(bounds: GeoBounds, grid: TileGrid) -> Tuple[int, int]:
    """Footprint of a drawing's bounds on the full texture, in pixels."""
    width = bounds.long_span / 360.0 * grid.total_width
    height = bounds.lat_span / 180.0 * grid.total_height
    return max(1, int(round(width))), max(1, int(round(height)))


def fit_stamp(image: Image.Image, bounds: GeoBounds, grid: TileGrid) -> Image.Image:
    """Resize a drawing to cover its bounds on the texture."""
    size = stamp_pixel_size(bounds, grid)
    if image.size == size:
        return image
    return image.resize(size, Image.Resampling.LANCZOS)


def _paste_clipped(tile: Image.Image, stamp: Image.Image, left: int, top: int) -> bool:
    """Alpha-composite stamp onto tile with its top-left at (left, top), clipped."""
    tile_w, tile_h = tile.size
    stamp_w, stamp_h = stamp.size

    dest_left = max(0, left)
    dest_top = max(0, top)
    dest_right = min(tile_w, left + stamp_w)
    dest_bottom = min(tile_h, top + stamp_h)
    if dest_right <= dest_left or dest_bottom <= dest_top:
        return False

    source = (
        dest_left - left,
        dest_top - top,
        dest_right - left,
        dest_bottom - top,
    )
    tile.alpha_composite(stamp, dest=(dest_left, dest_top), source=source)
    return True


def stamp_offset(bounds: GeoBounds, tile_id: TileId, grid: TileGrid) -> Tuple[int, int]:
    """Pixel offset of a drawing's top-left corner in a tile's frame."""
    corner = geo_to_uv(GeoCoordinate(bounds.lat_max, bounds.long_min))
    return pixel_offset_within_tile(corner, tile_id, grid)


def composite_stamp(
    tile: Image.Image,
    stamp: Image.Image,
    bounds: GeoBounds,
    tile_id: TileId,
    grid: TileGrid,
) -> Image.Image:
    """
    Composite a fitted drawing onto a copy of a tile.

    The drawing is placed at its bounds' north-west corner. Copies shifted by
    one texture width are tried as well so drawings crossing the antimeridian
    land on both edges of the texture.

    Args:
        tile: Current tile image (left untouched)
        stamp: Drawing already resized with fit_stamp
        bounds: Drawing bounds
        tile_id: Tile being updated
        grid: Tile grid

    Returns:
        New RGBA tile image
    """
    result = tile.copy()
    if result.mode != "RGBA":
        result = result.convert("RGBA")

    left, top = stamp_offset(bounds, tile_id, grid)
    for shift in (-grid.total_width, 0, grid.total_width):
        _paste_clipped(result, stamp, left + shift, top)

    return result

"""Pytest configuration and fixtures."""

import base64
from io import BytesIO

import pytest
from PIL import Image

from planet_canvas.core.pipeline import StampSubmission, WorldState
from planet_canvas.core.tile import TileGrid

# 4x2 tiles of 64px: 256x128 texture, 1.40625 degrees per pixel on both axes
SMALL_GRID = TileGrid(tiles_x=4, tiles_y=2, tile_width=64, tile_height=64)

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)


def make_png(color=RED, size=(16, 16)) -> bytes:
    """Solid-color RGBA PNG."""
    buffer = BytesIO()
    Image.new("RGBA", size, color).save(buffer, "PNG")
    return buffer.getvalue()


def make_png_b64(color=RED, size=(16, 16), data_url: bool = False) -> str:
    encoded = base64.b64encode(make_png(color, size)).decode("ascii")
    if data_url:
        return "data:image/png;base64," + encoded
    return encoded


def submission(lat=45.0, long=-67.5, zoom=3, color=RED, user_id="tester") -> StampSubmission:
    return StampSubmission(image=make_png(color), lat=lat, long=long, zoom=zoom, user_id=user_id)


@pytest.fixture
def grid():
    return SMALL_GRID


@pytest.fixture
def world():
    """Independent world state on the small grid."""
    return WorldState(grid=SMALL_GRID, cache_capacity=4, lock_timeout=2.0)

"""World texture merging and export (PNG, JPEG, GeoTIFF)."""

from io import BytesIO
from typing import Dict, Tuple

import numpy as np
from PIL import Image
from rasterio.crs import CRS
from rasterio.enums import ColorInterp
from rasterio.io import MemoryFile
from rasterio.transform import from_bounds

from .tile import TileGrid, TileId

# The equirectangular texture spans the whole globe
WORLD_BOUNDS = (-180.0, -90.0, 180.0, 90.0)


def merge_world_texture(
    tile_images: Dict[TileId, Image.Image],
    grid: TileGrid,
    scale: float = 1.0,
) -> Image.Image:
    """
    Merge tiles into a single world texture.

    Args:
        tile_images: Dictionary mapping TileId to RGBA images
        grid: Tile grid
        scale: Output scale relative to full resolution (0 < scale <= 1)

    Returns:
        Merged RGBA image; missing tiles stay transparent
    """
    if not 0 < scale <= 1:
        raise ValueError(f"Scale must be in (0, 1], got {scale}")

    tile_w = max(1, int(round(grid.tile_width * scale)))
    tile_h = max(1, int(round(grid.tile_height * scale)))
    merged = Image.new("RGBA", (tile_w * grid.tiles_x, tile_h * grid.tiles_y), (0, 0, 0, 0))

    for tile_id, tile_image in tile_images.items():
        if tile_image.size != (tile_w, tile_h):
            tile_image = tile_image.resize((tile_w, tile_h), Image.Resampling.LANCZOS)
        merged.paste(tile_image, (tile_id.x * tile_w, tile_id.y * tile_h))

    return merged


def export_geotiff_bytes(image: Image.Image, crs: str = "EPSG:4326") -> bytes:
    """
    Export the world texture as a georeferenced GeoTIFF.

    Args:
        image: World texture
        crs: Coordinate reference system (default: WGS84)

    Returns:
        GeoTIFF file as bytes (RGBA, 4 bands)
    """
    img_array = np.array(image.convert("RGBA"))
    height, width = img_array.shape[:2]
    count = img_array.shape[2]

    transform = from_bounds(*WORLD_BOUNDS, width, height)

    with MemoryFile() as memfile:
        with memfile.open(
            driver="GTiff",
            height=height,
            width=width,
            count=count,
            dtype=img_array.dtype,
            crs=CRS.from_string(crs),
            transform=transform,
            compress="lzw",
        ) as dst:
            for i in range(count):
                dst.write(img_array[:, :, i], i + 1)
            dst.colorinterp = [
                ColorInterp.red,
                ColorInterp.green,
                ColorInterp.blue,
                ColorInterp.alpha,
            ]

        return memfile.read()


def export_png_bytes(image: Image.Image) -> bytes:
    """Export image as PNG bytes."""
    buffer = BytesIO()
    image.save(buffer, "PNG", optimize=True)
    return buffer.getvalue()


def export_jpeg_bytes(image: Image.Image, quality: int = 90) -> bytes:
    """Export image as JPEG bytes, flattening transparency onto black."""
    if image.mode == "RGBA":
        background = Image.new("RGB", image.size, (0, 0, 0))
        background.paste(image, mask=image.split()[3])
        image = background
    buffer = BytesIO()
    image.save(buffer, "JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def export_image(image: Image.Image, format: str) -> Tuple[bytes, str]:
    """
    Export image in the specified format.

    Returns:
        Tuple of (file bytes, content type)
    """
    format = format.lower()

    if format in ("geotiff", "tiff", "tif"):
        return export_geotiff_bytes(image), "image/tiff"
    if format == "png":
        return export_png_bytes(image), "image/png"
    if format in ("jpeg", "jpg"):
        return export_jpeg_bytes(image), "image/jpeg"

    raise ValueError(f"Unsupported format: {format}. Supported: geotiff, png, jpeg")


def get_file_extension(format: str) -> str:
    """Get file extension for a format."""
    extensions = {
        "geotiff": ".tif",
        "tiff": ".tif",
        "tif": ".tif",
        "png": ".png",
        "jpeg": ".jpg",
        "jpg": ".jpg",
    }
    return extensions.get(format.lower(), ".png")

"""Tile and world texture endpoints."""

import asyncio
from datetime import datetime
from io import BytesIO
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from starlette.responses import Response

from ..config import STAMP_SETTINGS, OUTPUT_FORMATS
from ..core.exporter import export_image, get_file_extension
from ..core.pipeline import WorldState
from ..core.region import drawing_canvas_size
from ..core.tile import TileId, tile_geo_bounds, tile_path
from ..models import BoundsInfo, GridConfig, TileInfo
from .dependencies import get_world

router = APIRouter(prefix="/api", tags=["tiles"])


@router.get("/config", response_model=GridConfig)
async def get_grid_config(world: WorldState = Depends(get_world)):
    """Tile grid layout and drawing canvas sizes per zoom level."""
    grid = world.grid
    min_zoom, max_zoom = STAMP_SETTINGS["min_zoom"], STAMP_SETTINGS["max_zoom"]
    return GridConfig(
        tiles_x=grid.tiles_x,
        tiles_y=grid.tiles_y,
        tile_width=grid.tile_width,
        tile_height=grid.tile_height,
        total_width=grid.total_width,
        total_height=grid.total_height,
        min_zoom=min_zoom,
        max_zoom=max_zoom,
        default_zoom=STAMP_SETTINGS["default_zoom"],
        canvas_sizes={z: drawing_canvas_size(z) for z in range(min_zoom, max_zoom + 1)},
    )


@router.get("/tiles", response_model=List[TileInfo])
async def list_tiles(world: WorldState = Depends(get_world)):
    """All tiles with their geographic bounds and the texture version that last changed each."""
    return [
        TileInfo(
            x=t.x,
            y=t.y,
            path=tile_path(t),
            version=world.tile_version(t),
            bounds=BoundsInfo(**tile_geo_bounds(t, world.grid)._asdict()),
        )
        for t in world.grid.all_tiles()
    ]


@router.get("/tiles/{x}/{y}")
async def get_tile(x: int, y: int, world: WorldState = Depends(get_world)):
    """Return PNG bytes of one tile."""
    tile_id = TileId(x, y)
    if not world.grid.contains(tile_id):
        raise HTTPException(status_code=404, detail=f"Tile {tile_id.key} not found")

    # Read the version first: the bytes are at least this new
    version = world.texture_version
    data = await world.tile_png(tile_id)
    headers = {
        "X-Texture-Version": str(version),
        "X-Tile-Version": str(world.tile_version(tile_id)),
        "Cache-Control": "no-cache",
    }
    return Response(content=data, media_type="image/png", headers=headers)


@router.get("/texture")
async def get_world_texture(
    format: str = Query("png", description="输出格式: png / jpeg / geotiff"),
    scale: float = Query(0.125, gt=0, le=1, description="输出缩放比例"),
    world: WorldState = Depends(get_world),
):
    """Download the merged world texture."""
    if format.lower() not in OUTPUT_FORMATS + ["jpg", "tif", "tiff"]:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported format: {format}. Supported: {', '.join(OUTPUT_FORMATS)}"
        )

    version = world.texture_version
    image = await world.render_texture(scale=scale)
    file_bytes, content_type = await asyncio.to_thread(export_image, image, format)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"world_v{version}_{timestamp}{get_file_extension(format)}"

    return StreamingResponse(
        BytesIO(file_bytes),
        media_type=content_type,
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Length": str(len(file_bytes)),
            "X-Texture-Version": str(version),
        }
    )

"""Pydantic models for request/response validation."""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class StampRequest(BaseModel):
    """Stamp request model. Coordinate ranges are checked by the pipeline."""
    image: str = Field(..., description="Base64 或 data URL 格式的 PNG 图像")
    lat: Optional[float] = Field(None, description="中心纬度")
    long: Optional[float] = Field(None, description="中心经度")
    zoom: Optional[float] = Field(None, description="缩放级别 (1-10), 默认 5")
    user_id: Optional[str] = Field(None, description="用户 ID")

    class Config:
        json_schema_extra = {
            "example": {
                "image": "data:image/png;base64,iVBORw0KGgo...",
                "lat": 48.85,
                "long": 2.35,
                "zoom": 5,
                "user_id": "guest_k2j3h4"
            }
        }


class StampResponse(BaseModel):
    """Successful stamp response."""
    success: bool = True
    stamp_id: str
    texture_version: int
    tiles_affected: List[str]


class UVPosition(BaseModel):
    u: float
    v: float


class BoundsInfo(BaseModel):
    """Geographic bounds of a drawing."""
    lat_min: float
    lat_max: float
    long_min: float
    long_max: float


class StampInfo(BaseModel):
    """Committed stamp as shown in the activity feed."""
    id: str
    lat: float
    long: float
    zoom: float
    user_id: str
    timestamp: str
    texture_version: int
    tiles_affected: List[str]
    uv_position: UVPosition
    bounds: BoundsInfo


class StampFeed(BaseModel):
    stamps: List[StampInfo]
    current_texture_version: int


class TileInfo(BaseModel):
    """Tile information."""
    x: int
    y: int
    path: str
    version: int = Field(0, description="最后一次修改该瓦片的纹理版本")
    bounds: Optional[BoundsInfo] = Field(None, description="瓦片的地理范围")


class VersionInfo(BaseModel):
    texture_version: int
    tiles: Optional[List[TileInfo]] = None


class VersionChanges(BaseModel):
    texture_version: int
    full_refresh: bool = Field(..., description="变更历史已被裁剪, 需重新获取全部瓦片")
    changed_tiles: List[str]


class GridConfig(BaseModel):
    """Tile grid and drawing configuration exposed to clients."""
    tiles_x: int
    tiles_y: int
    tile_width: int
    tile_height: int
    total_width: int
    total_height: int
    min_zoom: int
    max_zoom: int
    default_zoom: int
    canvas_sizes: Dict[int, int]


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    detail: str
    retryable: bool
    field: Optional[str] = None
    retry_after: Optional[float] = None

"""Stamp ingestion, activity feed and texture version endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..config import RECORD_SETTINGS
from ..core.pipeline import StampSubmission, WorldState
from ..core.projection import GeoCoordinate, normalize_longitude
from ..core.ratelimit import RateLimiter
from ..core.region import GeoBounds
from ..core.tile import sorted_tiles
from ..models import (
    ErrorResponse,
    StampFeed,
    StampInfo,
    StampRequest,
    StampResponse,
    VersionChanges,
    VersionInfo,
)
from .dependencies import get_rate_limiter, get_world

router = APIRouter(prefix="/api", tags=["stamp"])


@router.post(
    "/stamp",
    response_model=StampResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def create_stamp(
    request: StampRequest,
    world: WorldState = Depends(get_world),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """
    Composite a drawing onto the world texture.

    Errors are returned as structured JSON: invalid_input (400),
    rate_limited (429), busy (503), storage_failure (502).
    """
    user_id = (request.user_id or "").strip() or "anonymous"
    limiter.check(user_id)

    stamp = await world.ingest(
        StampSubmission(
            image=request.image,
            lat=request.lat,
            long=request.long,
            zoom=request.zoom,
            user_id=user_id,
        )
    )

    return StampResponse(
        stamp_id=stamp.id,
        texture_version=stamp.texture_version,
        tiles_affected=[t.key for t in sorted_tiles(set(stamp.tiles_affected))],
    )


@router.get("/stamp", response_model=StampFeed)
async def get_stamp_feed(world: WorldState = Depends(get_world)):
    """Recent stamps for the activity feed plus the current texture version."""
    stamps = await world.recent_stamps(limit=RECORD_SETTINGS["feed_limit"])
    return StampFeed(
        stamps=[StampInfo(**s.to_dict()) for s in stamps],
        current_texture_version=world.texture_version,
    )


@router.get("/stamps", response_model=StampFeed)
async def search_stamps(
    limit: int = Query(RECORD_SETTINGS["feed_limit"], ge=1, le=RECORD_SETTINGS["retention"]),
    offset: int = Query(0, ge=0, description="跳过的记录数 (分页)"),
    lat_min: Optional[float] = Query(None, ge=-90, le=90, description="最小纬度"),
    lat_max: Optional[float] = Query(None, ge=-90, le=90, description="最大纬度"),
    long_min: Optional[float] = Query(None, ge=-180, le=180, description="最小经度"),
    long_max: Optional[float] = Query(None, ge=-180, le=180, description="最大经度"),
    lat: Optional[float] = Query(None, ge=-90, le=90, description="附近搜索中心纬度"),
    long: Optional[float] = Query(None, ge=-180, le=180, description="附近搜索中心经度"),
    radius_km: Optional[float] = Query(None, gt=0, description="附近搜索半径 (公里)"),
    world: WorldState = Depends(get_world),
):
    """
    Recent stamps filtered by a bounding box and/or distance from a point.

    A box with long_min > long_max crosses the antimeridian.
    """
    bounds = None
    if any(v is not None for v in (lat_min, lat_max, long_min, long_max)):
        lat_lo = -90.0 if lat_min is None else lat_min
        lat_hi = 90.0 if lat_max is None else lat_max
        if lat_lo > lat_hi:
            raise HTTPException(status_code=400, detail="lat_min must not exceed lat_max")
        bounds = GeoBounds(
            lat_lo,
            lat_hi,
            -180.0 if long_min is None else normalize_longitude(long_min),
            180.0 if long_max is None else normalize_longitude(long_max),
        )

    near = None
    if radius_km is not None:
        if lat is None or long is None:
            raise HTTPException(status_code=400, detail="lat and long are required with radius_km")
        near = (GeoCoordinate(lat, long), radius_km)

    stamps = await world.recent_stamps(limit=limit, bounds=bounds, near=near, offset=offset)
    return StampFeed(
        stamps=[StampInfo(**s.to_dict()) for s in stamps],
        current_texture_version=world.texture_version,
    )


@router.get("/stamp/{stamp_id}", response_model=StampInfo)
async def get_stamp(stamp_id: str, world: WorldState = Depends(get_world)):
    stamp = await world.record_store.get(stamp_id)
    if stamp is None:
        raise HTTPException(status_code=404, detail="Stamp not found")
    return StampInfo(**stamp.to_dict())


@router.get("/version", response_model=VersionInfo, response_model_exclude_none=True)
async def get_version(
    include_tiles: bool = Query(False, description="是否返回全部瓦片列表"),
    world: WorldState = Depends(get_world),
):
    """Current texture version, optionally with the list of tiles."""
    return world.version_info(include_tiles=include_tiles)


@router.get("/version/changes", response_model=VersionChanges)
async def get_version_changes(
    since: int = Query(..., ge=0, description="客户端最后看到的纹理版本"),
    world: WorldState = Depends(get_world),
):
    """Tiles changed since a reader's last-seen version."""
    return await world.changes_since(since)

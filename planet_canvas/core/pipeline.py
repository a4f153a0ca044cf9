"""Stamp ingestion pipeline and the world state it mutates.

Writes are serialized by one asyncio lock: at most one stamp composites and
persists tiles at a time. Waiters queue in FIFO order and give up with Busy
after the configured timeout. Once a stamp holds the lock its mutation runs
as a shielded task, so a disconnecting client cannot leave tiles half
written.

Commit protocol for one stamp:
  1. composite the drawing onto copies of every affected tile (nothing is
     written yet, cached images are never modified in place);
  2. save each new tile to the tile store;
  3. append the stamp record;
  4. bump the texture version and swap the new tiles into the cache.
If 2 or 3 fails, tiles already saved are restored from their pre-images,
the version and cache stay as they were and StorageFailure is raised.
"""

import asyncio
import logging
import math
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from PIL import Image

from ..config import STAMP_SETTINGS, STORAGE, INITIAL_TEXTURE_VERSION
from .cache import Tile, TileCache
from .compositor import (
    composite_stamp,
    create_blank_tile,
    decode_payload,
    decode_stamp_image,
    decode_tile,
    encode_tile,
    fit_stamp,
)
from .errors import Busy, InvalidInput, StorageFailure
from .exporter import merge_world_texture
from .projection import GeoCoordinate
from .records import FileRecordStore, MemoryRecordStore, Stamp
from .region import GeoBounds, calculate_drawing_bounds
from .remote import HttpTileStore
from .storage import FileTileStore, MemoryTileStore, TileStore
from .tile import TileGrid, TileId, get_affected_tiles, sorted_tiles, tile_path

logger = logging.getLogger(__name__)


@dataclass
class StampSubmission:
    """Raw stamp request as received from a client."""
    image: Union[str, bytes, None]
    lat: Optional[float]
    long: Optional[float]
    zoom: Optional[float] = None
    user_id: Optional[str] = None


@dataclass
class ValidatedStamp:
    center: GeoCoordinate
    zoom: float
    user_id: str
    image_bytes: bytes
    image: Image.Image


def _check_coordinate(field: str, value: Optional[float], limit: float) -> float:
    if value is None:
        raise InvalidInput(field, f"{field.capitalize()} is required")
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(field, f"{field.capitalize()} must be a number")
    if not math.isfinite(value) or value < -limit or value > limit:
        raise InvalidInput(field, f"Invalid {field}: {value} is outside [-{limit:g}, {limit:g}]")
    return value


def validate_submission(submission: StampSubmission) -> ValidatedStamp:
    """
    Validate a stamp request without touching any shared state.

    Raises:
        InvalidInput: naming the first field that failed
    """
    if submission.image is None or len(submission.image) == 0:
        raise InvalidInput("image", "Image payload is missing")

    latitude = _check_coordinate("latitude", submission.lat, 90.0)
    longitude = _check_coordinate("longitude", submission.long, 180.0)

    zoom = submission.zoom
    if zoom is None:
        zoom = STAMP_SETTINGS["default_zoom"]
    try:
        zoom = float(zoom)
    except (TypeError, ValueError):
        raise InvalidInput("zoom", "Zoom must be a number")
    min_zoom, max_zoom = STAMP_SETTINGS["min_zoom"], STAMP_SETTINGS["max_zoom"]
    if not math.isfinite(zoom) or zoom < min_zoom or zoom > max_zoom:
        raise InvalidInput("zoom", f"Unsupported zoom {zoom:g}, expected {min_zoom}-{max_zoom}")

    image_bytes = decode_payload(submission.image)
    if len(image_bytes) > STAMP_SETTINGS["max_image_bytes"]:
        raise InvalidInput("image", "Image payload is too large")
    image = decode_stamp_image(image_bytes)

    return ValidatedStamp(
        center=GeoCoordinate(latitude, longitude),
        zoom=zoom,
        user_id=(submission.user_id or "").strip() or "anonymous",
        image_bytes=image_bytes,
        image=image,
    )


class WorldState:
    """
    Shared world texture: tile grid, tile cache, stores and texture version.

    Instances are independent of each other.
    """

    def __init__(
        self,
        tile_store: TileStore = None,
        record_store: MemoryRecordStore = None,
        grid: TileGrid = None,
        cache_capacity: int = None,
        lock_timeout: float = None,
        initial_version: int = None,
    ):
        self.grid = grid or TileGrid.default()
        self.tile_store = tile_store or MemoryTileStore()
        self.record_store = record_store or MemoryRecordStore()
        self.cache = TileCache(cache_capacity)
        self.lock_timeout = STAMP_SETTINGS["lock_timeout"] if lock_timeout is None else lock_timeout

        if initial_version is None:
            initial_version = max(INITIAL_TEXTURE_VERSION, self.record_store.latest_version() or 0)
        self._version = initial_version

        self._mutation_lock = asyncio.Lock()
        # Guards the cache's LRU bookkeeping; never held across an await
        self._cache_lock = threading.Lock()
        # Bumped whenever a committed tile replaces the cached one
        self._generations: Dict[TileId, int] = {}
        self._tile_versions: Dict[TileId, int] = self.record_store.tile_versions()
        # Tiles last changed by stamps that retention dropped
        self._version_floor = self.record_store.horizon
        self._inflight: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Dict[str, Any] = None) -> "WorldState":
        """Build a world state with the stores named in STORAGE."""
        settings = settings or STORAGE
        backend = settings.get("backend", "memory")

        if backend == "memory":
            return cls()
        if backend == "file":
            return cls(
                tile_store=FileTileStore(settings["tile_dir"]),
                record_store=FileRecordStore(settings["record_path"]),
            )
        if backend == "http":
            return cls(
                tile_store=HttpTileStore(
                    base_url=settings["base_url"],
                    retry_times=settings.get("retry_times"),
                    timeout=settings.get("timeout"),
                ),
                record_store=FileRecordStore(settings["record_path"]),
            )
        raise ValueError(f"Unknown storage backend: {backend}. Available: memory, file, http")

    @property
    def texture_version(self) -> int:
        return self._version

    @property
    def busy(self) -> bool:
        return self._mutation_lock.locked()

    # -------- write path --------

    async def ingest(self, submission: StampSubmission) -> Stamp:
        """
        Validate, composite and commit one stamp.

        Returns:
            The committed Stamp

        Raises:
            InvalidInput: request rejected, nothing changed
            Busy: the mutation lock was not acquired within lock_timeout
            StorageFailure: persisting failed and the stamp was rolled back
        """
        validated = await asyncio.to_thread(validate_submission, submission)

        try:
            if self.lock_timeout > 0:
                await asyncio.wait_for(self._mutation_lock.acquire(), timeout=self.lock_timeout)
            elif self._mutation_lock.locked():
                raise asyncio.TimeoutError
            else:
                await self._mutation_lock.acquire()
        except asyncio.TimeoutError:
            logger.warning("Stamp from %s timed out waiting for the texture lock", validated.user_id)
            raise Busy(self.lock_timeout)

        task = asyncio.create_task(self._mutate(validated))
        self._inflight.add(task)
        task.add_done_callback(self._forget_task)
        return await asyncio.shield(task)

    def _forget_task(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Stamp mutation finished with %r", task.exception())

    async def _mutate(self, validated: ValidatedStamp) -> Stamp:
        try:
            return await self._commit(validated)
        finally:
            self._mutation_lock.release()

    async def _commit(self, validated: ValidatedStamp) -> Stamp:
        stamp_id = f"stamp_{uuid.uuid4().hex[:12]}"
        bounds = calculate_drawing_bounds(validated.center, validated.zoom)
        affected = get_affected_tiles(bounds, self.grid)
        order = sorted_tiles(affected)

        fitted = await asyncio.to_thread(fit_stamp, validated.image, bounds, self.grid)

        # Stage: new images are composited on copies
        staged: List[Tuple[TileId, Image.Image, Image.Image, bytes]] = []
        for tile_id in order:
            before = await self.read_tile(tile_id)
            after = await asyncio.to_thread(
                composite_stamp, before.image, fitted, bounds, tile_id, self.grid
            )
            data = await asyncio.to_thread(encode_tile, after)
            staged.append((tile_id, before.image, after, data))

        next_version = self._version + 1
        stamp = Stamp(
            id=stamp_id,
            center=validated.center,
            zoom=validated.zoom,
            user_id=validated.user_id,
            created_at=datetime.now(timezone.utc),
            texture_version=next_version,
            tiles_affected=frozenset(affected),
            bounds=bounds,
            image=validated.image_bytes,
        )

        written: List[Tuple[TileId, Image.Image]] = []
        try:
            for tile_id, before_image, _, data in staged:
                await self.tile_store.save_tile(tile_id, data)
                written.append((tile_id, before_image))
            await self.record_store.append(stamp)
        except Exception as e:
            logger.error("Stamp %s failed after %d/%d tiles: %s", stamp_id, len(written), len(staged), e)
            await self._rollback(stamp_id, written)
            if isinstance(e, StorageFailure):
                raise
            raise StorageFailure("commit", stamp_id, str(e)) from e

        self._version = next_version
        with self._cache_lock:
            for tile_id, _, after, _ in staged:
                self.cache.put(tile_id, Tile(tile_id, after))
                self._generations[tile_id] = self._generations.get(tile_id, 0) + 1
                self._tile_versions[tile_id] = next_version

        logger.info(
            "Stamp %s by %s at (%.2f, %.2f) zoom %g -> v%d, tiles: %s",
            stamp_id, validated.user_id, validated.center.latitude, validated.center.longitude,
            validated.zoom, next_version, ", ".join(t.key for t in order),
        )
        return stamp

    async def _rollback(self, stamp_id: str, written: List[Tuple[TileId, Image.Image]]) -> None:
        """Restore pre-images of tiles already saved, newest first."""
        for tile_id, before_image in reversed(written):
            try:
                data = await asyncio.to_thread(encode_tile, before_image)
                await self.tile_store.save_tile(tile_id, data)
            except Exception as e:
                # Store and cache now disagree for this tile; drop the cached copy
                logger.error("Rollback of %s for %s failed: %s", tile_id.key, stamp_id, e)
                with self._cache_lock:
                    self.cache.discard(tile_id)
                    self._generations[tile_id] = self._generations.get(tile_id, 0) + 1
            else:
                logger.warning("Rolled back %s for %s", tile_id.key, stamp_id)

    # -------- read path --------

    async def read_tile(self, tile_id: TileId, populate: bool = True) -> Tile:
        """
        Get a tile from the cache, loading it from the tile store on a miss.

        The returned image is a snapshot: committed stamps replace cache
        entries instead of modifying them.
        """
        if not self.grid.contains(tile_id):
            raise InvalidInput("tile", f"Tile {tile_id.key} is outside the {self.grid.tiles_x}x{self.grid.tiles_y} grid")

        with self._cache_lock:
            tile = self.cache.get(tile_id) if populate else self.cache.peek(tile_id)
            generation = self._generations.get(tile_id, 0)
        if tile is not None:
            return tile

        data = await self.tile_store.load_tile(tile_id)
        if data is None:
            image = create_blank_tile(self.grid)
        else:
            try:
                image = await asyncio.to_thread(decode_tile, data, self.grid)
            except OSError as e:
                raise StorageFailure("decode_tile", tile_id.key, str(e)) from e
        tile = Tile(tile_id, image)

        if not populate:
            return tile
        with self._cache_lock:
            cached = self.cache.get(tile_id)
            if cached is not None:
                return cached
            # A commit during the load makes what we read stale
            if self._generations.get(tile_id, 0) == generation:
                self.cache.put(tile_id, tile)
        return tile

    async def tile_png(self, tile_id: TileId) -> bytes:
        tile = await self.read_tile(tile_id)
        return await asyncio.to_thread(encode_tile, tile.image)

    def tile_version(self, tile_id: TileId) -> int:
        """
        Texture version that last changed a tile.

        0 means the tile was never stamped. A tile whose last change was
        dropped by record retention reports the retention horizon, which is
        not older than that change.
        """
        return self._tile_versions.get(tile_id, self._version_floor)

    def version_info(self, include_tiles: bool = False) -> Dict[str, Any]:
        info: Dict[str, Any] = {"texture_version": self._version}
        if include_tiles:
            info["tiles"] = [
                {
                    "x": t.x,
                    "y": t.y,
                    "path": tile_path(t),
                    "version": self.tile_version(t),
                }
                for t in self.grid.all_tiles()
            ]
        return info

    async def changes_since(self, version: int) -> Dict[str, Any]:
        """Tiles changed after a reader's last-seen version."""
        current = self._version
        if version >= current:
            return {"texture_version": current, "full_refresh": False, "changed_tiles": []}
        changed = await self.record_store.changed_tiles_since(version)
        if changed is None:
            return {"texture_version": current, "full_refresh": True, "changed_tiles": []}
        return {
            "texture_version": current,
            "full_refresh": False,
            "changed_tiles": [t.key for t in sorted_tiles(changed)],
        }

    async def recent_stamps(
        self,
        limit: int = None,
        bounds: Optional[GeoBounds] = None,
        near: Optional[Tuple[GeoCoordinate, float]] = None,
        offset: int = 0,
    ) -> List[Stamp]:
        return await self.record_store.recent(limit=limit, bounds=bounds, near=near, offset=offset)

    async def render_texture(self, scale: float = 1.0) -> Image.Image:
        """Assemble the full world texture without disturbing the cache order."""
        tiles = {}
        for tile_id in self.grid.all_tiles():
            tile = await self.read_tile(tile_id, populate=False)
            tiles[tile_id] = tile.image
        return await asyncio.to_thread(merge_world_texture, tiles, self.grid, scale)

    def clear_cache(self) -> None:
        with self._cache_lock:
            self.cache.clear()
            for tile_id in list(self._generations):
                self._generations[tile_id] += 1

    async def close(self) -> None:
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        await self.tile_store.close()

"""Committed stamp records and the record stores that keep them."""

import asyncio
import base64
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple

from ..config import RECORD_SETTINGS
from .errors import StorageFailure
from .projection import GeoCoordinate, geo_to_uv, haversine_distance
from .region import GeoBounds
from .tile import TileId, sorted_tiles

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stamp:
    """A drawing committed onto the world texture."""
    id: str
    center: GeoCoordinate
    zoom: float
    user_id: str
    created_at: datetime
    texture_version: int
    tiles_affected: FrozenSet[TileId]
    bounds: GeoBounds
    image: bytes = field(default=b"", repr=False)

    def to_dict(self, include_image: bool = False) -> Dict[str, Any]:
        uv = geo_to_uv(self.center)
        data = {
            "id": self.id,
            "lat": self.center.latitude,
            "long": self.center.longitude,
            "zoom": self.zoom,
            "user_id": self.user_id,
            "timestamp": self.created_at.isoformat(),
            "texture_version": self.texture_version,
            "tiles_affected": [t.key for t in sorted_tiles(set(self.tiles_affected))],
            "uv_position": {"u": uv.u, "v": uv.v},
            "bounds": self.bounds._asdict(),
        }
        if include_image:
            data["image"] = base64.b64encode(self.image).decode("ascii")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Stamp":
        return cls(
            id=data["id"],
            center=GeoCoordinate(float(data["lat"]), float(data["long"])),
            zoom=float(data["zoom"]),
            user_id=data["user_id"],
            created_at=datetime.fromisoformat(data["timestamp"]),
            texture_version=int(data["texture_version"]),
            tiles_affected=frozenset(TileId.parse(k) for k in data["tiles_affected"]),
            bounds=GeoBounds(**data["bounds"]),
            image=base64.b64decode(data.get("image", "")),
        )


class MemoryRecordStore:
    """
    Append-only log of committed stamps, pruned to the most recent `retention`.

    Stamps are appended in texture-version order.
    """

    def __init__(self, retention: int = None):
        self.retention = RECORD_SETTINGS["retention"] if retention is None else retention
        if self.retention < 1:
            raise ValueError("Record retention must be at least 1")
        self._stamps: "OrderedDict[str, Stamp]" = OrderedDict()
        # Oldest version still fully represented by the log
        self._horizon: int = 0

    async def append(self, stamp: Stamp) -> None:
        self._remember(stamp)

    def _remember(self, stamp: Stamp) -> None:
        self._stamps[stamp.id] = stamp
        while len(self._stamps) > self.retention:
            _, dropped = self._stamps.popitem(last=False)
            self._horizon = max(self._horizon, dropped.texture_version)

    async def get(self, stamp_id: str) -> Optional[Stamp]:
        return self._stamps.get(stamp_id)

    @property
    def horizon(self) -> int:
        """Highest texture version dropped by retention (0 if nothing was dropped)."""
        return self._horizon

    def tile_versions(self) -> Dict[TileId, int]:
        """Latest texture version that touched each tile, among retained stamps."""
        versions: Dict[TileId, int] = {}
        for stamp in self._stamps.values():
            for tile_id in stamp.tiles_affected:
                versions[tile_id] = max(versions.get(tile_id, 0), stamp.texture_version)
        return versions

    def latest_version(self) -> Optional[int]:
        if not self._stamps:
            return None
        return next(reversed(self._stamps.values())).texture_version

    async def recent(
        self,
        limit: int = None,
        bounds: Optional[GeoBounds] = None,
        near: Optional[Tuple[GeoCoordinate, float]] = None,
        offset: int = 0,
    ) -> List[Stamp]:
        """
        Most recent stamps first.

        Args:
            limit: Maximum number of stamps
            offset: Number of matching stamps to skip (pagination)
            bounds: Only stamps whose center lies inside this rectangle
            near: (center, radius_km) - only stamps within radius_km of center
        """
        if limit is None:
            limit = RECORD_SETTINGS["feed_limit"]
        result: List[Stamp] = []
        skipped = 0
        for stamp in reversed(self._stamps.values()):
            if len(result) >= limit:
                break
            if bounds is not None and not bounds.contains(stamp.center):
                continue
            if near is not None:
                origin, radius_km = near
                if haversine_distance(origin, stamp.center) > radius_km:
                    continue
            if skipped < offset:
                skipped += 1
                continue
            result.append(stamp)
        return result

    async def changed_tiles_since(self, version: int) -> Optional[Set[TileId]]:
        """
        Tiles touched by stamps committed after `version`.

        Returns None when stamps after `version` may have been pruned, in
        which case the caller has to refetch everything.
        """
        if version < self._horizon:
            return None
        changed: Set[TileId] = set()
        for stamp in reversed(self._stamps.values()):
            if stamp.texture_version <= version:
                break
            changed.update(stamp.tiles_affected)
        return changed

    def __len__(self) -> int:
        return len(self._stamps)


class FileRecordStore(MemoryRecordStore):
    """Record store persisted as JSON lines; the in-memory view is pruned."""

    def __init__(self, path: str, retention: int = None):
        super().__init__(retention)
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    self._remember(Stamp.from_dict(json.loads(line)))
                except (ValueError, KeyError, TypeError) as e:
                    logger.warning("Skipping bad record at %s:%d: %s", self.path, line_no, e)
        logger.info("Loaded %d stamp records from %s", len(self), self.path)

    def _write(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def append(self, stamp: Stamp) -> None:
        line = json.dumps(stamp.to_dict(include_image=True))
        try:
            await asyncio.to_thread(self._write, line)
        except OSError as e:
            raise StorageFailure("append_record", stamp.id, str(e)) from e
        self._remember(stamp)

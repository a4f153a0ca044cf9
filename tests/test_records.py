"""Tests for stamp record stores."""

from datetime import datetime, timezone

import pytest

from planet_canvas.core.projection import GeoCoordinate
from planet_canvas.core.records import FileRecordStore, MemoryRecordStore, Stamp
from planet_canvas.core.region import GeoBounds, calculate_drawing_bounds
from planet_canvas.core.tile import TileId


def _stamp(version: int, lat: float = 0.0, long: float = 0.0, tiles=None) -> Stamp:
    center = GeoCoordinate(lat, long)
    return Stamp(
        id=f"stamp_{version}",
        center=center,
        zoom=5,
        user_id="tester",
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        texture_version=version,
        tiles_affected=frozenset(tiles or {TileId(version % 4, 0)}),
        bounds=calculate_drawing_bounds(center, 5),
        image=b"\x89PNG",
    )


class TestMemoryRecordStore:
    @pytest.mark.asyncio
    async def test_recent_is_newest_first(self):
        store = MemoryRecordStore()
        for v in range(2, 6):
            await store.append(_stamp(v))

        recent = await store.recent(limit=2)
        assert [s.texture_version for s in recent] == [5, 4]
        assert store.latest_version() == 5

    @pytest.mark.asyncio
    async def test_retention_keeps_most_recent(self):
        store = MemoryRecordStore(retention=3)
        for v in range(2, 8):
            await store.append(_stamp(v))

        assert len(store) == 3
        assert await store.get("stamp_2") is None
        assert await store.get("stamp_7") is not None

    @pytest.mark.asyncio
    async def test_bounds_filter_across_antimeridian(self):
        store = MemoryRecordStore()
        await store.append(_stamp(2, 0, 175))
        await store.append(_stamp(3, 0, -175))
        await store.append(_stamp(4, 0, 0))

        found = await store.recent(bounds=GeoBounds(-10, 10, 170, -170))
        assert {s.id for s in found} == {"stamp_2", "stamp_3"}

    @pytest.mark.asyncio
    async def test_near_filter(self):
        store = MemoryRecordStore()
        await store.append(_stamp(2, 48.85, 2.35))   # Paris
        await store.append(_stamp(3, 51.51, -0.13))  # London
        await store.append(_stamp(4, 40.71, -74.0))  # New York

        found = await store.recent(near=(GeoCoordinate(48.85, 2.35), 500))
        assert {s.id for s in found} == {"stamp_2", "stamp_3"}

    @pytest.mark.asyncio
    async def test_changed_tiles_since(self):
        store = MemoryRecordStore()
        await store.append(_stamp(2, tiles={TileId(0, 0)}))
        await store.append(_stamp(3, tiles={TileId(1, 0), TileId(2, 0)}))
        await store.append(_stamp(4, tiles={TileId(1, 0)}))

        assert await store.changed_tiles_since(3) == {TileId(1, 0)}
        assert await store.changed_tiles_since(1) == {TileId(0, 0), TileId(1, 0), TileId(2, 0)}
        assert await store.changed_tiles_since(4) == set()

    @pytest.mark.asyncio
    async def test_changed_tiles_unknown_after_pruning(self):
        store = MemoryRecordStore(retention=2)
        for v in range(2, 6):
            await store.append(_stamp(v))

        # Stamps 2 and 3 were pruned
        assert await store.changed_tiles_since(2) is None
        assert await store.changed_tiles_since(3) is not None

    @pytest.mark.asyncio
    async def test_offset_pages_through_matches(self):
        store = MemoryRecordStore()
        for v in range(2, 7):
            await store.append(_stamp(v))

        page = await store.recent(limit=2, offset=2)
        assert [s.texture_version for s in page] == [4, 3]
        assert await store.recent(offset=10) == []

    @pytest.mark.asyncio
    async def test_offset_applies_after_filters(self):
        store = MemoryRecordStore()
        await store.append(_stamp(2, 0, 175))
        await store.append(_stamp(3, 0, 0))
        await store.append(_stamp(4, 0, -175))

        found = await store.recent(bounds=GeoBounds(-10, 10, 170, -170), offset=1)
        assert [s.id for s in found] == ["stamp_2"]

    @pytest.mark.asyncio
    async def test_zero_limit_returns_nothing(self):
        store = MemoryRecordStore()
        await store.append(_stamp(2))
        assert await store.recent(limit=0) == []

    @pytest.mark.asyncio
    async def test_tile_versions_keep_latest_change(self):
        store = MemoryRecordStore(retention=2)
        await store.append(_stamp(2, tiles={TileId(0, 0)}))
        await store.append(_stamp(3, tiles={TileId(1, 0), TileId(0, 0)}))
        await store.append(_stamp(4, tiles={TileId(1, 0)}))

        assert store.horizon == 2
        assert store.tile_versions() == {TileId(0, 0): 3, TileId(1, 0): 4}

    def test_invalid_retention(self):
        with pytest.raises(ValueError):
            MemoryRecordStore(retention=0)


class TestStampSerialization:
    def test_to_dict(self):
        data = _stamp(3, 0, 0, tiles={TileId(2, 1), TileId(1, 1)}).to_dict()
        assert data["tiles_affected"] == ["1-1", "2-1"]
        assert data["uv_position"] == {"u": 0.5, "v": 0.5}
        assert "image" not in data

    def test_round_trip(self):
        stamp = _stamp(3, 10, 20)
        assert Stamp.from_dict(stamp.to_dict(include_image=True)) == stamp


class TestFileRecordStore:
    @pytest.mark.asyncio
    async def test_reload_from_disk(self, tmp_path):
        path = tmp_path / "stamps.jsonl"
        store = FileRecordStore(str(path))
        await store.append(_stamp(2, 10, 20))
        await store.append(_stamp(3, -10, -20))

        reloaded = FileRecordStore(str(path))
        assert reloaded.latest_version() == 3
        assert [s.id for s in await reloaded.recent()] == ["stamp_3", "stamp_2"]
        assert (await reloaded.get("stamp_2")).image == b"\x89PNG"

    def test_bad_lines_are_skipped(self, tmp_path):
        path = tmp_path / "stamps.jsonl"
        path.write_text('{"broken": true}\nnot json\n')
        assert len(FileRecordStore(str(path))) == 0

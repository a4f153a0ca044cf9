"""Configuration for the world texture and application settings."""

import os
from typing import Dict, Any

# 纹理瓦片网格 (像素)
TILE_CONFIG: Dict[str, int] = {
    "tiles_x": 8,
    "tiles_y": 4,
    "tile_width": 2048,
    "tile_height": 2048,
}

# 地球平均半径 (公里)
EARTH_RADIUS_KM = 6371.0

# 纹理版本起始值
INITIAL_TEXTURE_VERSION = 1

# 绘制 / 盖章设置
STAMP_SETTINGS: Dict[str, Any] = {
    "base_span_degrees": 30.0,   # zoom 1 时的覆盖角度
    "default_zoom": 5,
    "min_zoom": 1,
    "max_zoom": 10,
    "lock_timeout": 10.0,        # 等待写锁的最长时间 (秒)
    "min_cos_latitude": 0.01,    # 极点附近的经度扩展上限
    "max_image_bytes": 8 * 1024 * 1024,
}

# 画布尺寸 (像素)
CANVAS_SETTINGS: Dict[str, int] = {
    "min_size": 256,
    "max_size": 1024,
}

# 瓦片缓存
CACHE_SETTINGS: Dict[str, int] = {
    "capacity": 10,
}

# 盖章记录保留
RECORD_SETTINGS: Dict[str, int] = {
    "retention": 100,
    "feed_limit": 50,
}

# 每个用户的限流
RATE_LIMIT: Dict[str, Any] = {
    "max_stamps": 60,
    "window_seconds": 3600,
}

# 存储后端: memory / file / http
STORAGE: Dict[str, Any] = {
    "backend": os.environ.get("PLANET_CANVAS_STORAGE", "memory"),
    "tile_dir": os.environ.get("PLANET_CANVAS_TILE_DIR", "data/tiles"),
    "record_path": os.environ.get("PLANET_CANVAS_RECORD_PATH", "data/stamps.jsonl"),
    "base_url": os.environ.get("PLANET_CANVAS_BLOB_URL", "http://127.0.0.1:9000/tiles"),
    "retry_times": 3,
    "timeout": 30,
}

# 导出格式
OUTPUT_FORMATS = ["png", "jpeg", "geotiff"]

LOG_LEVEL = os.environ.get("PLANET_CANVAS_LOG_LEVEL", "INFO")

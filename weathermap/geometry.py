# region Imports
from __future__ import annotations
import math
import threading
from typing import List, Tuple
from pyproj import Transformer
from weathermap.config import EARTH_R, MERCATOR_LAT_BOUND, TILE_SIZE
# endregion

_local = threading.local()


def _to_mercator() -> Transformer:
    # one Transformer per thread
    tr = getattr(_local, "transformer", None)
    if tr is None:
        tr = _local.transformer = Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)
    return tr


# region Web Mercator
def clamp_lat(lat: float) -> float:
    return max(-MERCATOR_LAT_BOUND, min(MERCATOR_LAT_BOUND, lat))


def mercator(lat: float) -> float:
    """Web Mercator y of ``lat`` on the unit sphere, i.e. ln(tan(pi/4 + lat/2))."""
    _, y = _to_mercator().transform(0.0, clamp_lat(float(lat)))
    return y / EARTH_R


def coordinates_to_degrees(zoom: int, x: int, y: int) -> Tuple[float, float]:
    """North-west corner (lon, lat) of tile ``x, y`` at ``zoom``."""
    n = 2.0 ** zoom
    lon = x / n * 360.0 - 180.0
    lat = math.degrees(math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / n))))
    return lon, lat
# endregion


# region World pixels
def lonlat_to_world_px(lon: float, lat: float, zoom: float, tile_size: int = TILE_SIZE) -> Tuple[float, float]:
    world = tile_size * (2.0 ** zoom)
    nx = (lon + 180.0) / 360.0
    ny = (1.0 - mercator(lat) / math.pi) / 2.0
    return nx * world, ny * world


def tiles_covering(
    center_lat: float,
    center_lon: float,
    zoom: int,
    width: int,
    height: int,
    tile_size: int = TILE_SIZE,
) -> List[Tuple[int, int, int]]:
    """(z, x, y) keys of the tiles intersecting a ``width`` x ``height`` viewport."""
    n = 1 << zoom
    cx, cy = lonlat_to_world_px(center_lon, center_lat, zoom, tile_size)
    left, top = cx - width / 2.0, cy - height / 2.0
    x0 = math.floor(left / tile_size)
    x1 = math.floor((left + width - 1) / tile_size)
    y0 = max(0, math.floor(top / tile_size))
    y1 = min(n - 1, math.floor((top + height - 1) / tile_size))

    keys = []
    seen = set()
    for ty in range(y0, y1 + 1):
        for tx in range(x0, x1 + 1):
            key = (zoom, tx % n, ty)  # wrap across the antimeridian
            if key not in seen:
                seen.add(key)
                keys.append(key)
    return keys
# endregion

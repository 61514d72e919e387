# region Imports
from __future__ import annotations
import bisect
import io
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from weathermap.config import (
    FRAME_HEIGHT, FRAME_START, FRAME_WEEKS, FRAME_WIDTH, TEMP_MAX_C, TEMP_MIN_C,
    TILE_END, TILE_SIZE, TILE_START,
)
from weathermap.geometry import coordinates_to_degrees, mercator
from weathermap.models import WeatherStation
# endregion

logger = logging.getLogger(__name__)

BLACK = (0, 0, 0)


# region Station Colour
def temperature_color(t: float) -> Tuple[int, int, int]:
    scaled = (min(TEMP_MAX_C, max(TEMP_MIN_C, t)) - TEMP_MIN_C) / (TEMP_MAX_C - TEMP_MIN_C)
    return int(255.0 * scaled), 127, int(255.0 * (1.0 - scaled))


def station_color(station: WeatherStation, start: datetime, end: datetime) -> Tuple[int, int, int]:
    """Colour of the first temperature reading in [start, end); black when there is none."""
    ms = station.measurements
    if not ms:
        return BLACK
    lo = bisect.bisect_left(ms, start, key=lambda m: m.datetime)
    hi = bisect.bisect_left(ms, end, lo=lo, key=lambda m: m.datetime)
    for m in ms[lo:hi]:
        if m.air_temperature is not None:
            return temperature_color(m.air_temperature)
    return BLACK
# endregion


# region Rasterisation
def draw_stations(
    stations: Sequence[WeatherStation],
    lon_min: float,
    lon_max: float,
    lat_min: float,
    lat_max: float,
    width: int,
    height: int,
    dot_radius: int,
    start: datetime,
    end: datetime,
) -> np.ndarray:
    logger.debug("drawing stations for longitude %s to %s, latitude %s to %s",
                 lon_min, lon_max, lat_min, lat_max)

    img = np.zeros((height, width, 3), dtype=np.uint8)
    m_min, m_max = mercator(lat_min), mercator(lat_max)
    half = dot_radius // 2

    for st in stations:
        if not (lon_min <= st.longitude <= lon_max and lat_min <= st.latitude <= lat_max):
            continue

        x = int((st.longitude - lon_min) / (lon_max - lon_min) * (width - 1))
        y = int((1.0 - (mercator(st.latitude) - m_min) / (m_max - m_min)) * (height - 1))
        x0, y0 = x - half, y - half
        img[max(0, y0):max(0, y0 + dot_radius), max(0, x0):max(0, x0 + dot_radius)] = station_color(st, start, end)

    return img


def encode_png(arr: np.ndarray) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(arr, "RGB").save(buf, "PNG")
    return buf.getvalue()
# endregion


# region Tiles
def tile_dot_radius(zoom: int) -> int:
    return 1 if zoom < 5 else zoom - 3


def render_tile(stations: Sequence[WeatherStation], zoom: int, x: int, y: int, size: int = TILE_SIZE) -> bytes:
    lon_min, lat_top = coordinates_to_degrees(zoom, x, y)
    lon_max, lat_bot = coordinates_to_degrees(zoom, x + 1, y + 1)
    img = draw_stations(
        stations, lon_min, lon_max, lat_bot, lat_top, size, size,
        tile_dot_radius(zoom),
        datetime(*TILE_START, tzinfo=timezone.utc),
        datetime(*TILE_END, tzinfo=timezone.utc),
    )
    return encode_png(img)
# endregion


# region Weekly Frames
def render_weekly_frames(
    stations: Sequence[WeatherStation],
    out_dir: str,
    weeks: int = FRAME_WEEKS,
    start: Optional[datetime] = None,
) -> List[str]:
    """Whole-world frames ``weather-NNNN.png``, one per week."""
    os.makedirs(out_dir, exist_ok=True)
    start = start or datetime(*FRAME_START, tzinfo=timezone.utc)
    written = []
    for i in range(weeks):
        img = draw_stations(
            stations, -180.0, 180.0, -90.0, 90.0, FRAME_WIDTH, FRAME_HEIGHT, 1,
            start + timedelta(weeks=i), start + timedelta(weeks=i + 1),
        )
        path = os.path.join(out_dir, f"weather-{i:04d}.png")
        Image.fromarray(img, "RGB").save(path)
        written.append(path)
    logger.info("wrote %d frames to %s", len(written), out_dir)
    return written
# endregion

"""Headless rendering of a bootstrapped map: tiles plus the country overlay, as a Pillow image."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from PIL import Image, ImageDraw

from weathermap.bootstrap import MapHandles
from weathermap.config import TILE_SIZE
from weathermap.geometry import lonlat_to_world_px
from weathermap.tiles import TileFetcher

logger = logging.getLogger(__name__)

OVERLAY_COLOR = (51, 136, 255)
BACKGROUND = (221, 221, 221)
POINT_RADIUS = 4


@dataclass
class Snapshot:
    image: Image.Image
    rendered: List[Dict[str, Any]] = field(default_factory=list)
    tiles_drawn: int = 0


def _parts(geometry: Optional[Dict[str, Any]]) -> Iterator[Tuple[str, Any]]:
    """Flatten a GeoJSON geometry into (Point|LineString|Polygon, coordinates) parts."""
    if not geometry:
        return
    kind = geometry.get("type")
    coords = geometry.get("coordinates")
    if kind in ("Point", "LineString", "Polygon"):
        yield kind, coords
    elif kind in ("MultiPoint", "MultiLineString", "MultiPolygon"):
        for c in coords or []:
            yield kind[len("Multi"):], c
    elif kind == "GeometryCollection":
        for g in geometry.get("geometries") or []:
            yield from _parts(g)


class _Projector:
    def __init__(self, handles: MapHandles) -> None:
        view = handles.view
        self.zoom = view.zoom
        lat, lon = view.center
        cx, cy = lonlat_to_world_px(lon, lat, view.zoom)
        self.left = cx - view.container.width / 2.0
        self.top = cy - view.container.height / 2.0

    def __call__(self, pos) -> Tuple[float, float]:
        px, py = lonlat_to_world_px(float(pos[0]), float(pos[1]), self.zoom)
        return px - self.left, py - self.top


def _paste_tiles(img: Image.Image, handles: MapHandles, fetcher: TileFetcher, proj: _Projector) -> int:
    w, h = img.size
    world = TILE_SIZE * (1 << proj.zoom)
    drawn = 0
    for key in handles.tile_layer.visible_tiles():
        tile = fetcher.get_tile(key)
        if tile is None:
            continue
        _, tx, ty = key
        py = int(round(ty * TILE_SIZE - proj.top))
        for shift in (-world, 0, world):
            px = int(round(tx * TILE_SIZE - proj.left + shift))
            if px + TILE_SIZE <= 0 or px >= w:
                continue
            img.paste(tile, (px, py))
            drawn += 1
    return drawn


def render_snapshot(handles: MapHandles, fetcher: Optional[TileFetcher] = None) -> Snapshot:
    view = handles.view
    img = Image.new("RGB", (view.container.width, view.container.height), BACKGROUND)
    proj = _Projector(handles)

    tiles_drawn = _paste_tiles(img, handles, fetcher, proj) if fetcher is not None else 0

    draw = ImageDraw.Draw(img)
    rendered = []
    for feature in handles.overlay.features:
        drew = False
        for kind, coords in _parts(feature.get("geometry")):
            if kind == "Point":
                x, y = proj(coords)
                r = POINT_RADIUS
                draw.ellipse((x - r, y - r, x + r, y + r), outline=OVERLAY_COLOR, width=2)
            elif kind == "LineString":
                draw.line([proj(c) for c in coords], fill=OVERLAY_COLOR, width=2)
            else:
                for ring in coords:
                    pts = [proj(c) for c in ring]
                    if len(pts) >= 2:
                        draw.line(pts + pts[:1], fill=OVERLAY_COLOR, width=2)
            drew = True
        if drew:
            rendered.append(feature)
        else:
            logger.debug("skipping feature without drawable geometry: %r", feature.get("id"))

    return Snapshot(image=img, rendered=rendered, tiles_drawn=tiles_drawn)

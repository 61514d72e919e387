# bootstrap.py: build the map view, its tile layer and the empty country overlay
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional

from weathermap.config import (
    DEFAULT_CENTER, DEFAULT_ZOOM, MAP_CONTAINER_ID, MAX_ZOOM, MIN_ZOOM,
    OVERLAY_URL, TILE_URL_TEMPLATE,
)
from weathermap.models import LatLng, MapView, Page, TileLayerConfig
from weathermap.overlay import OverlayLayer
from weathermap.tiles import TileFetcher, TileLayer


class ContainerMissing(LookupError):
    pass


DEFAULT_TILE_CONFIG = TileLayerConfig(TILE_URL_TEMPLATE, MIN_ZOOM, MAX_ZOOM)


@dataclass
class MapHandles:
    view: MapView
    tile_layer: TileLayer
    overlay: OverlayLayer


def create_map(page: Page, container_id: str, center: LatLng, zoom: int) -> MapView:
    container = page.find(container_id)
    if container is None:
        raise ContainerMissing(f"no container with id {container_id!r} on the page")
    return MapView(container=container, center=(float(center[0]), float(center[1])), zoom=int(zoom))


def bootstrap_map(
    page: Page,
    container_id: str = MAP_CONTAINER_ID,
    center: LatLng = DEFAULT_CENTER,
    zoom: int = DEFAULT_ZOOM,
    tile_config: TileLayerConfig = DEFAULT_TILE_CONFIG,
    fetcher: Optional[TileFetcher] = None,
) -> MapHandles:
    """
    Create the map view, attach the tile layer (which requests its visible
    tiles right away) and attach an empty overlay for the loader to fill.
    """
    view = create_map(page, container_id, center, zoom)

    tile_layer = TileLayer(tile_config, fetcher)
    view.add_layer(tile_layer)

    overlay = OverlayLayer()
    view.add_layer(overlay)

    return MapHandles(view=view, tile_layer=tile_layer, overlay=overlay)


def leaflet_options(handles: MapHandles, overlay_url: str = OVERLAY_URL) -> Dict[str, Any]:
    """Options the index page hands to Leaflet."""
    view, cfg = handles.view, handles.tile_layer.config
    return {
        "container": view.container_id,
        "height": view.container.height,
        "center": [view.center[0], view.center[1]],
        "zoom": view.zoom,
        "tileUrl": cfg.url_template,
        "minZoom": cfg.min_zoom,
        "maxZoom": cfg.max_zoom,
        "overlayUrl": overlay_url,
    }

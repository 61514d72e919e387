"""Raster tile layer and the background fetcher that backs it."""

from __future__ import annotations

import io
import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Iterable, List, Optional, Tuple

import requests
from PIL import Image, UnidentifiedImageError

from weathermap.geometry import tiles_covering
from weathermap.models import MapView, TileLayerConfig

logger = logging.getLogger(__name__)

TileKey = Tuple[int, int, int]


class TileFetcher:
    """Fetch tile images on worker threads and keep the most recent ones in an LRU cache."""

    def __init__(
        self,
        base_url: str = "",
        *,
        session: Optional[requests.Session] = None,
        executor=None,
        cache_limit: int = 256,
        timeout: float = 10.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="tiles")
        self._cache_limit = cache_limit
        self._timeout = timeout

        self._lock = threading.Lock()
        self._tile_cache: "OrderedDict[TileKey, Image.Image]" = OrderedDict()
        self._pending_tiles: set = set()
        self._missing_tiles: set = set()
        self.requested_urls: List[str] = []

    # ------------------------------------------------------------------
    def ensure_tile(self, key: TileKey, url: str) -> Optional[Future]:
        """Schedule ``key`` for loading unless it is cached, in flight or known missing."""

        with self._lock:
            if key in self._tile_cache or key in self._pending_tiles or key in self._missing_tiles:
                return None
            self._pending_tiles.add(key)
            self.requested_urls.append(url)

        future = self._executor.submit(self._load, url)
        future.add_done_callback(lambda f, key=key: self._handle_done(key, f))
        return future

    def get_tile(self, key: TileKey) -> Optional[Image.Image]:
        with self._lock:
            tile = self._tile_cache.get(key)
            if tile is not None:
                self._tile_cache.move_to_end(key)
            return tile

    def is_tile_missing(self, key: TileKey) -> bool:
        with self._lock:
            return key in self._missing_tiles

    def pending_tiles(self) -> Iterable[TileKey]:
        with self._lock:
            return set(self._pending_tiles)

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    # ------------------------------------------------------------------
    def _load(self, url: str) -> Image.Image:
        resp = self._session.get(self._base_url + url, timeout=self._timeout)
        resp.raise_for_status()
        img = Image.open(io.BytesIO(resp.content))
        img.load()
        return img.convert("RGB")

    def _handle_done(self, key: TileKey, future: Future) -> None:
        exc = future.exception()
        with self._lock:
            self._pending_tiles.discard(key)
            if exc is not None:
                self._missing_tiles.add(key)
                self._tile_cache.pop(key, None)
            else:
                self._missing_tiles.discard(key)
                self._tile_cache[key] = future.result()
                self._tile_cache.move_to_end(key)
                while len(self._tile_cache) > self._cache_limit:
                    self._tile_cache.popitem(last=False)

        if exc is not None:
            if isinstance(exc, (requests.RequestException, UnidentifiedImageError, OSError)):
                logger.warning("Tile %s/%s/%s could not be loaded: %s", *key, exc)
            else:
                logger.error("Tile %s/%s/%s failed unexpectedly", *key, exc_info=exc)


class TileLayer:
    """Raster layer that requests ``config.url_template`` tiles for the visible viewport."""

    def __init__(self, config: TileLayerConfig, fetcher: Optional[TileFetcher] = None) -> None:
        self.config = config
        self.fetcher = fetcher
        self._view: Optional[MapView] = None

    def tile_url(self, z: int, x: int, y: int) -> str:
        return self.config.url_template.format(z=z, x=x, y=y)

    def visible_tiles(self) -> List[TileKey]:
        view = self._view
        if view is None or not self.config.allows(view.zoom):
            return []
        lat, lon = view.center
        return tiles_covering(lat, lon, view.zoom, view.container.width, view.container.height)

    def redraw(self) -> List[TileKey]:
        """Request every visible tile not already held by the fetcher; return the new requests."""
        keys = self.visible_tiles()
        if self.fetcher is None:
            return []
        issued = []
        for key in keys:
            if self.fetcher.ensure_tile(key, self.tile_url(*key)) is not None:
                issued.append(key)
        if keys:
            logger.debug("zoom %s: %d visible tiles, %d requested", keys[0][0], len(keys), len(issued))
        return issued

    # layer protocol
    def on_add(self, view: MapView) -> None:
        self._view = view
        self.redraw()

    def on_view_changed(self, view: MapView) -> None:
        self.redraw()


__all__ = ["TileFetcher", "TileLayer", "TileKey"]

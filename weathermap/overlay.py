"""Vector overlay layer and the one-shot GeoJSON loader that fills it.

The loader issues a single non-blocking request and hands the outcome to a
completion continuation. The continuation is the only writer of the overlay;
failures are logged and kept on ``OverlayLoader.error`` instead of escaping.
"""

from __future__ import annotations

import enum
import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import requests

from weathermap.config import OVERLAY_TIMEOUT_SEC
from weathermap.models import MapView

logger = logging.getLogger(__name__)


# region Errors
class OverlayLoadError(Exception):
    pass


class TransportFailure(OverlayLoadError):
    pass


class ParseFailure(OverlayLoadError):
    pass
# endregion


# region Overlay layer
def feature_identity(feature: Dict[str, Any]) -> str:
    """GeoJSON ``id`` when present, otherwise the canonical geometry+properties JSON."""
    if feature.get("id") is not None:
        return f"id:{json.dumps(feature['id'])}"
    return "geom:" + json.dumps(
        {"geometry": feature.get("geometry"), "properties": feature.get("properties")},
        sort_keys=True,
        separators=(",", ":"),
    )


def extract_features(data: Any) -> List[Dict[str, Any]]:
    """Return the features of a FeatureCollection or single Feature, or raise ParseFailure."""
    if isinstance(data, dict):
        kind = data.get("type")
        if kind == "FeatureCollection" and isinstance(data.get("features"), list):
            features = data["features"]
        elif kind == "Feature":
            features = [data]
        else:
            raise ParseFailure(f"not a GeoJSON FeatureCollection or Feature (type={kind!r})")
    else:
        raise ParseFailure(f"expected a GeoJSON object, got {type(data).__name__}")

    for i, f in enumerate(features):
        if not isinstance(f, dict) or "geometry" not in f:
            raise ParseFailure(f"feature {i} has no geometry")
    return features


class OverlayLayer:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._features: List[Dict[str, Any]] = []
        self._ids: set = set()
        self._view: Optional[MapView] = None

    @property
    def features(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._features)

    def __len__(self) -> int:
        with self._lock:
            return len(self._features)

    def add_data(self, data: Any) -> int:
        """Append the features in ``data``; features already in the layer are skipped.

        The payload is validated in full before anything is appended, so a
        bad payload leaves the layer unchanged. Returns the number added.
        """
        features = extract_features(data)
        added = 0
        with self._lock:
            existing = set(self._ids)
            for f in features:
                ident = feature_identity(f)
                if ident in existing:
                    continue
                self._ids.add(ident)
                self._features.append(f)
                added += 1
        return added

    # layer protocol
    def on_add(self, view: MapView) -> None:
        self._view = view

    def on_view_changed(self, view: MapView) -> None:
        pass
# endregion


# region Loader
class LoadState(enum.Enum):
    IDLE = "idle"
    REQUESTED = "requested"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class OverlayLoader:
    def __init__(
        self,
        overlay: OverlayLayer,
        url: str,
        *,
        session: Optional[requests.Session] = None,
        executor=None,
        timeout: float = OVERLAY_TIMEOUT_SEC,
        max_attempts: int = 1,
        backoff: float = 0.5,
        sleep=time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.overlay = overlay
        self.url = url
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.state = LoadState.IDLE
        self.error: Optional[OverlayLoadError] = None
        self.attempts = 0

        self._session = session or requests.Session()
        self._executor = executor
        self._owns_executor = executor is None
        self._sleep = sleep
        self._completion: Future = Future()

    def start(self) -> Future:
        """Issue the request and return at once.

        The returned future resolves with the terminal ``LoadState`` after
        the overlay has been updated (or left untouched on failure).
        """
        if self.state is not LoadState.IDLE:
            raise RuntimeError(f"overlay load already {self.state.value}")
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="overlay")
        self.state = LoadState.REQUESTED
        logger.debug("requesting overlay %s", self.url)
        try:
            fut = self._executor.submit(self._fetch)
        except RuntimeError as e:
            self.error = OverlayLoadError(f"could not schedule request: {e}")
            self.state = LoadState.FAILED
            logger.error("overlay %s not loaded: %s", self.url, self.error)
            if self._owns_executor:
                self._executor.shutdown(wait=False)
            self._completion.set_result(self.state)
            return self._completion
        fut.add_done_callback(self._on_complete)
        return self._completion

    def wait(self, timeout: Optional[float] = None) -> LoadState:
        return self._completion.result(timeout)

    # ------------------------------------------------------------------
    def _get(self) -> requests.Response:
        last: Optional[TransportFailure] = None
        for attempt in range(1, self.max_attempts + 1):
            self.attempts = attempt
            try:
                resp = self._session.get(self.url, timeout=self.timeout)
                resp.raise_for_status()
                return resp
            except requests.RequestException as e:
                last = TransportFailure(f"GET {self.url} failed: {e}")
                if attempt < self.max_attempts:
                    delay = self.backoff * 2 ** (attempt - 1)
                    logger.warning("overlay attempt %d/%d failed (%s); retrying in %.2fs",
                                   attempt, self.max_attempts, e, delay)
                    self._sleep(delay)
        raise last

    def _fetch(self) -> List[Dict[str, Any]]:
        resp = self._get()
        try:
            data = json.loads(resp.text)
        except ValueError as e:
            raise ParseFailure(f"{self.url}: body is not valid JSON: {e}") from e
        return extract_features(data)

    def _on_complete(self, fut: Future) -> None:
        exc = fut.exception()
        try:
            if exc is None:
                added = self.overlay.add_data({"type": "FeatureCollection", "features": fut.result()})
                self.state = LoadState.SUCCEEDED
                logger.info("overlay %s loaded: %d features", self.url, added)
            elif isinstance(exc, OverlayLoadError):
                self.error = exc
                self.state = LoadState.FAILED
                logger.error("overlay %s not loaded: %s", self.url, exc)
            else:
                self.error = OverlayLoadError(f"unexpected error: {exc!r}")
                self.state = LoadState.FAILED
                logger.error("overlay %s not loaded", self.url, exc_info=exc)
        finally:
            if self._owns_executor:
                self._executor.shutdown(wait=False)
            self._completion.set_result(self.state)
# endregion


__all__ = [
    "LoadState",
    "OverlayLayer",
    "OverlayLoader",
    "OverlayLoadError",
    "ParseFailure",
    "TransportFailure",
    "extract_features",
    "feature_identity",
]

"""Shared fixtures: fake requests sessions, ISD record builder, sample GeoJSON."""

import io
import json
import threading

import pytest
import requests
from PIL import Image


ONE_POINT = {
    "type": "FeatureCollection",
    "features": [
        {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}, "properties": {}},
    ],
}


class FakeResponse:
    def __init__(self, status_code=200, body=b"", url=""):
        self.status_code = status_code
        self.content = body if isinstance(body, bytes) else body.encode("utf-8")
        self.url = url

    @property
    def text(self):
        return self.content.decode("utf-8")

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error for url: {self.url}", response=self)


class FakeSession:
    """Stand-in for ``requests.Session``; ``routes`` maps URL -> response, exception or list of them."""

    def __init__(self, routes=None, default=None):
        self.routes = dict(routes or {})
        self.default = default
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, timeout=None):
        with self._lock:
            self.calls.append(url)
            outcome = self.routes.get(url, self.default)
            if isinstance(outcome, list):
                outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        if callable(outcome) and not isinstance(outcome, type):
            outcome = outcome(url)
        if outcome is None:
            return FakeResponse(404, b"not found", url)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, FakeResponse):
            outcome.url = url
            return outcome
        if isinstance(outcome, (dict, list)):
            return FakeResponse(200, json.dumps(outcome), url)
        return FakeResponse(200, outcome, url)


def png_bytes(color=(10, 20, 30), size=(256, 256)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, "PNG")
    return buf.getvalue()


def isd_line(
    usaf="010010",
    wban="99999",
    date="20160101",
    hhmm="1200",
    lat=51500,
    lon=-90,
    elevation=10,
    wind_dir=180,
    wind_type="N",
    wind_speed=50,
    temp=125,
    pressure=10132,
):
    """Build one fixed-width ISD record with the given raw field values."""
    chars = list("0" * 105)

    def put(start, text):
        chars[start:start + len(text)] = list(text)

    put(0, "0105")
    put(4, usaf)
    put(10, wban)
    put(15, date)
    put(23, hhmm)
    put(27, "4")
    put(28, f"{lat:+06d}")
    put(34, f"{lon:+07d}")
    put(41, "FM-12")
    put(46, f"{elevation:+05d}")
    put(51, "99999V020")
    put(60, f"{wind_dir:03d}")
    put(63, "1")
    put(64, wind_type)
    put(65, f"{wind_speed:04d}")
    put(87, f"{temp:+05d}")
    put(99, f"{pressure:05d}")
    return "".join(chars)


@pytest.fixture
def one_point():
    return json.loads(json.dumps(ONE_POINT))

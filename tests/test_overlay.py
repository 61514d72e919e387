import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

from conftest import FakeResponse, FakeSession
from weathermap.bootstrap import bootstrap_map
from weathermap.models import Container, Page
from weathermap.overlay import (
    LoadState, OverlayLayer, OverlayLoader, OverlayLoadError, ParseFailure, TransportFailure, feature_identity,
)
from weathermap.snapshot import render_snapshot

URL = "http://srv/static/countries.geo.json"


def collection(n):
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [i, -i]},
                "properties": {"name": f"f{i}", "rank": i},
            }
            for i in range(n)
        ],
    }


def load(body_or_outcome, **kw):
    overlay = OverlayLayer()
    loader = OverlayLoader(overlay, URL, session=FakeSession({URL: body_or_outcome}), **kw)
    loader.start()
    return overlay, loader, loader.wait(timeout=5)


def test_success_merges_every_feature():
    data = collection(3)
    overlay, loader, state = load(data)
    assert state is LoadState.SUCCEEDED
    assert loader.state is LoadState.SUCCEEDED
    assert loader.error is None
    assert len(overlay) == 3
    for got, want in zip(overlay.features, data["features"]):
        assert got["geometry"] == want["geometry"]
        assert got["properties"] == want["properties"]


def test_identical_features_in_one_payload_are_all_kept():
    pt = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}, "properties": {}}
    overlay, loader, state = load({"type": "FeatureCollection", "features": [pt, dict(pt)]})
    assert state is LoadState.SUCCEEDED
    assert len(overlay) == 2


def test_malformed_json_leaves_overlay_empty(caplog):
    with caplog.at_level(logging.ERROR, logger="weathermap.overlay"):
        overlay, loader, state = load(FakeResponse(200, '{"type": "FeatureCollection", "features": ['))
    assert state is LoadState.FAILED
    assert isinstance(loader.error, ParseFailure)
    assert len(overlay) == 0
    assert "not loaded" in caplog.text


def test_non_geojson_payload_is_a_parse_failure():
    overlay, loader, state = load(FakeResponse(200, "[1, 2, 3]"))
    assert state is LoadState.FAILED
    assert isinstance(loader.error, ParseFailure)
    assert len(overlay) == 0


def test_bad_feature_means_no_partial_merge():
    data = collection(2)
    data["features"].append({"type": "Feature", "properties": {}})
    overlay, loader, state = load(data)
    assert state is LoadState.FAILED
    assert len(overlay) == 0


def test_http_500_is_a_transport_failure():
    overlay, loader, state = load(FakeResponse(500, "boom"))
    assert state is LoadState.FAILED
    assert isinstance(loader.error, TransportFailure)
    assert len(overlay) == 0


def test_connection_refused_does_not_escape():
    overlay, loader, state = load(requests.ConnectionError("connection refused"))
    assert state is LoadState.FAILED
    assert isinstance(loader.error, TransportFailure)
    assert len(overlay) == 0


def test_start_returns_before_completion_and_only_once():
    release = threading.Event()

    def slow(url):
        release.wait(5)
        return collection(1)

    overlay = OverlayLayer()
    loader = OverlayLoader(overlay, URL, session=FakeSession({URL: slow}))
    assert loader.state is LoadState.IDLE
    done = loader.start()
    assert loader.state is LoadState.REQUESTED
    assert not done.done()
    with pytest.raises(RuntimeError):
        loader.start()

    release.set()
    assert done.result(timeout=5) is LoadState.SUCCEEDED
    assert len(overlay) == 1


def test_start_on_closed_executor_fails_cleanly():
    pool = ThreadPoolExecutor(max_workers=1)
    pool.shutdown()
    overlay = OverlayLayer()
    loader = OverlayLoader(overlay, URL, session=FakeSession({URL: collection(1)}), executor=pool)
    assert loader.start().result(timeout=5) is LoadState.FAILED
    assert loader.state is LoadState.FAILED
    assert isinstance(loader.error, OverlayLoadError)
    assert len(overlay) == 0


def test_transport_failures_are_retried_with_backoff():
    sleeps = []
    outcomes = [requests.ConnectionError("down"), FakeResponse(503, "busy"), collection(2)]
    overlay, loader, state = load(outcomes, max_attempts=3, backoff=0.5, sleep=sleeps.append)
    assert state is LoadState.SUCCEEDED
    assert loader.attempts == 3
    assert sleeps == [0.5, 1.0]
    assert len(overlay) == 2


def test_retries_exhausted():
    sleeps = []
    overlay, loader, state = load(requests.Timeout("slow"), max_attempts=2, backoff=0.1, sleep=sleeps.append)
    assert state is LoadState.FAILED
    assert isinstance(loader.error, TransportFailure)
    assert loader.attempts == 2
    assert sleeps == [0.1]


def test_parse_failures_are_not_retried():
    overlay, loader, state = load(FakeResponse(200, "not json"), max_attempts=3, sleep=lambda s: None)
    assert state is LoadState.FAILED
    assert loader.attempts == 1


def test_reloading_does_not_duplicate_features():
    data = collection(4)
    overlay = OverlayLayer()
    for _ in range(2):
        loader = OverlayLoader(overlay, URL, session=FakeSession({URL: data}))
        loader.start()
        assert loader.wait(timeout=5) is LoadState.SUCCEEDED
    assert len(overlay) == 4


def test_feature_identity_prefers_id():
    a = {"type": "Feature", "id": "FRA", "geometry": None, "properties": {"name": "France"}}
    b = {"type": "Feature", "id": "FRA", "geometry": None, "properties": {"name": "France (dup)"}}
    assert feature_identity(a) == feature_identity(b)

    overlay = OverlayLayer()
    assert overlay.add_data(a) == 1
    assert overlay.add_data({"type": "FeatureCollection", "features": [b]}) == 0
    assert overlay.features == [a]


def test_existing_features_are_preserved():
    overlay = OverlayLayer()
    overlay.add_data(collection(1))
    extra = {"type": "Feature", "geometry": {"type": "Point", "coordinates": [9, 9]}, "properties": {}}
    overlay.add_data(extra)
    assert len(overlay) == 2
    assert overlay.features[0]["properties"]["name"] == "f0"


def test_end_to_end_one_point(one_point):
    page = Page([Container("map", 1024, 600)])
    handles = bootstrap_map(page, center=(51.505, -0.09), zoom=3)
    assert handles.view.center == (51.505, -0.09)

    loader = OverlayLoader(handles.overlay, URL, session=FakeSession({URL: one_point}))
    loader.start()
    assert loader.wait(timeout=5) is LoadState.SUCCEEDED

    snap = render_snapshot(handles)
    assert len(snap.rendered) == 1
    assert snap.rendered[0]["geometry"]["coordinates"] == [0, 0]
    assert snap.image.size == (1024, 600)

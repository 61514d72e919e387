# region Header
"""
weathermap command line entry point.

  weathermap serve --directory isd/2016 --threads 8 [--render-dir frames]
  weathermap snapshot --server http://localhost:8000 --out map.png
  weathermap fetch-countries
"""
# endregion

# region Imports
from __future__ import annotations
import argparse
import cProfile
import json
import logging
import os
import sys
from typing import List, Optional

import requests

from weathermap.app import PACKAGE_DIR, create_app
from weathermap.bootstrap import MapHandles, bootstrap_map
from weathermap.config import (
    DEFAULT_CENTER, DEFAULT_PORT, DEFAULT_THREADS, DEFAULT_ZOOM, MAP_CONTAINER_ID,
    MAP_HEIGHT_PX, MAP_WIDTH_PX, OVERLAY_TIMEOUT_SEC, OVERLAY_URL,
)
from weathermap.isd import InvalidRecord, parse_file
from weathermap.models import Container, Page, WeatherStation
from weathermap.overlay import LoadState, OverlayLoadError, OverlayLoader, extract_features
from weathermap.render import render_weekly_frames
from weathermap.snapshot import render_snapshot
from weathermap.stations import load_directory
from weathermap.tiles import TileFetcher
# endregion

logger = logging.getLogger("weathermap")

COUNTRIES_URL = (
    "https://raw.githubusercontent.com/nvkelso/natural-earth-vector/master/"
    "geojson/ne_110m_admin_0_countries.geojson"
)


# region Parser
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="weathermap", description="Weather-station world map")
    p.add_argument("--log-level", default="INFO", help="logging level (default INFO)")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("serve", help="load ISD station files and serve the map")
    s.add_argument("--file", help="single ISD station file (.gz allowed)")
    s.add_argument("--directory", help="directory of ISD station files")
    s.add_argument("--max-stations", type=int, default=None)
    s.add_argument("--max-measurements", type=int, default=None)
    s.add_argument("--threads", type=int, default=DEFAULT_THREADS)
    s.add_argument("--render-dir", help="write weekly whole-world frames here")
    s.add_argument("--profile", help="cProfile the loading phase, dump stats to this path")
    s.add_argument("--static-dir", default=None)
    s.add_argument("--host", default="0.0.0.0")
    s.add_argument("--port", type=int, default=DEFAULT_PORT)
    s.add_argument("--no-serve", action="store_true", help="exit after loading/rendering")

    snap = sub.add_parser("snapshot", help="render the map page headlessly to a PNG")
    snap.add_argument("--server", required=True, help="base URL of a running weathermap server")
    snap.add_argument("--out", required=True)
    snap.add_argument("--lat", type=float, default=DEFAULT_CENTER[0])
    snap.add_argument("--lon", type=float, default=DEFAULT_CENTER[1])
    snap.add_argument("--zoom", type=int, default=DEFAULT_ZOOM)
    snap.add_argument("--width", type=int, default=MAP_WIDTH_PX)
    snap.add_argument("--height", type=int, default=MAP_HEIGHT_PX)
    snap.add_argument("--timeout", type=float, default=OVERLAY_TIMEOUT_SEC)
    snap.add_argument("--retries", type=int, default=0, help="extra overlay attempts on transport failure")

    fc = sub.add_parser("fetch-countries", help="download the country-boundary overlay")
    fc.add_argument("--url", default=COUNTRIES_URL)
    fc.add_argument("--out", default=os.path.join(PACKAGE_DIR, "static", "countries.geo.json"))
    return p
# endregion


# region serve
def load_stations(args) -> List[WeatherStation]:
    stations: List[WeatherStation] = []
    if args.directory:
        stations.extend(load_directory(
            args.directory,
            max_stations=args.max_stations,
            max_measurements=args.max_measurements,
            threads=args.threads,
        ))
    if args.file:
        stations.append(parse_file(args.file, args.max_measurements))
    return stations


def cmd_serve(args) -> int:
    profiler = cProfile.Profile() if args.profile else None
    if profiler:
        profiler.enable()
    try:
        stations = load_stations(args)
    except (InvalidRecord, OSError) as e:
        logger.error("%s", e)
        return 1
    finally:
        if profiler:
            profiler.disable()
            profiler.dump_stats(args.profile)
            logger.info("wrote profile to %s", args.profile)

    if args.render_dir:
        render_weekly_frames(stations, args.render_dir)

    if args.no_serve:
        return 0

    app = create_app(stations, static_dir=args.static_dir)
    app.run(host=args.host, port=args.port, threaded=True)
    return 0
# endregion


# region snapshot
def run_snapshot(
    server: str,
    *,
    center=DEFAULT_CENTER,
    zoom: int = DEFAULT_ZOOM,
    width: int = MAP_WIDTH_PX,
    height: int = MAP_HEIGHT_PX,
    timeout: float = OVERLAY_TIMEOUT_SEC,
    retries: int = 0,
    session: Optional[requests.Session] = None,
):
    """Bootstrap against ``server``, load the overlay and compose the viewport."""
    session = session or requests.Session()
    base = server.rstrip("/")
    page = Page([Container(MAP_CONTAINER_ID, width, height)])
    fetcher = TileFetcher(base, session=session, timeout=timeout)
    try:
        handles: MapHandles = bootstrap_map(page, center=center, zoom=zoom, fetcher=fetcher)
        loader = OverlayLoader(handles.overlay, base + OVERLAY_URL, session=session,
                               timeout=timeout, max_attempts=1 + max(0, retries))
        loader.start()
        state = loader.wait()
    finally:
        fetcher.close()
    return render_snapshot(handles, fetcher), loader, state


def cmd_snapshot(args) -> int:
    snap, loader, state = run_snapshot(
        args.server, center=(args.lat, args.lon), zoom=args.zoom,
        width=args.width, height=args.height, timeout=args.timeout, retries=args.retries,
    )
    snap.image.save(args.out)
    logger.info("wrote %s: %d tiles, %d overlay features", args.out, snap.tiles_drawn, len(snap.rendered))
    if state is not LoadState.SUCCEEDED:
        logger.error("country overlay missing: %s", loader.error)
        return 1
    return 0
# endregion


# region fetch-countries
def cmd_fetch_countries(args) -> int:
    logger.info("downloading %s", args.url)
    try:
        resp = requests.get(args.url, timeout=60)
        resp.raise_for_status()
        features = extract_features(json.loads(resp.text))
    except (requests.RequestException, ValueError, OverlayLoadError) as e:
        logger.error("could not fetch country boundaries: %s", e)
        return 1

    os.makedirs(os.path.dirname(os.path.abspath(args.out)), exist_ok=True)
    with open(args.out, "w") as f:
        json.dump({"type": "FeatureCollection", "features": features}, f)
    logger.info("saved %d features to %s (%.1f KB)", len(features), args.out, os.path.getsize(args.out) / 1024)
    return 0
# endregion


COMMANDS = {"serve": cmd_serve, "snapshot": cmd_snapshot, "fetch-countries": cmd_fetch_countries}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())

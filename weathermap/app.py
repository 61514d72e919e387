# app.py: Flask server for the weather-station map (index page, static overlay, station tiles)

from __future__ import annotations
import os
from typing import List, Optional

from flask import Flask, abort, make_response, render_template

from weathermap.bootstrap import bootstrap_map, leaflet_options
from weathermap.config import MAP_CONTAINER_ID, MAP_HEIGHT_PX, MAP_WIDTH_PX, MAX_ZOOM, MIN_ZOOM
from weathermap.models import Container, Page, WeatherStation
from weathermap.render import render_tile

PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))


def page_layout() -> Page:
    return Page([Container(MAP_CONTAINER_ID, MAP_WIDTH_PX, MAP_HEIGHT_PX)])


def create_app(stations: Optional[List[WeatherStation]] = None, static_dir: Optional[str] = None) -> Flask:
    app = Flask(
        __name__,
        static_folder=static_dir or os.path.join(PACKAGE_DIR, "static"),
        static_url_path="/static",
        template_folder=os.path.join(PACKAGE_DIR, "templates"),
    )
    app.config["STATIONS"] = list(stations or [])

    # ======= CORS =======
    @app.after_request
    def _cors(resp):
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Access-Control-Allow-Headers"] = "*"
        resp.headers["Access-Control-Allow-Methods"] = "GET,OPTIONS"
        return resp

    # ======= page =======
    @app.route("/", methods=["GET"])
    def index():
        handles = bootstrap_map(page_layout())
        return render_template("index.html", map_config=leaflet_options(handles))

    # ======= tiles =======
    @app.route("/api/map/<int:zoom>/<int:x>/<int:y>/tile.png", methods=["GET"])
    def map_tile(zoom, x, y):
        if not (MIN_ZOOM <= zoom <= MAX_ZOOM) or x >= (1 << zoom) or y >= (1 << zoom):
            abort(404)
        resp = make_response(render_tile(app.config["STATIONS"], zoom, x, y))
        resp.headers["Content-Type"] = "image/png"
        return resp

    app.logger.info("serving %d stations", len(app.config["STATIONS"]))
    return app

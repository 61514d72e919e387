# config.py
# Page bootstrap defaults
MAP_CONTAINER_ID = "map"
MAP_HEIGHT_PX = 600
MAP_WIDTH_PX = 1024
DEFAULT_CENTER = (51.505, -0.09)  # (lat, lon)
DEFAULT_ZOOM = 3

# Tile endpoint served by weathermap.app
TILE_URL_TEMPLATE = "/api/map/{z}/{x}/{y}/tile.png"
MIN_ZOOM = 0
MAX_ZOOM = 18
TILE_SIZE = 256

# Static country-boundary overlay
OVERLAY_URL = "/static/countries.geo.json"
OVERLAY_TIMEOUT_SEC = 10.0

# Web Mercator
EARTH_R = 6_378_137.0
MERCATOR_LAT_BOUND = 85.05112878

# Station colouring (deg C)
TEMP_MIN_C = -30.0
TEMP_MAX_C = 40.0

# Weekly frame rendering
FRAME_WIDTH = 1024
FRAME_HEIGHT = 512
FRAME_WEEKS = 52
FRAME_START = (2016, 1, 1)

# Tile time window: effectively "all measurements"
TILE_START = (1900, 1, 1)
TILE_END = (2100, 1, 1)

DEFAULT_THREADS = 8
DEFAULT_PORT = 8000

"""Configuration constants, limits and environment overrides."""

import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "").strip()
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name, "").strip()
    return float(value) if value else default


# ── Elevation tile source ─────────────────────────────────────────────
# Terrarium encoding: elevation = R*256 + G + B/256 - 32768 (metres)
TILE_URL_TEMPLATE = os.environ.get(
    "TERRAINSTL_TILE_URL",
    "https://s3.amazonaws.com/elevation-tiles-prod/terrarium/{z}/{x}/{y}.png",
)
TILE_SIZE = 256        # pixels per tile edge
TILE_CHANNELS = 3      # RGB
USER_AGENT = "terrainstl/0.1 (terrain STL export)"

# ── Zoom / admission control ──────────────────────────────────────────
MAX_ZOOM = _env_int("TERRAINSTL_MAX_ZOOM", 15)
MAX_TILES = _env_int("TERRAINSTL_MAX_TILES", 20)

# Web Mercator is only defined up to this latitude
MAX_MERCATOR_LAT = 85.05112878

# ── Fetch timeouts (seconds) ──────────────────────────────────────────
TILE_REQUEST_TIMEOUT = _env_float("TERRAINSTL_TILE_TIMEOUT", 15.0)
FETCH_TOTAL_TIMEOUT = _env_float("TERRAINSTL_FETCH_TIMEOUT", 45.0)

# ── Mesh defaults ─────────────────────────────────────────────────────
DEFAULT_RESOLUTION = 512
MIN_RESOLUTION = 2
MAX_RESOLUTION = 2048
MAX_MESH_VERTICES = _env_int("TERRAINSTL_MAX_MESH_VERTICES", 2048 * 2048)

MODEL_WIDTH_MM = 100.0              # x spans [0, MODEL_WIDTH_MM]
DEFAULT_BASE_THICKNESS_MM = 2.0
DEFAULT_VERTICAL_EXAGGERATION = 1.5
METERS_PER_DEGREE = 111320.0        # at the equator

# ── STL output ────────────────────────────────────────────────────────
STL_HEADER = "terrainstl binary STL terrain export"
STL_HEADER_SIZE = 80
STL_RECORD_SIZE = 50

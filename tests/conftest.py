import threading
import time

import numpy as np
import pytest

from terrainstl.errors import TileFetchError

TILE_SIZE = 256


def encode_terrarium(elevation):
    """Metres -> Terrarium RGB uint8 array (inverse of decode_elevation)."""
    v = np.asarray(elevation, dtype=np.float64) + 32768.0
    r = np.floor(v / 256.0)
    g = np.floor(v - r * 256.0)
    b = np.round((v - np.floor(v)) * 256.0)
    return np.stack([r, g, b], axis=-1).astype(np.uint8)


def terrarium_tile(elevation, tile_size=TILE_SIZE):
    """A tile_size x tile_size tile at a constant (or per-pixel) elevation."""
    return encode_terrarium(np.broadcast_to(
        np.asarray(elevation, dtype=np.float64), (tile_size, tile_size)))


class FakeFetcher:
    """Stand-in for TileSource: records calls, can fail or stall tiles."""

    def __init__(self, elevation=lambda tile: 0.0, fail=(), stall=(),
                 stall_seconds=0.3, tile_size=TILE_SIZE):
        self.elevation = elevation
        self.fail = set(fail)
        self.stall = set(stall)
        self.stall_seconds = stall_seconds
        self.tile_size = tile_size
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, tile):
        with self._lock:
            self.calls.append(tile)
        if tile in self.stall:
            time.sleep(self.stall_seconds)
        if tile in self.fail:
            raise TileFetchError(f"fake://{tile.zoom}/{tile.x}/{tile.y}",
                                 "simulated failure")
        return terrarium_tile(self.elevation(tile), self.tile_size)


@pytest.fixture
def encode():
    return encode_terrarium


@pytest.fixture
def make_tile():
    return terrarium_tile


@pytest.fixture
def fetcher_cls():
    return FakeFetcher


@pytest.fixture
def hilly_fetcher():
    """Tiles whose elevation rises eastward inside each tile, offset per tile."""
    ramp = np.tile(np.arange(TILE_SIZE, dtype=np.float64), (TILE_SIZE, 1))
    return FakeFetcher(elevation=lambda t: ramp + 50.0 * (t.x % 3) + 20.0 * (t.y % 2))


@pytest.fixture
def equator_bounds():
    return [-0.01, -0.01, 0.01, 0.01]

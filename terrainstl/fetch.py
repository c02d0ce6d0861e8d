"""Elevation tile download and compositing.

Tiles are fetched concurrently (one worker thread per tile in a pool
owned by the call, bounded by the tile budget) and blitted into a single
RGB raster. A tile that fails to download or decode is replaced with a
blank tile instead of aborting the export.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from io import BytesIO
from typing import Callable, Optional

import numpy as np
import requests
from PIL import Image

from .constants import (
    FETCH_TOTAL_TIMEOUT,
    TILE_CHANNELS,
    TILE_REQUEST_TIMEOUT,
    TILE_SIZE,
    TILE_URL_TEMPLATE,
    USER_AGENT,
)
from .errors import TileFetchError
from .models import CompositeRaster, TileCoordinate
from .tiles import TileGrid

logger = logging.getLogger(__name__)

TileFetcher = Callable[[TileCoordinate], np.ndarray]


def blank_tile(tile_size: int = TILE_SIZE) -> np.ndarray:
    """All-zero RGB block used in place of a failed tile."""
    return np.zeros((tile_size, tile_size, TILE_CHANNELS), dtype=np.uint8)


def decode_tile_image(data: bytes, tile_size: int = TILE_SIZE,
                      url: str = "<memory>") -> np.ndarray:
    """Decode PNG/WebP/JPEG bytes to an ``(size, size, 3)`` uint8 array."""
    try:
        with Image.open(BytesIO(data)) as img:
            pixels = np.asarray(img.convert("RGB"), dtype=np.uint8)
    except (OSError, ValueError) as e:
        raise TileFetchError(url, f"undecodable image ({e})") from e

    expected = (tile_size, tile_size, TILE_CHANNELS)
    if pixels.shape != expected:
        raise TileFetchError(url, f"unexpected tile shape {pixels.shape}, "
                                  f"expected {expected}")
    return pixels


class TileSource:
    """HTTP elevation tile source addressed by a ``{z}/{x}/{y}`` template.

    Without a *session* every tile is a standalone ``requests.get``, so one
    source can be shared by concurrent exports and worker threads.
    A supplied session is used as-is.
    """

    def __init__(self, url_template: str = TILE_URL_TEMPLATE,
                 timeout: float = TILE_REQUEST_TIMEOUT,
                 tile_size: int = TILE_SIZE,
                 session: Optional[requests.Session] = None):
        self.url_template = url_template
        self.timeout = timeout
        self.tile_size = tile_size
        self.session = session

    def url_for(self, tile: TileCoordinate) -> str:
        return self.url_template.format(z=tile.zoom, x=tile.x, y=tile.y)

    def fetch_pixels(self, tile: TileCoordinate) -> np.ndarray:
        """Download and decode one tile. Raises TileFetchError on failure."""
        url = self.url_for(tile)
        try:
            get = self.session.get if self.session is not None else requests.get
            resp = get(url, timeout=self.timeout, headers={"User-Agent": USER_AGENT})
        except requests.RequestException as e:
            raise TileFetchError(url, str(e)) from e

        if resp.status_code != 200:
            raise TileFetchError(url, f"HTTP {resp.status_code}")

        logger.debug(f"Fetched tile {url} ({len(resp.content)} bytes)")
        return decode_tile_image(resp.content, self.tile_size, url)

    def __call__(self, tile: TileCoordinate) -> np.ndarray:
        return self.fetch_pixels(tile)


async def fetch_composite(grid: TileGrid, fetch_tile: TileFetcher,
                          total_timeout: Optional[float] = FETCH_TOTAL_TIMEOUT
                          ) -> CompositeRaster:
    """Fetch every tile of *grid* concurrently and stitch them together.

    Parameters
    ----------
    grid : TileGrid
        Tile block to fetch; the caller has already checked the tile budget.
    fetch_tile : callable
        ``fetch_tile(TileCoordinate) -> ndarray`` returning one
        ``(tile_size, tile_size, 3)`` uint8 block. Runs in a worker thread.
    total_timeout : float or None
        Wall-clock limit for all tiles; stragglers are treated as failed.

    Returns
    -------
    CompositeRaster: ``failed`` lists tiles that were blanked.
    """
    size = grid.tile_size
    pixels = np.zeros((grid.height, grid.width, TILE_CHANNELS), dtype=np.uint8)

    # Own pool, not the loop default: asyncio.run() joins that one on exit.
    loop = asyncio.get_running_loop()
    executor = ThreadPoolExecutor(max_workers=grid.tile_count,
                                  thread_name_prefix="terrainstl-tile")
    tasks = {loop.run_in_executor(executor, fetch_tile, tile): tile
             for tile in grid.tiles()}
    try:
        _, pending = await asyncio.wait(list(tasks), timeout=total_timeout)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        executor.shutdown(wait=False, cancel_futures=True)

    failed = []
    for task, tile in tasks.items():
        if task in pending:
            logger.warning(f"Tile {tile.zoom}/{tile.x}/{tile.y} timed out "
                           f"after {total_timeout}s; using blank tile")
            block = None
        else:
            try:
                block = task.result()
            except Exception as e:
                logger.warning(f"Tile fetch error: {e}; using blank tile")
                block = None

        if block is not None and block.shape != (size, size, TILE_CHANNELS):
            logger.warning(f"Tile {tile.zoom}/{tile.x}/{tile.y} has shape "
                           f"{block.shape}; using blank tile")
            block = None

        if block is None:
            failed.append(tile)
            block = blank_tile(size)

        top, left = grid.offset(tile)
        pixels[top:top + size, left:left + size] = block

    logger.info(f"Composited {grid.tile_count - len(failed)}/{grid.tile_count} "
                f"tiles at zoom {grid.zoom} into {grid.width}x{grid.height} px")
    return CompositeRaster(grid=grid, pixels=pixels, failed=failed)

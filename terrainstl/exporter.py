"""Export pipeline: thin orchestrator over the tile, mesh and STL modules.

bbox + options -> zoom & tile block -> composite raster -> vertex grid
-> binary STL bytes.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from .constants import FETCH_TOTAL_TIMEOUT, MAX_TILES, MAX_ZOOM
from .fetch import TileFetcher, TileSource, fetch_composite
from .mesh import build_vertex_grid, check_mesh_budget, mesh_dimensions
from .models import ExportOptions
from .stl import serialize_stl
from .tiles import check_tile_budget, choose_zoom_level, tile_grid_for_bbox

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


def _noop_progress(pct: float, msg: str) -> None:
    pass


async def generate_stl(options: ExportOptions,
                       fetch_tile: Optional[TileFetcher] = None,
                       max_tiles: int = MAX_TILES,
                       max_zoom: int = MAX_ZOOM,
                       total_timeout: Optional[float] = FETCH_TOTAL_TIMEOUT,
                       progress_callback: Optional[ProgressCallback] = None) -> bytes:
    """Build a binary STL terrain model for ``options.bbox``.

    Raises InvalidBoundingBox / InvalidExportOptions for bad input and
    AreaTooLarge before any tile is requested. Individual tile failures
    never raise; they leave a blank patch in the raster.
    """
    progress = progress_callback or _noop_progress
    t0 = time.time()

    options.validate()
    bbox = options.bbox

    zoom = choose_zoom_level(bbox, options.resolution, max_zoom=max_zoom)
    grid = tile_grid_for_bbox(bbox, zoom)
    logger.info(f"Export {bbox.to_bounds()} at resolution {options.resolution}: "
                f"zoom {zoom}, {grid.tiles_x}x{grid.tiles_y} tiles")
    check_tile_budget(grid, max_tiles)

    mesh_width, mesh_height, _ = mesh_dimensions(grid, bbox, options.resolution)
    check_mesh_budget(mesh_width, mesh_height)

    if fetch_tile is None:
        fetch_tile = TileSource()

    progress(10, f"Fetching {grid.tile_count} elevation tiles...")
    raster = await fetch_composite(grid, fetch_tile, total_timeout=total_timeout)
    if raster.failed:
        logger.warning(f"{len(raster.failed)} of {grid.tile_count} tiles "
                       f"replaced with blank tiles")

    progress(50, f"Sampling {mesh_width}x{mesh_height} vertex grid...")
    vertices = build_vertex_grid(
        raster, bbox, options.resolution,
        exaggeration=options.vertical_exaggeration,
        base_thickness_mm=options.base_thickness_mm,
        model_width_mm=options.model_width_mm,
    )

    progress(80, "Writing STL...")
    data = serialize_stl(vertices)

    progress(100, "Done")
    logger.info(f"STL export finished in {time.time() - t0:.1f}s "
                f"({len(data)} bytes)")
    return data


def export_stl(options: ExportOptions,
               fetch_tile: Optional[TileFetcher] = None,
               **kwargs) -> bytes:
    """Synchronous wrapper around :func:`generate_stl`.

    Starts its own event loop, so it can run inside a worker thread
    (``asyncio.to_thread``) from async callers.
    """
    return asyncio.run(generate_stl(options, fetch_tile, **kwargs))

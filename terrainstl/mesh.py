"""Heightmap sampling into a millimetre-scale vertex grid.

Provides functions for:
1. Sizing the mesh from the Mercator-projected aspect ratio of the bbox
2. Sampling the composite raster on a regular lon/lat grid (bilinear)
3. Converting elevations to model millimetres with exaggeration and base
"""

import logging
import math

import numpy as np

from .constants import (
    DEFAULT_BASE_THICKNESS_MM,
    DEFAULT_VERTICAL_EXAGGERATION,
    MAX_MESH_VERTICES,
    METERS_PER_DEGREE,
    MODEL_WIDTH_MM,
)
from .elevation import bilinear_sample
from .errors import AreaTooLarge
from .models import BoundingBox, CompositeRaster, VertexGrid
from .tiles import TileGrid

logger = logging.getLogger(__name__)


def projected_aspect_ratio(grid: TileGrid, bbox: BoundingBox) -> float:
    """Height/width of *bbox* measured in projected (Mercator) pixels.

    Raw degree spans would stretch high-latitude models east-west.
    """
    nw_x, nw_y = grid.project(bbox.west, bbox.north)
    se_x, se_y = grid.project(bbox.east, bbox.south)
    projected_width = float(se_x - nw_x)
    projected_height = float(se_y - nw_y)
    if projected_width == 0:
        return 1.0
    aspect = abs(projected_height / projected_width)
    if not math.isfinite(aspect) or aspect == 0:
        return 1.0
    return aspect


def mesh_dimensions(grid: TileGrid, bbox: BoundingBox, resolution: int) -> tuple:
    """Return ``(mesh_width, mesh_height, aspect_ratio)`` for *bbox*."""
    aspect = projected_aspect_ratio(grid, bbox)
    mesh_width = resolution
    mesh_height = max(2, int(math.floor(resolution * aspect + 0.5)))
    return mesh_width, mesh_height, aspect


def check_mesh_budget(mesh_width: int, mesh_height: int,
                      max_vertices: int = MAX_MESH_VERTICES) -> None:
    """Raise AreaTooLarge when the vertex grid would exceed *max_vertices*."""
    vertices = mesh_width * mesh_height
    if vertices > max_vertices:
        raise AreaTooLarge(
            f"Mesh of {mesh_width}x{mesh_height} ({vertices} vertices) exceeds "
            f"the limit of {max_vertices}. Try a lower resolution or a less "
            f"elongated area.")


def model_scale(bbox: BoundingBox, model_width_mm: float = MODEL_WIDTH_MM) -> float:
    """Model millimetres per real-world metre.

    The bbox's east-west extent at its centre latitude maps onto
    *model_width_mm*, so elevations scaled by this factor are true to scale.
    """
    meters_per_degree = METERS_PER_DEGREE * math.cos(math.radians(bbox.center_lat))
    width_meters = bbox.lon_span * meters_per_degree
    return model_width_mm / width_meters


def build_vertex_grid(raster: CompositeRaster, bbox: BoundingBox,
                      resolution: int,
                      exaggeration: float = DEFAULT_VERTICAL_EXAGGERATION,
                      base_thickness_mm: float = DEFAULT_BASE_THICKNESS_MM,
                      model_width_mm: float = MODEL_WIDTH_MM) -> VertexGrid:
    """Sample *raster* into a ``mesh_height x mesh_width`` vertex grid.

    Parameters
    ----------
    raster : CompositeRaster: stitched Terrarium tiles covering *bbox*
    bbox : BoundingBox: area to sample (WGS84 degrees)
    resolution : int: vertices along the west-east edge
    exaggeration : float: vertical exaggeration multiplier
    base_thickness_mm : float: solid floor under the lowest sample
    model_width_mm : float: model extent along x

    Returns
    -------
    VertexGrid: x in [0, model_width_mm], y in [0, model_width_mm * aspect]
    with north at the largest y, z >= base_thickness_mm.
    """
    mesh_width, mesh_height, aspect = mesh_dimensions(raster.grid, bbox, resolution)
    check_mesh_budget(mesh_width, mesh_height)

    pct_x = np.linspace(0.0, 1.0, mesh_width)
    pct_y = np.linspace(0.0, 1.0, mesh_height)   # 0 = north edge

    lng = bbox.west + pct_x * (bbox.east - bbox.west)
    lat = bbox.north + pct_y * (bbox.south - bbox.north)
    lng_2d, lat_2d = np.meshgrid(lng, lat)        # both (mesh_height, mesh_width)

    px, py = raster.grid.project(lng_2d, lat_2d)
    elev = bilinear_sample(raster.pixels, px, py)

    min_elev = float(elev.min())
    max_elev = float(elev.max())
    scale = model_scale(bbox, model_width_mm)

    positions = np.empty((mesh_height, mesh_width, 3), dtype=np.float64)
    positions[:, :, 0] = pct_x[np.newaxis, :] * model_width_mm
    positions[:, :, 1] = (1.0 - pct_y)[:, np.newaxis] * model_width_mm * aspect
    positions[:, :, 2] = (elev - min_elev) * scale * exaggeration + base_thickness_mm

    logger.info(f"Vertex grid: {mesh_width}x{mesh_height}, aspect={aspect:.3f}, "
                f"elevation {min_elev:.0f}..{max_elev:.0f}m, "
                f"relief={positions[:, :, 2].max() - base_thickness_mm:.2f}mm")

    return VertexGrid(positions=positions, aspect_ratio=aspect,
                      min_elevation=min_elev, max_elevation=max_elev)

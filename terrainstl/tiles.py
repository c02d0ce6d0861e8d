"""Slippy-map tile math on the spherical Web Mercator projection.

Provides functions for:
1. Converting longitude/latitude to tile indices at a zoom level (and back)
2. Choosing the smallest zoom that covers a target pixel resolution
3. Describing the block of tiles that covers a bounding box
4. Projecting lon/lat into the pixel space of the stitched tile block
"""

import math
from dataclasses import dataclass

import numpy as np

from .constants import MAX_TILES, MAX_ZOOM, TILE_SIZE
from .errors import AreaTooLarge
from .models import BoundingBox, TileCoordinate


def longitude_to_tile_x_fraction(lon, zoom):
    """Fractional tile column. Accepts scalars or numpy arrays."""
    return (np.asarray(lon, dtype=np.float64) + 180.0) / 360.0 * 2 ** zoom


def latitude_to_tile_y_fraction(lat, zoom):
    """Fractional tile row (0 at the north edge). Accepts scalars or arrays."""
    lat_rad = np.radians(np.asarray(lat, dtype=np.float64))
    return ((1.0 - np.log(np.tan(lat_rad) + 1.0 / np.cos(lat_rad)) / math.pi)
            / 2.0 * 2 ** zoom)


def longitude_to_tile_x(lon: float, zoom: int) -> int:
    """Tile column containing *lon* at *zoom*."""
    return int(math.floor(float(longitude_to_tile_x_fraction(lon, zoom))))


def latitude_to_tile_y(lat: float, zoom: int) -> int:
    """Tile row containing *lat* at *zoom*."""
    return int(math.floor(float(latitude_to_tile_y_fraction(lat, zoom))))


def tile_x_to_longitude(x: float, zoom: int) -> float:
    """Longitude of the west edge of tile column *x*."""
    return x / 2 ** zoom * 360.0 - 180.0


def tile_y_to_latitude(y: float, zoom: int) -> float:
    """Latitude of the north edge of tile row *y*."""
    n = math.pi - 2.0 * math.pi * y / 2 ** zoom
    return math.degrees(math.atan(math.sinh(n)))


def covered_pixel_width(bbox: BoundingBox, zoom: int,
                        tile_size: int = TILE_SIZE) -> float:
    """Number of raster pixels spanned by the bbox's longitude range."""
    return tile_size * 2 ** zoom * (bbox.lon_span / 360.0)


def choose_zoom_level(bbox: BoundingBox, target_resolution: int,
                      max_zoom: int = MAX_ZOOM,
                      tile_size: int = TILE_SIZE) -> int:
    """Smallest zoom whose pixel coverage of *bbox* reaches *target_resolution*.

    Falls back to *max_zoom* when no zoom is fine enough, which bounds the
    number of tiles a request can pull.
    """
    for zoom in range(max_zoom + 1):
        if covered_pixel_width(bbox, zoom, tile_size) >= target_resolution:
            return zoom
    return max_zoom


@dataclass(frozen=True)
class TileGrid:
    """Inclusive block of tiles ``[x_min..x_max] x [y_min..y_max]`` at *zoom*."""
    zoom: int
    x_min: int
    x_max: int
    y_min: int
    y_max: int
    tile_size: int = TILE_SIZE

    @property
    def tiles_x(self) -> int:
        return self.x_max - self.x_min + 1

    @property
    def tiles_y(self) -> int:
        return self.y_max - self.y_min + 1

    @property
    def tile_count(self) -> int:
        return self.tiles_x * self.tiles_y

    @property
    def width(self) -> int:
        return self.tiles_x * self.tile_size

    @property
    def height(self) -> int:
        return self.tiles_y * self.tile_size

    @property
    def west(self) -> float:
        return tile_x_to_longitude(self.x_min, self.zoom)

    @property
    def east(self) -> float:
        return tile_x_to_longitude(self.x_max + 1, self.zoom)

    def tiles(self) -> list:
        return [TileCoordinate(self.zoom, x, y)
                for x in range(self.x_min, self.x_max + 1)
                for y in range(self.y_min, self.y_max + 1)]

    def offset(self, tile: TileCoordinate) -> tuple:
        """Pixel ``(top, left)`` of *tile* inside the composite raster."""
        return ((tile.y - self.y_min) * self.tile_size,
                (tile.x - self.x_min) * self.tile_size)

    def project(self, lng, lat):
        """Project lon/lat to composite pixel coordinates ``(px, py)``.

        x is linear in longitude across the block; y follows Web Mercator.
        Accepts scalars or numpy arrays.
        """
        lng = np.asarray(lng, dtype=np.float64)
        west = self.west
        px = (lng - west) / (self.east - west) * self.width
        py = (latitude_to_tile_y_fraction(lat, self.zoom) - self.y_min) * self.tile_size
        return px, py


def tile_grid_for_bbox(bbox: BoundingBox, zoom: int,
                       tile_size: int = TILE_SIZE) -> TileGrid:
    """Tile block covering *bbox*, clamped to the ``2^zoom`` world grid."""
    last = 2 ** zoom - 1

    def _clamp(v):
        return max(0, min(v, last))

    return TileGrid(
        zoom=zoom,
        x_min=_clamp(longitude_to_tile_x(bbox.west, zoom)),
        x_max=_clamp(longitude_to_tile_x(bbox.east, zoom)),
        y_min=_clamp(latitude_to_tile_y(bbox.north, zoom)),
        y_max=_clamp(latitude_to_tile_y(bbox.south, zoom)),
        tile_size=tile_size,
    )


def check_tile_budget(grid: TileGrid, max_tiles: int = MAX_TILES) -> TileGrid:
    """Raise AreaTooLarge when *grid* needs more than *max_tiles* tiles."""
    if grid.tile_count > max_tiles:
        raise AreaTooLarge(
            f"Area too large for this resolution (requires {grid.tile_count} "
            f"tiles at zoom {grid.zoom}, limit {max_tiles}). "
            f"Try a smaller area or lower resolution.",
            tile_count=grid.tile_count, max_tiles=max_tiles)
    return grid

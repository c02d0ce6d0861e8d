"""Data classes shared by the export pipeline."""

import math
from dataclasses import dataclass
from typing import NamedTuple, Sequence

import numpy as np

from .constants import (
    DEFAULT_BASE_THICKNESS_MM,
    DEFAULT_RESOLUTION,
    DEFAULT_VERTICAL_EXAGGERATION,
    MAX_MERCATOR_LAT,
    MAX_RESOLUTION,
    MIN_RESOLUTION,
    MODEL_WIDTH_MM,
)
from .errors import InvalidBoundingBox, InvalidExportOptions


@dataclass(frozen=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float

    @classmethod
    def from_bounds(cls, bounds: Sequence[float]) -> "BoundingBox":
        """Build from a ``[west, south, east, north]`` sequence."""
        if len(bounds) != 4:
            raise InvalidBoundingBox(
                f"Expected [west, south, east, north], got {len(bounds)} values")
        west, south, east, north = (float(v) for v in bounds)
        return cls(north=north, south=south, east=east, west=west)

    @property
    def lon_span(self) -> float:
        return self.east - self.west

    @property
    def center_lat(self) -> float:
        return (self.north + self.south) / 2

    def validate(self) -> "BoundingBox":
        """Reject non-finite, inverted, zero-area or out-of-range boxes."""
        values = (self.west, self.south, self.east, self.north)
        if not all(math.isfinite(v) for v in values):
            raise InvalidBoundingBox(f"Bounding box has non-finite values: {values}")
        if self.west >= self.east:
            raise InvalidBoundingBox(
                f"west ({self.west}) must be less than east ({self.east})")
        if self.south >= self.north:
            raise InvalidBoundingBox(
                f"south ({self.south}) must be less than north ({self.north})")
        if self.west < -180.0 or self.east > 180.0:
            raise InvalidBoundingBox("Longitudes must lie within [-180, 180]")
        if self.south < -MAX_MERCATOR_LAT or self.north > MAX_MERCATOR_LAT:
            raise InvalidBoundingBox(
                f"Latitudes must lie within ±{MAX_MERCATOR_LAT:.4f} (Web Mercator)")
        return self

    def to_bounds(self) -> list:
        return [self.west, self.south, self.east, self.north]


@dataclass(frozen=True)
class ExportOptions:
    """Per-invocation export settings. Immutable."""
    bbox: BoundingBox
    resolution: int = DEFAULT_RESOLUTION
    vertical_exaggeration: float = DEFAULT_VERTICAL_EXAGGERATION
    base_thickness_mm: float = DEFAULT_BASE_THICKNESS_MM
    model_width_mm: float = MODEL_WIDTH_MM

    def validate(self) -> "ExportOptions":
        self.bbox.validate()
        if not MIN_RESOLUTION <= self.resolution <= MAX_RESOLUTION:
            raise InvalidExportOptions(
                f"resolution must be between {MIN_RESOLUTION} and "
                f"{MAX_RESOLUTION}, got {self.resolution}")
        if not math.isfinite(self.base_thickness_mm) or self.base_thickness_mm < 0:
            raise InvalidExportOptions(
                f"base thickness must be >= 0 mm, got {self.base_thickness_mm}")
        if not math.isfinite(self.vertical_exaggeration) or self.vertical_exaggeration <= 0:
            raise InvalidExportOptions(
                f"vertical exaggeration must be > 0, got {self.vertical_exaggeration}")
        if not math.isfinite(self.model_width_mm) or self.model_width_mm <= 0:
            raise InvalidExportOptions(
                f"model width must be > 0 mm, got {self.model_width_mm}")
        return self


class TileCoordinate(NamedTuple):
    """Slippy-map tile index at a zoom level."""
    zoom: int
    x: int
    y: int


@dataclass
class CompositeRaster:
    """Stitched tile pixels, shape ``(tiles_y*size, tiles_x*size, 3)`` uint8.

    ``failed`` lists the tiles that were replaced with flat zero tiles.
    """
    grid: "TileGrid"  # noqa: F821 -- defined in terrainstl.tiles
    pixels: np.ndarray
    failed: list

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def channels(self) -> int:
        return self.pixels.shape[2]


@dataclass
class VertexGrid:
    """``(height, width, 3)`` float array of model-space positions in mm.

    Row 0 is the northern edge (largest y); column 0 is the western edge.
    """
    positions: np.ndarray
    aspect_ratio: float
    min_elevation: float
    max_elevation: float

    @property
    def width(self) -> int:
        return self.positions.shape[1]

    @property
    def height(self) -> int:
        return self.positions.shape[0]

"""Exception hierarchy for the terrain export pipeline."""


class TerrainExportError(Exception):
    """Base exception for terrain export errors."""
    pass


class InvalidBoundingBox(TerrainExportError, ValueError):
    """Bounding box is inverted, zero-area or outside the Mercator range."""
    pass


class InvalidExportOptions(TerrainExportError, ValueError):
    """Resolution, thickness or scale options are out of range."""
    pass


class AreaTooLarge(TerrainExportError):
    """The requested area needs more tiles (or vertices) than allowed."""

    def __init__(self, message: str, tile_count: int = 0, max_tiles: int = 0):
        self.tile_count = tile_count
        self.max_tiles = max_tiles
        super().__init__(message)


class TileFetchError(TerrainExportError):
    """A single elevation tile could not be fetched or decoded.

    Never escapes the fetch phase: the tile is replaced with a flat one.
    """

    def __init__(self, url: str, message: str = ""):
        self.url = url
        super().__init__(f"Tile {url} failed: {message}")


class SerializationError(TerrainExportError, AssertionError):
    """STL writer cursor did not match the precomputed buffer layout."""
    pass

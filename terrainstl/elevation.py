"""Terrarium elevation decoding and bilinear sampling of RGB rasters."""

import numpy as np

# Terrarium: metres = R*256 + G + B/256 - 32768
TERRARIUM_OFFSET = 32768.0

# Keeps the +1 neighbour inside the raster at the far edge
EDGE_MARGIN = 1.001


def decode_elevation(r, g, b):
    """Decode Terrarium RGB channel values to elevation in metres.

    Works on plain ints or on numpy arrays of any shape (uint8 arrays are
    widened before the arithmetic).
    """
    r = np.asarray(r, dtype=np.float64)
    return r * 256.0 + g + np.asarray(b, dtype=np.float64) / 256.0 - TERRARIUM_OFFSET


def decode_pixels(pixels: np.ndarray) -> np.ndarray:
    """Decode an ``(..., 3)`` RGB array to an elevation array."""
    return decode_elevation(pixels[..., 0], pixels[..., 1], pixels[..., 2])


def bilinear_sample(pixels: np.ndarray, x, y):
    """Bilinear elevation at fractional pixel coordinates ``(x, y)``.

    *pixels* is an ``(height, width, 3)`` Terrarium raster; *x*, *y* may be
    scalars or equally shaped arrays. Coordinates are clamped to
    ``[0, dim - 1.001]`` so the four neighbours always exist.
    """
    height, width = pixels.shape[:2]
    px = np.clip(np.asarray(x, dtype=np.float64), 0.0, width - EDGE_MARGIN)
    py = np.clip(np.asarray(y, dtype=np.float64), 0.0, height - EDGE_MARGIN)

    x1 = np.floor(px).astype(np.intp)
    y1 = np.floor(py).astype(np.intp)
    x2 = x1 + 1
    y2 = y1 + 1
    wx = px - x1
    wy = py - y1

    h00 = decode_pixels(pixels[y1, x1])
    h01 = decode_pixels(pixels[y1, x2])
    h10 = decode_pixels(pixels[y2, x1])
    h11 = decode_pixels(pixels[y2, x2])

    top = h00 * (1 - wx) + h01 * wx
    bottom = h10 * (1 - wx) + h11 * wx
    result = top * (1 - wy) + bottom * wy

    if np.ndim(result) == 0:
        return float(result)
    return result

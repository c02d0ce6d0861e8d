"""Binary STL serialization of a terrain vertex grid.

Output is a closed-off printable slab: the sampled top surface, a flat
two-triangle base at z=0 and four vertical side walls. Every triangle
carries its own three vertices (no shared vertex table), and its normal
is the normalized cross product ``(v2 - v1) x (v3 - v1)``, so vertex
order alone decides which way a face points.

Layout::

    80 bytes   ASCII header, NUL padded
    uint32     triangle count (little-endian)
    N x 50     normal(3 x f32), v1, v2, v3 (3 x f32 each), attribute (u16)
"""

import logging
import struct

import numpy as np

from .constants import STL_HEADER, STL_HEADER_SIZE, STL_RECORD_SIZE
from .errors import SerializationError
from .models import VertexGrid

logger = logging.getLogger(__name__)

STL_RECORD_DTYPE = np.dtype([
    ('normal', '<f4', (3,)),
    ('v1', '<f4', (3,)),
    ('v2', '<f4', (3,)),
    ('v3', '<f4', (3,)),
    ('attribute', '<u2'),
])
assert STL_RECORD_DTYPE.itemsize == STL_RECORD_SIZE


class BinaryWriter:
    """Fixed-size little-endian byte buffer with a write cursor.

    Writing past the end raises SerializationError; so does ``finish()``
    when the cursor has not reached the end exactly.
    """

    def __init__(self, size: int):
        self._buffer = bytearray(size)
        self._pos = 0

    @property
    def position(self) -> int:
        return self._pos

    @property
    def size(self) -> int:
        return len(self._buffer)

    def _advance(self, n: int) -> int:
        start = self._pos
        if start + n > len(self._buffer):
            raise SerializationError(
                f"Write of {n} bytes at offset {start} overruns "
                f"{len(self._buffer)}-byte buffer")
        self._pos = start + n
        return start

    def write_bytes(self, data: bytes) -> None:
        start = self._advance(len(data))
        self._buffer[start:self._pos] = data

    def write_uint32(self, value: int) -> None:
        struct.pack_into('<I', self._buffer, self._advance(4), value)

    def write_uint16(self, value: int) -> None:
        struct.pack_into('<H', self._buffer, self._advance(2), value)

    def write_float32(self, value: float) -> None:
        struct.pack_into('<f', self._buffer, self._advance(4), value)

    def write_records(self, records: np.ndarray) -> None:
        """Append a structured array verbatim (its dtype fixes the layout)."""
        self.write_bytes(records.tobytes())

    def finish(self) -> bytes:
        if self._pos != len(self._buffer):
            raise SerializationError(
                f"Wrote {self._pos} of {len(self._buffer)} bytes; "
                f"STL layout is inconsistent")
        return bytes(self._buffer)


def triangle_count(mesh_width: int, mesh_height: int) -> int:
    """Top surface + 2 base triangles + 2 per boundary segment on 4 walls."""
    if mesh_width < 2 or mesh_height < 2:
        raise ValueError(
            f"Mesh must be at least 2x2, got {mesh_width}x{mesh_height}")
    top = 2 * (mesh_width - 1) * (mesh_height - 1)
    base = 2
    walls = 4 * ((mesh_width - 1) + (mesh_height - 1))
    return top + base + walls


def stl_size(mesh_width: int, mesh_height: int) -> int:
    return STL_HEADER_SIZE + 4 + STL_RECORD_SIZE * triangle_count(mesh_width, mesh_height)


def face_normals(v1: np.ndarray, v2: np.ndarray, v3: np.ndarray) -> np.ndarray:
    """Unit normals of ``(N, 3)`` triangle arrays; zero for degenerate faces."""
    normals = np.cross(v2 - v1, v3 - v1)
    lengths = np.linalg.norm(normals, axis=-1, keepdims=True)
    lengths[lengths == 0] = 1.0
    return normals / lengths


def _pack_records(v1, v2, v3) -> np.ndarray:
    records = np.zeros(len(v1), dtype=STL_RECORD_DTYPE)
    records['normal'] = face_normals(v1, v2, v3)
    records['v1'] = v1
    records['v2'] = v2
    records['v3'] = v3
    return records


def top_surface_triangles(positions: np.ndarray) -> tuple:
    """Two upward-facing triangles per grid cell.

    With rows running north to south (y decreasing) and columns west to
    east, a cell is ``p1`` (NW), ``p2`` (NE), ``p3`` (SE), ``p4`` (SW),
    split along the NE-SW diagonal as ``p1-p4-p2`` and ``p2-p4-p3``.
    """
    p1 = positions[:-1, :-1]
    p2 = positions[:-1, 1:]
    p3 = positions[1:, 1:]
    p4 = positions[1:, :-1]
    v1 = np.stack([p1, p2], axis=2).reshape(-1, 3)
    v2 = np.stack([p4, p4], axis=2).reshape(-1, 3)
    v3 = np.stack([p2, p3], axis=2).reshape(-1, 3)
    return v1, v2, v3


def base_triangles(positions: np.ndarray) -> tuple:
    """Flat downward-facing base at z=0 spanning the four mesh corners."""
    nw, ne = positions[0, 0].copy(), positions[0, -1].copy()
    se, sw = positions[-1, -1].copy(), positions[-1, 0].copy()
    for corner in (nw, ne, se, sw):
        corner[2] = 0.0
    v1 = np.array([nw, ne])
    v2 = np.array([ne, se])
    v3 = np.array([sw, sw])
    return v1, v2, v3


def wall_triangles(edge: np.ndarray, reverse: bool = False) -> tuple:
    """Vertical strip from a boundary polyline down to z=0.

    For consecutive top vertices ``t1 -> t2`` and their floor projections
    ``b1``, ``b2`` the strip is ``t1-t2-b1`` and ``b1-t2-b2``. Its normal is
    ``(t2 - t1) x (-z)``, i.e. to the left of the walking direction seen
    from above. *reverse* swaps v2/v3 and flips it.
    """
    bottom = edge.copy()
    bottom[:, 2] = 0.0
    t1, t2 = edge[:-1], edge[1:]
    b1, b2 = bottom[:-1], bottom[1:]

    v1 = np.stack([t1, b1], axis=1).reshape(-1, 3)
    v2 = np.stack([t2, t2], axis=1).reshape(-1, 3)
    v3 = np.stack([b1, b2], axis=1).reshape(-1, 3)
    if reverse:
        v2, v3 = v3, v2
    return v1, v2, v3


def side_wall_triangles(positions: np.ndarray) -> list:
    """The four walls as ``(name, (v1, v2, v3))`` with outward normals.

    north: row 0 walked west->east (+x); (+x) x (-z) = +y, outward.
    south: last row walked west->east; reversed to face -y.
    west:  column 0 walked north->south (-y); (-y) x (-z) = +x, reversed
           to face -x.
    east:  last column walked north->south; (-y) x (-z) = +x, outward.
    """
    return [
        ('north', wall_triangles(positions[0, :])),
        ('south', wall_triangles(positions[-1, :], reverse=True)),
        ('west', wall_triangles(positions[:, 0], reverse=True)),
        ('east', wall_triangles(positions[:, -1])),
    ]


def mesh_sections(grid: VertexGrid) -> list:
    """All triangle groups in file order: top, base, north/south/west/east."""
    positions = grid.positions
    return ([('top', top_surface_triangles(positions)),
             ('base', base_triangles(positions))]
            + side_wall_triangles(positions))


def encode_header(text: str = STL_HEADER) -> bytes:
    return text.encode('ascii', errors='replace')[:STL_HEADER_SIZE].ljust(
        STL_HEADER_SIZE, b'\0')


def serialize_stl(grid: VertexGrid, header: str = STL_HEADER) -> bytes:
    """Write *grid* as a solid binary STL and return the bytes.

    The buffer is sized up front from the mesh dimensions; any mismatch
    between that and the triangles produced raises SerializationError.
    """
    expected = triangle_count(grid.width, grid.height)
    writer = BinaryWriter(stl_size(grid.width, grid.height))
    writer.write_bytes(encode_header(header))
    writer.write_uint32(expected)

    written = 0
    for name, (v1, v2, v3) in mesh_sections(grid):
        records = _pack_records(v1, v2, v3)
        writer.write_records(records)
        written += len(records)
        logger.debug(f"STL section {name}: {len(records)} triangles")

    if written != expected:
        raise SerializationError(
            f"Wrote {written} triangles, header declares {expected}")

    data = writer.finish()
    logger.info(f"STL: {written} triangles, {len(data) / 1024 / 1024:.1f} MB")
    return data


def read_stl_header(data: bytes) -> tuple:
    """Return ``(header_text, triangle_count)`` after checking the length."""
    if len(data) < STL_HEADER_SIZE + 4:
        raise SerializationError(f"STL data too short ({len(data)} bytes)")
    header = data[:STL_HEADER_SIZE].rstrip(b'\0').decode('ascii', errors='replace')
    (count,) = struct.unpack_from('<I', data, STL_HEADER_SIZE)
    expected = STL_HEADER_SIZE + 4 + STL_RECORD_SIZE * count
    if len(data) != expected:
        raise SerializationError(
            f"STL declares {count} triangles ({expected} bytes) "
            f"but has {len(data)} bytes")
    return header, count


def read_stl_records(data: bytes) -> np.ndarray:
    """View the triangle records of a binary STL as a structured array."""
    _, count = read_stl_header(data)
    return np.frombuffer(data, dtype=STL_RECORD_DTYPE, count=count,
                         offset=STL_HEADER_SIZE + 4)

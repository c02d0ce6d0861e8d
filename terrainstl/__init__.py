"""terrainstl package: printable binary STL terrain models from elevation tiles.

Fetches Terrarium-encoded elevation tiles covering a bounding box, samples
them into a millimetre-scale vertex grid and serializes a solid (top
surface, base and side walls) binary STL.
"""

from terrainstl.models import BoundingBox, ExportOptions
from terrainstl.exporter import generate_stl, export_stl

__version__ = "0.1.0"

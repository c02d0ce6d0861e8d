"""Click CLI commands for terrainstl."""

import asyncio
import logging
import pathlib

import click

from .constants import (
    DEFAULT_BASE_THICKNESS_MM,
    DEFAULT_RESOLUTION,
    DEFAULT_VERTICAL_EXAGGERATION,
    TILE_URL_TEMPLATE,
)
from .errors import TerrainExportError
from .exporter import generate_stl
from .fetch import TileSource
from .models import BoundingBox, ExportOptions
from .stl import read_stl_header

logger = logging.getLogger(__name__)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def cli(verbose: bool):
    """terrainstl CLI for exporting elevation tiles as printable STL models."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO,
                        format='%(asctime)s - %(levelname)s - %(message)s')


@cli.command()
@click.option('--bounds', '-b', nargs=4, type=float, required=True,
              metavar='WEST SOUTH EAST NORTH', help='Bounding box in degrees')
@click.option('--output', '-o', default='terrain-export.stl', help='Output STL file path')
@click.option('--resolution', '-r', default=DEFAULT_RESOLUTION, show_default=True,
              help='Vertices along the west-east edge')
@click.option('--min-height', default=DEFAULT_BASE_THICKNESS_MM, show_default=True,
              help='Base thickness in mm')
@click.option('--exaggeration', default=DEFAULT_VERTICAL_EXAGGERATION, show_default=True,
              help='Vertical exaggeration multiplier')
@click.option('--tile-url', default=TILE_URL_TEMPLATE,
              help='Terrarium tile URL template with {z}/{x}/{y}')
def export(bounds, output: str, resolution: int, min_height: float,
           exaggeration: float, tile_url: str):
    """Export a bounding box as a binary STL terrain model."""
    options = ExportOptions(
        bbox=BoundingBox.from_bounds(bounds),
        resolution=resolution,
        vertical_exaggeration=exaggeration,
        base_thickness_mm=min_height,
    )
    asyncio.run(async_export(options, output, TileSource(url_template=tile_url)))


async def async_export(options: ExportOptions, output: str, source: TileSource):
    """Async helper for the export command."""
    def _progress(pct, msg):
        click.echo(f"[{pct:3.0f}%] {msg}")

    try:
        data = await generate_stl(options, source, progress_callback=_progress)
    except TerrainExportError as e:
        logger.error(f"Error exporting terrain: {e}")
        raise click.ClickException(str(e))

    path = pathlib.Path(output)
    path.write_bytes(data)
    _, count = read_stl_header(data)
    click.echo(f"Wrote {path} ({count} triangles, {len(data) / 1024 / 1024:.1f} MB)")

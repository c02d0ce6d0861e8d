import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from backend import config
from backend.models import ErrorResponse, ExportStlRequest
from terrainstl.constants import (
    DEFAULT_BASE_THICKNESS_MM,
    DEFAULT_RESOLUTION,
    DEFAULT_VERTICAL_EXAGGERATION,
)
from terrainstl.errors import AreaTooLarge, InvalidBoundingBox, InvalidExportOptions
from terrainstl.exporter import export_stl
from terrainstl.fetch import TileSource
from terrainstl.models import BoundingBox, ExportOptions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/export", tags=["export"])

tile_source = TileSource()


def get_tile_fetcher():
    """Tile fetcher dependency (overridden in tests)."""
    return tile_source


@router.post("/stl", responses={400: {"model": ErrorResponse}})
async def export_stl_file(request: ExportStlRequest,
                          fetch_tile=Depends(get_tile_fetcher)):
    """Generate a binary STL terrain model for ``request.bounds``.

    The pipeline runs in a worker thread with its own event loop so the
    CPU-bound meshing does not stall this server's loop.
    """
    try:
        options = ExportOptions(
            bbox=BoundingBox.from_bounds(request.bounds),
            resolution=(request.resolution if request.resolution is not None
                        else DEFAULT_RESOLUTION),
            base_thickness_mm=(request.min_height if request.min_height is not None
                               else DEFAULT_BASE_THICKNESS_MM),
            vertical_exaggeration=(request.exaggeration if request.exaggeration is not None
                                   else DEFAULT_VERTICAL_EXAGGERATION),
        )
        logger.info(f"Generating STL for bounds={request.bounds}, "
                    f"resolution={options.resolution}")
        data = await asyncio.to_thread(export_stl, options, fetch_tile)
    except (InvalidBoundingBox, InvalidExportOptions, AreaTooLarge) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception:
        logger.exception("STL generation failed")
        raise HTTPException(status_code=500, detail="STL generation failed")

    return Response(
        content=data,
        media_type=config.STL_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="{config.STL_FILENAME}"',
        },
    )

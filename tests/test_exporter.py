import asyncio
import time

import numpy as np
import pytest

from terrainstl.errors import AreaTooLarge, InvalidBoundingBox, InvalidExportOptions
from terrainstl.exporter import export_stl, generate_stl
from terrainstl.mesh import mesh_dimensions
from terrainstl.models import BoundingBox, ExportOptions, TileCoordinate
from terrainstl.stl import read_stl_header, read_stl_records, triangle_count
from terrainstl.tiles import tile_grid_for_bbox


def _options(bounds, **kwargs):
    return ExportOptions(bbox=BoundingBox.from_bounds(bounds), **kwargs)


def test_end_to_end_equator_box(equator_bounds, hilly_fetcher):
    options = _options(equator_bounds, resolution=64, base_thickness_mm=2.0)
    data = asyncio.run(generate_stl(options, hilly_fetcher))

    bbox = options.bbox
    width, height, aspect = mesh_dimensions(tile_grid_for_bbox(bbox, 13), bbox, 64)
    _, count = read_stl_header(data)
    assert count == triangle_count(width, height)
    assert len(data) == 84 + 50 * count
    assert len(hilly_fetcher.calls) == 4

    records = read_stl_records(data)
    top = records[:2 * (width - 1) * (height - 1)]
    top_vertices = np.concatenate([top["v1"], top["v2"], top["v3"]])
    assert top_vertices[:, 2].min() == 2.0
    assert top_vertices[:, 2].max() > 2.0

    all_vertices = np.concatenate([records["v1"], records["v2"], records["v3"]])
    assert all_vertices[:, 0].min() >= 0.0
    assert all_vertices[:, 0].max() <= 100.0 + 1e-4
    assert all_vertices[:, 1].min() >= 0.0
    assert all_vertices[:, 1].max() == pytest.approx(100.0 * aspect, rel=1e-5)
    assert all_vertices[:, 2].min() == 0.0


def test_area_guard_fails_before_fetching(fetcher_cls):
    fetcher = fetcher_cls()
    options = _options([0.0, -1.0, 0.01, 1.0], resolution=64)
    with pytest.raises(AreaTooLarge) as exc_info:
        asyncio.run(generate_stl(options, fetcher))
    assert exc_info.value.tile_count > 20
    assert fetcher.calls == []


def test_max_tiles_is_configurable(equator_bounds, fetcher_cls):
    fetcher = fetcher_cls()
    with pytest.raises(AreaTooLarge):
        asyncio.run(generate_stl(_options(equator_bounds, resolution=64),
                                 fetcher, max_tiles=3))
    assert fetcher.calls == []


@pytest.mark.parametrize("bounds", [
    [0.01, -0.01, -0.01, 0.01],     # west > east
    [-0.01, 0.01, 0.01, 0.01],      # zero height
    [0.0, 0.0, 0.0, 1.0],           # zero width
    [-0.01, 86.0, 0.01, 87.0],      # beyond Web Mercator
    [-181.0, 0.0, 0.0, 1.0],
    [0.0, 0.0, float("nan"), 1.0],
])
def test_invalid_bounding_box_rejected(bounds, fetcher_cls):
    fetcher = fetcher_cls()
    with pytest.raises(InvalidBoundingBox):
        asyncio.run(generate_stl(_options(bounds, resolution=64), fetcher))
    assert fetcher.calls == []


def test_bounds_must_have_four_values():
    with pytest.raises(InvalidBoundingBox):
        BoundingBox.from_bounds([0.0, 1.0, 2.0])


@pytest.mark.parametrize("kwargs", [
    {"resolution": 1},
    {"resolution": 5000},
    {"base_thickness_mm": -1.0},
    {"vertical_exaggeration": 0.0},
    {"model_width_mm": 0.0},
])
def test_invalid_options_rejected(equator_bounds, fetcher_cls, kwargs):
    fetcher = fetcher_cls()
    with pytest.raises(InvalidExportOptions):
        asyncio.run(generate_stl(_options(equator_bounds, **kwargs), fetcher))
    assert fetcher.calls == []


def test_failed_tile_does_not_abort_export(equator_bounds, fetcher_cls):
    # resolution 64 picks zoom 13: tiles 4095..4096 in x and y; 4096/4096 is SE
    failing = TileCoordinate(13, 4096, 4096)
    fetcher = fetcher_cls(elevation=lambda t: 300.0, fail=[failing])
    options = _options(equator_bounds, resolution=64, base_thickness_mm=2.0)
    data = asyncio.run(generate_stl(options, fetcher))

    assert failing in fetcher.calls
    assert len(fetcher.calls) == 4

    width, height, _ = mesh_dimensions(tile_grid_for_bbox(options.bbox, 13),
                                       options.bbox, 64)
    _, count = read_stl_header(data)
    assert count == triangle_count(width, height)

    records = read_stl_records(data)
    top = records[:2 * (width - 1) * (height - 1)]
    top_vertices = np.concatenate([top["v1"], top["v2"], top["v3"]])
    # the blank tile decodes far below the real terrain and becomes the floor
    south_east = top_vertices[(top_vertices[:, 0] > 55.0) & (top_vertices[:, 1] < 45.0)]
    north_west = top_vertices[(top_vertices[:, 0] < 45.0) & (top_vertices[:, 1] > 55.0)]
    assert len(south_east) and len(north_west)
    assert south_east[:, 2] == pytest.approx(2.0)
    assert north_west[:, 2].min() > 100.0


def test_stalled_tile_does_not_outlive_fetch_timeout(equator_bounds, fetcher_cls):
    stalled = TileCoordinate(13, 4095, 4095)
    fetcher = fetcher_cls(elevation=lambda t: 10.0, stall=[stalled], stall_seconds=3.0)
    options = _options(equator_bounds, resolution=64)

    t0 = time.monotonic()
    data = export_stl(options, fetcher, total_timeout=0.3)
    elapsed = time.monotonic() - t0

    assert elapsed < 2.0
    _, count = read_stl_header(data)
    assert count > 0


def test_default_options_preserve_historical_constants(equator_bounds):
    options = _options(equator_bounds)
    assert options.resolution == 512
    assert options.vertical_exaggeration == 1.5
    assert options.base_thickness_mm == 2.0
    assert options.model_width_mm == 100.0


def test_progress_callback_and_sync_wrapper(equator_bounds, fetcher_cls):
    seen = []
    data = export_stl(_options(equator_bounds, resolution=8), fetcher_cls(),
                      progress_callback=lambda pct, msg: seen.append(pct))
    assert seen[0] < seen[-1] == 100
    _, count = read_stl_header(data)
    assert count == triangle_count(8, 8)

import numpy as np
import pytest

from terrainstl.errors import AreaTooLarge
from terrainstl.mesh import (
    build_vertex_grid,
    check_mesh_budget,
    mesh_dimensions,
    model_scale,
    projected_aspect_ratio,
)
from terrainstl.models import BoundingBox, CompositeRaster
from terrainstl.tiles import tile_grid_for_bbox

EQUATOR = [-0.01, -0.01, 0.01, 0.01]
NORWAY = [10.0, 59.995, 10.01, 60.005]


def _raster(encode, bounds, zoom, elevation=None):
    """Composite raster for *bounds*; elevation(cols, rows) -> metres."""
    grid = tile_grid_for_bbox(BoundingBox.from_bounds(bounds), zoom)
    rows, cols = np.mgrid[0:grid.height, 0:grid.width].astype(np.float64)
    elev = np.zeros_like(cols) if elevation is None else elevation(cols, rows)
    return CompositeRaster(grid=grid, pixels=encode(elev), failed=[])


def test_aspect_ratio_near_equator_is_square():
    bbox = BoundingBox.from_bounds(EQUATOR)
    grid = tile_grid_for_bbox(bbox, 13)
    assert projected_aspect_ratio(grid, bbox) == pytest.approx(1.0, rel=1e-4)


def test_aspect_ratio_uses_mercator_stretch():
    # equal degree spans at 60N are twice as tall as wide on Mercator
    bbox = BoundingBox.from_bounds(NORWAY)
    grid = tile_grid_for_bbox(bbox, 12)
    assert projected_aspect_ratio(grid, bbox) == pytest.approx(2.0, rel=1e-3)


def test_mesh_dimensions():
    bbox = BoundingBox.from_bounds(EQUATOR)
    width, height, aspect = mesh_dimensions(tile_grid_for_bbox(bbox, 13), bbox, 64)
    assert (width, height) == (64, 64)

    bbox = BoundingBox.from_bounds(NORWAY)
    width, height, aspect = mesh_dimensions(tile_grid_for_bbox(bbox, 12), bbox, 64)
    assert (width, height) == (64, 128)


def test_mesh_dimensions_never_below_two_rows():
    bbox = BoundingBox.from_bounds([0.0, 0.0, 10.0, 0.001])
    width, height, _ = mesh_dimensions(tile_grid_for_bbox(bbox, 5), bbox, 64)
    assert (width, height) == (64, 2)


def test_model_scale_at_equator():
    bbox = BoundingBox.from_bounds(EQUATOR)
    assert model_scale(bbox) == pytest.approx(100.0 / (0.02 * 111320.0))
    assert model_scale(bbox, 200.0) == pytest.approx(2 * model_scale(bbox))


def test_flat_raster_sits_on_base_thickness(encode):
    raster = _raster(encode, EQUATOR, 13, lambda c, r: np.full_like(c, 250.0))
    bbox = BoundingBox.from_bounds(EQUATOR)
    grid = build_vertex_grid(raster, bbox, 32, base_thickness_mm=3.0)

    assert (grid.width, grid.height) == (32, 32)
    pos = grid.positions
    assert pos[:, :, 2] == pytest.approx(3.0)
    assert pos[:, :, 0].min() == 0.0
    assert pos[:, :, 0].max() == pytest.approx(100.0)
    # north edge (row 0) has the largest y
    assert np.all(pos[0, :, 1] == pytest.approx(100.0 * grid.aspect_ratio))
    assert np.all(pos[-1, :, 1] == 0.0)
    assert grid.min_elevation == pytest.approx(250.0)
    assert grid.max_elevation == pytest.approx(250.0)


def test_relief_is_zero_based_and_scaled(encode):
    # elevation rises one metre per composite pixel eastward
    raster = _raster(encode, EQUATOR, 13, lambda c, r: c)
    bbox = BoundingBox.from_bounds(EQUATOR)
    grid = build_vertex_grid(raster, bbox, 48, exaggeration=1.5, base_thickness_mm=2.0)

    z = grid.positions[:, :, 2]
    assert z.min() == 2.0
    assert np.all(np.diff(z, axis=1) >= 0)
    relief_m = grid.max_elevation - grid.min_elevation
    assert relief_m > 0
    assert z.max() == pytest.approx(2.0 + relief_m * model_scale(bbox) * 1.5)


def test_exaggeration_scales_relief(encode):
    raster = _raster(encode, EQUATOR, 13, lambda c, r: 2.0 * r)
    bbox = BoundingBox.from_bounds(EQUATOR)
    low = build_vertex_grid(raster, bbox, 16, exaggeration=1.0, base_thickness_mm=0.0)
    high = build_vertex_grid(raster, bbox, 16, exaggeration=3.0, base_thickness_mm=0.0)
    assert high.positions[:, :, 2] == pytest.approx(3.0 * low.positions[:, :, 2])
    # terrain rises southward, so the north row is the lowest
    assert low.positions[0, :, 2].max() == pytest.approx(0.0, abs=1e-9)


def test_model_width_option(encode):
    raster = _raster(encode, EQUATOR, 13)
    grid = build_vertex_grid(raster, BoundingBox.from_bounds(EQUATOR), 8,
                             model_width_mm=150.0)
    assert grid.positions[:, :, 0].max() == pytest.approx(150.0)
    assert grid.positions[:, :, 1].max() == pytest.approx(150.0 * grid.aspect_ratio)


def test_check_mesh_budget():
    check_mesh_budget(100, 100, max_vertices=10_000)
    with pytest.raises(AreaTooLarge, match="vertices"):
        check_mesh_budget(101, 100, max_vertices=10_000)

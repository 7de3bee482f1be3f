#!/usr/bin/env python3
"""Tests for scapem.aot module"""
import numpy as np
import pytest

from scapem.aot import VisibilityToAot
from scapem.constants import AOT_GRID, AOT_NODATA_VALUE, VISIBILITY_NODATA_VALUE

VIS_GRID = np.array([10.0, 15.0, 23.0, 35.0, 60.0, 100.0, 180.0])
HSF_GRID = np.array([0.0, 0.7, 2.5])


@pytest.fixture(scope='module')
def converter():
    return VisibilityToAot(VIS_GRID, HSF_GRID)


def test_fit_matches_polyfit(converter):
    for layer in range(3):
        slope, intercept = np.polyfit(np.log(VIS_GRID), np.log(AOT_GRID[layer]), 1)
        assert converter.slope[layer] == pytest.approx(slope, rel=1e-8)
        assert converter.intercept[layer] == pytest.approx(intercept, rel=1e-8)


def test_aot_falls_with_visibility(converter):
    assert np.all(converter.slope < 0)


@pytest.mark.parametrize('layer', [0, 1, 2])
def test_aot_at_layer_bounds_is_close_to_table(converter, layer):
    for j, vis in enumerate(VIS_GRID):
        aot = converter.aot550(vis, HSF_GRID[layer])
        assert aot == pytest.approx(converter.layer_aot(vis, layer), rel=1e-12)
        assert aot == pytest.approx(AOT_GRID[layer, j], rel=0.12)


def test_aot_between_layers(converter):
    hsurf = 0.35
    expected = 0.5 * (converter.layer_aot(23.0, 0) + converter.layer_aot(23.0, 1))
    assert converter.aot550(23.0, hsurf) == pytest.approx(expected)


def test_aot_nodata(converter):
    assert converter.aot550(VISIBILITY_NODATA_VALUE, 0.5) == AOT_NODATA_VALUE
    assert converter.aot550(23.0, -0.1) == AOT_NODATA_VALUE


def test_aot_map_matches_scalar(converter):
    vis = np.array([[VISIBILITY_NODATA_VALUE, 23.0, 40.0], [12.0, 150.0, 60.0]])
    hsurf = np.array([[0.2, -0.1, 0.5], [1.0, 2.5, 0.0]])
    aot = converter.aot550_map(vis, hsurf)
    assert aot.shape == vis.shape
    for idx in np.ndindex(vis.shape):
        assert aot[idx] == pytest.approx(converter.aot550(vis[idx], hsurf[idx]))
    assert aot[0, 0] == AOT_NODATA_VALUE
    assert aot[0, 1] == AOT_NODATA_VALUE


def test_from_lut(synthetic_lut, converter):
    from_lut = VisibilityToAot.from_lut(synthetic_lut)
    np.testing.assert_allclose(from_lut.slope, converter.slope, rtol=1e-6)
    np.testing.assert_allclose(from_lut.intercept, converter.intercept, rtol=1e-6)


def test_table_shape_must_match_grids():
    with pytest.raises(ValueError, match='does not match'):
        VisibilityToAot(VIS_GRID[:4], HSF_GRID)


def test_from_real_lut(real_lut):
    converter = VisibilityToAot.from_lut(real_lut)
    assert converter.aot550(23.0, 0.0) == pytest.approx(0.3246, rel=0.1)

#!/usr/bin/env python3
"""Tests for scapem.utils module"""
import numpy as np
import pytest

from scapem.constants import MERIS_WAVELENGTHS
from scapem.utils import (
    azimuth_difference, clear_fraction, clear_mean, clear_pixel_mask, cos_sza_cell,
    day_of_year, hsurf_cell, iter_cells, load_envi_cube, rho_toa, save_envi_cube,
    toa_cell, toa_min_cell, varsol
)


def test_day_of_year():
    assert day_of_year(2010, 3, 14) == 73
    assert day_of_year(2008, 12, 31) == 366


def test_varsol():
    assert varsol(73) == pytest.approx(0.993734, abs=1e-5)
    # Perihelion in early January
    assert varsol(4) == pytest.approx(1.0 - 0.01673)


def test_toa_cell_scaling():
    radiance = np.full((15, 2, 2), 100.0)
    np.testing.assert_allclose(toa_cell(radiance, 73), 100.0 * varsol(73) ** 2 * 1e-4)


def test_hsurf_cell_clamps_and_fills(synthetic_lut):
    elevation = np.array([[-20.0, 350.0], [np.nan, 4000.0]])
    hsurf = hsurf_cell(elevation, synthetic_lut)
    np.testing.assert_allclose(hsurf, [[synthetic_lut.hsf_min, 0.35],
                                       [synthetic_lut.hsf_min, synthetic_lut.hsf_max]])


def test_clear_statistics():
    values = np.array([[1.0, 2.0], [3.0, np.nan]])
    clear = np.array([[True, False], [True, True]])
    assert clear_mean(values, clear) == pytest.approx(2.0)
    assert np.isnan(clear_mean(values, np.zeros((2, 2), dtype=bool)))
    assert clear_fraction(clear) == pytest.approx(0.75)
    np.testing.assert_allclose(cos_sza_cell(np.array([0.0, 60.0])), [1.0, 0.5])


def test_toa_min_cell_ignores_non_positive():
    toa = np.ones((15, 2, 2))
    toa[0] = [[0.0, -1.0], [0.2, np.nan]]
    toa[1] = 0.0
    toa_min = toa_min_cell(toa)
    assert toa_min[0] == pytest.approx(0.2)
    assert toa_min[1] == np.inf
    assert toa_min[2] == 1.0


def test_azimuth_difference():
    np.testing.assert_allclose(azimuth_difference(np.array([10.0, 350.0, 100.0]),
                                                  np.array([350.0, 10.0, 280.0])),
                               [20.0, 20.0, 180.0])


def test_clear_pixel_mask():
    flags = np.array([0, 1, 2, 8, 16, 8 | 16])
    np.testing.assert_array_equal(clear_pixel_mask(flags),
                                  [True, False, False, False, True, False])
    np.testing.assert_array_equal(clear_pixel_mask(flags, over_water=True),
                                  [True, False, False, True, True, True])


def test_iter_cells_covers_scene():
    cells = list(iter_cells(65, 40, 30))
    assert cells[0] == (0, 0, 30, 30)
    assert cells[1] == (0, 30, 30, 10)
    assert cells[-1] == (60, 30, 5, 10)
    assert sum(h * w for _, _, h, w in cells) == 65 * 40


def test_rho_toa():
    toa = np.full((2, 1, 1), 0.01)
    rho = rho_toa(toa, np.array([0.2, 0.1]), np.array([[0.5]]))
    np.testing.assert_allclose(rho[:, 0, 0], [0.01 * np.pi / 0.1, 0.01 * np.pi / 0.05])


def test_envi_round_trip(tmp_path):
    cube = np.arange(3 * 4 * 5, dtype=np.float32).reshape(3, 4, 5)
    path = tmp_path / 'cube'
    save_envi_cube(cube, path, ['a', 'b', 'c'], 'test cube', nodata=-1.0,
                   wavelengths=MERIS_WAVELENGTHS[:3])

    loaded, metadata = load_envi_cube(path)
    np.testing.assert_array_equal(loaded, cube)
    assert metadata['band names'] == ['a', 'b', 'c']
    assert float(metadata['data ignore value']) == -1.0
    np.testing.assert_allclose([float(w) for w in metadata['wavelength']],
                               MERIS_WAVELENGTHS[:3], rtol=1e-6)


def test_save_single_band(tmp_path):
    path = tmp_path / 'single'
    save_envi_cube(np.ones((4, 5)), path, ['visibility'], 'single band')
    loaded, _ = load_envi_cube(path)
    assert loaded.shape == (1, 4, 5)


def test_save_band_name_mismatch(tmp_path):
    with pytest.raises(ValueError):
        save_envi_cube(np.ones((2, 4, 5)), tmp_path / 'bad', ['only_one'], 'bad')

#!/usr/bin/env python3
"""Tests for scapem.reflectance module"""
import warnings

import numpy as np
import pytest

from scapem.constants import AC_NODATA, AC_EXCLUDED_BANDS, MERIS_WAVELENGTHS, WV_INIT
from scapem.grids import build_rt_grids
from scapem.reflectance import (
    correct_cell, first_guess_reflectance, forward_toa, invert_reflectance,
    solve_water_vapour, water_vapour_function, wv_bracket
)

# Reference pixel of a MERIS RR test scene: bands 13 and 14 on the water
# vapour grid
WV_GRID = np.array([0.301, 1.0, 1.5, 2.0, 2.7, 4.999])
LPW_SP = np.array([
    [0.000347325, 0.000346807, 0.000346440, 0.000346088, 0.000343719, 0.000320908],
    [0.000304777, 0.000293110, 0.000288408, 0.000284697, 0.000279150, 0.000249003],
])
ETW_SP = np.array([
    [0.0611599, 0.0608751, 0.0606844, 0.0605060, 0.0603419, 0.0604092],
    [0.0515248, 0.0439318, 0.0405391, 0.0378421, 0.0347929, 0.0286416],
])
SAB_SP = np.array([
    [0.0400862, 0.0399702, 0.0398764, 0.0397741, 0.0395522, 0.0388895],
    [0.0355665, 0.0330387, 0.0316938, 0.0305411, 0.0291765, 0.0265667],
])
REFL_PIX = np.array([0.358543, 0.365387])


def test_inversion_is_inverse_of_forward_model():
    rng = np.random.default_rng(1)
    refl = rng.uniform(0.01, 0.6, 50)
    lpw = rng.uniform(1e-4, 5e-3, 50)
    etw = rng.uniform(0.02, 0.08, 50)
    sab = rng.uniform(0.02, 0.2, 50)
    toa = forward_toa(refl, lpw, etw, sab)
    np.testing.assert_allclose(invert_reflectance(toa, lpw, etw, sab), refl, rtol=1e-10)


def test_wv_bracket_is_strictly_below():
    assert wv_bracket(WV_GRID, 0.2) is None
    assert wv_bracket(WV_GRID, 0.301) is None
    index, frac = wv_bracket(WV_GRID, 1.0)
    assert index == 0
    assert frac == pytest.approx(1.0)
    index, frac = wv_bracket(WV_GRID, 1.75)
    assert index == 2
    assert frac == pytest.approx(0.5)
    index, frac = wv_bracket(WV_GRID, 4.999)
    assert index == 4
    assert frac == pytest.approx(1.0)


def test_water_vapour_function_at_first_node_is_zero():
    assert water_vapour_function(0.301, 0.647, REFL_PIX, LPW_SP, ETW_SP, SAB_SP, WV_GRID) == 0.0


def test_water_vapour_reference_pixel():
    solution = solve_water_vapour(0.64714217, REFL_PIX, LPW_SP, ETW_SP, SAB_SP,
                                  WV_GRID, 0.302, 4.998)
    assert solution.bracketed
    assert solution.value == pytest.approx(1.96476, abs=5e-4)
    assert solution.index == 2
    assert 0.0 < solution.frac < 1.0


def test_unbracketable_ratio_gives_default_water_vapour():
    solution = solve_water_vapour(10.0, REFL_PIX, LPW_SP, ETW_SP, SAB_SP,
                                  WV_GRID, 0.302, 4.998)
    assert not solution.bracketed
    assert solution.value == WV_INIT
    assert WV_GRID[solution.index] + solution.frac * (
        WV_GRID[solution.index + 1] - WV_GRID[solution.index]) == pytest.approx(WV_INIT)


@pytest.mark.parametrize('true_wv', [0.6, 1.5, 3.2])
def test_water_vapour_root_recovery(true_wv):
    index, frac = wv_bracket(WV_GRID, true_wv)
    lpw = LPW_SP[:, index] + frac * (LPW_SP[:, index + 1] - LPW_SP[:, index])
    etw = ETW_SP[:, index] + frac * (ETW_SP[:, index + 1] - ETW_SP[:, index])
    sab = SAB_SP[:, index] + frac * (SAB_SP[:, index + 1] - SAB_SP[:, index])
    toa = forward_toa(REFL_PIX, lpw, etw, sab)

    solution = solve_water_vapour(toa[1] / toa[0], REFL_PIX, LPW_SP, ETW_SP, SAB_SP,
                                  WV_GRID, 0.302, 4.998)
    assert solution.bracketed
    assert solution.value == pytest.approx(true_wv, abs=1e-3)


def test_first_guess_band14_is_linear_extrapolation(synthetic_lut):
    f_int = synthetic_lut.interpolate(10.0, 30.0, 60.0, 0.2, 23.0, WV_INIT)
    toa = np.full((15, 2, 3), 0.01)
    toa[12] = 0.012
    toa[13] = 0.0125
    mu = np.full((2, 3), 0.85)

    refl = first_guess_reflectance(f_int, toa, mu)
    assert refl.shape == (3, 2, 3)
    wl12, wl13, wl14 = MERIS_WAVELENGTHS[12:15].astype(np.float64)
    np.testing.assert_allclose((refl[2] - refl[1]) / (wl14 - wl13),
                               (refl[1] - refl[0]) / (wl13 - wl12), rtol=1e-6)


@pytest.fixture
def cell_terms(synthetic_lut, solar_flux):
    return build_rt_grids(synthetic_lut, 10.0, 30.0, 60.0, solar_flux * 1e-4)


def _synthetic_cell(terms, refl, mu, hsurf, vis, wv_index):
    """TOA cube of a uniform cell with known reflectance at a grid node"""
    lpw, etw, sab = terms.pixel_terms(vis, hsurf, mu, mu)
    toa = forward_toa(refl, lpw[:, wv_index], etw[:, wv_index], sab[:, wv_index])
    return np.broadcast_to(toa[:, None, None], (15, 4, 5)).copy()


def test_correct_cell_constant_wv_recovers_reflectance(cell_terms):
    refl = np.linspace(0.05, 0.45, 15)
    mu, hsurf, vis = 0.86, cell_terms.hsf[1], cell_terms.vis[1]
    wv_index = int(np.searchsorted(cell_terms.cwv, WV_INIT))
    toa = _synthetic_cell(cell_terms, refl, mu, hsurf, vis, wv_index)

    clear = np.ones((4, 5), dtype=bool)
    clear[0, 0] = False
    result = correct_cell(
        cell_terms, toa, np.full((4, 5), hsurf), np.full((4, 5), mu), mu, vis,
        clear, np.zeros((3, 4, 5)), 0.301, 4.999, use_constant_wv=True
    )

    inverted = [b for b in range(15) if b not in AC_EXCLUDED_BANDS]
    np.testing.assert_allclose(result.reflectance[inverted, 1, 1], refl[inverted], rtol=1e-8)
    assert np.all(result.water_vapour[clear] == WV_INIT)
    for band in AC_EXCLUDED_BANDS:
        assert np.all(result.reflectance[band] == AC_NODATA)
    assert result.water_vapour[0, 0] == AC_NODATA
    assert np.all(result.reflectance[:, 0, 0] == AC_NODATA)


def test_correct_cell_retrieves_water_vapour(cell_terms):
    refl = np.full(15, 0.3)
    mu, hsurf, vis = 0.86, cell_terms.hsf[1], cell_terms.vis[2]
    true_index = 1
    toa = _synthetic_cell(cell_terms, refl, mu, hsurf, vis, true_index)

    clear = np.ones((4, 5), dtype=bool)
    refl_image = np.full((3, 4, 5), 0.3)
    result = correct_cell(
        cell_terms, toa, np.full((4, 5), hsurf), np.full((4, 5), mu), mu, vis,
        clear, refl_image, 0.301, 4.999
    )

    np.testing.assert_allclose(result.water_vapour, cell_terms.cwv[true_index], atol=1e-3)
    np.testing.assert_allclose(result.reflectance[:10], 0.3, atol=1e-4)


def test_correct_cell_zero_reference_band_uses_default_water_vapour(cell_terms):
    refl = np.full(15, 0.3)
    mu, hsurf, vis = 0.86, cell_terms.hsf[1], cell_terms.vis[2]
    toa = _synthetic_cell(cell_terms, refl, mu, hsurf, vis, 1)
    toa[13, 2, 3] = 0.0
    toa[13:15, 0, 1] = 0.0

    clear = np.ones((4, 5), dtype=bool)
    with warnings.catch_warnings():
        warnings.simplefilter('error', RuntimeWarning)
        result = correct_cell(
            cell_terms, toa, np.full((4, 5), hsurf), np.full((4, 5), mu), mu, vis,
            clear, np.full((3, 4, 5), 0.3), 0.301, 4.999
        )

    assert result.water_vapour[2, 3] == WV_INIT
    assert result.water_vapour[0, 1] == WV_INIT
    assert result.water_vapour[1, 1] == pytest.approx(cell_terms.cwv[1], abs=1e-3)
    assert np.all(np.isfinite(result.reflectance[:10, 2, 3]))

"""
Cell visibility retrieval

Coarse/fine search against the path radiance plus an optional refinement
that fits vegetation/soil mixtures of NDVI-selected reference pixels with
Powell's method.

Based on the SCAPE-M method of Guanter et al. (2008)
"""
import logging
import numpy as np
from dataclasses import dataclass
from scipy.optimize import minimize
from typing import Optional, Tuple

from .constants import (
    SOL_IRR_7, SOL_IRR_9, NDVI_RED_BAND, NDVI_NIR_BAND, SEED_NDVI_NIR_BAND,
    NUM_REF_PIXELS, REF_PIXEL_WEIGHTS, RHO_VEG_ALL, RHO_SUE, WL_CENTER_INV,
    WV_INIT, VIS_INIT, POWELL_FTOL, MAXITER, INVALID_TOA_MIN, LIM_REF_SETS,
    VIS_SEARCH_STEPS
)
from .grids import VisibilityProfile, visibility_profile
from .lut import AtmosphericLUT

logger = logging.getLogger(__name__)

# NDVI class bounds [low, high)
NDVI_HIGH = (0.4, 0.9)
NDVI_MEDIUM = (0.15, 0.4)
NDVI_LOW = (0.09, 0.15)


def compute_ndvi(toa_cell: np.ndarray) -> np.ndarray:
    """
    NDVI from irradiance-normalised TOA radiance of bands 7 and 9

    Parameters
    ----------
    toa_cell : ndarray
        TOA radiance (band, y, x)

    Returns
    -------
    ndvi : ndarray
        (y, x)
    """
    red = toa_cell[NDVI_RED_BAND] / SOL_IRR_7
    nir = toa_cell[NDVI_NIR_BAND] / SOL_IRR_9
    with np.errstate(divide='ignore', invalid='ignore'):
        return (nir - red) / (nir + red)


@dataclass
class ReferencePixelSet:
    """
    NDVI-classified reference pixels of a cell

    Attributes
    ----------
    high, medium, low : ndarray
        Candidate pixels per NDVI class, rows of (x, y, ndvi) sorted by
        ascending NDVI
    rows, cols : ndarray
        Pixel positions of the reference tuples, shape (n_sets, 5)
    """
    high: np.ndarray
    medium: np.ndarray
    low: np.ndarray
    rows: np.ndarray
    cols: np.ndarray

    @property
    def n_sets(self) -> int:
        return self.rows.shape[0]

    def toa(self, toa_cell: np.ndarray) -> np.ndarray:
        """Reference TOA radiances, shape (band, n_sets, 5)"""
        return toa_cell[:, self.rows, self.cols]


def _ndvi_class(ndvi, candidates, bounds, xs, ys):
    sel = candidates & (ndvi >= bounds[0]) & (ndvi < bounds[1])
    # Row-major order before the stable sort keeps ties in pixel order
    samples = np.column_stack([xs[sel], ys[sel], ndvi[sel]])
    order = np.argsort(samples[:, 2], kind='stable')
    return samples[order]


def extract_reference_pixels(
    hsurf_cell: np.ndarray,
    hsurf_mean: float,
    cos_sza_cell: np.ndarray,
    cos_sza_mean: float,
    toa_cell: np.ndarray
) -> Optional[ReferencePixelSet]:
    """
    Select NDVI-classified reference pixels

    Candidates lie within (0.8, 1.2) of the mean elevation and within
    (0.9, 1.1) of the mean cosine of the sun zenith angle. Each reference
    tuple holds two high, two medium and one low NDVI pixel; a third medium
    pixel stands in when the low class is exhausted.

    Parameters
    ----------
    hsurf_cell : ndarray
        Elevation (km), (y, x)
    hsurf_mean : float
        Mean cell elevation (km)
    cos_sza_cell : ndarray
        Cosine of the sun zenith angle, (y, x)
    cos_sza_mean : float
        Mean cosine of the sun zenith angle
    toa_cell : ndarray
        TOA radiance (band, y, x)

    Returns
    -------
    ref_pixels : ReferencePixelSet or None
        None if fewer than 3 medium NDVI pixels are available
    """
    ndvi = compute_ndvi(toa_cell)
    ys, xs = np.indices(ndvi.shape)

    candidates = ((hsurf_cell > 0.8 * hsurf_mean) & (hsurf_cell < 1.2 * hsurf_mean) &
                  (cos_sza_cell > 0.9 * cos_sza_mean) & (cos_sza_cell < 1.1 * cos_sza_mean))

    high = _ndvi_class(ndvi, candidates, NDVI_HIGH, xs, ys)
    medium = _ndvi_class(ndvi, candidates, NDVI_MEDIUM, xs, ys)
    low = _ndvi_class(ndvi, candidates, NDVI_LOW, xs, ys)

    if len(medium) + 2 < NUM_REF_PIXELS:
        return None

    n_sets = min(len(high) // 2, len(medium) // 3)
    picks = np.empty((n_sets, NUM_REF_PIXELS, 2), dtype=int)
    for i in range(n_sets):
        fifth = low[i] if i < len(low) else medium[2 * i + 2]
        for k, sample in enumerate((high[2 * i], high[2 * i + 1],
                                    medium[2 * i], medium[2 * i + 1], fifth)):
            picks[i, k] = (sample[1], sample[0])

    return ReferencePixelSet(
        high=high, medium=medium, low=low,
        rows=picks[:, :, 0], cols=picks[:, :, 1]
    )


def toa_misfit(
    x: np.ndarray,
    ref_toa: np.ndarray,
    rho_veg: np.ndarray,
    weights: np.ndarray,
    profile: VisibilityProfile,
    vis_lower: float
) -> Tuple[float, Optional[np.ndarray]]:
    """
    Weighted chi-square between observed and modelled reference TOA

    Parameters
    ----------
    x : ndarray
        (veg_0, soil_0, ..., veg_4, soil_4, visibility)
    ref_toa : ndarray
        Observed reference TOA radiance (band, 5)
    rho_veg : ndarray
        Vegetation end-member spectrum (band,)
    weights : ndarray
        Per reference pixel weights (5,)
    profile : VisibilityProfile
        Radiative transfer terms along the visibility axis
    vis_lower : float
        Lower visibility bound of the trial

    Returns
    -------
    value : float
        Objective value, INVALID_TOA_MIN outside the physical domain
    chi_square : ndarray or None
        Per reference pixel chi-square (5,)
    """
    vis = x[-1]
    if np.any(x < 0.0) or not (vis_lower <= vis < profile.vis[-1]):
        return INVALID_TOA_MIN, None

    lpw, etw, sab = profile.at(vis)
    veg = x[0:-1:2]
    soil = x[1:-1:2]
    surf = veg[:, None] * rho_veg + soil[:, None] * RHO_SUE
    toa = lpw + surf * etw / (np.pi * (1.0 - sab * surf))
    chi_square = np.sum((WL_CENTER_INV * (ref_toa.T - toa)) ** 2, axis=1)
    return float(np.dot(weights, chi_square)), chi_square


def _powell(x0, ref_toa, rho_veg, weights, profile, vis_lower):
    result = minimize(
        lambda x: toa_misfit(x, ref_toa, rho_veg, weights, profile, vis_lower)[0],
        x0,
        method='Powell',
        options={'ftol': POWELL_FTOL, 'maxiter': MAXITER, 'direc': np.eye(len(x0))}
    )
    if not result.success:
        logger.debug(f"Powell stopped early: {result.message}")
    return result


def seed_mixture(ref_toa: np.ndarray) -> np.ndarray:
    """
    Initial vegetation/soil fractions and trial visibility

    Parameters
    ----------
    ref_toa : ndarray
        Reference TOA radiance (band, 5)

    Returns
    -------
    x0 : ndarray
        (11,)
    """
    x0 = np.empty(2 * NUM_REF_PIXELS + 1)
    nir = ref_toa[SEED_NDVI_NIR_BAND]
    red = ref_toa[NDVI_RED_BAND]
    mixture = 1.3 * (nir - red) / (nir + red) + 0.25
    x0[0:-1:2] = np.maximum(mixture, 0.0)
    x0[1:-1:2] = np.maximum(1.0 - mixture, 0.0)
    x0[-1] = VIS_INIT
    return x0


def refine_set_visibility(
    vis_lower: float,
    ref_toa: np.ndarray,
    profile: VisibilityProfile
) -> float:
    """
    Refined visibility of one reference tuple

    One Powell minimisation per vegetation spectrum; pixels whose chi-square
    exceeds twice the mean are dropped and the fit is repeated. The spectrum
    with the lowest normalised misfit provides the visibility.

    Parameters
    ----------
    vis_lower : float
        Coarse visibility estimate, used as lower bound
    ref_toa : ndarray
        Reference TOA radiance (band, 5)
    profile : VisibilityProfile
        Radiative transfer terms along the visibility axis

    Returns
    -------
    visibility : float
    """
    x_init = seed_mixture(ref_toa)
    fmin = np.empty(len(RHO_VEG_ALL))
    vis_fit = np.empty(len(RHO_VEG_ALL))

    for j, rho_veg in enumerate(RHO_VEG_ALL):
        x0 = x_init.copy()
        x0[-1] = vis_lower + 0.01
        weights = REF_PIXEL_WEIGHTS.copy()

        result = _powell(x0, ref_toa, rho_veg, weights, profile, vis_lower)
        value, chi_square = toa_misfit(result.x, ref_toa, rho_veg, weights, profile, vis_lower)

        n_outliers = 0
        if chi_square is not None:
            outliers = chi_square > 2.0 * chi_square.mean()
            n_outliers = int(outliers.sum())
            if n_outliers > 0:
                weights[outliers] = 0.0
                result = _powell(result.x, ref_toa, rho_veg, weights, profile, vis_lower)
                value = float(result.fun)

        fmin[j] = value / (NUM_REF_PIXELS - n_outliers)
        vis_fit[j] = result.x[-1]

    best = int(np.argmin(fmin))
    logger.debug(f"Refinement: vegetation spectrum {best}, visibility {vis_fit[best]:.3f}")
    return float(vis_fit[best])


def combine_set_visibilities(visibilities: np.ndarray) -> float:
    """
    Average per-set visibilities within 1.5 sample standard deviations

    Parameters
    ----------
    visibilities : ndarray
        One refined visibility per reference tuple

    Returns
    -------
    visibility : float
        Mean of the values within 1.5 sigma, or the plain mean if none
    """
    visibilities = np.asarray(visibilities, dtype=np.float64)
    if len(visibilities) == 1:
        return float(visibilities[0])
    mean = visibilities.mean()
    std = visibilities.std(ddof=1)
    inside = visibilities[np.abs(visibilities - mean) <= 1.5 * std]
    if len(inside) > 0:
        return float(inside.mean())
    return float(mean)


def refine_visibility(
    vis_lower: float,
    ref_pixels: ReferencePixelSet,
    toa_cell: np.ndarray,
    vza: float,
    sza: float,
    raa: float,
    hsurf_mean: float,
    cos_sza_mean: float,
    lut: AtmosphericLUT,
    max_sets: int = LIM_REF_SETS
) -> float:
    """
    Refine a coarse visibility estimate with reference pixels

    Parameters
    ----------
    vis_lower : float
        Coarse visibility estimate (km)
    ref_pixels : ReferencePixelSet
        Selected reference pixels (at least one tuple)
    toa_cell : ndarray
        TOA radiance (band, y, x)
    vza, sza, raa : float
        Cell geometry (degrees)
    hsurf_mean : float
        Mean cell elevation (km)
    cos_sza_mean : float
        Mean cosine of the sun zenith angle
    lut : AtmosphericLUT
        Atmospheric parameter LUT
    max_sets : int, optional
        Maximum number of reference tuples used

    Returns
    -------
    visibility : float
    """
    profile = visibility_profile(lut, vza, sza, raa, hsurf_mean, cos_sza_mean)
    ref_toa = ref_pixels.toa(toa_cell)
    n_sets = min(ref_pixels.n_sets, max_sets)

    visibilities = np.array([
        refine_set_visibility(vis_lower, ref_toa[:, i, :], profile)
        for i in range(n_sets)
    ])
    return combine_set_visibilities(visibilities)


def coarse_visibility(
    toa_min: np.ndarray,
    vza: float,
    sza: float,
    raa: float,
    hsurf_mean: float,
    lut: AtmosphericLUT
) -> float:
    """
    Coarse (1 km) and fine (0.1 km) visibility search

    Visibility increases until the observed minimum TOA of every band
    exceeds the path radiance, or the LUT maximum is reached.

    Parameters
    ----------
    toa_min : ndarray
        Minimum cell TOA radiance per band (band,)
    vza, sza, raa : float
        Cell geometry (degrees)
    hsurf_mean : float
        Mean cell elevation (km)
    lut : AtmosphericLUT
        Atmospheric parameter LUT

    Returns
    -------
    visibility : float
        Unclamped estimate (km)
    """
    coarse, fine = VIS_SEARCH_STEPS
    vis = lut.vis_min - coarse

    for pass_no, step in enumerate(VIS_SEARCH_STEPS):
        if pass_no > 0:
            vis = max(vis - coarse, lut.vis_min)
        repeat = True
        while vis + step < lut.vis_max and repeat:
            vis += step
            lpw = lut.interpolate(vza, sza, raa, hsurf_mean, vis, WV_INIT)[:, 0]
            repeat = bool(np.any(toa_min <= lpw))

    return vis - fine


def cell_visibility(
    toa_cell: np.ndarray,
    toa_min: np.ndarray,
    vza: float,
    sza: float,
    raa: float,
    hsurf_cell: np.ndarray,
    hsurf_mean: float,
    cos_sza_cell: np.ndarray,
    cos_sza_mean: float,
    clear_45_percent: bool,
    lut: AtmosphericLUT
) -> float:
    """
    Visibility of one cell

    Parameters
    ----------
    toa_cell : ndarray
        TOA radiance (band, y, x)
    toa_min : ndarray
        Minimum cell TOA radiance per band (band,)
    vza, sza, raa : float
        Cell geometry (degrees)
    hsurf_cell : ndarray
        Elevation (km), (y, x)
    hsurf_mean : float
        Mean elevation of the clear pixels (km)
    cos_sza_cell : ndarray
        Cosine of the sun zenith angle, (y, x)
    cos_sza_mean : float
        Mean cosine of the clear pixels
    clear_45_percent : bool
        Whether the cell is clear enough for the refinement
    lut : AtmosphericLUT
        Atmospheric parameter LUT

    Returns
    -------
    visibility : float
        Visibility in [vis_min, vis_max] (km)
    """
    vis = coarse_visibility(toa_min, vza, sza, raa, hsurf_mean, lut)

    if clear_45_percent:
        ref_pixels = extract_reference_pixels(hsurf_cell, hsurf_mean, cos_sza_cell,
                                              cos_sza_mean, toa_cell)
        if ref_pixels is not None and ref_pixels.n_sets > 0:
            vis = refine_visibility(vis, ref_pixels, toa_cell, vza, sza, raa,
                                    hsurf_mean, cos_sza_mean, lut)
        else:
            logger.debug("Not enough reference pixels, keeping coarse visibility")

    return float(lut.clamp_vis(vis))

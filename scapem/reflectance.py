"""
Per-pixel water vapour retrieval and surface reflectance inversion

Water vapour is the root of the difference between the observed 900/885 nm
radiance ratio and the ratio modelled from first-guess reflectances.
Reflectance follows from inverting

    toa = lpw + refl * etw / (pi * (1 - sab * refl))
"""
import logging
import numpy as np
from dataclasses import dataclass
from scipy.optimize import brentq
from typing import Optional, Tuple

from .constants import (
    MERIS_WAVELENGTHS, WV_INIT, FTOL, MAXITER, AC_NODATA, AC_EXCLUDED_BANDS,
    WV_REFERENCE_BAND, WV_ABSORPTION_BAND, SEED_NDVI_NIR_BAND
)
from .grids import RadiativeTransferTerms
from .lut import frac_index

logger = logging.getLogger(__name__)


@dataclass
class WaterVapourSolution:
    """
    Water vapour retrieval of one pixel

    Attributes
    ----------
    value : float
        Water vapour column (g/cm^2)
    index : int
        Lower water vapour grid node
    frac : float
        Position between node index and index + 1
    bracketed : bool
        False if the root finder could not bracket or converge
    """
    value: float
    index: int
    frac: float
    bracketed: bool = True


@dataclass
class RetrievalResult:
    """
    Water vapour and reflectance of a cell

    Attributes
    ----------
    water_vapour : ndarray
        (y, x), AC_NODATA for non-clear pixels
    reflectance : ndarray
        (band, y, x), AC_NODATA for excluded bands and non-clear pixels
    """
    water_vapour: np.ndarray
    reflectance: np.ndarray

    @classmethod
    def empty(cls, n_bands: int, height: int, width: int) -> 'RetrievalResult':
        return cls(
            water_vapour=np.full((height, width), AC_NODATA),
            reflectance=np.full((n_bands, height, width), AC_NODATA)
        )


def forward_toa(refl, lpw, etw, sab):
    """TOA radiance of a Lambertian surface"""
    return lpw + refl * etw / (np.pi * (1.0 - sab * refl))


def invert_reflectance(toa, lpw, etw, sab):
    """
    Surface reflectance from TOA radiance

    Parameters
    ----------
    toa : float or ndarray
        TOA radiance
    lpw, etw, sab : float or ndarray
        Path radiance, total transmittance and spherical albedo

    Returns
    -------
    refl : float or ndarray
    """
    x = np.pi * (toa - lpw) / etw
    return x / (1.0 + sab * x)


def wv_bracket(cwv_grid: np.ndarray, wv: float) -> Optional[Tuple[int, float]]:
    """
    Last grid node strictly below wv and the fraction to the next node

    Returns None if wv does not exceed the first node.
    """
    index = int(np.searchsorted(cwv_grid, wv, side='left')) - 1
    if index < 0:
        return None
    index = min(index, len(cwv_grid) - 2)
    frac = (wv - cwv_grid[index]) / (cwv_grid[index + 1] - cwv_grid[index])
    return index, float(frac)


def water_vapour_function(
    wv: float,
    ratio: float,
    refl_pix: np.ndarray,
    lpw: np.ndarray,
    etw: np.ndarray,
    sab: np.ndarray,
    cwv_grid: np.ndarray
) -> float:
    """
    Observed minus modelled band 14/13 radiance ratio

    Parameters
    ----------
    wv : float
        Trial water vapour (g/cm^2)
    ratio : float
        Observed radiance ratio of band 14 to band 13
    refl_pix : ndarray
        First-guess reflectance of bands 13 and 14 (2,)
    lpw, etw, sab : ndarray
        Terms of bands 13 and 14 on the water vapour grid (2, cwv)
    cwv_grid : ndarray
        Water vapour grid nodes

    Returns
    -------
    residual : float
        0.0 if wv lies at or below the first node
    """
    bracket = wv_bracket(cwv_grid, wv)
    if bracket is None:
        return 0.0
    i, p = bracket

    lpw_i = lpw[:, i] + p * (lpw[:, i + 1] - lpw[:, i])
    etw_i = etw[:, i] + p * (etw[:, i + 1] - etw[:, i])
    sab_i = sab[:, i] + p * (sab[:, i + 1] - sab[:, i])

    toa = forward_toa(refl_pix, lpw_i, etw_i, sab_i)
    return float(ratio - toa[1] / toa[0])


def default_water_vapour(cwv_grid: np.ndarray) -> WaterVapourSolution:
    """WV_INIT with its grid bracket, used when no root is retrieved"""
    index, frac = frac_index(cwv_grid, WV_INIT)
    return WaterVapourSolution(WV_INIT, index, frac, bracketed=False)


def solve_water_vapour(
    ratio: float,
    refl_pix: np.ndarray,
    lpw: np.ndarray,
    etw: np.ndarray,
    sab: np.ndarray,
    cwv_grid: np.ndarray,
    cwv_min: float,
    cwv_max: float
) -> WaterVapourSolution:
    """
    Brent root of the water vapour function on [cwv_min, cwv_max]

    Parameters
    ----------
    ratio : float
        Observed radiance ratio of band 14 to band 13
    refl_pix : ndarray
        First-guess reflectance of bands 13 and 14 (2,)
    lpw, etw, sab : ndarray
        Terms of bands 13 and 14 on the water vapour grid (2, cwv)
    cwv_grid : ndarray
        Water vapour grid nodes
    cwv_min, cwv_max : float
        Retrieval domain

    Returns
    -------
    solution : WaterVapourSolution
        bracketed is False (with value WV_INIT) if the function has no
        sign change on the domain or Brent did not converge
    """
    args = (ratio, refl_pix, lpw, etw, sab, cwv_grid)
    try:
        root, info = brentq(water_vapour_function, cwv_min, cwv_max, args=args,
                            xtol=FTOL, maxiter=MAXITER, full_output=True, disp=False)
    except ValueError as e:
        logger.debug(f"Water vapour not bracketed: {e}")
        return default_water_vapour(cwv_grid)

    if not info.converged:
        logger.debug(f"Water vapour root did not converge after {info.iterations} iterations")
        return default_water_vapour(cwv_grid)

    index, frac = wv_bracket(cwv_grid, root)
    return WaterVapourSolution(float(root), index, frac)


def first_guess_reflectance(
    f_int: np.ndarray,
    toa_cell: np.ndarray,
    cos_sza_cell: np.ndarray
) -> np.ndarray:
    """
    First-guess reflectance of bands 12, 13 and (extrapolated) 14

    Parameters
    ----------
    f_int : ndarray
        LUT parameters (band, 7) at the cell geometry, mean elevation,
        default visibility and default water vapour
    toa_cell : ndarray
        TOA radiance (band, y, x)
    cos_sza_cell : ndarray
        Cosine of the sun zenith angle, (y, x)

    Returns
    -------
    refl : ndarray
        (3, y, x) for bands 12, 13 and 14
    """
    refl = np.empty((3,) + toa_cell.shape[1:])
    for k, band in enumerate((SEED_NDVI_NIR_BAND, WV_REFERENCE_BAND)):
        xterm = np.pi * (toa_cell[band] - f_int[band, 0]) / (f_int[band, 1] * cos_sza_cell + f_int[band, 2])
        refl[k] = xterm / (1.0 + f_int[band, 4] * xterm)

    wl12, wl13, wl14 = (float(w) for w in MERIS_WAVELENGTHS[12:15])
    refl[2] = ((refl[1] - refl[0]) * wl14 + refl[0] * wl13 - refl[1] * wl12) / (wl13 - wl12)
    return refl


def correct_cell(
    terms: RadiativeTransferTerms,
    toa_cell: np.ndarray,
    hsurf_cell: np.ndarray,
    cos_sza_cell: np.ndarray,
    cos_sza_mean: float,
    visibility: float,
    clear: np.ndarray,
    refl_image: np.ndarray,
    cwv_min: float,
    cwv_max: float,
    use_constant_wv: bool = False
) -> RetrievalResult:
    """
    Water vapour and surface reflectance of every clear pixel in a cell

    Parameters
    ----------
    terms : RadiativeTransferTerms
        Grids built for the cell geometry
    toa_cell : ndarray
        TOA radiance (band, y, x)
    hsurf_cell : ndarray
        Clamped elevation (km), (y, x)
    cos_sza_cell : ndarray
        Cosine of the sun zenith angle, (y, x)
    cos_sza_mean : float
        Mean cosine of the clear pixels
    visibility : float
        Clamped cell visibility (km)
    clear : ndarray
        Clear pixel mask, (y, x)
    refl_image : ndarray
        First-guess reflectance from first_guess_reflectance, (3, y, x)
    cwv_min, cwv_max : float
        Water vapour retrieval domain
    use_constant_wv : bool, optional
        Skip the water vapour retrieval and use WV_INIT

    Returns
    -------
    result : RetrievalResult
        Bands excluded from the inversion (AC_EXCLUDED_BANDS) hold AC_NODATA
        on clear pixels as well as on masked ones.
    """
    n_bands, height, width = toa_cell.shape
    result = RetrievalResult.empty(n_bands, height, width)
    inverted = np.array([b for b in range(n_bands) if b not in AC_EXCLUDED_BANDS])
    wv_bands = [WV_REFERENCE_BAND, WV_ABSORPTION_BAND]
    fallback = default_water_vapour(terms.cwv)

    n_unbracketed = 0
    for y, x in zip(*np.nonzero(clear)):
        lpw, etw, sab = terms.pixel_terms(visibility, hsurf_cell[y, x], cos_sza_cell[y, x], cos_sza_mean)

        wv = fallback
        if not use_constant_wv:
            with np.errstate(divide='ignore', invalid='ignore'):
                ratio = toa_cell[WV_ABSORPTION_BAND, y, x] / toa_cell[WV_REFERENCE_BAND, y, x]
            if np.isfinite(ratio):
                wv = solve_water_vapour(ratio, refl_image[1:, y, x], lpw[wv_bands], etw[wv_bands],
                                        sab[wv_bands], terms.cwv, cwv_min, cwv_max)
            if not wv.bracketed:
                n_unbracketed += 1
        result.water_vapour[y, x] = wv.value

        i, p = wv.index, wv.frac
        lpw_ac = lpw[inverted, i] + p * (lpw[inverted, i + 1] - lpw[inverted, i])
        etw_ac = etw[inverted, i] + p * (etw[inverted, i + 1] - etw[inverted, i])
        sab_ac = sab[inverted, i] + p * (sab[inverted, i + 1] - sab[inverted, i])
        result.reflectance[inverted, y, x] = invert_reflectance(toa_cell[inverted, y, x], lpw_ac, etw_ac, sab_ac)

    if n_unbracketed:
        logger.debug(f"{n_unbracketed} pixels fell back to the default water vapour")
    return result

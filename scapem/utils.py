"""
Utility functions for cell preparation and ENVI input/output
"""
import numpy as np
import spectral.io.envi as envi
from datetime import date
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple, Union

from .constants import CLOUD_INVALID_BIT, CLOUD_CERTAIN_BIT, CLOUD_OCEAN_BIT
from .lut import AtmosphericLUT


def day_of_year(year: int, month: int, day: int) -> int:
    """Day of year (1-366) of a calendar date"""
    return date(year, month, day).timetuple().tm_yday


def varsol(doy: int) -> float:
    """
    Variability of the solar constant during the year

    Parameters
    ----------
    doy : int
        Day of year

    Returns
    -------
    factor : float
        Multiplicative factor applied to the mean solar constant
    """
    om = np.radians(0.9856 * (doy - 4))
    return float(abs(1.0 - 0.01673 * np.cos(om)))


def toa_cell(radiance: np.ndarray, doy: int) -> np.ndarray:
    """
    TOA radiance corrected to mean Sun-Earth distance, in LUT units

    Parameters
    ----------
    radiance : ndarray
        At-sensor radiance (band, y, x)
    doy : int
        Day of year

    Returns
    -------
    toa : ndarray
        radiance * varsol(doy)^2 * 1e-4
    """
    return np.asarray(radiance, dtype=np.float64) * varsol(doy) ** 2 * 1.0e-4


def hsurf_cell(elevation_m: np.ndarray, lut: AtmosphericLUT) -> np.ndarray:
    """
    Elevation in km clamped to the LUT elevation domain

    Missing elevation (NaN) is set to the lower domain limit.
    """
    hsurf = 0.001 * np.asarray(elevation_m, dtype=np.float64)
    hsurf = np.where(np.isnan(hsurf), lut.hsf_min, hsurf)
    return lut.clamp_hsf(hsurf)


def cos_sza_cell(sza: np.ndarray) -> np.ndarray:
    """Cosine of the sun zenith angle (degrees)"""
    return np.cos(np.radians(sza))


def clear_mean(values: np.ndarray, clear: np.ndarray) -> float:
    """Mean of the finite values of the clear pixels, NaN if there are none"""
    sel = clear & np.isfinite(values)
    if not np.any(sel):
        return np.nan
    return float(values[sel].mean())


def toa_min_cell(toa: np.ndarray) -> np.ndarray:
    """
    Minimum positive finite TOA radiance per band

    Parameters
    ----------
    toa : ndarray
        (band, y, x)

    Returns
    -------
    toa_min : ndarray
        (band,), +inf for bands without positive values
    """
    valid = np.isfinite(toa) & (toa > 0.0)
    return np.where(valid, toa, np.inf).reshape(toa.shape[0], -1).min(axis=1)


def clear_fraction(clear: np.ndarray) -> float:
    """Fraction of clear pixels in a cell"""
    return float(np.count_nonzero(clear)) / clear.size


def azimuth_difference(vaa, saa):
    """Relative azimuth (degrees, 0-180) between view and sun azimuths"""
    return np.degrees(np.arccos(np.cos(np.radians(vaa - saa))))


def clear_pixel_mask(cloud_flags: np.ndarray, over_water: bool = False) -> np.ndarray:
    """
    Clear pixel mask from a cloud classification flag raster

    Parameters
    ----------
    cloud_flags : ndarray
        Integer flag raster (bit 0 invalid, bit 1 certain cloud, bit 3 ocean)
    over_water : bool, optional
        Accept clear water pixels as well as clear land

    Returns
    -------
    clear : ndarray
        Boolean mask
    """
    flags = np.asarray(cloud_flags).astype(np.int64)
    rejected = (1 << CLOUD_INVALID_BIT) | (1 << CLOUD_CERTAIN_BIT)
    if not over_water:
        rejected |= 1 << CLOUD_OCEAN_BIT
    return (flags & rejected) == 0


def iter_cells(height: int, width: int, cell_size: int) -> Iterator[Tuple[int, int, int, int]]:
    """
    Cell rectangles in row-major order

    Yields
    ------
    y, x, h, w : int
        Upper-left corner and size; edge cells may be smaller
    """
    for y in range(0, height, cell_size):
        for x in range(0, width, cell_size):
            yield y, x, min(cell_size, height - y), min(cell_size, width - x)


def rho_toa(toa: np.ndarray, solar_irradiance: np.ndarray, cos_sza: np.ndarray) -> np.ndarray:
    """
    TOA reflectance

    Parameters
    ----------
    toa : ndarray
        TOA radiance (band, y, x), LUT units
    solar_irradiance : ndarray
        Band solar flux scaled by 1e-4 (band,)
    cos_sza : ndarray
        Cosine of the sun zenith angle (y, x)

    Returns
    -------
    rho : ndarray
        (band, y, x)
    """
    return toa * np.pi / (np.asarray(solar_irradiance)[:, None, None] * cos_sza)


def load_envi_cube(path: Union[str, Path]) -> Tuple[np.ndarray, Dict]:
    """
    Load an ENVI image as a (band, y, x) array

    Parameters
    ----------
    path : str or Path
        Image path without extension (header at path + '.hdr')

    Returns
    -------
    cube : ndarray
        (band, y, x)
    metadata : dict
        ENVI header metadata
    """
    path = str(path)
    img = envi.open(path + '.hdr', path)
    cube = np.transpose(np.asarray(img.load()), (2, 0, 1))
    return cube, dict(img.metadata)


def save_envi_cube(
    cube: np.ndarray,
    output_path: Union[str, Path],
    band_names: list,
    description: str,
    nodata: Optional[float] = None,
    wavelengths: Optional[np.ndarray] = None
):
    """
    Save a (band, y, x) or (y, x) array in ENVI format

    Parameters
    ----------
    cube : ndarray
        Raster data
    output_path : str or Path
        Output file path (without extension); the header is written to
        output_path + '.hdr', the data to output_path
    band_names : list of str
        One name per band
    description : str
        Header description
    nodata : float, optional
        Data ignore value
    wavelengths : ndarray, optional
        Band centre wavelengths (nm)
    """
    cube = np.asarray(cube, dtype=np.float32)
    if cube.ndim == 2:
        cube = cube[None]
    if len(band_names) != cube.shape[0]:
        raise ValueError(f"{len(band_names)} band names for {cube.shape[0]} bands")

    metadata = {
        'description': description,
        'band names': list(band_names),
    }
    if nodata is not None:
        metadata['data ignore value'] = str(nodata)
    if wavelengths is not None:
        metadata['wavelength'] = [str(w) for w in wavelengths]
        metadata['wavelength units'] = 'nm'

    envi.save_image(
        str(output_path) + '.hdr',
        np.transpose(cube, (1, 2, 0)),
        metadata=metadata,
        dtype=np.float32,
        force=True,
        interleave='bil',
        ext=''
    )

"""
Core SCAPE-M atmospheric correction class
"""
import logging
import numpy as np
from dataclasses import dataclass
from pathlib import Path
from tqdm import tqdm
from typing import Dict, List, Optional, Union

from .aot import VisibilityToAot
from .config import ScapeMConfig
from .constants import (
    L1_BAND_NUM, VIS_INIT, WV_INIT, VISIBILITY_NODATA_VALUE, AC_NODATA,
    OUTPUT_EXCLUDED_BANDS
)
from .grids import build_rt_grids
from .lut import AtmosphericLUT, load_lut
from .reflectance import RetrievalResult, correct_cell, first_guess_reflectance
from .retrieval import cell_visibility
from .utils import (
    toa_cell, hsurf_cell, cos_sza_cell, clear_mean, toa_min_cell, clear_fraction,
    azimuth_difference, clear_pixel_mask, iter_cells, rho_toa
)

logger = logging.getLogger(__name__)


@dataclass
class GridCell:
    """
    A rectangle of pixels sharing one geometry and one visibility

    Attributes
    ----------
    y, x, height, width : int
        Position and size in the scene (pixels)
    vza, sza, raa : float
        Geometry of the cell centre pixel (degrees)
    toa : ndarray
        TOA radiance (band, y, x), LUT units
    hsurf : ndarray
        Clamped elevation (km)
    cos_sza : ndarray
        Cosine of the sun zenith angle
    clear : ndarray
        Clear pixel mask
    hsurf_mean, cos_sza_mean : float
        Means over the clear pixels
    clear_fraction : float
        Fraction of clear pixels
    visibility : float
        Retrieved visibility (km), VISIBILITY_NODATA_VALUE until retrieved
    """
    y: int
    x: int
    height: int
    width: int
    vza: float
    sza: float
    raa: float
    toa: np.ndarray
    hsurf: np.ndarray
    cos_sza: np.ndarray
    clear: np.ndarray
    hsurf_mean: float
    cos_sza_mean: float
    clear_fraction: float
    visibility: float = VISIBILITY_NODATA_VALUE

    @property
    def window(self):
        return slice(self.y, self.y + self.height), slice(self.x, self.x + self.width)


class ScapeM:
    """
    SCAPE-M atmospheric correction for MERIS

    Parameters
    ----------
    lut_path : str or Path, optional
        Binary atmospheric parameter LUT; defaults to config.lut_path
    config : ScapeMConfig, optional
        Processing settings
    lut : AtmosphericLUT, optional
        Already loaded LUT, takes precedence over lut_path
    """

    def __init__(
        self,
        lut_path: Optional[Union[str, Path]] = None,
        config: Optional[ScapeMConfig] = None,
        lut: Optional[AtmosphericLUT] = None
    ):
        self.config = config if config is not None else ScapeMConfig()
        self.lut = lut
        self.aot = None

        if lut is not None:
            self.aot = VisibilityToAot.from_lut(lut)
        else:
            lut_path = lut_path if lut_path is not None else self.config.lut_path
            if lut_path is not None:
                self.load_lut(lut_path)

    def load_lut(self, lut_path: Union[str, Path]):
        """Load the binary atmospheric parameter LUT"""
        self.lut = load_lut(lut_path)
        self.aot = VisibilityToAot.from_lut(self.lut)

    def _require_lut(self):
        if self.lut is None:
            raise ValueError("LUT not loaded. Call load_lut() first.")

    @property
    def output_bands(self) -> List[int]:
        """Reflectance bands written to the products"""
        excluded = set(OUTPUT_EXCLUDED_BANDS)
        if self.config.output_refl_band2:
            excluded.discard(1)
        return [b for b in range(L1_BAND_NUM) if b not in excluded]

    def prepare_cells(
        self,
        radiance: np.ndarray,
        sza: np.ndarray,
        vza: np.ndarray,
        saa: np.ndarray,
        vaa: np.ndarray,
        elevation: np.ndarray,
        clear: np.ndarray,
        day_of_year: int
    ) -> List[GridCell]:
        """
        Split a scene into cells and compute their inputs

        Parameters
        ----------
        radiance : ndarray
            At-sensor radiance (15, ny, nx)
        sza, vza, saa, vaa : ndarray
            Sun/view zenith and azimuth angles (ny, nx), degrees
        elevation : ndarray
            Surface elevation (ny, nx), metres
        clear : ndarray
            Clear pixel mask (ny, nx)
        day_of_year : int
            Acquisition day of year

        Returns
        -------
        cells : list of GridCell
        """
        self._require_lut()
        _, ny, nx = radiance.shape
        toa = toa_cell(radiance, day_of_year)
        hsurf = hsurf_cell(elevation, self.lut)
        cos_sza = cos_sza_cell(sza)

        cells = []
        for y, x, h, w in iter_cells(ny, nx, self.config.cell_size):
            rows, cols = slice(y, y + h), slice(x, x + w)
            cy, cx = y + h // 2, x + w // 2
            cell_clear = clear[rows, cols]
            cells.append(GridCell(
                y=y, x=x, height=h, width=w,
                vza=float(vza[cy, cx]),
                sza=float(sza[cy, cx]),
                raa=float(azimuth_difference(vaa[cy, cx], saa[cy, cx])),
                toa=toa[:, rows, cols],
                hsurf=hsurf[rows, cols],
                cos_sza=cos_sza[rows, cols],
                clear=cell_clear,
                hsurf_mean=clear_mean(hsurf[rows, cols], cell_clear),
                cos_sza_mean=clear_mean(cos_sza[rows, cols], cell_clear),
                clear_fraction=clear_fraction(cell_clear),
            ))
        return cells

    def retrieve_visibility(self, cell: GridCell) -> float:
        """
        Retrieve and store the visibility of a cell

        Cells with too few clear pixels keep VISIBILITY_NODATA_VALUE.
        """
        self._require_lut()
        if cell.clear_fraction <= self.config.clear_land_fraction:
            cell.visibility = VISIBILITY_NODATA_VALUE
            return cell.visibility

        cell.visibility = cell_visibility(
            cell.toa, toa_min_cell(cell.toa),
            cell.vza, cell.sza, cell.raa,
            cell.hsurf, cell.hsurf_mean,
            cell.cos_sza, cell.cos_sza_mean,
            cell.clear_fraction > self.config.refinement_clear_fraction,
            self.lut
        )
        return cell.visibility

    def correct(self, cell: GridCell, solar_irradiance: np.ndarray) -> RetrievalResult:
        """
        Water vapour and surface reflectance of a cell

        Parameters
        ----------
        cell : GridCell
            Cell with retrieved visibility
        solar_irradiance : ndarray
            Band solar flux scaled by 1e-4 (15,)

        Returns
        -------
        result : RetrievalResult
        """
        self._require_lut()
        n_bands = cell.toa.shape[0]
        if cell.visibility == VISIBILITY_NODATA_VALUE:
            return RetrievalResult.empty(n_bands, cell.height, cell.width)

        terms = build_rt_grids(self.lut, cell.vza, cell.sza, cell.raa, solar_irradiance)
        f_int = self.lut.interpolate(cell.vza, cell.sza, cell.raa, cell.hsurf_mean, VIS_INIT, WV_INIT)
        refl_image = first_guess_reflectance(f_int, cell.toa, cell.cos_sza)

        return correct_cell(
            terms, cell.toa, cell.hsurf, cell.cos_sza, cell.cos_sza_mean,
            float(self.lut.clamp_vis(cell.visibility)), cell.clear, refl_image,
            self.lut.cwv_min, self.lut.cwv_max,
            use_constant_wv=self.config.use_constant_wv
        )

    def process_scene(
        self,
        radiance: np.ndarray,
        sza: np.ndarray,
        vza: np.ndarray,
        saa: np.ndarray,
        vaa: np.ndarray,
        elevation: np.ndarray,
        day_of_year: int,
        solar_flux: np.ndarray,
        cloud_flags: Optional[np.ndarray] = None,
        clear: Optional[np.ndarray] = None
    ) -> Dict[str, np.ndarray]:
        """
        Complete atmospheric correction workflow

        All cells are assigned a visibility before any cell is corrected.

        Parameters
        ----------
        radiance : ndarray
            At-sensor radiance (15, ny, nx)
        sza, vza, saa, vaa : ndarray
            Sun/view zenith and azimuth angles (ny, nx), degrees
        elevation : ndarray
            Surface elevation (ny, nx), metres
        day_of_year : int
            Acquisition day of year
        solar_flux : ndarray
            Band solar flux (15,)
        cloud_flags : ndarray, optional
            Cloud classification flags (ny, nx)
        clear : ndarray, optional
            Clear pixel mask (ny, nx), used instead of cloud_flags

        Returns
        -------
        results : dict
            visibility, aot550 and water_vapour (ny, nx), reflectance
            (15, ny, nx), output_bands, and rho_toa (15, ny, nx) if requested
        """
        self._require_lut()
        radiance = np.asarray(radiance, dtype=np.float64)
        if radiance.ndim != 3 or radiance.shape[0] != L1_BAND_NUM:
            raise ValueError(f"Radiance must be shaped ({L1_BAND_NUM}, ny, nx), got {radiance.shape}")
        raster_shape = radiance.shape[1:]
        for name, raster in (('sza', sza), ('vza', vza), ('saa', saa), ('vaa', vaa),
                             ('elevation', elevation)):
            if np.shape(raster) != raster_shape:
                raise ValueError(f"{name} shape {np.shape(raster)} does not match radiance {raster_shape}")
        solar_flux = np.asarray(solar_flux, dtype=np.float64)
        if solar_flux.shape != (L1_BAND_NUM,):
            raise ValueError(f"Expected {L1_BAND_NUM} solar flux values, got {solar_flux.shape}")

        if clear is None:
            if cloud_flags is None:
                raise ValueError("Either cloud_flags or clear must be given")
            clear = clear_pixel_mask(cloud_flags, over_water=self.config.compute_over_water)
        clear = np.asarray(clear, dtype=bool)
        if clear.shape != raster_shape:
            raise ValueError(f"Clear mask shape {clear.shape} does not match radiance {raster_shape}")

        solar_irradiance = solar_flux * 1.0e-4
        cells = self.prepare_cells(radiance, sza, vza, saa, vaa, elevation, clear, day_of_year)
        logger.info(f"Processing {len(cells)} cells of {self.config.cell_size} pixels")

        visibility = np.full(raster_shape, VISIBILITY_NODATA_VALUE)
        for cell in tqdm(cells, desc='Visibility', disable=not self.config.show_progress):
            visibility[cell.window] = self.retrieve_visibility(cell)
        n_missing = sum(cell.visibility == VISIBILITY_NODATA_VALUE for cell in cells)
        logger.info(f"Visibility retrieved for {len(cells) - n_missing} of {len(cells)} cells")

        water_vapour = np.full(raster_shape, AC_NODATA)
        reflectance = np.full((L1_BAND_NUM,) + raster_shape, AC_NODATA)
        for cell in tqdm(cells, desc='Reflectance', disable=not self.config.show_progress):
            result = self.correct(cell, solar_irradiance)
            rows, cols = cell.window
            water_vapour[rows, cols] = result.water_vapour
            reflectance[:, rows, cols] = result.reflectance
        if n_missing:
            logger.warning(f"{n_missing} cells have no visibility, their pixels are set to {AC_NODATA}")

        hsurf = hsurf_cell(elevation, self.lut)
        results = {
            'visibility': visibility,
            'aot550': self.aot.aot550_map(visibility, hsurf),
            'water_vapour': water_vapour,
            'reflectance': reflectance,
            'output_bands': self.output_bands,
        }
        if self.config.output_rho_toa:
            results['rho_toa'] = rho_toa(toa_cell(radiance, day_of_year), solar_irradiance, cos_sza_cell(sza))
        return results

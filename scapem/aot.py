"""
Visibility to AOT550 conversion

Per elevation layer of the LUT, ln(AOT550) is fitted linearly against
ln(visibility) over the reference AOT table; queries interpolate the two
bracketing layer models by elevation.
"""
import numpy as np
from sklearn.linear_model import LinearRegression

from .constants import AOT_GRID, AOT_NODATA_VALUE, VISIBILITY_NODATA_VALUE
from .lut import AtmosphericLUT


class VisibilityToAot:
    """
    Log-log regression of AOT550 on visibility

    Parameters
    ----------
    vis_grid : ndarray
        Visibility nodes (km)
    hsf_grid : ndarray
        Elevation layer bounds (km)
    aot_grid : ndarray, optional
        Reference AOT550, shape (layers, visibility nodes)
    """

    def __init__(self, vis_grid, hsf_grid, aot_grid=AOT_GRID):
        self.vis_grid = np.asarray(vis_grid, dtype=np.float64)
        self.hsf_grid = np.asarray(hsf_grid, dtype=np.float64)
        aot_grid = np.asarray(aot_grid, dtype=np.float64)

        if aot_grid.shape != (len(self.hsf_grid), len(self.vis_grid)):
            raise ValueError(
                f"AOT table shape {aot_grid.shape} does not match "
                f"{len(self.hsf_grid)} layers x {len(self.vis_grid)} visibilities"
            )

        ln_vis = np.log(self.vis_grid).reshape(-1, 1)
        self.intercept = np.empty(len(self.hsf_grid))
        self.slope = np.empty(len(self.hsf_grid))
        for i, layer in enumerate(aot_grid):
            model = LinearRegression().fit(ln_vis, np.log(layer))
            self.intercept[i] = model.intercept_
            self.slope[i] = model.coef_[0]

    @classmethod
    def from_lut(cls, lut: AtmosphericLUT) -> 'VisibilityToAot':
        return cls(lut.vis, lut.hsf)

    def layer_aot(self, visibility, layer: int):
        """AOT550 of the fitted model of one elevation layer"""
        return np.exp(self.intercept[layer] + self.slope[layer] * np.log(visibility))

    def aot550(self, visibility: float, hsurf: float) -> float:
        """
        AOT550 for a visibility and elevation

        Parameters
        ----------
        visibility : float
            Visibility (km)
        hsurf : float
            Elevation (km)

        Returns
        -------
        aot : float
            AOT_NODATA_VALUE below the lowest layer or for missing visibility
        """
        if visibility == VISIBILITY_NODATA_VALUE or hsurf < self.hsf_grid[0]:
            return AOT_NODATA_VALUE

        layer = int(np.searchsorted(self.hsf_grid, hsurf, side='right')) - 1
        layer = min(layer, len(self.hsf_grid) - 2)
        frac = (hsurf - self.hsf_grid[layer]) / (self.hsf_grid[layer + 1] - self.hsf_grid[layer])

        aot_lower = self.layer_aot(visibility, layer)
        aot_upper = self.layer_aot(visibility, layer + 1)
        return float(aot_lower + (aot_upper - aot_lower) * frac)

    def aot550_map(self, visibility: np.ndarray, hsurf: np.ndarray) -> np.ndarray:
        """
        Vectorised aot550 over rasters

        Parameters
        ----------
        visibility : ndarray
            Visibility raster (km), VISIBILITY_NODATA_VALUE where missing
        hsurf : ndarray
            Elevation raster (km)

        Returns
        -------
        aot : ndarray
        """
        visibility = np.asarray(visibility, dtype=np.float64)
        hsurf = np.asarray(hsurf, dtype=np.float64)
        aot = np.full(np.broadcast(visibility, hsurf).shape, AOT_NODATA_VALUE)

        valid = (visibility != VISIBILITY_NODATA_VALUE) & (hsurf >= self.hsf_grid[0])
        vis = np.where(valid, visibility, 1.0)
        layer = np.searchsorted(self.hsf_grid, np.where(valid, hsurf, self.hsf_grid[0]), side='right') - 1
        layer = np.clip(layer, 0, len(self.hsf_grid) - 2)
        frac = (hsurf - self.hsf_grid[layer]) / (self.hsf_grid[layer + 1] - self.hsf_grid[layer])

        aot_lower = np.exp(self.intercept[layer] + self.slope[layer] * np.log(vis))
        aot_upper = np.exp(self.intercept[layer + 1] + self.slope[layer + 1] * np.log(vis))
        aot[valid] = (aot_lower + (aot_upper - aot_lower) * frac)[valid]
        return aot

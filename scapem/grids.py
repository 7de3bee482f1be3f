"""
Radiative transfer grids for a fixed cell geometry

For one viewing/illumination geometry the LUT is tabulated over all
(water vapour, visibility, elevation) nodes. Pixel terms are then obtained by
bilinear interpolation in (visibility, elevation) and linear interpolation in
water vapour, without touching the 8-D table again.

Array axis order: (band, cwv, vis, hsf).
"""
import numpy as np
from dataclasses import dataclass, field
from typing import Tuple

from .constants import WV_INIT
from .lut import AtmosphericLUT, frac_index


@dataclass
class RadiativeTransferTerms:
    """
    Radiative transfer terms tabulated on the LUT nodes

    Attributes
    ----------
    cwv, vis, hsf : ndarray
        Grid node coordinates
    lpw : ndarray
        Path radiance (band, cwv, vis, hsf)
    e0tw : ndarray
        Direct irradiance times transmittance
    ediftw : ndarray
        Diffuse irradiance times transmittance
    sab : ndarray
        Spherical albedo
    tdir_d : ndarray
        Direct transmittance
    """
    cwv: np.ndarray
    vis: np.ndarray
    hsf: np.ndarray
    lpw: np.ndarray
    e0tw: np.ndarray
    ediftw: np.ndarray
    sab: np.ndarray
    tdir_d: np.ndarray
    ediftw_tdir: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        self.ediftw_tdir = self.ediftw * self.tdir_d

    @property
    def n_bands(self) -> int:
        return self.lpw.shape[0]

    def pixel_terms(
        self,
        vis: float,
        hsf: float,
        cos_sza: float,
        cos_sza_mean: float
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Interpolate Lpw, Etw and Sab to a pixel's visibility and elevation

        Total transmittance is assembled with the pixel cosine for the direct
        part and the cell-mean cosine for the diffuse correction:
        etw = e0tw*mu + ediftw*(tdir_d*mu + (1 - tdir_d*mu_mean)).
        The expression is linear in the node terms, so each term is
        interpolated separately.

        Parameters
        ----------
        vis : float
            Visibility (km), already clamped to the LUT domain
        hsf : float
            Elevation (km), already clamped to the LUT domain
        cos_sza : float
            Pixel cosine of the sun zenith angle
        cos_sza_mean : float
            Cell-mean cosine of the sun zenith angle

        Returns
        -------
        lpw, etw, sab : ndarray
            Each of shape (band, cwv)
        """
        iv, fv = frac_index(self.vis, vis)
        ih, fh = frac_index(self.hsf, hsf)

        def bilinear(a):
            return ((1 - fv) * (1 - fh) * a[:, :, iv, ih] +
                    (1 - fv) * fh * a[:, :, iv, ih + 1] +
                    fv * (1 - fh) * a[:, :, iv + 1, ih] +
                    fv * fh * a[:, :, iv + 1, ih + 1])

        lpw = bilinear(self.lpw)
        sab = bilinear(self.sab)
        e0tw = bilinear(self.e0tw)
        ediftw = bilinear(self.ediftw)
        ediftw_tdir = bilinear(self.ediftw_tdir)

        etw = e0tw * cos_sza + ediftw_tdir * (cos_sza - cos_sza_mean) + ediftw
        return lpw, etw, sab


def build_rt_grids(
    lut: AtmosphericLUT,
    vza: float,
    sza: float,
    raa: float,
    solar_irradiance: np.ndarray
) -> RadiativeTransferTerms:
    """
    Tabulate the radiative transfer terms for one cell geometry

    Parameters
    ----------
    lut : AtmosphericLUT
        Atmospheric parameter LUT
    vza, sza, raa : float
        Cell view zenith, sun zenith and relative azimuth (degrees)
    solar_irradiance : ndarray
        Band solar flux scaled by 1e-4 (15,)

    Returns
    -------
    terms : RadiativeTransferTerms
    """
    solar_irradiance = np.asarray(solar_irradiance, dtype=np.float64)
    n_bands = len(lut.wavelengths)
    shape = (n_bands, len(lut.cwv), len(lut.vis), len(lut.hsf))

    lpw = np.empty(shape)
    e0tw = np.empty(shape)
    ediftw = np.empty(shape)
    sab = np.empty(shape)
    tdir_d = np.empty(shape)

    for i, cwv in enumerate(lut.cwv):
        for j, vis in enumerate(lut.vis):
            for k, hsf in enumerate(lut.hsf):
                f = lut.interpolate(vza, sza, raa, hsf, vis, cwv)
                lpw[:, i, j, k] = f[:, 0]
                e0tw[:, i, j, k] = f[:, 1]
                ediftw[:, i, j, k] = f[:, 2]
                sab[:, i, j, k] = f[:, 4]
                tdir_d[:, i, j, k] = f[:, 1] / (f[:, 5] * (1.0 + f[:, 3]) * solar_irradiance)

    return RadiativeTransferTerms(
        cwv=np.array(lut.cwv), vis=np.array(lut.vis), hsf=np.array(lut.hsf),
        lpw=lpw, e0tw=e0tw, ediftw=ediftw, sab=sab, tdir_d=tdir_d
    )


@dataclass
class VisibilityProfile:
    """
    Lpw, Etw and Sab along the visibility axis at fixed geometry,
    mean elevation and default water vapour

    Arrays are shaped (vis, band).
    """
    vis: np.ndarray
    lpw: np.ndarray
    etw: np.ndarray
    sab: np.ndarray

    def at(self, vis: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Linear interpolation between the bracketing visibility nodes"""
        i, f = frac_index(self.vis, vis)
        lpw = self.lpw[i] + f * (self.lpw[i + 1] - self.lpw[i])
        etw = self.etw[i] + f * (self.etw[i + 1] - self.etw[i])
        sab = self.sab[i] + f * (self.sab[i + 1] - self.sab[i])
        return lpw, etw, sab


def visibility_profile(
    lut: AtmosphericLUT,
    vza: float,
    sza: float,
    raa: float,
    hsf_mean: float,
    cos_sza_mean: float
) -> VisibilityProfile:
    """
    Radiative transfer terms at every visibility node of the LUT

    Nodes are clamped to the visibility retrieval domain before interpolation.
    Total transmittance uses the cell-mean cosine: etw = p1*mu_mean + p2.

    Parameters
    ----------
    lut : AtmosphericLUT
        Atmospheric parameter LUT
    vza, sza, raa : float
        Cell geometry (degrees)
    hsf_mean : float
        Mean cell elevation (km)
    cos_sza_mean : float
        Mean cosine of the sun zenith angle

    Returns
    -------
    profile : VisibilityProfile
    """
    n_vis = len(lut.vis)
    n_bands = len(lut.wavelengths)
    lpw = np.empty((n_vis, n_bands))
    etw = np.empty((n_vis, n_bands))
    sab = np.empty((n_vis, n_bands))

    for j, vis in enumerate(lut.vis):
        f = lut.interpolate(vza, sza, raa, hsf_mean, float(lut.clamp_vis(vis)), WV_INIT)
        lpw[j] = f[:, 0]
        etw[j] = f[:, 1] * cos_sza_mean + f[:, 2]
        sab[j] = f[:, 4]

    return VisibilityProfile(vis=np.array(lut.vis), lpw=lpw, etw=etw, sab=sab)

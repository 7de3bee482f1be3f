"""
Atmospheric parameter LUT access and multilinear interpolation

The SCAPE-M LUT holds 7 radiative transfer parameters for the 15 MERIS
bands on a grid of view zenith, sun zenith, relative azimuth, surface
elevation, visibility and water vapour column.

Parameter index (0-based) of the interpolated 15x7 matrix:
    0: path radiance
    1: direct irradiance x transmittance
    2: diffuse irradiance x transmittance
    3: direct/diffuse ratio term
    4: spherical albedo
    5: total transmittance term
    6: upward transmittance term
"""
import logging
import numpy as np
from pathlib import Path
from typing import BinaryIO, Tuple, Union

from .constants import MERIS_WAVELENGTHS, LUT_PARAMETERS

logger = logging.getLogger(__name__)

AXIS_NAMES = ('vza', 'sza', 'raa', 'hsf', 'vis', 'cwv', 'parameter', 'wavelength')

# Distance kept from the grid ends for the retrieval domains
DOMAIN_MARGIN = 0.001


class LUTLoadError(IOError):
    """Raised when the LUT resource is missing, truncated or inconsistent"""


def frac_index(axis: np.ndarray, value: float) -> Tuple[int, float]:
    """
    Fractional index of a value within an increasing axis

    Parameters
    ----------
    axis : ndarray
        Strictly increasing node coordinates (at least 2 nodes)
    value : float
        Query coordinate

    Returns
    -------
    index : int
        Lower node of the bracketing interval, 0 <= index <= len(axis) - 2.
        At the upper boundary the last interval is reused.
    frac : float
        Position within the interval, truncated to [0, 1]

    Notes
    -----
    The truncation only keeps the corner weights non-negative. It does not
    replace the domain clamps of AtmosphericLUT (clamp_hsf, clamp_vis,
    clamp_cwv), which callers apply to physical queries before interpolating.
    """
    n = len(axis)
    index = int(np.searchsorted(axis, value, side='right')) - 1
    index = min(max(index, 0), n - 2)
    frac = (value - axis[index]) / (axis[index + 1] - axis[index])
    return index, min(max(float(frac), 0.0), 1.0)


def _corner_weights(fracs) -> np.ndarray:
    """Hypercube corner weights, shape (2,) * len(fracs)"""
    weights = np.ones(())
    for f in fracs:
        weights = np.multiply.outer(weights, np.array([1.0 - f, f]))
    return weights


class AtmosphericLUT:
    """
    Immutable 8-D atmospheric parameter lookup table

    Parameters
    ----------
    vza, sza, raa, hsf, vis, cwv : array_like
        Axis coordinates (degrees, degrees, degrees, km, km, g/cm^2)
    values : ndarray
        Tensor of shape (vza, sza, raa, hsf, vis, cwv, 7, 15), wavelength
        fastest varying
    source : str, optional
        Where the table was read from (for messages)
    """

    def __init__(self, vza, sza, raa, hsf, vis, cwv, values: np.ndarray, source: str = '<memory>'):
        self.source = source
        axes = [np.asarray(a, dtype=np.float64) for a in (vza, sza, raa, hsf, vis, cwv)]
        axes.append(LUT_PARAMETERS.astype(np.float64))
        axes.append(MERIS_WAVELENGTHS.astype(np.float64))

        for name, axis in zip(AXIS_NAMES, axes):
            if axis.ndim != 1 or len(axis) < 2:
                raise LUTLoadError(f"{source}: axis '{name}' needs at least 2 nodes")
            if np.any(np.diff(axis) <= 0):
                raise LUTLoadError(f"{source}: axis '{name}' is not strictly increasing")

        shape = tuple(len(a) for a in axes)
        values = np.asarray(values)
        if values.size != int(np.prod(shape)):
            raise LUTLoadError(
                f"{source}: LUT holds {values.size} values, axes require {int(np.prod(shape))}"
            )

        for axis in axes:
            axis.setflags(write=False)
        self.axes = tuple(axes)
        self.values = values.reshape(shape)
        self.values.setflags(write=False)

    # Axis accessors
    vza = property(lambda self: self.axes[0])
    sza = property(lambda self: self.axes[1])
    raa = property(lambda self: self.axes[2])
    hsf = property(lambda self: self.axes[3])
    vis = property(lambda self: self.axes[4])
    cwv = property(lambda self: self.axes[5])
    parameters = property(lambda self: self.axes[6])
    wavelengths = property(lambda self: self.axes[7])

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.values.shape

    # Retrieval domains
    @property
    def hsf_min(self) -> float:
        return float(self.hsf[0]) + DOMAIN_MARGIN

    @property
    def hsf_max(self) -> float:
        return float(self.hsf[-1]) - DOMAIN_MARGIN

    @property
    def vis_min(self) -> float:
        return float(self.vis[0]) + DOMAIN_MARGIN

    @property
    def vis_max(self) -> float:
        return float(self.vis[-1]) - DOMAIN_MARGIN

    @property
    def cwv_min(self) -> float:
        return float(self.cwv[0]) + DOMAIN_MARGIN

    @property
    def cwv_max(self) -> float:
        return float(self.cwv[-1]) - DOMAIN_MARGIN

    def clamp_hsf(self, hsf):
        return np.clip(hsf, self.hsf_min, self.hsf_max)

    def clamp_vis(self, vis):
        return np.clip(vis, self.vis_min, self.vis_max)

    def clamp_cwv(self, cwv):
        return np.clip(cwv, self.cwv_min, self.cwv_max)

    def interpolate(
        self,
        vza: float,
        sza: float,
        raa: float,
        hsf: float,
        vis: float,
        cwv: float
    ) -> np.ndarray:
        """
        6-D linear interpolation of the LUT

        Queries outside an axis are truncated to its closed domain; callers
        clamp physical quantities to the retrieval domains beforehand.

        Parameters
        ----------
        vza, sza, raa : float
            View zenith, sun zenith and relative azimuth (degrees)
        hsf : float
            Surface elevation (km)
        vis : float
            Visibility (km)
        cwv : float
            Water vapour column (g/cm^2)

        Returns
        -------
        f_int : ndarray
            Interpolated parameters, shape (15 wavelengths, 7 parameters)
        """
        point = (vza, sza, raa, hsf, vis, cwv)
        slices = []
        fracs = []
        for axis, value in zip(self.axes[:6], point):
            i, f = frac_index(axis, value)
            slices.append(slice(i, i + 2))
            fracs.append(f)

        # (2,)*6 corners x (7 parameters, 15 wavelengths)
        corners = self.values[tuple(slices)]
        f_int = np.tensordot(_corner_weights(fracs), corners, axes=6)
        return f_int.T

    def value_at(self, coords) -> float:
        """
        Interpolated value at an arbitrary 8-D coordinate

        Parameters
        ----------
        coords : sequence of float
            (vza, sza, raa, hsf, vis, cwv, parameter, wavelength)

        Returns
        -------
        value : float
        """
        if len(coords) != len(self.axes):
            raise ValueError(f"Expected {len(self.axes)} coordinates, got {len(coords)}")
        slices = []
        fracs = []
        for axis, value in zip(self.axes, coords):
            i, f = frac_index(axis, value)
            slices.append(slice(i, i + 2))
            fracs.append(f)
        corners = self.values[tuple(slices)]
        return float(np.tensordot(_corner_weights(fracs), corners, axes=len(self.axes)))

    def describe(self) -> dict:
        """Axis grids and retrieval domains as plain Python values"""
        info = {name: axis.tolist() for name, axis in zip(AXIS_NAMES, self.axes)}
        info.update({
            'source': self.source,
            'shape': list(self.shape),
            'hsf_range': [self.hsf_min, self.hsf_max],
            'vis_range': [self.vis_min, self.vis_max],
            'cwv_range': [self.cwv_min, self.cwv_max],
        })
        return info

    def save(self, path: Union[str, Path]):
        """
        Write the table in the binary LUT resource format

        Parameters
        ----------
        path : str or Path
            Output file
        """
        with open(path, 'wb') as f:
            for axis in self.axes[:6]:
                f.write(np.array([len(axis)], dtype='<i4').tobytes())
                f.write(axis.astype('<f4').tobytes())
            f.write(self.values.astype('<f4').tobytes())


def _read_axis(data: bytes, offset: int, name: str, source: str) -> Tuple[np.ndarray, int]:
    if offset + 4 > len(data):
        raise LUTLoadError(f"{source}: truncated before length of axis '{name}'")
    n = int(np.frombuffer(data, dtype='<i4', count=1, offset=offset)[0])
    offset += 4
    if n < 2 or offset + 4 * n > len(data):
        raise LUTLoadError(f"{source}: invalid or truncated axis '{name}' (length {n})")
    axis = np.frombuffer(data, dtype='<f4', count=n, offset=offset)
    return axis, offset + 4 * n


def load_lut(source: Union[str, Path, BinaryIO]) -> AtmosphericLUT:
    """
    Load the atmospheric parameter LUT from its binary resource

    Little-endian layout: six int32 length-prefixed float32 axis arrays
    (vza, sza, raa, hsf, vis, cwv) followed by the float32 tensor ordered
    (vza, sza, raa, hsf, vis, cwv, parameter[7], wavelength[15]).

    Parameters
    ----------
    source : str, Path or binary file object
        LUT resource

    Returns
    -------
    lut : AtmosphericLUT

    Raises
    ------
    LUTLoadError
        If the resource is missing, truncated or inconsistent
    """
    if hasattr(source, 'read'):
        name = str(getattr(source, 'name', '<stream>'))
        data = source.read()
    else:
        path = Path(source)
        name = str(path)
        if not path.is_file():
            raise LUTLoadError(f"Could not find LUT resource: {path}")
        try:
            data = path.read_bytes()
        except OSError as e:
            raise LUTLoadError(f"Could not read LUT resource {path}: {e}") from e

    offset = 0
    axes = []
    for axis_name in AXIS_NAMES[:6]:
        axis, offset = _read_axis(data, offset, axis_name, name)
        axes.append(axis)

    n_values = int(np.prod([len(a) for a in axes])) * len(LUT_PARAMETERS) * len(MERIS_WAVELENGTHS)
    remaining = len(data) - offset
    if remaining != 4 * n_values:
        raise LUTLoadError(
            f"{name}: expected {4 * n_values} bytes of LUT values, found {remaining}"
        )
    values = np.frombuffer(data, dtype='<f4', count=n_values, offset=offset)

    lut = AtmosphericLUT(*axes, values=values, source=name)
    logger.debug(f"Loaded LUT {name} with shape {lut.shape}")
    return lut

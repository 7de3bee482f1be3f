"""Shared pytest fixtures: a small synthetic LUT and the optional real LUT"""
import os
import numpy as np
import pytest

from scapem.constants import MERIS_WAVELENGTHS
from scapem.lut import AtmosphericLUT, load_lut

SYNTHETIC_AXES = {
    'vza': [0.0, 30.0, 60.0],
    'sza': [0.0, 30.0, 60.0, 75.0],
    'raa': [0.0, 90.0, 180.0],
    'hsf': [0.0, 0.7, 2.5],
    'vis': [10.0, 15.0, 23.0, 35.0, 60.0, 100.0, 180.0],
    'cwv': [0.3, 1.0, 2.0, 5.0],
}

# Typical MERIS band solar flux (mW/m2/nm)
MERIS_SOLAR_FLUX = np.array([
    1713.7, 1877.4, 1929.3, 1926.9, 1800.4, 1649.7, 1530.9, 1470.2,
    1405.1, 1266.2, 1249.9, 1175.7, 958.0, 929.6, 895.9
])


def synthetic_values(axes: dict) -> np.ndarray:
    """
    Smooth, physically ordered parameters on the synthetic grid

    Path radiance and spherical albedo fall with visibility, transmittance
    rises with it; the 900 nm band is attenuated by water vapour.
    """
    vza, sza, raa, hsf, vis, cwv = [
        a[..., None] for a in np.meshgrid(*[np.asarray(axes[k]) for k in
                                             ('vza', 'sza', 'raa', 'hsf', 'vis', 'cwv')],
                                           indexing='ij')
    ]
    wl = MERIS_WAVELENGTHS.astype(np.float64) / 1000.0
    aer = 1.0 / vis
    geometry = 1.0 + 0.002 * sza + 0.001 * vza + 0.0005 * raa
    absorption = np.zeros(15)
    absorption[14] = 1.0
    absorption[10] = 0.3
    wv_trans = np.exp(-0.15 * cwv * absorption)

    lpw = 0.002 * (1.0 + 20.0 * aer) * (0.5 / wl) ** 3 * geometry * np.exp(-0.3 * hsf) * wv_trans
    e0tw = 0.06 * (1.0 - 3.0 * aer) * (1.0 + 0.02 * hsf) * wv_trans
    ediftw = 0.01 * (1.0 + 5.0 * aer) * (0.5 / wl) * wv_trans
    p3 = np.full_like(lpw, 0.1)
    sab = 0.05 * (1.0 + 5.0 * aer) * (0.5 / wl) * np.ones_like(geometry)
    p5 = np.ones_like(lpw)
    p6 = 0.5 * wv_trans * np.ones_like(geometry)

    values = np.stack([lpw, e0tw, ediftw, p3, sab, p5, p6], axis=-2)
    return values.astype(np.float32)


def make_synthetic_lut(axes: dict = SYNTHETIC_AXES) -> AtmosphericLUT:
    return AtmosphericLUT(**{k: np.asarray(v, dtype=np.float32) for k, v in axes.items()},
                          values=synthetic_values(axes), source='<synthetic>')


@pytest.fixture(scope='session')
def synthetic_lut():
    return make_synthetic_lut()


@pytest.fixture
def synthetic_lut_file(tmp_path, synthetic_lut):
    path = tmp_path / 'synthetic_lut.bin'
    synthetic_lut.save(path)
    return path


@pytest.fixture(scope='session')
def solar_flux():
    return MERIS_SOLAR_FLUX.copy()


@pytest.fixture(scope='session')
def real_lut():
    path = os.environ.get('SCAPEM_LUT_PATH')
    if not path or not os.path.isfile(path):
        pytest.skip('SCAPEM_LUT_PATH does not point to the SCAPE-M LUT')
    return load_lut(path)


SCENE_GEOMETRY = {'sza': 40.0, 'vza': 15.0, 'saa': 150.0, 'vaa': 60.0}
SCENE_DOY = 73


def make_synthetic_scene(lut: AtmosphericLUT, shape=(40, 35), visibility: float = 35.0) -> dict:
    """
    Radiance of vegetation/soil mixtures seen through a uniform atmosphere

    The upper-left 30x30 block is flagged as certain cloud.
    """
    from scapem.constants import RHO_SUE, RHO_VEG_ALL
    from scapem.grids import visibility_profile
    from scapem.utils import varsol

    ny, nx = shape
    mu = np.cos(np.radians(SCENE_GEOMETRY['sza']))
    profile = visibility_profile(lut, SCENE_GEOMETRY['vza'], SCENE_GEOMETRY['sza'],
                                 90.0, 0.3, mu)
    lpw, etw, sab = (a[:, None, None] for a in profile.at(visibility))

    veg = ((np.arange(ny)[:, None] * 7 + np.arange(nx)[None, :] * 3) % 20) / 19.0
    surf = veg * RHO_VEG_ALL[0][:, None, None] + (1.0 - veg) * RHO_SUE[:, None, None]
    toa = lpw + surf * etw / (np.pi * (1.0 - sab * surf))

    cloud_flags = np.zeros(shape, dtype=np.int64)
    cloud_flags[:30, :30] = 2

    scene = {name: np.full(shape, value) for name, value in SCENE_GEOMETRY.items()}
    scene.update({
        'radiance': toa / (varsol(SCENE_DOY) ** 2 * 1.0e-4),
        'elevation': np.full(shape, 300.0),
        'cloud_flags': cloud_flags,
        'day_of_year': SCENE_DOY,
    })
    return scene


@pytest.fixture(scope='session')
def synthetic_scene(synthetic_lut):
    return make_synthetic_scene(synthetic_lut)

"""
SCAPE-M - Self-Contained Atmospheric Parameters Estimation for MERIS

Retrieves cell visibility / AOT550, per-pixel water vapour and surface
reflectance over land from MERIS L1b radiance using a precomputed
radiative transfer LUT.
"""

__version__ = '0.1.0'
__author__ = 'Judy Northrop'

from .core import ScapeM, GridCell
from .config import ScapeMConfig, load_config
from .lut import AtmosphericLUT, LUTLoadError, load_lut
from .aot import VisibilityToAot
from .retrieval import cell_visibility
from .reflectance import solve_water_vapour, invert_reflectance

__all__ = [
    'ScapeM',
    'GridCell',
    'ScapeMConfig',
    'load_config',
    'AtmosphericLUT',
    'LUTLoadError',
    'load_lut',
    'VisibilityToAot',
    'cell_visibility',
    'solve_water_vapour',
    'invert_reflectance',
]

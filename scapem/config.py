"""
Processing configuration

Supports:
    - YAML configuration files
    - Environment variable overrides (SCAPEM_LUT_PATH, SCAPEM_CELL_SIZE,
      SCAPEM_CONSTANT_WV)
"""
import os
import yaml
import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional, Union

from .constants import RR_PIXELS_PER_CELL, CLEAR_LAND_FRACTION, REFINEMENT_CLEAR_FRACTION

logger = logging.getLogger(__name__)

_TRUE_STRINGS = ('1', 'true', 'yes', 'on')


@dataclass
class ScapeMConfig:
    """
    Atmospheric correction settings

    Attributes
    ----------
    lut_path : str, optional
        Binary atmospheric parameter LUT
    cell_size : int
        Cell edge in pixels (30 for reduced, 120 for full resolution)
    compute_over_water : bool
        Accept clear water pixels as well as clear land
    use_constant_wv : bool
        Skip the water vapour retrieval
    output_refl_band2 : bool
        Keep the 443 nm reflectance in the outputs
    output_rho_toa : bool
        Also output TOA reflectance
    clear_land_fraction : float
        Minimum clear fraction for a cell to be processed
    refinement_clear_fraction : float
        Minimum clear fraction for the reference pixel refinement
    show_progress : bool
        Show a progress bar over the cells
    """
    lut_path: Optional[str] = None
    cell_size: int = RR_PIXELS_PER_CELL
    compute_over_water: bool = False
    use_constant_wv: bool = False
    output_refl_band2: bool = False
    output_rho_toa: bool = False
    clear_land_fraction: float = CLEAR_LAND_FRACTION
    refinement_clear_fraction: float = REFINEMENT_CLEAR_FRACTION
    show_progress: bool = True

    def __post_init__(self):
        if self.cell_size < 1:
            raise ValueError(f"cell_size must be positive, got {self.cell_size}")
        for name in ('clear_land_fraction', 'refinement_clear_fraction'):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")

    @classmethod
    def from_dict(cls, values: dict) -> 'ScapeMConfig':
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**values)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_STRINGS


def load_config(path: Optional[Union[str, Path]] = None) -> ScapeMConfig:
    """
    Load configuration from YAML and apply environment overrides

    Parameters
    ----------
    path : str or Path, optional
        YAML file with ScapeMConfig keys at the top level

    Returns
    -------
    config : ScapeMConfig
    """
    values = {}
    if path is not None:
        with open(path) as f:
            values = yaml.safe_load(f) or {}
        if not isinstance(values, dict):
            raise ValueError(f"{path}: expected a mapping of configuration keys")
        logger.info(f"Loaded config from: {path}")

    if 'SCAPEM_LUT_PATH' in os.environ:
        values['lut_path'] = os.environ['SCAPEM_LUT_PATH']
    if 'SCAPEM_CELL_SIZE' in os.environ:
        values['cell_size'] = int(os.environ['SCAPEM_CELL_SIZE'])
    if 'SCAPEM_CONSTANT_WV' in os.environ:
        values['use_constant_wv'] = _parse_bool(os.environ['SCAPEM_CONSTANT_WV'])

    return ScapeMConfig.from_dict(values)

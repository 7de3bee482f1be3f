"""
Command-line interface for SCAPE-M atmospheric correction.

Usage:
    scapem-correct radiance ancillary output --lut scapem_lut.bin --doy 73
    scapem-lut scapem_lut.bin
"""
import sys
import logging
import argparse
import numpy as np
from pathlib import Path

from .config import load_config
from .constants import (
    L1_BAND_NUM, RR_PIXELS_PER_CELL, FR_PIXELS_PER_CELL, MERIS_WAVELENGTHS,
    VISIBILITY_BAND_NAME, AOT550_BAND_NAME,
    WATER_VAPOUR_BAND_NAME, REFL_BAND_PREFIX, TOA_BAND_PREFIX,
    VISIBILITY_NODATA_VALUE, AOT_NODATA_VALUE, AC_NODATA
)
from .lut import LUTLoadError, load_lut

logger = logging.getLogger(__name__)

# Band order of the ancillary ENVI cube
ANCILLARY_BANDS = ('sza', 'vza', 'saa', 'vaa', 'elevation_m', 'cloud_flags')


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%H:%M:%S'
    )


def _solar_flux(args, metadata: dict) -> np.ndarray:
    if args.solar_flux is not None:
        values = [float(v) for v in args.solar_flux.split(',')]
    elif 'solar flux' in metadata:
        values = [float(v) for v in metadata['solar flux']]
    else:
        raise ValueError("No solar flux given (use --solar-flux or a 'solar flux' header field)")
    if len(values) != L1_BAND_NUM:
        raise ValueError(f"Expected {L1_BAND_NUM} solar flux values, got {len(values)}")
    return np.array(values)


def write_products(results: dict, output: str, wavelengths=MERIS_WAVELENGTHS):
    """
    Write the correction products as ENVI images

    Parameters
    ----------
    results : dict
        Output of ScapeM.process_scene
    output : str
        Output path prefix
    wavelengths : ndarray, optional
        Band centre wavelengths (nm)
    """
    from .utils import save_envi_cube

    bands = results['output_bands']
    save_envi_cube(results['visibility'], f'{output}_visibility', [VISIBILITY_BAND_NAME],
                   'SCAPE-M cell visibility (km)', nodata=VISIBILITY_NODATA_VALUE)
    save_envi_cube(results['aot550'], f'{output}_aot550', [AOT550_BAND_NAME],
                   'SCAPE-M aerosol optical thickness at 550 nm', nodata=AOT_NODATA_VALUE)
    save_envi_cube(results['water_vapour'], f'{output}_water_vapour', [WATER_VAPOUR_BAND_NAME],
                   'SCAPE-M water vapour column (g/cm2)', nodata=AC_NODATA)
    save_envi_cube(results['reflectance'][bands], f'{output}_reflectance',
                   [f'{REFL_BAND_PREFIX}_{b + 1}' for b in bands],
                   'SCAPE-M surface reflectance', nodata=AC_NODATA,
                   wavelengths=np.asarray(wavelengths)[bands])
    if 'rho_toa' in results:
        save_envi_cube(results['rho_toa'][bands], f'{output}_rho_toa',
                       [f'{TOA_BAND_PREFIX}_{b + 1}' for b in bands],
                       'TOA reflectance', wavelengths=np.asarray(wavelengths)[bands])


def main_correct(argv=None):
    """Atmospheric correction CLI."""
    parser = argparse.ArgumentParser(
        prog='scapem-correct',
        description='SCAPE-M atmospheric correction of MERIS L1b radiance',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Ancillary cube bands (in order):
  {', '.join(ANCILLARY_BANDS)}

Examples:
  scapem-correct MER_RR_rad MER_RR_anc out/MER_RR --lut scapem_lut.bin --doy 73
  scapem-correct MER_FR_rad MER_FR_anc out/MER_FR --cell-size 120 --constant-wv
        """
    )

    parser.add_argument('radiance', help='ENVI radiance cube (15 bands, without extension)')
    parser.add_argument('ancillary', help='ENVI ancillary cube (without extension)')
    parser.add_argument('output', help='Output path prefix')

    parser.add_argument('--lut', default=None, help='Binary atmospheric LUT')
    parser.add_argument('--config', default=None, help='YAML configuration file')
    parser.add_argument('--doy', type=int, required=True, help='Acquisition day of year')
    parser.add_argument('--solar-flux', default=None,
                        help='Comma-separated band solar flux (default: radiance header)')
    parser.add_argument('--cell-size', type=int, default=None,
                        help=f'Cell size in pixels ({RR_PIXELS_PER_CELL} RR, {FR_PIXELS_PER_CELL} FR)')
    parser.add_argument('--over-water', action='store_true',
                        help='Also process clear water pixels')
    parser.add_argument('--constant-wv', action='store_true',
                        help='Use constant water vapour')
    parser.add_argument('--band2', action='store_true',
                        help='Write the 443 nm reflectance')
    parser.add_argument('--rho-toa', action='store_true',
                        help='Also write TOA reflectance')
    parser.add_argument('--no-progress', action='store_true',
                        help='Hide progress bars')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    from .core import ScapeM
    from .utils import load_envi_cube

    config = load_config(args.config)
    if args.lut is not None:
        config.lut_path = args.lut
    if args.cell_size is not None:
        config.cell_size = args.cell_size
    config.compute_over_water = config.compute_over_water or args.over_water
    config.use_constant_wv = config.use_constant_wv or args.constant_wv
    config.output_refl_band2 = config.output_refl_band2 or args.band2
    config.output_rho_toa = config.output_rho_toa or args.rho_toa
    config.show_progress = config.show_progress and not args.no_progress

    if config.lut_path is None:
        logger.error("No LUT given (use --lut, the config file or SCAPEM_LUT_PATH)")
        sys.exit(1)
    for path in (args.radiance, args.ancillary):
        if not Path(path + '.hdr').exists():
            logger.error(f"ENVI header not found: {path}.hdr")
            sys.exit(1)

    print("=" * 60)
    print("SCAPE-M atmospheric correction")
    print("=" * 60)
    print(f"Radiance:  {args.radiance}")
    print(f"Ancillary: {args.ancillary}")
    print(f"LUT:       {config.lut_path}")
    print(f"Cell size: {config.cell_size} px")

    try:
        scapem = ScapeM(config=config)
    except LUTLoadError as e:
        logger.error(str(e))
        sys.exit(1)

    radiance, metadata = load_envi_cube(args.radiance)
    ancillary, _ = load_envi_cube(args.ancillary)
    if ancillary.shape[0] != len(ANCILLARY_BANDS):
        logger.error(f"Ancillary cube needs {len(ANCILLARY_BANDS)} bands, found {ancillary.shape[0]}")
        sys.exit(1)
    anc = dict(zip(ANCILLARY_BANDS, ancillary))

    try:
        solar_flux = _solar_flux(args, metadata)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    results = scapem.process_scene(
        radiance, anc['sza'], anc['vza'], anc['saa'], anc['vaa'], anc['elevation_m'],
        day_of_year=args.doy, solar_flux=solar_flux,
        cloud_flags=anc['cloud_flags'].astype(np.int64)
    )

    write_products(results, args.output)
    logger.info(f"Output written to: {args.output}_*")


def main_lut(argv=None):
    """Print the axes and retrieval domains of a LUT."""
    parser = argparse.ArgumentParser(
        prog='scapem-lut',
        description='Inspect a SCAPE-M atmospheric parameter LUT'
    )
    parser.add_argument('lut', nargs='?', default=None,
                        help='Binary LUT (default: config / SCAPEM_LUT_PATH)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    lut_path = args.lut if args.lut is not None else load_config().lut_path
    if lut_path is None:
        logger.error("No LUT given")
        sys.exit(1)

    try:
        lut = load_lut(lut_path)
    except LUTLoadError as e:
        logger.error(str(e))
        sys.exit(1)

    info = lut.describe()
    print("=" * 60)
    print(f"LUT: {info['source']}")
    print(f"Shape: {tuple(info['shape'])}")
    print("=" * 60)
    for name in ('vza', 'sza', 'raa', 'hsf', 'vis', 'cwv', 'wavelength'):
        print(f"{name:>10}: {', '.join(f'{v:g}' for v in info[name])}")
    print("-" * 60)
    print(f"  hsf range: {info['hsf_range'][0]:.3f} - {info['hsf_range'][1]:.3f} km")
    print(f"  vis range: {info['vis_range'][0]:.3f} - {info['vis_range'][1]:.3f} km")
    print(f"  cwv range: {info['cwv_range'][0]:.3f} - {info['cwv_range'][1]:.3f} g/cm2")


if __name__ == '__main__':
    main_correct()

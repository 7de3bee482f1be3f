#!/usr/bin/env python3
"""
SCAPE-M Workflow: Correct a MERIS RR scene

Runs the visibility and reflectance stages on ENVI radiance and ancillary
cubes, writes the products and a JSON summary of the retrieved atmosphere.

Usage:
    python workflow_correct_scene.py MER_RR_rad MER_RR_anc out/MER_RR scapem_lut.bin 73
"""
import sys
import json
import numpy as np
from pathlib import Path

from scapem import ScapeM, ScapeMConfig
from scapem.cli import ANCILLARY_BANDS, write_products
from scapem.constants import AC_NODATA, VISIBILITY_NODATA_VALUE
from scapem.utils import load_envi_cube


def main():
    if len(sys.argv) != 6:
        print(__doc__)
        sys.exit(1)
    radiance_path, ancillary_path, output, lut_path, doy = sys.argv[1:]

    print("=" * 70)
    print("SCAPE-M WORKFLOW: CORRECT MERIS SCENE")
    print("=" * 70)
    print(f"\nRadiance:  {radiance_path}")
    print(f"Ancillary: {ancillary_path}\n")

    radiance, metadata = load_envi_cube(radiance_path)
    ancillary, _ = load_envi_cube(ancillary_path)
    anc = dict(zip(ANCILLARY_BANDS, ancillary))
    solar_flux = np.array([float(v) for v in metadata['solar flux']])

    scapem = ScapeM(lut_path=lut_path, config=ScapeMConfig(output_rho_toa=True))
    results = scapem.process_scene(
        radiance, anc['sza'], anc['vza'], anc['saa'], anc['vaa'], anc['elevation_m'],
        day_of_year=int(doy), solar_flux=solar_flux,
        cloud_flags=anc['cloud_flags'].astype(np.int64)
    )

    Path(output).parent.mkdir(parents=True, exist_ok=True)
    write_products(results, output)

    vis = results['visibility'][results['visibility'] != VISIBILITY_NODATA_VALUE]
    aot = results['aot550'][results['visibility'] != VISIBILITY_NODATA_VALUE]
    wv = results['water_vapour'][results['water_vapour'] != AC_NODATA]

    summary = {
        'radiance': radiance_path,
        'day_of_year': int(doy),
        'valid_pixels': int(wv.size),
        'visibility_km': [float(vis.min()), float(np.median(vis)), float(vis.max())] if vis.size else None,
        'aot550': [float(aot.min()), float(np.median(aot)), float(aot.max())] if aot.size else None,
        'water_vapour_gcm2': [float(wv.min()), float(np.median(wv)), float(wv.max())] if wv.size else None,
    }

    print("RETRIEVED ATMOSPHERE (min / median / max):")
    for key in ('visibility_km', 'aot550', 'water_vapour_gcm2'):
        values = summary[key]
        text = 'no valid pixels' if values is None else ' / '.join(f'{v:.3f}' for v in values)
        print(f"  {key}: {text}")

    summary_file = Path(f'{output}_summary.json')
    with open(summary_file, 'w') as f:
        json.dump(summary, f, indent=2)

    print(f"\n✓ Products written to: {output}_*")
    print(f"✓ Summary saved to: {summary_file}")


if __name__ == '__main__':
    main()

"""
SCAPE-M constants for MERIS

Band tables, end-member spectra and retrieval settings used by the
visibility, water vapour and reflectance retrievals.

References
----------
Guanter, L., Gomez-Chova, L., Moreno, J., 2008. Coupled retrieval of aerosol
optical thickness, columnar water vapor and surface reflectance maps from
ENVISAT/MERIS data over land. Remote Sensing of Environment 112, 2898-2913.
"""
import numpy as np

# Cell sizes (pixels) for reduced and full resolution products
RR_PIXELS_PER_CELL = 30
FR_PIXELS_PER_CELL = 120

# MERIS band centre wavelengths (nm), the wavelength axis of the LUT
MERIS_WAVELENGTHS = np.array([
    412.545, 442.401, 489.744, 509.7, 559.634,
    619.62, 664.64, 680.902, 708.426, 753.472,
    761.606, 778.498, 864.833, 884.849, 899.86
], dtype=np.float32)

L1_BAND_NUM = 15

# Parameter axis of the LUT: 7 radiative transfer quantities
LUT_PARAMETERS = np.arange(1.0, 8.0, dtype=np.float32)

# Solar irradiance normalisation for the NDVI bands (681 nm and 753 nm)
SOL_IRR_7 = 1424.7742
SOL_IRR_9 = 1225.6102

# Band indices (0-based)
NDVI_RED_BAND = 7
NDVI_NIR_BAND = 9
SEED_NDVI_NIR_BAND = 12
WV_REFERENCE_BAND = 13
WV_ABSORPTION_BAND = 14

# Bands skipped by the reflectance inversion (O2 A-band and the 900 nm
# water vapour band)
AC_EXCLUDED_BANDS = (10, 14)
# Bands never written to the reflectance product; band 1 (443 nm) is optional
OUTPUT_EXCLUDED_BANDS = (1, 10, 14)

NUM_REF_PIXELS = 5
REF_PIXEL_WEIGHTS = np.array([2.0, 2.0, 1.5, 1.5, 1.0])

# Vegetation end-member spectra, one optimisation pass each
RHO_VEG_ALL = np.array([
    [0.0235, 0.0382, 0.0319, 0.0342, 0.0526, 0.0425, 0.0371, 0.0369,
     0.0789, 0.3561, 0.3698, 0.3983, 0.4248, 0.4252, 0.4254],
    [0.0206, 0.04120, 0.0445, 0.0498, 0.0728, 0.0821, 0.0847, 0.0870,
     0.1301, 0.1994, 0.2020, 0.2074, 0.2365, 0.2419, 0.2459],
    [0.0138, 0.0158, 0.0188, 0.021, 0.0395, 0.0279, 0.0211, 0.0206,
     0.0825, 0.2579, 0.2643, 0.2775, 0.3201, 0.3261, 0.3307],
])

# Bare soil end-member spectrum
RHO_SUE = np.array([
    0.0490, 0.0860, 0.1071, 0.1199, 0.1679, 0.2425, 0.2763, 0.2868,
    0.3148, 0.3470, 0.3498, 0.3558, 0.3984, 0.4062, 0.4120
])

# Per-band weights of the TOA chi-square (zero for the absorption bands)
WL_CENTER_INV = np.array([
    14.2274, 11.5368, 8.50600, 1.96148, 1.78669, 1.61394, 1.50473, 4.65445,
    1.41177, 3.10430, 0.0, 1.28467, 1.15624, 1.13002, 0.0
])

# Reference AOT550 per elevation layer (rows) and visibility node (columns)
AOT_GRID = np.array([
    [0.673345, 0.472727, 0.324623, 0.220397, 0.136966, 0.0900341, 0.0586890],
    [0.597473, 0.420376, 0.289417, 0.197476, 0.123751, 0.0822952, 0.0545618],
    [0.402420, 0.285551, 0.199061, 0.138343, 0.089596, 0.0623010, 0.0439519],
])

WV_INIT = 2.0      # g/cm^2
VIS_INIT = 23.0    # km

POWELL_FTOL = 1.0e-4
FTOL = 1.0e-4
MAXITER = 10000

# Objective value returned for x vectors outside the physical domain
INVALID_TOA_MIN = 5.0e8

# Reference sets used by the refinement (AOT_time_flg = 1)
LIM_REF_SETS = 1

# Coarse and fine visibility search steps (km)
VIS_SEARCH_STEPS = (1.0, 0.1)

# Minimum clear fractions of a cell
CLEAR_LAND_FRACTION = 0.35
REFINEMENT_CLEAR_FRACTION = 0.45

# No-data values
VISIBILITY_NODATA_VALUE = 0.0
AOT_NODATA_VALUE = 0.0
AC_NODATA = -1.0

# Cloud flag bits
CLOUD_INVALID_BIT = 0
CLOUD_CERTAIN_BIT = 1
CLOUD_OCEAN_BIT = 3

# Output band names
VISIBILITY_BAND_NAME = 'cell_visibility'
AOT550_BAND_NAME = 'AOT_550'
WATER_VAPOUR_BAND_NAME = 'water_vapour'
REFL_BAND_PREFIX = 'reflectance'
TOA_BAND_PREFIX = 'rho_toa'

"""
Skylut Constants - Default atmosphere and lookup table settings.

All lengths are in kilometers and all coefficients in km^-1.
"""

import numpy as np

# Planet geometry (km)
EARTH_RADIUS = 6360.0
EARTH_TOP_RADIUS = 6420.0

# Solar disc
SUN_ANGULAR_RADIUS = 0.004675
SOLAR_IRRADIANCE = np.array([1.474, 1.8504, 1.91198])

# Air molecules
RAYLEIGH_SCALE_HEIGHT = 8.0
RAYLEIGH_SCATTERING_COEFFICIENTS = np.array([0.005802, 0.013558, 0.0331])

# Aerosols
MIE_SCALE_HEIGHT = 1.2
MIE_SCATTERING_COEFFICIENT = 0.003996
MIE_EXTINCTION_COEFFICIENT = 0.00444
MIE_PHASE_FUNCTION_G = 0.8
MIE_ANGSTROM_BETA = 0.04

# Ozone, a tent profile peaking at OZONE_CENTER_ALTITUDE
OZONE_CENTER_ALTITUDE = 25.0
OZONE_WIDTH = 15.0
OZONE_ABSORPTION_COEFFICIENTS = np.array([6.5e-4, 1.881e-3, 8.5e-5])

DEFAULT_GROUND_ALBEDO = 0.1

# cos(102 degrees): sky light is negligible for lower suns
MU_S_MIN = -0.207912

DEFAULT_SCATTERING_ORDERS = 4

# Lookup table dimensions
TRANSMITTANCE_TEXTURE_MU_SIZE = 256
TRANSMITTANCE_TEXTURE_R_SIZE = 64

SCATTERING_TEXTURE_R_SIZE = 32
SCATTERING_TEXTURE_MU_SIZE = 128
SCATTERING_TEXTURE_MU_S_SIZE = 32
SCATTERING_TEXTURE_NU_SIZE = 8

IRRADIANCE_TEXTURE_MU_S_SIZE = 64
IRRADIANCE_TEXTURE_R_SIZE = 16

# Integration sample counts
TRANSMITTANCE_SAMPLE_COUNT = 500
SINGLE_SCATTERING_SAMPLE_COUNT = 50
SCATTERING_DENSITY_SAMPLE_COUNT = 16
MULTIPLE_SCATTERING_SAMPLE_COUNT = 50
INDIRECT_IRRADIANCE_SAMPLE_COUNT = 32

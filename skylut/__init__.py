"""
Skylut - Precomputed atmospheric scattering lookup tables

Builds transmittance, scattering and irradiance tables for a planetary
atmosphere following Eric Bruneton's Precomputed Atmospheric Scattering,
and reconstructs sky radiance, aerial perspective and ground irradiance
from them.
"""

__version__ = "0.1.0"

"""
Skylut Core - Atmospheric scattering model implementation.
"""

from .constants import *
from .parameters import (
    AtmosphereParameters,
    DensityProfile,
    DensityProfileLayer,
    DrawParameters,
    sun_direction_from_angles,
)
from .backend import ComputeBackend, get_backend, set_backend
from .model import AtmosphereModel, PrecomputedTextures
from .render import (
    Renderer,
    render_sky,
    get_sky_radiance,
    get_sky_radiance_to_point,
    get_sun_and_sky_irradiance,
)

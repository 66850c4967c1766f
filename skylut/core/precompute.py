"""
Skylut Precompute - Builders for the transmittance, scattering and irradiance tables.

Each builder comes in two parts:
- compute_*: the integral for arbitrary (broadcastable) arrays of ray parameters
- precompute_*: evaluates compute_* at every texel of an output table, one
  slice of the outermost axis per work item, through a ComputeBackend

Builders only read the parameters and already finished input tables, and
every work item writes its own output slice.
"""

import logging
from typing import Optional

import numpy as np

from .backend import ComputeBackend, get_backend
from .constants import (
    TRANSMITTANCE_SAMPLE_COUNT,
    SINGLE_SCATTERING_SAMPLE_COUNT,
    SCATTERING_DENSITY_SAMPLE_COUNT,
    MULTIPLE_SCATTERING_SAMPLE_COUNT,
    INDIRECT_IRRADIANCE_SAMPLE_COUNT,
)
from .parameters import AtmosphereParameters, DensityProfile
from .functions import (
    clamp_cosine,
    clamp_radius,
    distance_to_top_atmosphere_boundary,
    distance_to_bottom_atmosphere_boundary,
    distance_to_nearest_atmosphere_boundary,
    ray_intersects_ground,
    rayleigh_phase_function,
    mie_phase_function,
)
from .mapping import (
    get_r_mu_from_transmittance_texel,
    get_r_mu_mu_s_nu_from_scattering_texel,
    get_r_mu_s_from_irradiance_texel,
)
from .textures import (
    get_transmittance,
    get_transmittance_to_sun,
    get_transmittance_to_top_atmosphere_boundary,
    get_scattering,
    get_scattering_of_order,
    get_irradiance,
)

logger = logging.getLogger(__name__)


def _trapezoid_weight(i: int, sample_count: int) -> float:
    return 0.5 if i == 0 or i == sample_count else 1.0


def _scattering_texel_grid(params: AtmosphereParameters, k: int):
    """Physical parameters for every texel of r slice k of a scattering table."""
    width, height, _ = params.scattering_extent
    y, x = np.meshgrid(np.arange(height), np.arange(width), indexing='ij')
    return get_r_mu_mu_s_nu_from_scattering_texel(params, x, y, k)


# Transmittance

def compute_optical_length_to_top_atmosphere_boundary(
    params: AtmosphereParameters, profile: DensityProfile, r, mu,
    sample_count: int = TRANSMITTANCE_SAMPLE_COUNT,
):
    """Integral of the profile density from (r, mu) to the top of the atmosphere (trapezoidal rule)."""
    dx = distance_to_top_atmosphere_boundary(params, r, mu) / sample_count
    result = np.zeros(np.shape(dx))
    for i in range(sample_count + 1):
        d_i = i * dx
        # Distance between the current sample point and the planet center
        r_i = np.sqrt(d_i * d_i + 2.0 * r * mu * d_i + r * r)
        y_i = profile.get_density(r_i - params.bottom_radius)
        result += y_i * _trapezoid_weight(i, sample_count) * dx
    return result


def compute_transmittance_to_top_atmosphere_boundary(
    params: AtmosphereParameters, r, mu,
    sample_count: int = TRANSMITTANCE_SAMPLE_COUNT,
) -> np.ndarray:
    """Transmittance from (r, mu) to the top of the atmosphere, shape (..., 3)."""
    def optical_length(profile):
        return compute_optical_length_to_top_atmosphere_boundary(
            params, profile, r, mu, sample_count)[..., np.newaxis]

    return np.exp(-(
        params.rayleigh_scattering * optical_length(params.rayleigh_density) +
        params.mie_extinction * optical_length(params.mie_density) +
        params.absorption_extinction * optical_length(params.absorption_density)
    ))


def precompute_transmittance(
    params: AtmosphereParameters,
    transmittance: np.ndarray,
    backend: Optional[ComputeBackend] = None,
) -> None:
    """Fill the (r, mu, 3) transmittance table."""
    mu_indices = np.arange(params.transmittance_texture_mu_size)

    def kernel(j):
        r, mu = get_r_mu_from_transmittance_texel(params, mu_indices, j)
        transmittance[j] = compute_transmittance_to_top_atmosphere_boundary(params, r, mu)

    (backend or get_backend()).dispatch(params.transmittance_texture_r_size, kernel)
    logger.debug("Transmittance range [%.6f, %.6f]", transmittance.min(), transmittance.max())


# Direct irradiance

def compute_direct_irradiance(
    params: AtmosphereParameters, transmittance: np.ndarray, r, mu_s
) -> np.ndarray:
    """Unscattered sunlight on a horizontal surface, averaged over the solar disc."""
    alpha_s = params.sun_angular_radius
    # Approximate average of the cosine factor mu_s over the visible fraction of the Sun disc
    average_cosine_factor = np.where(
        mu_s < -alpha_s,
        0.0,
        np.where(
            mu_s > alpha_s,
            mu_s,
            (mu_s + alpha_s) * (mu_s + alpha_s) / (4.0 * alpha_s),
        ),
    )
    return (
        params.solar_irradiance *
        get_transmittance_to_top_atmosphere_boundary(params, transmittance, r, mu_s) *
        np.asarray(average_cosine_factor)[..., np.newaxis]
    )


def precompute_direct_irradiance(
    params: AtmosphereParameters,
    transmittance: np.ndarray,
    delta_irradiance: np.ndarray,
    backend: Optional[ComputeBackend] = None,
) -> None:
    """Fill the (r, mu_s, 3) irradiance delta with direct sunlight."""
    mu_s_indices = np.arange(params.irradiance_texture_mu_s_size)

    def kernel(j):
        r, mu_s = get_r_mu_s_from_irradiance_texel(params, mu_s_indices, j)
        delta_irradiance[j] = compute_direct_irradiance(params, transmittance, r, mu_s)

    (backend or get_backend()).dispatch(params.irradiance_texture_r_size, kernel)


# Single scattering

def compute_single_scattering_integrand(
    params: AtmosphereParameters, transmittance: np.ndarray,
    r, mu, mu_s, nu, d, ray_r_mu_intersects_ground,
):
    """
    Light scattered towards the camera at distance d along the view ray.

    Returns:
        (rayleigh, mie) spectra, without scattering coefficients or phase functions
    """
    r_d = clamp_radius(params, np.sqrt(d * d + 2.0 * r * mu * d + r * r))
    mu_s_d = clamp_cosine((r * mu_s + d * nu) / r_d)
    transmittance_total = (
        get_transmittance(params, transmittance, r, mu, d, ray_r_mu_intersects_ground) *
        get_transmittance_to_sun(params, transmittance, r_d, mu_s_d)
    )
    altitude = r_d - params.bottom_radius
    rayleigh = transmittance_total * np.asarray(
        params.rayleigh_density.get_density(altitude))[..., np.newaxis]
    mie = transmittance_total * np.asarray(
        params.mie_density.get_density(altitude))[..., np.newaxis]
    return rayleigh, mie


def compute_single_scattering(
    params: AtmosphereParameters, transmittance: np.ndarray,
    r, mu, mu_s, nu, ray_r_mu_intersects_ground,
    sample_count: int = SINGLE_SCATTERING_SAMPLE_COUNT,
):
    """
    Single scattered radiance along the ray (r, mu) up to the nearest boundary.

    Returns:
        (rayleigh, mie) spectra, without phase functions
    """
    dx = distance_to_nearest_atmosphere_boundary(
        params, r, mu, ray_r_mu_intersects_ground) / sample_count
    rayleigh_sum = 0.0
    mie_sum = 0.0
    for i in range(sample_count + 1):
        d_i = i * dx
        rayleigh_i, mie_i = compute_single_scattering_integrand(
            params, transmittance, r, mu, mu_s, nu, d_i, ray_r_mu_intersects_ground)
        weight_i = _trapezoid_weight(i, sample_count)
        rayleigh_sum = rayleigh_sum + rayleigh_i * weight_i
        mie_sum = mie_sum + mie_i * weight_i

    dx = np.asarray(dx)[..., np.newaxis]
    rayleigh = rayleigh_sum * dx * params.solar_irradiance * params.rayleigh_scattering
    mie = mie_sum * dx * params.solar_irradiance * params.mie_scattering
    return rayleigh, mie


def precompute_single_scattering(
    params: AtmosphereParameters,
    transmittance: np.ndarray,
    delta_rayleigh: np.ndarray,
    delta_mie: np.ndarray,
    scattering: np.ndarray,
    backend: Optional[ComputeBackend] = None,
) -> None:
    """
    Fill the single scattering deltas and the combined scattering table.

    The combined table stores the rayleigh spectrum in rgb and the red
    channel of the mie spectrum in alpha.
    """
    def kernel(k):
        r, mu, mu_s, nu, ground = _scattering_texel_grid(params, k)
        rayleigh, mie = compute_single_scattering(
            params, transmittance, r, mu, mu_s, nu, ground)
        delta_rayleigh[k] = rayleigh
        delta_mie[k] = mie
        scattering[k, ..., :3] = rayleigh
        scattering[k, ..., 3] = mie[..., 0]

    (backend or get_backend()).dispatch(params.scattering_texture_r_size, kernel)
    logger.debug("Single scattering max rayleigh %.6f, max mie %.6f",
                 delta_rayleigh.max(), delta_mie.max())


# Scattering density

def compute_scattering_density(
    params: AtmosphereParameters,
    transmittance: np.ndarray,
    single_rayleigh_scattering: np.ndarray,
    single_mie_scattering: np.ndarray,
    multiple_scattering: np.ndarray,
    irradiance: np.ndarray,
    r, mu, mu_s, nu,
    scattering_order: int,
    sample_count: int = SCATTERING_DENSITY_SAMPLE_COUNT,
) -> np.ndarray:
    """
    Radiance scattered at (r, mu, mu_s, nu) towards the view direction after
    scattering_order - 1 previous bounces, integrated over all incident
    directions.

    Args:
        irradiance: ground irradiance of order scattering_order - 2 (direct
            irradiance for order 2)
    """
    r, mu, mu_s, nu = np.broadcast_arrays(
        np.asarray(r, dtype=np.float64), mu, mu_s, nu)

    # Local frame: zenith along z, view direction in the xz plane
    omega_x = np.sqrt(np.maximum(1.0 - mu * mu, 0.0))
    sun_dir_x = np.where(
        omega_x == 0.0, 0.0, (nu - mu * mu_s) / np.where(omega_x == 0.0, 1.0, omega_x))
    sun_dir_y = np.sqrt(np.maximum(1.0 - sun_dir_x * sun_dir_x - mu_s * mu_s, 0.0))

    altitude = r - params.bottom_radius
    rayleigh_density = np.asarray(params.rayleigh_density.get_density(altitude))[..., np.newaxis]
    mie_density = np.asarray(params.mie_density.get_density(altitude))[..., np.newaxis]
    rayleigh_coefficient = params.rayleigh_scattering * rayleigh_density
    mie_coefficient = params.mie_scattering * mie_density

    dphi = np.pi / sample_count
    dtheta = np.pi / sample_count
    rayleigh_mie = np.zeros(r.shape + (3,))

    # Nested loops for the integral over all the incident directions omega_i
    for l in range(sample_count):
        theta = (l + 0.5) * dtheta
        cos_theta = np.cos(theta)
        sin_theta = np.sin(theta)
        ray_r_theta_intersects_ground = ray_intersects_ground(params, r, cos_theta)

        # Light reflected by the ground reaches the point only along ground rays
        distance_to_ground = np.where(
            ray_r_theta_intersects_ground,
            distance_to_bottom_atmosphere_boundary(params, r, cos_theta),
            0.0,
        )
        ground_reflectance = np.where(
            ray_r_theta_intersects_ground[..., np.newaxis],
            get_transmittance(params, transmittance, r, cos_theta, distance_to_ground, True) *
            params.ground_albedo * (1.0 / np.pi),
            0.0,
        )

        for m in range(2 * sample_count):
            phi = (m + 0.5) * dphi
            omega_i_x = np.cos(phi) * sin_theta
            omega_i_y = np.sin(phi) * sin_theta
            domega_i = dtheta * dphi * sin_theta

            # Radiance arriving from direction omega_i after the previous orders
            nu1 = clamp_cosine(sun_dir_x * omega_i_x + sun_dir_y * omega_i_y + mu_s * cos_theta)
            incident_radiance = get_scattering_of_order(
                params,
                single_rayleigh_scattering, single_mie_scattering, multiple_scattering,
                r, cos_theta, mu_s, nu1, ray_r_theta_intersects_ground,
                scattering_order - 1,
            )

            # Plus the light reflected by the ground at the end of the ray
            normal_x = omega_i_x * distance_to_ground
            normal_y = omega_i_y * distance_to_ground
            normal_z = r + cos_theta * distance_to_ground
            normal_length = np.sqrt(normal_x ** 2 + normal_y ** 2 + normal_z ** 2)
            ground_mu_s = clamp_cosine(
                (normal_x * sun_dir_x + normal_y * sun_dir_y + normal_z * mu_s) / normal_length)
            ground_irradiance = get_irradiance(
                params, irradiance, params.bottom_radius, ground_mu_s)
            incident_radiance = incident_radiance + ground_reflectance * ground_irradiance

            # Fraction of it scattered towards -omega
            nu2 = clamp_cosine(omega_x * omega_i_x + mu * cos_theta)
            rayleigh_mie += incident_radiance * (
                rayleigh_coefficient * rayleigh_phase_function(nu2)[..., np.newaxis] +
                mie_coefficient * mie_phase_function(
                    params.mie_phase_function_g, nu2)[..., np.newaxis]
            ) * domega_i

    return rayleigh_mie


def precompute_scattering_density(
    params: AtmosphereParameters,
    transmittance: np.ndarray,
    delta_rayleigh: np.ndarray,
    delta_mie: np.ndarray,
    delta_multiple: np.ndarray,
    delta_irradiance: np.ndarray,
    scattering_order: int,
    delta_scattering_density: np.ndarray,
    backend: Optional[ComputeBackend] = None,
) -> None:
    """Fill the scattering density table for scattering_order."""
    def kernel(k):
        r, mu, mu_s, nu, _ = _scattering_texel_grid(params, k)
        delta_scattering_density[k] = compute_scattering_density(
            params, transmittance, delta_rayleigh, delta_mie, delta_multiple,
            delta_irradiance, r, mu, mu_s, nu, scattering_order)

    (backend or get_backend()).dispatch(params.scattering_texture_r_size, kernel)


# Multiple scattering

def compute_multiple_scattering(
    params: AtmosphereParameters,
    transmittance: np.ndarray,
    scattering_density: np.ndarray,
    r, mu, mu_s, nu, ray_r_mu_intersects_ground,
    sample_count: int = MULTIPLE_SCATTERING_SAMPLE_COUNT,
) -> np.ndarray:
    """Scattering density integrated along the ray (r, mu) up to the nearest boundary."""
    dx = distance_to_nearest_atmosphere_boundary(
        params, r, mu, ray_r_mu_intersects_ground) / sample_count
    rayleigh_mie_sum = 0.0
    for i in range(sample_count + 1):
        d_i = i * dx
        # The r, mu and mu_s parameters at the current integration point
        r_i = clamp_radius(params, np.sqrt(d_i * d_i + 2.0 * r * mu * d_i + r * r))
        mu_i = clamp_cosine((r * mu + d_i) / r_i)
        mu_s_i = clamp_cosine((r * mu_s + d_i * nu) / r_i)

        rayleigh_mie_i = (
            get_scattering(
                params, scattering_density, r_i, mu_i, mu_s_i, nu,
                ray_r_mu_intersects_ground)[..., :3] *
            get_transmittance(params, transmittance, r, mu, d_i, ray_r_mu_intersects_ground)
        )
        rayleigh_mie_sum = rayleigh_mie_sum + rayleigh_mie_i * _trapezoid_weight(i, sample_count)
    return rayleigh_mie_sum * np.asarray(dx)[..., np.newaxis]


def precompute_multiple_scattering(
    params: AtmosphereParameters,
    transmittance: np.ndarray,
    delta_scattering_density: np.ndarray,
    delta_multiple: np.ndarray,
    scattering: np.ndarray,
    backend: Optional[ComputeBackend] = None,
) -> None:
    """
    Fill delta_multiple with this order's scattering and accumulate it into the
    combined table, where the rgb channels are stored without the rayleigh
    phase function.
    """
    def kernel(k):
        r, mu, mu_s, nu, ground = _scattering_texel_grid(params, k)
        value = compute_multiple_scattering(
            params, transmittance, delta_scattering_density, r, mu, mu_s, nu, ground)
        delta_multiple[k] = value
        scattering[k, ..., :3] += value / rayleigh_phase_function(nu)[..., np.newaxis]

    (backend or get_backend()).dispatch(params.scattering_texture_r_size, kernel)


# Indirect irradiance

def compute_indirect_irradiance(
    params: AtmosphereParameters,
    single_rayleigh_scattering: np.ndarray,
    single_mie_scattering: np.ndarray,
    multiple_scattering: np.ndarray,
    r, mu_s,
    scattering_order: int,
    sample_count: int = INDIRECT_IRRADIANCE_SAMPLE_COUNT,
) -> np.ndarray:
    """Sky irradiance on a horizontal surface from light scattered scattering_order times."""
    r, mu_s = np.broadcast_arrays(np.asarray(r, dtype=np.float64), mu_s)
    dphi = np.pi / sample_count
    dtheta = np.pi / sample_count
    sin_sun = np.sqrt(np.maximum(1.0 - mu_s * mu_s, 0.0))
    ground = np.zeros(r.shape, dtype=bool)

    result = np.zeros(r.shape + (3,))
    for j in range(sample_count // 2):
        theta = (j + 0.5) * dtheta
        cos_theta = np.cos(theta)
        sin_theta = np.sin(theta)
        for i in range(2 * sample_count):
            phi = (i + 0.5) * dphi
            domega = dtheta * dphi * sin_theta
            nu = clamp_cosine(np.cos(phi) * sin_theta * sin_sun + cos_theta * mu_s)
            result += get_scattering_of_order(
                params,
                single_rayleigh_scattering, single_mie_scattering, multiple_scattering,
                r, cos_theta, mu_s, nu, ground, scattering_order,
            ) * cos_theta * domega
    return result


def precompute_indirect_irradiance(
    params: AtmosphereParameters,
    delta_rayleigh: np.ndarray,
    delta_mie: np.ndarray,
    delta_multiple: np.ndarray,
    scattering_order: int,
    delta_irradiance: np.ndarray,
    irradiance: np.ndarray,
    backend: Optional[ComputeBackend] = None,
) -> None:
    """Fill delta_irradiance for scattering_order and add it into the irradiance table."""
    mu_s_indices = np.arange(params.irradiance_texture_mu_s_size)

    def kernel(j):
        r, mu_s = get_r_mu_s_from_irradiance_texel(params, mu_s_indices, j)
        value = compute_indirect_irradiance(
            params, delta_rayleigh, delta_mie, delta_multiple, r, mu_s, scattering_order)
        delta_irradiance[j] = value
        irradiance[j] += value

    (backend or get_backend()).dispatch(params.irradiance_texture_r_size, kernel)

"""
Skylut Textures - Filtered lookups into the precomputed tables.

Tables are numpy arrays laid out (height, width, channels) in 2D and
(depth, height, width, channels) in 3D. Sampling follows hardware linear
filtering: texel centers sit at (i + 0.5) / size and coordinates outside
[0, 1] clamp to the edge texels.
"""

import numpy as np

from .parameters import AtmosphereParameters
from .functions import (
    clamp_cosine,
    point_along_ray,
    rayleigh_phase_function,
    mie_phase_function,
    smoothstep,
)
from .mapping import (
    get_transmittance_texture_uv_from_r_mu,
    get_scattering_texture_uvwz_from_r_mu_mu_s_nu,
    get_irradiance_texture_uv_from_r_mu_s,
)


def _linear_taps(coord, size: int):
    x = np.asarray(coord, dtype=np.float64) * size - 0.5
    i0 = np.floor(x)
    frac = x - i0
    i0 = i0.astype(np.intp)
    return np.clip(i0, 0, size - 1), np.clip(i0 + 1, 0, size - 1), np.asarray(frac)[..., np.newaxis]


def sample_2d(table: np.ndarray, u, v) -> np.ndarray:
    """Bilinear lookup of a (H, W, C) table at texture coordinates (u, v)."""
    height, width = table.shape[:2]
    u, v = np.broadcast_arrays(u, v)
    x0, x1, fx = _linear_taps(u, width)
    y0, y1, fy = _linear_taps(v, height)
    return (
        (table[y0, x0] * (1.0 - fx) + table[y0, x1] * fx) * (1.0 - fy) +
        (table[y1, x0] * (1.0 - fx) + table[y1, x1] * fx) * fy
    )


def sample_3d(table: np.ndarray, u, v, w) -> np.ndarray:
    """Trilinear lookup of a (D, H, W, C) table at texture coordinates (u, v, w)."""
    depth, height, width = table.shape[:3]
    u, v, w = np.broadcast_arrays(u, v, w)
    x0, x1, fx = _linear_taps(u, width)
    y0, y1, fy = _linear_taps(v, height)
    z0, z1, fz = _linear_taps(w, depth)

    def plane(z):
        return (
            (table[z, y0, x0] * (1.0 - fx) + table[z, y0, x1] * fx) * (1.0 - fy) +
            (table[z, y1, x0] * (1.0 - fx) + table[z, y1, x1] * fx) * fy
        )

    return plane(z0) * (1.0 - fz) + plane(z1) * fz


# Transmittance

def get_transmittance_to_top_atmosphere_boundary(
    params: AtmosphereParameters, transmittance: np.ndarray, r, mu
) -> np.ndarray:
    u, v = get_transmittance_texture_uv_from_r_mu(params, r, mu)
    return sample_2d(transmittance, u, v)


def get_transmittance(
    params: AtmosphereParameters, transmittance: np.ndarray,
    r, mu, d, ray_r_mu_intersects_ground
) -> np.ndarray:
    """Transmittance between the point (r, mu) and the point at distance d along the ray."""
    r_d, mu_d = point_along_ray(params, r, mu, d)
    ground = np.asarray(ray_r_mu_intersects_ground)[..., np.newaxis]

    # Ground rays never reach the top, so use the reversed segment instead
    numerator = np.where(
        ground,
        get_transmittance_to_top_atmosphere_boundary(params, transmittance, r_d, -mu_d),
        get_transmittance_to_top_atmosphere_boundary(params, transmittance, r, mu),
    )
    denominator = np.where(
        ground,
        get_transmittance_to_top_atmosphere_boundary(params, transmittance, r, -mu),
        get_transmittance_to_top_atmosphere_boundary(params, transmittance, r_d, mu_d),
    )
    return np.minimum(numerator / np.maximum(denominator, 1e-10), 1.0)


def get_transmittance_to_sun(
    params: AtmosphereParameters, transmittance: np.ndarray, r, mu_s
) -> np.ndarray:
    """Transmittance to the sun, faded by the visible fraction of the solar disc."""
    sin_theta_h = params.bottom_radius / r
    cos_theta_h = -np.sqrt(np.maximum(1.0 - sin_theta_h * sin_theta_h, 0.0))
    visible = smoothstep(
        -sin_theta_h * params.sun_angular_radius,
        sin_theta_h * params.sun_angular_radius,
        mu_s - cos_theta_h,
    )
    return (
        get_transmittance_to_top_atmosphere_boundary(params, transmittance, r, mu_s) *
        np.asarray(visible)[..., np.newaxis]
    )


# Scattering

def get_scattering(
    params: AtmosphereParameters, scattering: np.ndarray,
    r, mu, mu_s, nu, ray_r_mu_intersects_ground
) -> np.ndarray:
    """
    Lookup of a scattering table, all channels.

    nu shares the table width with mu_s, so the two nearest nu bins are
    fetched separately and blended.
    """
    u_nu, u_mu_s, u_mu, u_r = get_scattering_texture_uvwz_from_r_mu_mu_s_nu(
        params, r, clamp_cosine(mu), clamp_cosine(mu_s), clamp_cosine(nu),
        ray_r_mu_intersects_ground)
    nu_size = params.scattering_texture_nu_size
    tex_coord_x = u_nu * (nu_size - 1)
    tex_x = np.floor(tex_coord_x)
    lerp = np.asarray(tex_coord_x - tex_x)[..., np.newaxis]
    value0 = sample_3d(scattering, (tex_x + u_mu_s) / nu_size, u_mu, u_r)
    value1 = sample_3d(scattering, (tex_x + 1.0 + u_mu_s) / nu_size, u_mu, u_r)
    return value0 * (1.0 - lerp) + value1 * lerp


def get_scattering_of_order(
    params: AtmosphereParameters,
    single_rayleigh_scattering: np.ndarray,
    single_mie_scattering: np.ndarray,
    multiple_scattering: np.ndarray,
    r, mu, mu_s, nu, ray_r_mu_intersects_ground,
    scattering_order: int,
) -> np.ndarray:
    """
    Radiance scattered exactly scattering_order times.

    Single scattering tables hold phase-free values and are combined with
    their phase functions here; multiple scattering deltas already include
    the phase functions.
    """
    if scattering_order == 1:
        rayleigh = get_scattering(
            params, single_rayleigh_scattering, r, mu, mu_s, nu, ray_r_mu_intersects_ground)
        mie = get_scattering(
            params, single_mie_scattering, r, mu, mu_s, nu, ray_r_mu_intersects_ground)
        return (
            rayleigh[..., :3] * np.asarray(rayleigh_phase_function(nu))[..., np.newaxis] +
            mie[..., :3] * np.asarray(
                mie_phase_function(params.mie_phase_function_g, nu))[..., np.newaxis]
        )
    return get_scattering(
        params, multiple_scattering, r, mu, mu_s, nu, ray_r_mu_intersects_ground)[..., :3]


# Irradiance

def get_irradiance(
    params: AtmosphereParameters, irradiance: np.ndarray, r, mu_s
) -> np.ndarray:
    u, v = get_irradiance_texture_uv_from_r_mu_s(params, r, mu_s)
    return sample_2d(irradiance, u, v)

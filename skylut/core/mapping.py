"""
Skylut Mapping - Conversions between physical ray variables and table coordinates.

The mappings are nonlinear so that table resolution concentrates near the
horizon and near the top of the atmosphere:

- r is stored through the distance to the horizon, rho = sqrt(r^2 - bottom^2).
- mu is stored through the distance to the nearest boundary, with ground
  hitting rays in the lower half of the axis and sky rays in the upper half.
- mu_s is stored through the distance to the top of the atmosphere from the
  ground, warped so that suns near mu_s_min get more samples.
- nu is stored linearly, in coarse bins sharing the mu_s axis.

Forward and inverse functions are exact inverses up to rounding.
"""

import numpy as np

from .parameters import AtmosphereParameters
from .functions import (
    clamp_cosine,
    safe_sqrt,
    distance_to_top_atmosphere_boundary,
    get_texture_coord_from_unit_range,
    get_unit_range_from_texture_coord,
)


def _safe_divide(numerator, denominator, fallback):
    """numerator / denominator, or fallback where the denominator is zero."""
    zero = denominator == 0.0
    return np.where(zero, fallback, numerator / np.where(zero, 1.0, denominator))


def _horizon_distances(params: AtmosphereParameters, r):
    # H: distance to the top boundary for a horizontal ray at ground level
    H = np.sqrt(params.top_radius ** 2 - params.bottom_radius ** 2)
    rho = safe_sqrt(r * r - params.bottom_radius ** 2)
    return H, rho


# Transmittance table

def get_transmittance_texture_uv_from_r_mu(params: AtmosphereParameters, r, mu):
    H, rho = _horizon_distances(params, r)
    # Distance to the top boundary, and its extremes over all mu: (r, 1) and (r, mu_horizon)
    d = distance_to_top_atmosphere_boundary(params, r, mu)
    d_min = params.top_radius - r
    d_max = rho + H
    x_mu = (d - d_min) / (d_max - d_min)
    x_r = rho / H
    return (
        get_texture_coord_from_unit_range(x_mu, params.transmittance_texture_mu_size),
        get_texture_coord_from_unit_range(x_r, params.transmittance_texture_r_size),
    )


def get_r_mu_from_transmittance_texture_uv(params: AtmosphereParameters, u, v):
    x_mu = get_unit_range_from_texture_coord(u, params.transmittance_texture_mu_size)
    x_r = get_unit_range_from_texture_coord(v, params.transmittance_texture_r_size)
    H = np.sqrt(params.top_radius ** 2 - params.bottom_radius ** 2)
    rho = H * x_r
    r = np.sqrt(rho * rho + params.bottom_radius ** 2)
    d_min = params.top_radius - r
    d_max = rho + H
    d = d_min + x_mu * (d_max - d_min)
    mu = _safe_divide(H * H - rho * rho - d * d, 2.0 * r * d, 1.0)
    return r, clamp_cosine(mu)


def get_r_mu_from_transmittance_texel(params: AtmosphereParameters, i, j):
    """(r, mu) at the center of texel (i along mu, j along r)."""
    u = (np.asarray(i) + 0.5) / params.transmittance_texture_mu_size
    v = (np.asarray(j) + 0.5) / params.transmittance_texture_r_size
    return get_r_mu_from_transmittance_texture_uv(params, u, v)


# Scattering table

def _mu_s_warp(params: AtmosphereParameters):
    d_min = params.top_radius - params.bottom_radius
    d_max = np.sqrt(params.top_radius ** 2 - params.bottom_radius ** 2)
    A = -2.0 * params.mu_s_min * params.bottom_radius / (d_max - d_min)
    return d_min, d_max, A


def get_scattering_texture_uvwz_from_r_mu_mu_s_nu(
    params: AtmosphereParameters, r, mu, mu_s, nu, ray_r_mu_intersects_ground
):
    """
    Map (r, mu, mu_s, nu) to unit-range coordinates.

    Returns:
        (u_nu, u_mu_s, u_mu, u_r); u_mu is below 0.5 for ground rays
    """
    H, rho = _horizon_distances(params, r)
    u_r = get_texture_coord_from_unit_range(rho / H, params.scattering_texture_r_size)

    half_mu_size = params.scattering_texture_mu_size // 2
    r_mu = r * mu
    discriminant = r_mu * r_mu - r * r + params.bottom_radius ** 2

    # Ground rays: distance to the ground, extremes at (r, -1) and (r, mu_horizon)
    d = -r_mu - safe_sqrt(discriminant)
    d_min = r - params.bottom_radius
    d_max = rho
    u_mu_ground = 0.5 - 0.5 * get_texture_coord_from_unit_range(
        _safe_divide(d - d_min, d_max - d_min, 0.0), half_mu_size)

    # Sky rays: distance to the top, extremes at (r, 1) and (r, mu_horizon)
    d = -r_mu + safe_sqrt(discriminant + H * H)
    d_min = params.top_radius - r
    d_max = rho + H
    u_mu_sky = 0.5 + 0.5 * get_texture_coord_from_unit_range(
        (d - d_min) / (d_max - d_min), half_mu_size)

    u_mu = np.where(ray_r_mu_intersects_ground, u_mu_ground, u_mu_sky)

    d_min, d_max, A = _mu_s_warp(params)
    d = distance_to_top_atmosphere_boundary(params, params.bottom_radius, mu_s)
    a = (d - d_min) / (d_max - d_min)
    u_mu_s = get_texture_coord_from_unit_range(
        np.maximum(1.0 - a / A, 0.0) / (1.0 + a), params.scattering_texture_mu_s_size)

    u_nu = (nu + 1.0) / 2.0
    return u_nu, u_mu_s, u_mu, u_r


def get_r_mu_mu_s_nu_from_scattering_texture_uvwz(params: AtmosphereParameters, u, v, w, z):
    """
    Inverse of get_scattering_texture_uvwz_from_r_mu_mu_s_nu.

    Returns:
        (r, mu, mu_s, nu, ray_r_mu_intersects_ground)
    """
    H = np.sqrt(params.top_radius ** 2 - params.bottom_radius ** 2)
    rho = H * get_unit_range_from_texture_coord(z, params.scattering_texture_r_size)
    r = np.sqrt(rho * rho + params.bottom_radius ** 2)

    half_mu_size = params.scattering_texture_mu_size // 2
    ray_r_mu_intersects_ground = w < 0.5

    d_min = r - params.bottom_radius
    d_max = rho
    d = d_min + (d_max - d_min) * get_unit_range_from_texture_coord(1.0 - 2.0 * w, half_mu_size)
    mu_ground = _safe_divide(-(rho * rho + d * d), 2.0 * r * d, -1.0)

    d_min = params.top_radius - r
    d_max = rho + H
    d = d_min + (d_max - d_min) * get_unit_range_from_texture_coord(2.0 * w - 1.0, half_mu_size)
    mu_sky = _safe_divide(H * H - rho * rho - d * d, 2.0 * r * d, 1.0)

    mu = clamp_cosine(np.where(ray_r_mu_intersects_ground, mu_ground, mu_sky))

    x_mu_s = get_unit_range_from_texture_coord(v, params.scattering_texture_mu_s_size)
    d_min, d_max, A = _mu_s_warp(params)
    a = (A - x_mu_s * A) / (1.0 + x_mu_s * A)
    d = d_min + np.minimum(a, A) * (d_max - d_min)
    mu_s = clamp_cosine(_safe_divide(H * H - d * d, 2.0 * params.bottom_radius * d, 1.0))

    nu = clamp_cosine(u * 2.0 - 1.0)
    return r, mu, mu_s, nu, ray_r_mu_intersects_ground


def get_r_mu_mu_s_nu_from_scattering_texel(params: AtmosphereParameters, x, y, z):
    """
    Physical parameters at a scattering texel.

    Args:
        x: index along the combined (nu, mu_s) axis
        y: index along mu
        z: index along r

    nu bins are addressed by their index over nu_size - 1 so that the first
    and last bins hold nu = -1 and nu = 1 exactly.
    """
    x = np.asarray(x)
    mu_s_size = params.scattering_texture_mu_s_size
    u = (x // mu_s_size) / (params.scattering_texture_nu_size - 1)
    v = (x % mu_s_size + 0.5) / mu_s_size
    w = (np.asarray(y) + 0.5) / params.scattering_texture_mu_size
    z = (np.asarray(z) + 0.5) / params.scattering_texture_r_size
    r, mu, mu_s, nu, ray_r_mu_intersects_ground = get_r_mu_mu_s_nu_from_scattering_texture_uvwz(
        params, u, v, w, z)
    # Keep nu consistent with mu and mu_s
    spread = safe_sqrt((1.0 - mu * mu) * (1.0 - mu_s * mu_s))
    nu = np.clip(nu, mu * mu_s - spread, mu * mu_s + spread)
    return r, mu, mu_s, nu, ray_r_mu_intersects_ground


# Irradiance table

def get_irradiance_texture_uv_from_r_mu_s(params: AtmosphereParameters, r, mu_s):
    x_r = (r - params.bottom_radius) / (params.top_radius - params.bottom_radius)
    x_mu_s = mu_s * 0.5 + 0.5
    return (
        get_texture_coord_from_unit_range(x_mu_s, params.irradiance_texture_mu_s_size),
        get_texture_coord_from_unit_range(x_r, params.irradiance_texture_r_size),
    )


def get_r_mu_s_from_irradiance_texture_uv(params: AtmosphereParameters, u, v):
    x_mu_s = get_unit_range_from_texture_coord(u, params.irradiance_texture_mu_s_size)
    x_r = get_unit_range_from_texture_coord(v, params.irradiance_texture_r_size)
    r = params.bottom_radius + x_r * (params.top_radius - params.bottom_radius)
    mu_s = clamp_cosine(2.0 * x_mu_s - 1.0)
    return r, mu_s


def get_r_mu_s_from_irradiance_texel(params: AtmosphereParameters, i, j):
    u = (np.asarray(i) + 0.5) / params.irradiance_texture_mu_s_size
    v = (np.asarray(j) + 0.5) / params.irradiance_texture_r_size
    return get_r_mu_s_from_irradiance_texture_uv(params, u, v)

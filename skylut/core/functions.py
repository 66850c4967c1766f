"""
Skylut Functions - Shared ray geometry and phase functions.

Every function accepts scalars or numpy arrays and broadcasts. Nothing here
raises: inputs to square roots and inverse cosines are clamped into their
valid domain instead.
"""

import numpy as np

from .parameters import AtmosphereParameters


def clamp_cosine(mu):
    return np.clip(mu, -1.0, 1.0)


def clamp_distance(d):
    return np.maximum(d, 0.0)


def safe_sqrt(area):
    return np.sqrt(np.maximum(area, 0.0))


def clamp_radius(params: AtmosphereParameters, r):
    return np.clip(r, params.bottom_radius, params.top_radius)


def get_texture_coord_from_unit_range(x, texture_size: int):
    """Map [0, 1] onto texel centers, so that 0 and 1 hit the first and last texel."""
    return 0.5 / texture_size + x * (1.0 - 1.0 / texture_size)


def get_unit_range_from_texture_coord(u, texture_size: int):
    return (u - 0.5 / texture_size) / (1.0 - 1.0 / texture_size)


def distance_to_top_atmosphere_boundary(params: AtmosphereParameters, r, mu):
    """Distance from radius r along direction cosine mu to the top of the atmosphere."""
    discriminant = r * r * (mu * mu - 1.0) + params.top_radius * params.top_radius
    return clamp_distance(-r * mu + safe_sqrt(discriminant))


def distance_to_bottom_atmosphere_boundary(params: AtmosphereParameters, r, mu):
    """Distance from radius r along direction cosine mu to the ground."""
    discriminant = r * r * (mu * mu - 1.0) + params.bottom_radius * params.bottom_radius
    return clamp_distance(-r * mu - safe_sqrt(discriminant))


def ray_intersects_ground(params: AtmosphereParameters, r, mu):
    """Whether the ray (r, mu) hits the ground."""
    return (mu < 0.0) & (
        r * r * (mu * mu - 1.0) + params.bottom_radius * params.bottom_radius >= 0.0
    )


def distance_to_nearest_atmosphere_boundary(
    params: AtmosphereParameters, r, mu, ray_r_mu_intersects_ground
):
    return np.where(
        ray_r_mu_intersects_ground,
        distance_to_bottom_atmosphere_boundary(params, r, mu),
        distance_to_top_atmosphere_boundary(params, r, mu),
    )


def rayleigh_phase_function(nu):
    k = 3.0 / (16.0 * np.pi)
    return k * (1.0 + nu * nu)


def mie_phase_function(g, nu):
    """Cornette-Shanks phase function."""
    k = 3.0 / (8.0 * np.pi) * (1.0 - g * g) / (2.0 + g * g)
    return k * (1.0 + nu * nu) / np.power(1.0 + g * g - 2.0 * g * nu, 1.5)


def smoothstep(edge0, edge1, x):
    t = np.clip((x - edge0) / (edge1 - edge0), 0.0, 1.0)
    return t * t * (3.0 - 2.0 * t)


def point_along_ray(params: AtmosphereParameters, r, mu, d):
    """Radius and view cosine at distance d along the ray (r, mu)."""
    r_d = clamp_radius(params, np.sqrt(d * d + 2.0 * r * mu * d + r * r))
    mu_d = clamp_cosine((r * mu + d) / r_d)
    return r_d, mu_d

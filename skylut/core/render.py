"""
Skylut Render - Sky radiance, aerial perspective and irradiance from the tables.

All functions take positions and directions as (..., 3) arrays in the
planet frame (center at origin, km) and evaluate one ray per leading element.
Directions must be unit vectors.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from .parameters import AtmosphereParameters, DrawParameters
from .functions import (
    clamp_cosine,
    clamp_radius,
    safe_sqrt,
    ray_intersects_ground,
    rayleigh_phase_function,
    mie_phase_function,
    smoothstep,
)
from .textures import (
    get_transmittance,
    get_transmittance_to_sun,
    get_transmittance_to_top_atmosphere_boundary,
    get_scattering,
    get_irradiance,
)
from .model import AtmosphereModel, PrecomputedTextures

logger = logging.getLogger(__name__)


def _dot(a, b):
    return np.sum(a * b, axis=-1)


def _expand(x):
    # Per-ray scalar to a broadcastable (..., 1) array
    return np.asarray(x)[..., np.newaxis]


def _vectors(*arrays):
    return np.broadcast_arrays(*(np.asarray(a, dtype=np.float64) for a in arrays))


def get_extrapolated_single_mie_scattering(
    params: AtmosphereParameters, scattering: np.ndarray
) -> np.ndarray:
    """
    Recover the mie spectrum from a combined (rayleigh rgb, mie red) texel.

    Assumes the mie and rayleigh spectra are proportional to their scattering
    coefficients. Returns zero where the stored rayleigh red channel is not
    positive.
    """
    scattering = np.asarray(scattering, dtype=np.float64)
    red = scattering[..., 0]
    valid = red > 0.0
    beta_r = params.rayleigh_scattering
    beta_m = params.mie_scattering
    if beta_m[0] <= 0.0:
        return np.zeros(scattering.shape[:-1] + (3,))
    ratio = (beta_r[0] / beta_m[0]) * np.divide(
        beta_m, beta_r, out=np.zeros(3), where=beta_r != 0.0)
    alpha_over_red = scattering[..., 3] / np.where(valid, red, 1.0)
    mie = scattering[..., :3] * _expand(alpha_over_red) * ratio
    return np.where(_expand(valid), mie, 0.0)


def get_combined_scattering(
    params: AtmosphereParameters, scattering: np.ndarray,
    r, mu, mu_s, nu, ray_r_mu_intersects_ground,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Look up the combined scattering table.

    Returns:
        (rayleigh and multiple scattering without phase function, single mie scattering)
    """
    combined = get_scattering(params, scattering, r, mu, mu_s, nu, ray_r_mu_intersects_ground)
    return combined[..., :3], get_extrapolated_single_mie_scattering(params, combined)


def _enter_atmosphere(params: AtmosphereParameters, camera, view_ray):
    """
    Move cameras in space onto the top boundary along their view ray.

    Returns:
        (camera, r, rmu, misses) where misses flags rays from space that never
        enter the atmosphere
    """
    r = np.linalg.norm(camera, axis=-1)
    rmu = _dot(camera, view_ray)
    discriminant = rmu * rmu - r * r + params.top_radius ** 2
    distance_to_top = -rmu - safe_sqrt(discriminant)

    enters = (discriminant >= 0.0) & (distance_to_top > 0.0)
    misses = ~enters & (r > params.top_radius)

    camera = np.where(_expand(enters), camera + view_ray * _expand(distance_to_top), camera)
    r = np.where(enters | misses, params.top_radius, r)
    rmu = np.where(enters, rmu + distance_to_top, rmu)
    return camera, r, rmu, misses


def _phase_weighted(params, scattering, single_mie, nu, mie_phase_function_g):
    g = params.mie_phase_function_g if mie_phase_function_g is None else mie_phase_function_g
    return (
        scattering * _expand(rayleigh_phase_function(nu)) +
        single_mie * _expand(mie_phase_function(g, nu))
    )


def get_sky_radiance(
    params: AtmosphereParameters,
    textures: PrecomputedTextures,
    camera, view_ray, sun_direction,
    mie_phase_function_g: Optional[float] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Radiance reaching the camera along view_ray from the whole atmosphere.

    Args:
        mie_phase_function_g: Overrides the asymmetry factor of the parameters

    Returns:
        (radiance, transmittance to the top of the atmosphere, zero for ground rays)
    """
    camera, view_ray, sun_direction = _vectors(camera, view_ray, sun_direction)
    camera, r, rmu, misses = _enter_atmosphere(params, camera, view_ray)

    mu = clamp_cosine(rmu / r)
    mu_s = clamp_cosine(_dot(camera, sun_direction) / r)
    nu = clamp_cosine(_dot(view_ray, sun_direction))
    ground = ray_intersects_ground(params, r, mu)

    transmittance = np.where(
        _expand(ground),
        0.0,
        get_transmittance_to_top_atmosphere_boundary(params, textures.transmittance, r, mu),
    )
    scattering, single_mie = get_combined_scattering(
        params, textures.scattering, r, mu, mu_s, nu, ground)
    radiance = _phase_weighted(params, scattering, single_mie, nu, mie_phase_function_g)

    misses = _expand(misses)
    return np.where(misses, 0.0, radiance), np.where(misses, 1.0, transmittance)


def get_sky_radiance_to_point(
    params: AtmosphereParameters,
    textures: PrecomputedTextures,
    camera, view_ray, point, sun_direction,
    mie_phase_function_g: Optional[float] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Radiance scattered towards the camera between the camera and point.

    Uses the difference between the lookups at the camera and at point.
    Points at infinite distance fall back to get_sky_radiance.

    Returns:
        (radiance, transmittance between camera and point)
    """
    camera, view_ray, point, sun_direction = _vectors(camera, view_ray, point, sun_direction)
    camera, r, rmu, misses = _enter_atmosphere(params, camera, view_ray)

    mu = clamp_cosine(rmu / r)
    mu_s = clamp_cosine(_dot(camera, sun_direction) / r)
    nu = clamp_cosine(_dot(view_ray, sun_direction))
    ground = ray_intersects_ground(params, r, mu)

    with np.errstate(invalid='ignore'):
        d = np.linalg.norm(point - camera, axis=-1)
    finite = np.isfinite(d)
    d = np.where(finite, d, 0.0)

    transmittance_to_top = np.where(
        _expand(ground),
        0.0,
        get_transmittance_to_top_atmosphere_boundary(params, textures.transmittance, r, mu),
    )
    transmittance = np.where(
        _expand(finite),
        get_transmittance(params, textures.transmittance, r, mu, d, ground),
        transmittance_to_top,
    )
    combined = get_scattering(params, textures.scattering, r, mu, mu_s, nu, ground)
    scattering = combined[..., :3]
    single_mie = get_extrapolated_single_mie_scattering(params, combined)

    # Second lookup at the ray parameters of the point
    r_p = clamp_radius(params, np.sqrt(d * d + 2.0 * r * mu * d + r * r))
    mu_p = clamp_cosine((r * mu + d) / r_p)
    mu_s_p = clamp_cosine((r * mu_s + d * nu) / r_p)
    combined_p = get_scattering(params, textures.scattering, r_p, mu_p, mu_s_p, nu, ground)
    single_mie_p = get_extrapolated_single_mie_scattering(params, combined_p)

    scattering_to_point = scattering - transmittance * combined_p[..., :3]
    single_mie_to_point = single_mie - transmittance * single_mie_p
    single_mie_to_point = get_extrapolated_single_mie_scattering(
        params,
        np.concatenate([scattering_to_point, single_mie_to_point[..., :1]], axis=-1),
    )
    # Suppresses artifacts when the sun is below the horizon
    single_mie_to_point = single_mie_to_point * _expand(smoothstep(0.0, 0.01, mu_s))

    finite = _expand(finite)
    scattering = np.where(finite, scattering_to_point, scattering)
    single_mie = np.where(finite, single_mie_to_point, single_mie)
    radiance = _phase_weighted(params, scattering, single_mie, nu, mie_phase_function_g)

    misses = _expand(misses)
    return np.where(misses, 0.0, radiance), np.where(misses, 1.0, transmittance)


def get_sun_and_sky_irradiance(
    params: AtmosphereParameters,
    textures: PrecomputedTextures,
    point, normal, sun_direction,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Irradiance received by a surface at point with the given normal.

    Sky irradiance is exact for horizontal surfaces and scaled by
    (1 + cos(normal, zenith)) / 2 otherwise.

    Returns:
        (direct sun irradiance, indirect sky irradiance)
    """
    point, normal, sun_direction = _vectors(point, normal, sun_direction)
    r = np.linalg.norm(point, axis=-1)
    mu_s = clamp_cosine(_dot(point, sun_direction) / r)

    sky_irradiance = (
        get_irradiance(params, textures.irradiance, r, mu_s) *
        _expand((1.0 + _dot(normal, point) / r) * 0.5)
    )
    sun_irradiance = (
        params.solar_irradiance *
        get_transmittance_to_sun(params, textures.transmittance, r, mu_s) *
        _expand(np.maximum(_dot(normal, sun_direction), 0.0))
    )
    return sun_irradiance, sky_irradiance


class Renderer:
    """
    Evaluates the sky for every pixel of a camera described by DrawParameters.
    """

    def __init__(self, model: AtmosphereModel):
        if not model.is_initialized:
            raise RuntimeError("Model not initialized. Call init() first.")
        self.model = model

    def view_rays(self, draw: DrawParameters, width: int, height: int) -> np.ndarray:
        """
        Unit view rays through the pixel centers, shape (height, width, 3).

        Row 0 is the top of the image.
        """
        x = (np.arange(width) + 0.5) / width * 2.0 - 1.0
        y = 1.0 - (np.arange(height) + 0.5) / height * 2.0
        ndc_x, ndc_y = np.meshgrid(x, y)

        def unproject(ndc_z):
            clip = np.stack([ndc_x, ndc_y, np.full_like(ndc_x, ndc_z), np.ones_like(ndc_x)], axis=-1)
            world = clip @ draw.inverse_viewproj.T
            return world[..., :3] / world[..., 3:]

        rays = unproject(1.0) - unproject(-1.0)
        return rays / np.linalg.norm(rays, axis=-1, keepdims=True)

    def draw(
        self,
        draw: DrawParameters,
        width: int,
        height: int,
        points: Optional[np.ndarray] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Render radiance and transmittance images.

        Args:
            draw: Camera, sun and per-draw overrides
            width, height: Image size in pixels
            points: Optional (height, width, 3) world positions of visible
                surfaces; infinite entries see the sky

        Returns:
            (radiance, transmittance), both (height, width, 3)
        """
        params = self.model.params
        textures = self.model.textures
        view_rays = self.view_rays(draw, width, height)

        if points is None:
            radiance, transmittance = get_sky_radiance(
                params, textures, draw.camera_position, view_rays, draw.sun_direction,
                mie_phase_function_g=draw.mie_anisotropy,
            )
        else:
            radiance, transmittance = get_sky_radiance_to_point(
                params, textures, draw.camera_position, view_rays, points, draw.sun_direction,
                mie_phase_function_g=draw.mie_anisotropy,
            )

        # Tables are baked with the parameters' solar irradiance
        irradiance_scale = np.divide(
            draw.solar_irradiance, params.solar_irradiance,
            out=np.zeros(3), where=params.solar_irradiance != 0.0,
        )
        logger.debug("Rendered %dx%d sky, max radiance %.6f", width, height, radiance.max())
        return radiance * irradiance_scale, transmittance


def render_sky(
    model: AtmosphereModel,
    draw: DrawParameters,
    width: int,
    height: int,
    points: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Render a sky image with a fresh Renderer."""
    return Renderer(model).draw(draw, width, height, points)
